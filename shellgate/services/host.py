"""
Terminal host interfaces.

The terminal environment (an editor's integrated terminal, or the local
subprocess host in local_host.py) is an external collaborator. These
protocols describe the surface the terminal service relies on.

Two execution styles exist:
- **Structured**: the terminal exposes a shell integration object whose
  execute_command() returns a readable output stream and an exit code.
- **Legacy**: only send_text() is available. Output has to be recovered
  by selecting terminal text and copying it through the clipboard.
"""

from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol

# Host command ids used for clipboard-mediated capture
CLEAR_SELECTION = "terminal.clearSelection"
SELECT_TO_PREVIOUS_COMMAND = "terminal.selectToPreviousCommand"
SELECT_ALL = "terminal.selectAll"
COPY_SELECTION = "terminal.copySelection"


class Disposable(Protocol):
    def dispose(self) -> None: ...


class Clipboard(Protocol):
    async def read_text(self) -> str: ...

    async def write_text(self, text: str) -> None: ...


class ShellExecution(Protocol):
    """One command dispatched through shell integration."""

    exit_code: Awaitable[Optional[int]]

    def read(self) -> AsyncIterator[str]: ...


class ShellIntegration(Protocol):
    cwd: Optional[str]

    def execute_command(self, command_line: str) -> ShellExecution: ...


class TerminalHandle(Protocol):
    name: str
    shell_integration: Optional[ShellIntegration]
    # None while the terminal is open; set by the host once it closes
    exit_status: Optional[int]

    async def process_id(self) -> Optional[int]: ...

    def send_text(self, text: str, add_new_line: bool = True) -> None: ...

    def show(self, preserve_focus: bool = True) -> None: ...


class ShellIntegrationChangeEvent(Protocol):
    terminal: TerminalHandle
    shell_integration: ShellIntegration


ShellIntegrationListener = Callable[[ShellIntegrationChangeEvent], Any]


class TerminalHost(Protocol):
    clipboard: Clipboard

    async def execute_command(self, command_id: str) -> None: ...

    def create_terminal(
        self, name: str, cwd: Optional[str] = None, env: Optional[dict[str, str]] = None
    ) -> TerminalHandle: ...

    # Optional: older hosts do not offer it at all
    # def on_did_change_shell_integration(self, listener) -> Disposable: ...


def has_execute_command(shell_integration: Any) -> bool:
    """True if a shell integration object supports structured execution."""
    return callable(getattr(shell_integration, "execute_command", None))
