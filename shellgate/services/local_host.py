"""
Local Shell Host.

A terminal host backed by asyncio subprocesses, for running the terminal
service outside an editor. Each terminal:

- Tracks its own working directory (`cd <dir>` relocates it, since
  every command runs in a fresh subprocess)
- Activates shell integration shortly after creation, like a real shell
  loading its integration script
- Keeps a scrollback that the host's selection commands and its
  process-local clipboard operate on, so legacy text injection and
  clipboard capture work end to end
"""

import asyncio
import itertools
import logging
import os
import shlex
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

from .host import (
    CLEAR_SELECTION,
    COPY_SELECTION,
    SELECT_ALL,
    SELECT_TO_PREVIOUS_COMMAND,
)

logger = logging.getLogger(__name__)

# Capture the user's environment at startup
_ORIGINAL_ENV = dict(os.environ)


class LocalClipboard:
    """Clipboard private to one LocalShellHost."""

    def __init__(self, text: str = ""):
        self._text = text

    async def read_text(self) -> str:
        return self._text

    async def write_text(self, text: str) -> None:
        self._text = text


class _Disposable:
    def __init__(self, callback: Callable[[], None]):
        self._callback: Optional[Callable[[], None]] = callback

    def dispose(self):
        if self._callback is not None:
            self._callback()
            self._callback = None


@dataclass
class ShellIntegrationChange:
    terminal: "LocalTerminal"
    shell_integration: "LocalShellIntegration"


class LocalExecution:
    """
    One command running in a subprocess.

    Starts immediately; read() drains the output queue and exit_code is a
    future, so a caller may read, await the exit code, or ignore both.
    """

    def __init__(self, terminal: "LocalTerminal", command_line: str):
        self._terminal = terminal
        self._command_line = command_line
        self._queue: asyncio.Queue = asyncio.Queue()
        self.exit_code: asyncio.Future = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(self._execute())

    def add_done_callback(self, callback: Callable[["LocalExecution"], None]):
        """Call back with this execution once it has fully finished."""
        self._task.add_done_callback(lambda _task: callback(self))

    async def read(self) -> AsyncIterator[str]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    def _write(self, text: str):
        self._terminal.write(text)
        self._queue.put_nowait(text)

    async def _execute(self):
        self._terminal.mark_command(self._command_line)
        try:
            changed = self._terminal.change_directory(self._command_line)
            if changed is not None:
                message, code = changed
                if message:
                    self._write(message)
                self.exit_code.set_result(code)
                return

            process = await asyncio.create_subprocess_shell(
                self._command_line,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                stdin=asyncio.subprocess.DEVNULL,
                cwd=self._terminal.cwd,
                env=self._terminal.env,
            )
            assert process.stdout is not None
            while True:
                line_bytes = await process.stdout.readline()
                if not line_bytes:
                    # EOF: process has finished writing
                    break
                self._write(line_bytes.decode("utf-8", errors="replace"))

            self.exit_code.set_result(await process.wait())
        except asyncio.CancelledError:
            self.exit_code.cancel()
            raise
        except Exception as e:
            self.exit_code.set_exception(e)
        finally:
            self._queue.put_nowait(None)


class LocalShellIntegration:
    def __init__(self, terminal: "LocalTerminal"):
        self._terminal = terminal

    @property
    def cwd(self) -> Optional[str]:
        return self._terminal.cwd

    def execute_command(self, command_line: str) -> LocalExecution:
        return LocalExecution(self._terminal, command_line)


class LocalTerminal:
    def __init__(
        self,
        host: "LocalShellHost",
        name: str,
        pid: int,
        cwd: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
    ):
        self._host = host
        self._pid = pid
        self.name = name
        self.cwd = os.path.abspath(cwd) if cwd else os.getcwd()
        self.env = {**_ORIGINAL_ENV, **(env or {})}
        self.shell_integration: Optional[LocalShellIntegration] = None
        self.exit_status: Optional[int] = None
        self._scrollback = ""
        self._last_command_at = 0
        # Typed commands still running; nobody else holds a reference to them
        self._typed: set[LocalExecution] = set()

    async def process_id(self) -> Optional[int]:
        return self._pid

    def send_text(self, text: str, add_new_line: bool = True) -> None:
        # Typed text runs like a command, but nobody reads its stream
        execution = LocalExecution(self, text)
        self._typed.add(execution)
        execution.add_done_callback(self._on_typed_done)

    def _on_typed_done(self, execution: "LocalExecution"):
        self._typed.discard(execution)
        exit_code = execution.exit_code
        if exit_code.done() and not exit_code.cancelled() and exit_code.exception() is not None:
            logger.error("[Terminal] Typed command failed: %s", exit_code.exception())

    @property
    def running_typed_commands(self) -> int:
        return len(self._typed)

    def show(self, preserve_focus: bool = True) -> None:
        self._host.active_terminal = self

    def close(self, exit_status: int = 0) -> None:
        self.exit_status = exit_status

    # ── Scrollback ──────────────────────────────────────────────────────

    def write(self, text: str):
        self._scrollback += text

    def mark_command(self, command_line: str):
        self._last_command_at = len(self._scrollback)
        self.write(f"$ {command_line}\n")

    @property
    def scrollback(self) -> str:
        return self._scrollback

    def text_since_last_command(self) -> str:
        return self._scrollback[self._last_command_at :]

    def change_directory(self, command_line: str) -> Optional[tuple[str, int]]:
        """Handle a bare `cd`. Returns (message, exit_code), or None if not a cd."""
        try:
            parts = shlex.split(command_line)
        except ValueError:
            return None
        if not parts or parts[0] != "cd" or len(parts) > 2:
            return None

        target = os.path.expanduser(parts[1] if len(parts) == 2 else "~")
        path = os.path.abspath(os.path.join(self.cwd, target))
        if not os.path.isdir(path):
            return f"cd: no such file or directory: {target}\n", 1
        self.cwd = path
        return "", 0


class LocalShellHost:
    """Terminal host running commands as local subprocesses."""

    def __init__(self, shell_integration: bool = True, activation_delay: float = 0.05):
        self.clipboard = LocalClipboard()
        self.active_terminal: Optional[LocalTerminal] = None
        self._shell_integration = shell_integration
        self._activation_delay = activation_delay
        self._listeners: list[Callable] = []
        self._terminals: list[LocalTerminal] = []
        self._selection: Optional[str] = None
        self._pids = itertools.count(1000)

    def create_terminal(
        self, name: str, cwd: Optional[str] = None, env: Optional[dict[str, str]] = None
    ) -> LocalTerminal:
        terminal = LocalTerminal(self, name, next(self._pids), cwd=cwd, env=env)
        self._terminals.append(terminal)
        if self._shell_integration:
            asyncio.get_running_loop().call_later(
                self._activation_delay, self._activate, terminal
            )
        return terminal

    def _activate(self, terminal: LocalTerminal):
        if terminal.exit_status is not None:
            return
        terminal.shell_integration = LocalShellIntegration(terminal)
        event = ShellIntegrationChange(terminal, terminal.shell_integration)
        for listener in list(self._listeners):
            listener(event)

    def on_did_change_shell_integration(self, listener: Callable) -> _Disposable:
        self._listeners.append(listener)
        return _Disposable(lambda: self._listeners.remove(listener))

    async def execute_command(self, command_id: str) -> None:
        terminal = self.active_terminal
        if command_id == CLEAR_SELECTION:
            self._selection = None
        elif command_id == SELECT_TO_PREVIOUS_COMMAND:
            self._selection = terminal.text_since_last_command() if terminal else None
        elif command_id == SELECT_ALL:
            self._selection = terminal.scrollback if terminal else None
        elif command_id == COPY_SELECTION:
            if self._selection:
                await self.clipboard.write_text(self._selection)
        else:
            raise ValueError(f"Unknown terminal command: {command_id}")
