"""
Shared fakes for the terminal service tests.

FakeHost stands in for the editor: it creates FakeTerminals, records
host commands, and lets tests fire shell integration activations by hand.
"""

import asyncio
import itertools
from types import SimpleNamespace
from typing import Optional

import pytest

from shellgate.services import process as process_module
from shellgate.services.host import COPY_SELECTION


class FakeClipboard:
    def __init__(self, text: str = "original clipboard"):
        self.text = text
        self.writes: list[str] = []

    async def read_text(self) -> str:
        return self.text

    async def write_text(self, text: str) -> None:
        self.writes.append(text)
        self.text = text


class FakeExecution:
    """
    A structured execution driven by the test.

    Chunks given up front are yielded immediately; push()/finish() feed
    a still-running command.
    """

    def __init__(self, chunks=None, exit_code: Optional[int] = 0, running: bool = False):
        self._queue: asyncio.Queue = asyncio.Queue()
        self.exit_code: asyncio.Future = asyncio.get_running_loop().create_future()
        for chunk in chunks or []:
            self._queue.put_nowait(chunk)
        if not running:
            self.finish(exit_code)

    def push(self, chunk: str):
        self._queue.put_nowait(chunk)

    def finish(self, exit_code: Optional[int] = 0):
        self._queue.put_nowait(None)
        self.exit_code.set_result(exit_code)

    async def read(self):
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk


class FakeShellIntegration:
    def __init__(self, cwd: Optional[str] = None):
        self.cwd = cwd
        self.commands: list[str] = []
        self.outputs: dict[str, list[str]] = {}
        self.exit_codes: dict[str, int] = {}
        self.running: dict[str, FakeExecution] = {}
        self.error: Optional[Exception] = None
        self.keep_running: set[str] = set()

    def execute_command(self, command_line: str) -> FakeExecution:
        self.commands.append(command_line)
        if self.error is not None:
            raise self.error
        if command_line.startswith("cd "):
            self.cwd = command_line[3:].strip('"')
        execution = FakeExecution(
            self.outputs.get(command_line, []),
            exit_code=self.exit_codes.get(command_line, 0),
            running=command_line in self.keep_running,
        )
        self.running[command_line] = execution
        return execution


class FakeTerminal:
    def __init__(self, name: str, pid: Optional[int], cwd: Optional[str], env):
        self.name = name
        self.cwd = cwd
        self.env = env
        self.pid = pid
        self.shell_integration: Optional[FakeShellIntegration] = None
        self.exit_status: Optional[int] = None
        self.sent: list[str] = []
        self.shown = False
        self.pid_ready: Optional[asyncio.Event] = None

    async def process_id(self) -> Optional[int]:
        if self.pid_ready is not None:
            await self.pid_ready.wait()
        return self.pid

    def send_text(self, text: str, add_new_line: bool = True) -> None:
        self.sent.append(text)

    def show(self, preserve_focus: bool = True) -> None:
        self.shown = True


class FakeDisposable:
    def __init__(self):
        self.disposed = 0

    def dispose(self):
        self.disposed += 1


class FakeHost:
    """
    Args:
        integrated: give new terminals an active shell integration right away
        copy_text: what COPY_SELECTION puts on the clipboard (None: nothing)
    """

    def __init__(self, integrated: bool = False, copy_text: Optional[str] = None):
        self.clipboard = FakeClipboard()
        self.integrated = integrated
        self.copy_text = copy_text
        self.fail_on: Optional[str] = None
        self.host_commands: list[str] = []
        self.terminals: list[FakeTerminal] = []
        self.listeners: list = []
        self.disposable = FakeDisposable()
        self._pids = itertools.count(100)

    def create_terminal(self, name, cwd=None, env=None) -> FakeTerminal:
        terminal = FakeTerminal(name, next(self._pids), cwd, env)
        if self.integrated:
            terminal.shell_integration = FakeShellIntegration(cwd)
        self.terminals.append(terminal)
        return terminal

    def on_did_change_shell_integration(self, listener):
        self.listeners.append(listener)
        return self.disposable

    def activate(self, terminal: FakeTerminal, shell_integration=None):
        shell_integration = shell_integration or FakeShellIntegration(terminal.cwd)
        terminal.shell_integration = shell_integration
        event = SimpleNamespace(terminal=terminal, shell_integration=shell_integration)
        for listener in list(self.listeners):
            listener(event)
        return shell_integration

    async def execute_command(self, command_id: str) -> None:
        self.host_commands.append(command_id)
        if self.fail_on == command_id:
            raise RuntimeError(f"{command_id} failed")
        if command_id == COPY_SELECTION and self.copy_text is not None:
            self.clipboard.text = self.copy_text


class LegacyHost(FakeHost):
    """A host too old to report shell integration changes."""

    on_did_change_shell_integration = None


@pytest.fixture
def fake_host():
    return FakeHost()


@pytest.fixture
def integrated_host():
    return FakeHost(integrated=True)


@pytest.fixture
def fast_polling(monkeypatch):
    """Make legacy completion polling instant."""
    monkeypatch.setattr(process_module, "OUTPUT_CHECK_INTERVAL", 0)


@pytest.fixture
def wait_until():
    """Poll a predicate from inside a test's event loop."""

    async def _wait_until(predicate, timeout: float = 1.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.001)

    return _wait_until
