"""
Terminal Service.

Hands out reusable terminal sessions and runs commands in them. This is
the session registry the agent loop talks to:

- acquire(cwd): reuse an idle session already in cwd, else move an idle
  session there with `cd`, else create a new one
- run_command(session, command): returns a ProcessHandle that streams
  'line' events and can be awaited or released with continue_()
- get_unretrieved_output(id) / is_process_hot(id): reattach to a command
  the caller stopped waiting for

Two execution modes, picked per command:
- **Structured**: the terminal's shell integration runs the command and
  reports output and exit code.
- **Legacy**: shell integration never activated (within
  CAPABILITY_WAIT_TIMEOUT), so the command is typed into the terminal and
  completion is inferred from captured terminal text.

A session is busy for the whole life of exactly one process; busy is
cleared in a finally block so a failing command never strands it.
"""

import asyncio
import logging
from typing import Any, Optional

from ..config import CAPABILITY_WAIT_TIMEOUT
from .capability import CapabilityDetector
from .capture import capture_terminal_output
from .host import TerminalHost, has_execute_command
from .process import ProcessHandle, TerminalProcess
from .sessions import Session, SessionStore, are_paths_equal

logger = logging.getLogger(__name__)


class TerminalService:
    """
    Session registry plus execution protocol for one terminal host.

    Every piece of state lives on the instance, so several services (one
    per host, or one per test) can coexist.
    """

    def __init__(
        self,
        host: TerminalHost,
        broadcaster: Optional[Any] = None,
        capability_wait_timeout: float = CAPABILITY_WAIT_TIMEOUT,
    ):
        self.host = host
        self.store = SessionStore(host)
        self.detector = CapabilityDetector(host)
        self.capability_wait_timeout = capability_wait_timeout

        # Optional ConnectionManager-like object with broadcast_event()
        self._broadcaster = broadcaster

        # Sessions handed out by this service
        self._session_ids: set[int] = set()
        # session id -> latest process run in it
        self._processes: dict[int, TerminalProcess] = {}
        self._dispatch_tasks: set[asyncio.Task] = set()
        self._broadcast_tasks: set[asyncio.Task] = set()

    # ── Session Registry ────────────────────────────────────────────────

    async def acquire(self, cwd: str) -> Session:
        """Return an idle session in cwd, reusing sessions where possible."""
        sessions = self.store.get_all_terminals()

        for session in sessions:
            if session.busy:
                continue
            shell_integration = session.terminal.shell_integration
            session_cwd = getattr(shell_integration, "cwd", None)
            if session_cwd and are_paths_equal(cwd, session_cwd):
                self._session_ids.add(session.id)
                return session

        available = next((s for s in sessions if not s.busy), None)
        if available:
            logger.debug("[Terminal] Moving terminal %d to %s", available.id, cwd)
            await self.run_command(available, f'cd "{cwd}"')
            available.working_directory = cwd
            self._session_ids.add(available.id)
            return available

        session = self.store.create_terminal(cwd)
        self._session_ids.add(session.id)
        return session

    get_or_create_terminal = acquire

    def list_by_busy_state(self, busy: bool) -> list[dict]:
        """Sessions handed out by this service with the given busy state."""
        result = []
        for session_id in sorted(self._session_ids):
            session = self.store.get_terminal(session_id)
            if session is not None and session.busy == busy:
                result.append({"id": session.id, "last_command": session.last_command})
        return result

    get_terminals = list_by_busy_state

    def get_unretrieved_output(self, session_id: int) -> str:
        if session_id not in self._session_ids:
            return ""
        process = self._processes.get(session_id)
        return process.get_unretrieved_output() if process else ""

    def is_process_hot(self, session_id: int) -> bool:
        process = self._processes.get(session_id)
        return process.is_hot if process else False

    is_hot = is_process_hot

    # ── Command Execution ───────────────────────────────────────────────

    def run_command(self, session: Session, command: str) -> ProcessHandle:
        """
        Start a command in a session and return its handle immediately.

        The session must not be busy; the caller gets it from acquire().
        """
        if session.busy:
            raise RuntimeError(f"Terminal {session.id} is busy")

        session.busy = True
        session.last_command = command
        process = TerminalProcess()
        self._processes[session.id] = process
        handle = ProcessHandle(process, session.id)

        if self._broadcaster is not None:
            self._bridge_to_ui(process, session.id)

        task = asyncio.create_task(self._dispatch(session, process, command))
        self._dispatch_tasks.add(task)
        task.add_done_callback(self._dispatch_tasks.discard)
        return handle

    async def _dispatch(self, session: Session, process: TerminalProcess, command: str):
        terminal = session.terminal
        try:
            shell_integration = terminal.shell_integration
            if not has_execute_command(shell_integration):
                shell_integration = await self._await_shell_integration(session)

            await process.run(terminal, command, shell_integration, self.host)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("[Terminal] Command failed in terminal %d: %s", session.id, e)
            process.emit("error", e)
        finally:
            session.busy = False
            process.is_hot = False

    async def _await_shell_integration(self, session: Session):
        """Wait (bounded) for shell integration. None means use legacy mode."""
        pid = await session.terminal.process_id()
        if not pid:
            return None

        if await self.detector.wait_for_activation(pid, self.capability_wait_timeout):
            return session.terminal.shell_integration or self.detector.capability_for(pid)

        logger.warning(
            "[Terminal] Shell integration not active after %.1fs (terminal %d), "
            "falling back to legacy execution",
            self.capability_wait_timeout,
            session.id,
        )
        return None

    def _bridge_to_ui(self, process: TerminalProcess, session_id: int):
        """Forward process events to connected clients."""

        def send(message_type: str, payload: dict):
            task = asyncio.create_task(
                self._broadcaster.broadcast_event(message_type, payload)
            )
            self._broadcast_tasks.add(task)
            task.add_done_callback(self._on_broadcast_done)

        process.on(
            "line",
            lambda line: send("terminal_output", {"id": session_id, "text": line}),
        )
        process.once(
            "completed",
            lambda exit_code=None: send(
                "terminal_command_complete", {"id": session_id, "exit_code": exit_code}
            ),
        )
        process.once(
            "error",
            lambda error: send("terminal_error", {"id": session_id, "error": str(error)}),
        )

    def _on_broadcast_done(self, task: asyncio.Task):
        self._broadcast_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("[Terminal] Failed to broadcast terminal event: %s", task.exception())

    # ── Terminal Contents ───────────────────────────────────────────────

    async def get_terminal_contents(self, commands: int = -1) -> str:
        """
        Copy text out of the active terminal via the clipboard.

        commands < 0 captures the whole buffer, otherwise the output since
        the previous command.
        """
        return await capture_terminal_output(self.host, select_all=commands < 0)

    # ── Lifecycle ───────────────────────────────────────────────────────

    def dispose_all(self):
        """Forget all sessions and processes and stop listening to the host."""
        for process in self._processes.values():
            process.remove_all_listeners()
        self._session_ids.clear()
        self._processes.clear()
        self.detector.dispose()
