"""
Shell-Capability Detector.

Learns which terminals support structured execution by listening for
the host's "shell integration activated" notification. The notification
carries the terminal handle, but the id we key on (the terminal's
process id) is resolved asynchronously and may not exist yet when the
notification fires. Activations therefore go through two stages:

1. Parked in an arena of pending activations under a correlation token
2. Recorded permanently under the process id once it resolves

Nothing here ever blocks. run_command polls via wait_for_activation().
"""

import asyncio
import itertools
import logging
from typing import Any, Optional

from .host import ShellIntegration, TerminalHandle, TerminalHost, has_execute_command

logger = logging.getLogger(__name__)


class CapabilityDetector:
    """Records shell integration activations for one host."""

    def __init__(self, host: TerminalHost):
        self._activated: dict[int, bool] = {}
        self._capabilities: dict[int, ShellIntegration] = {}
        self._waiters: dict[int, asyncio.Event] = {}

        # token -> terminal whose process id is still being resolved
        self._pending: dict[int, TerminalHandle] = {}
        self._pending_tasks: dict[int, asyncio.Task] = {}
        self._tokens = itertools.count(1)

        self._disposables: list[Any] = []
        self._listen(host)

    def _listen(self, host: TerminalHost):
        """Register for activation events. Failure just means legacy mode everywhere."""
        try:
            subscribe = getattr(host, "on_did_change_shell_integration", None)
            if subscribe is None:
                logger.warning(
                    "[Terminal] Host has no shell integration events; using legacy execution"
                )
                return
            disposable = subscribe(self._on_shell_integration_changed)
            if disposable is not None:
                self._disposables.append(disposable)
        except Exception as e:
            logger.warning("[Terminal] Failed to register shell integration listener: %s", e)

    def _on_shell_integration_changed(self, event) -> None:
        terminal = event.terminal
        shell_integration = event.shell_integration
        if not has_execute_command(shell_integration):
            return

        token = next(self._tokens)
        self._pending[token] = terminal
        self._pending_tasks[token] = asyncio.create_task(
            self._resolve(token, terminal, shell_integration)
        )

    async def _resolve(self, token: int, terminal: TerminalHandle, shell_integration) -> None:
        try:
            pid = await terminal.process_id()
        except Exception as e:
            logger.warning("[Terminal] Could not resolve terminal id: %s", e)
            pid = None
        finally:
            self._pending.pop(token, None)
            self._pending_tasks.pop(token, None)

        if not pid:
            return

        self._activated[pid] = True
        self._capabilities[pid] = shell_integration
        self._event_for(pid).set()
        logger.debug(
            "[Terminal] Shell integration activated (terminal=%s, id=%s)",
            getattr(terminal, "name", "?"),
            pid,
        )

    def _event_for(self, pid: int) -> asyncio.Event:
        event = self._waiters.get(pid)
        if event is None:
            event = asyncio.Event()
            self._waiters[pid] = event
        return event

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_activated(self, pid: Optional[int]) -> bool:
        return bool(pid) and self._activated.get(pid, False)

    def capability_for(self, pid: Optional[int]) -> Optional[ShellIntegration]:
        if not pid:
            return None
        return self._capabilities.get(pid)

    async def wait_for_activation(self, pid: int, timeout: float) -> bool:
        """
        Wait up to timeout seconds for a terminal's shell integration.

        Returns True if it is (or becomes) active, False on timeout.
        """
        if self.is_activated(pid):
            return True
        try:
            await asyncio.wait_for(self._event_for(pid).wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def dispose(self):
        """Stop listening and forget everything. Safe to call twice."""
        for disposable in self._disposables:
            disposable.dispose()
        self._disposables = []

        for task in self._pending_tasks.values():
            if not task.done():
                task.cancel()
        self._pending_tasks.clear()
        self._pending.clear()
        self._activated.clear()
        self._capabilities.clear()
        self._waiters.clear()
