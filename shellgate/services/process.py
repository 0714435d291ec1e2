"""
Terminal Process.

Represents one command running in a terminal session. A process is both
an event emitter and (through ProcessHandle) an awaitable:

- 'line' events stream output while the caller is listening
- Awaiting the handle waits for the command to finish
- continue_() stops waiting without stopping the command, so the caller
  can move on and later fetch what it missed with
  TerminalService.get_unretrieved_output()

Events: line, completed, continue, error, no_shell_integration
"""

import asyncio
import logging
import re
from typing import Any, Callable, Optional

from ..config import (
    COMMAND_EXECUTION_TIMEOUT,
    MAX_OUTPUT_LENGTH,
    MAX_OUTPUT_PREVIEW_LENGTH,
    OUTPUT_CHECK_INTERVAL,
    OUTPUT_CHECK_MAX_ATTEMPTS,
    OUTPUT_CHECK_STABLE_COUNT,
    PROCESS_HOT_TIMEOUT_COMPILING,
    PROCESS_HOT_TIMEOUT_NORMAL,
)
from .capture import capture_terminal_output
from .host import ShellIntegration, TerminalHandle, TerminalHost, has_execute_command

logger = logging.getLogger(__name__)

# ANSI escape code stripper (for LLM-readable output)
_ANSI_RE = re.compile(
    r"\x1b\[[0-9;]*[a-zA-Z]"  # CSI sequences (colors, cursor)
    r"|\x1b\][^\x07]*\x07"  # OSC sequences (title, shell integration marks)
    r"|\x1b[()][AB012]"  # Character set selection
    r"|\x1b\[[\?0-9;]*[hlm]"  # Private mode set/reset
    r"|\x1b[=>]"  # Keypad modes
    r"|\r"  # Carriage returns
)

# Leftovers of shell integration marks whose ESC was already consumed
_SHELL_MARK_RE = re.compile(r"\]633;[^\x07\\]*(?:\x07|\\)?")
_CONTROL_ONLY_RE = re.compile(r"^[\x00-\x1f\x7f]+$")
_TRAILING_PROMPT_RE = re.compile(r"[%$#>]\s*$")
# Lines that are nothing but a shell prompt
_PROMPT_LINE_RES = [
    re.compile(r"^[\w-]+@[\w-]+[^%$#>]*[%$#>]\s*$"),  # user@host path $
    re.compile(r"^\[[\w-]+@[\w-]+[^\]]*\][$#>]\s*$"),  # [user@host path]$
    re.compile(r"^-(?:bash|zsh)-[\d.]+[$#>]\s*$"),  # -bash-5.2$
    re.compile(r"^PS\s+[A-Z]:\\[^>]*>\s*$"),  # PS C:\path>
    re.compile(r"^[A-Z]:\\[^>]*>\s*$"),  # C:\path>
]

# Output that suggests a long-running build step: keep the process hot longer
_COMPILING_MARKERS = ["compiling", "building", "bundling", "transpiling", "generating", "starting"]
_COMPILING_NULLIFIERS = [
    "compiled",
    "success",
    "finish",
    "complete",
    "succeed",
    "done",
    "end",
    "stop",
    "exit",
    "terminate",
    "error",
    "fail",
]


def strip_ansi(text: str) -> str:
    """Strip ANSI escape codes from terminal output."""
    return _ANSI_RE.sub("", text)


class CommandTimeoutError(TimeoutError):
    """The command did not finish within COMMAND_EXECUTION_TIMEOUT."""


class TerminalProcess:
    """One command in flight. Owned by TerminalService, one per session."""

    def __init__(self):
        self._listeners: dict[str, list[tuple[Callable[..., Any], bool]]] = {}
        self.command: str = ""
        self.exit_code: Optional[int] = None
        self.is_hot: bool = False
        self._hot_timer: Optional[asyncio.TimerHandle] = None
        self._is_listening = True
        self._buffer = ""
        self._full_output = ""
        self._last_retrieved_index = 0
        self._echo_seen = False

    # ── Events ──────────────────────────────────────────────────────────

    def on(self, event: str, listener: Callable[..., Any]) -> "TerminalProcess":
        self._listeners.setdefault(event, []).append((listener, False))
        return self

    def once(self, event: str, listener: Callable[..., Any]) -> "TerminalProcess":
        self._listeners.setdefault(event, []).append((listener, True))
        return self

    def off(self, event: str, listener: Callable[..., Any]) -> "TerminalProcess":
        self._listeners[event] = [
            entry for entry in self._listeners.get(event, []) if entry[0] is not listener
        ]
        return self

    def remove_all_listeners(self, event: Optional[str] = None):
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, *args) -> bool:
        """Call listeners in registration order. Returns False if there were none."""
        entries = self._listeners.get(event, [])
        if not entries:
            return False
        self._listeners[event] = [entry for entry in entries if not entry[1]]
        for listener, _ in entries:
            try:
                listener(*args)
            except Exception:
                logger.exception("[Terminal] '%s' listener raised", event)
        return True

    # ── Execution ───────────────────────────────────────────────────────

    async def run(
        self,
        terminal: TerminalHandle,
        command: str,
        shell_integration: Optional[ShellIntegration] = None,
        host: Optional[TerminalHost] = None,
    ):
        """
        Run a command in the terminal and emit its output.

        Uses structured execution when shell_integration supports it,
        otherwise sends the command as text. Emits 'completed' then
        'continue' on success; raises on dispatch failure.
        """
        self.command = command
        self.is_hot = True
        preview = command if len(command) <= 30 else command[:30] + "..."

        try:
            if has_execute_command(shell_integration):
                logger.debug("[Terminal] Running with shell integration: %s", preview)
                await asyncio.wait_for(
                    self._run_structured(shell_integration, command),
                    timeout=COMMAND_EXECUTION_TIMEOUT,
                )
            else:
                logger.debug("[Terminal] Running without shell integration: %s", preview)
                await asyncio.wait_for(
                    self._run_legacy(terminal, command, host),
                    timeout=COMMAND_EXECUTION_TIMEOUT,
                )
        except asyncio.TimeoutError as e:
            logger.warning("[Terminal] Command timed out: %s", preview)
            raise CommandTimeoutError(f"Command execution timeout: {preview}") from e
        finally:
            self._cool_down()

        self.emit("completed", self.exit_code)
        self.emit("continue")

    async def _run_structured(self, shell_integration: ShellIntegration, command: str):
        execution = shell_integration.execute_command(command)
        async for chunk in execution.read():
            self._mark_hot(chunk)
            self._emit_if_eol(strip_ansi(chunk))
        self.exit_code = await execution.exit_code
        self._emit_remaining_buffer()

    async def _run_legacy(
        self, terminal: TerminalHandle, command: str, host: Optional[TerminalHost]
    ):
        """
        Send the command as keystrokes.

        There is no completion signal here. If the host can capture terminal
        text, completion is inferred once the captured output stops
        changing; otherwise the command counts as done once sent.
        """
        self.emit("no_shell_integration")
        terminal.send_text(command, True)

        if host is None:
            return

        output = await self._wait_for_output_to_settle(host)
        if not output:
            return

        if len(output) > MAX_OUTPUT_LENGTH:
            logger.warning(
                "[Terminal] Output too long (%d chars), truncating to %d",
                len(output),
                MAX_OUTPUT_PREVIEW_LENGTH,
            )
            output = (
                output[:MAX_OUTPUT_PREVIEW_LENGTH]
                + "\n\n... [Output truncated. Redirect the command's output to a file "
                "to inspect all of it: command > output.txt]"
            )
        self._emit_if_eol(strip_ansi(output))
        self._emit_remaining_buffer()

    async def _wait_for_output_to_settle(self, host: TerminalHost) -> str:
        last_output = ""
        stable_count = 0

        for attempt in range(1, OUTPUT_CHECK_MAX_ATTEMPTS + 1):
            await asyncio.sleep(OUTPUT_CHECK_INTERVAL)
            output = self._output_after_command(await capture_terminal_output(host))

            # Silence early on usually means the command has not started yet
            quiet_too_soon = not output and attempt <= OUTPUT_CHECK_MAX_ATTEMPTS // 2
            if quiet_too_soon:
                continue
            if output == last_output:
                stable_count += 1
                if stable_count >= OUTPUT_CHECK_STABLE_COUNT:
                    logger.debug("[Terminal] Output settled after %d checks", attempt)
                    return output
            else:
                stable_count = 0
                last_output = output
                self._mark_hot(output)

        logger.warning("[Terminal] Output did not settle, using last capture")
        return last_output

    def _output_after_command(self, captured: str) -> str:
        """Drop everything up to and including the echoed command line."""
        if not captured:
            return ""
        lines = captured.split("\n")
        for index, line in enumerate(lines):
            if self.command in line:
                return "\n".join(lines[index + 1 :])
        return captured

    # ── Output handling ─────────────────────────────────────────────────

    def _emit_if_eol(self, chunk: str):
        self._buffer += chunk
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            self._emit_line(line.rstrip())

    def _emit_remaining_buffer(self):
        if self._buffer:
            remaining = _TRAILING_PROMPT_RE.sub("", self._buffer.rstrip()).rstrip()
            self._buffer = ""
            if remaining:
                self._emit_line(remaining)

    def _emit_line(self, line: str):
        line = _SHELL_MARK_RE.sub("", line)
        if _CONTROL_ONLY_RE.match(line):
            return
        if any(pattern.match(line) for pattern in _PROMPT_LINE_RES):
            return
        # The first line matching the command is the shell's echo of it
        if not self._echo_seen and line.strip() == self.command.strip():
            self._echo_seen = True
            return

        self._full_output += line + "\n"
        # Lines streamed before continue_() count as delivered
        if self._is_listening:
            self.emit("line", line)
            self._last_retrieved_index = len(self._full_output)

    def _mark_hot(self, chunk: str):
        self.is_hot = True
        if self._hot_timer:
            self._hot_timer.cancel()

        lowered = chunk.lower()
        compiling = any(m in lowered for m in _COMPILING_MARKERS) and not any(
            n in lowered for n in _COMPILING_NULLIFIERS
        )
        timeout = PROCESS_HOT_TIMEOUT_COMPILING if compiling else PROCESS_HOT_TIMEOUT_NORMAL
        self._hot_timer = asyncio.get_running_loop().call_later(timeout, self._cool_down)

    def _cool_down(self):
        self.is_hot = False
        if self._hot_timer:
            self._hot_timer.cancel()
            self._hot_timer = None

    def continue_(self):
        """Stop streaming lines and release anyone awaiting the handle."""
        if self._is_listening:
            self._emit_remaining_buffer()
        self._is_listening = False
        self.remove_all_listeners("line")
        self.emit("continue")

    def get_unretrieved_output(self) -> str:
        """Return output nobody has consumed yet, then mark it consumed."""
        output = self._full_output[self._last_retrieved_index :]
        self._last_retrieved_index = len(self._full_output)
        return output


class ProcessHandle:
    """
    What run_command returns.

    Await it for completion (resolves with the exit code, or None when
    released early by continue_()), or subscribe to its events.
    """

    def __init__(self, process: TerminalProcess, session_id: int):
        self.process = process
        self.session_id = session_id
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()
        process.once("continue", self._on_continue)
        process.once("error", self._on_error)

    def _on_continue(self):
        if not self._future.done():
            self._future.set_result(self.process.exit_code)

    def _on_error(self, error: BaseException):
        if not self._future.done():
            self._future.set_exception(error)

    def __await__(self):
        return self._future.__await__()

    def on(self, event: str, listener: Callable[..., Any]) -> "ProcessHandle":
        self.process.on(event, listener)
        return self

    def once(self, event: str, listener: Callable[..., Any]) -> "ProcessHandle":
        self.process.once(event, listener)
        return self

    def off(self, event: str, listener: Callable[..., Any]) -> "ProcessHandle":
        self.process.off(event, listener)
        return self

    def continue_(self):
        self.process.continue_()

    @property
    def is_hot(self) -> bool:
        return self.process.is_hot

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> Optional[int]:
        return self._future.result()
