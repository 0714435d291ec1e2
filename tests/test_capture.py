"""
Tests for clipboard-mediated terminal capture.
"""

import pytest

from shellgate.services.capture import capture_terminal_output
from shellgate.services.host import (
    CLEAR_SELECTION,
    COPY_SELECTION,
    SELECT_ALL,
    SELECT_TO_PREVIOUS_COMMAND,
)

from conftest import FakeHost


class FailAfterCopyHost(FakeHost):
    async def execute_command(self, command_id: str) -> None:
        await super().execute_command(command_id)
        if command_id == COPY_SELECTION:
            raise RuntimeError("copy failed")


class TestCaptureTerminalOutput:
    @pytest.mark.asyncio
    async def test_captures_and_restores_clipboard(self):
        host = FakeHost(copy_text="build ok\n")

        content = await capture_terminal_output(host)

        assert content == "build ok\n"
        assert host.clipboard.text == "original clipboard"
        assert host.host_commands == [
            CLEAR_SELECTION,
            SELECT_TO_PREVIOUS_COMMAND,
            COPY_SELECTION,
            CLEAR_SELECTION,
        ]

    @pytest.mark.asyncio
    async def test_select_all(self):
        host = FakeHost(copy_text="everything")

        content = await capture_terminal_output(host, select_all=True)

        assert content == "everything"
        assert SELECT_ALL in host.host_commands
        assert SELECT_TO_PREVIOUS_COMMAND not in host.host_commands

    @pytest.mark.asyncio
    async def test_nothing_copied_returns_empty(self):
        host = FakeHost()

        assert await capture_terminal_output(host) == ""
        assert host.clipboard.text == "original clipboard"

    @pytest.mark.asyncio
    async def test_clipboard_restored_on_failure(self):
        host = FailAfterCopyHost(copy_text="partial")

        with pytest.raises(RuntimeError, match="copy failed"):
            await capture_terminal_output(host)

        assert host.clipboard.text == "original clipboard"

    @pytest.mark.asyncio
    async def test_failing_selection_command(self):
        host = FakeHost(copy_text="unused")
        host.fail_on = SELECT_TO_PREVIOUS_COMMAND

        with pytest.raises(RuntimeError):
            await capture_terminal_output(host)

        assert host.clipboard.text == "original clipboard"
        assert COPY_SELECTION not in host.host_commands
