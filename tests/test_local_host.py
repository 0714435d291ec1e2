"""
End-to-end tests against LocalShellHost (real subprocesses).
"""

import logging
import os
import sys

import pytest

from shellgate.services import process as process_module
from shellgate.services.local_host import LocalShellHost
from shellgate.services.terminal import TerminalService

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell commands")


class TestLocalShellHost:
    @pytest.mark.asyncio
    async def test_runs_command_with_shell_integration(self, tmp_path):
        service = TerminalService(LocalShellHost())
        session = await service.acquire(str(tmp_path))
        lines = []

        handle = service.run_command(session, "echo hello").on("line", lines.append)

        assert await handle == 0
        assert lines == ["hello"]
        service.dispose_all()

    @pytest.mark.asyncio
    async def test_exit_code(self, tmp_path):
        service = TerminalService(LocalShellHost())
        session = await service.acquire(str(tmp_path))

        assert await service.run_command(session, "exit 3") == 3
        service.dispose_all()

    @pytest.mark.asyncio
    async def test_acquire_moves_session_with_cd(self, tmp_path):
        sub = tmp_path / "sub"
        sub.mkdir()
        service = TerminalService(LocalShellHost())
        first = await service.acquire(str(tmp_path))

        moved = await service.acquire(str(sub))

        assert moved is first
        assert moved.terminal.shell_integration.cwd == os.path.abspath(str(sub))

        lines = []
        await service.run_command(moved, "pwd").on("line", lines.append)
        assert [os.path.realpath(line) for line in lines] == [os.path.realpath(str(sub))]
        service.dispose_all()

    @pytest.mark.asyncio
    async def test_legacy_mode_recovers_output(self, tmp_path, monkeypatch):
        monkeypatch.setattr(process_module, "OUTPUT_CHECK_INTERVAL", 0.05)
        host = LocalShellHost(shell_integration=False)
        service = TerminalService(host, capability_wait_timeout=0.01)
        session = await service.acquire(str(tmp_path))
        lines = []

        handle = service.run_command(session, "echo legacy").on("line", lines.append)

        assert await handle is None
        assert lines == ["legacy"]
        assert await host.clipboard.read_text() == ""
        service.dispose_all()

    @pytest.mark.asyncio
    async def test_terminal_contents(self, tmp_path):
        host = LocalShellHost()
        service = TerminalService(host)
        session = await service.acquire(str(tmp_path))
        await service.run_command(session, "echo first")
        await service.run_command(session, "echo second")

        everything = await service.get_terminal_contents(-1)
        last = await service.get_terminal_contents(1)

        assert "$ echo first\nfirst\n" in everything
        assert "second" in everything
        assert last == "$ echo second\nsecond\n"
        service.dispose_all()


class TestTypedCommands:
    @pytest.mark.asyncio
    async def test_typed_command_tracked_until_done(self, tmp_path, wait_until):
        host = LocalShellHost(shell_integration=False)
        terminal = host.create_terminal("t", cwd=str(tmp_path))

        terminal.send_text("echo typed")

        assert terminal.running_typed_commands == 1
        await wait_until(lambda: terminal.running_typed_commands == 0, timeout=5.0)
        assert "typed\n" in terminal.scrollback

    @pytest.mark.asyncio
    async def test_typed_command_failure_is_logged(self, tmp_path, wait_until, caplog):
        host = LocalShellHost(shell_integration=False)
        terminal = host.create_terminal("t", cwd=str(tmp_path))
        terminal.cwd = str(tmp_path / "removed")

        with caplog.at_level(logging.ERROR, logger="shellgate.services.local_host"):
            terminal.send_text("echo unreachable")
            await wait_until(lambda: terminal.running_typed_commands == 0, timeout=5.0)

        assert "Typed command failed" in caplog.text
