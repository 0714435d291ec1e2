"""
Session store.

Tracks every terminal session created through a host, along with the
state the host cannot tell us: whether a command is running in it and
what that command was. A session closed by the environment is pruned
the next time it is looked up.
"""

import logging
import os
import platform
from dataclasses import dataclass
from typing import Optional

from ..config import TERMINAL_ENV, TERMINAL_NAME
from .host import TerminalHandle, TerminalHost

logger = logging.getLogger(__name__)

_IS_WINDOWS = platform.system() == "Windows"


@dataclass
class Session:
    """One reusable terminal tracked by the service."""

    id: int
    terminal: TerminalHandle
    busy: bool = False
    last_command: str = ""
    working_directory: Optional[str] = None


def _to_posix_path(p: str) -> str:
    # Extended-length Windows paths keep their special syntax
    if p.startswith("\\\\?\\"):
        return p
    return p.replace("\\", "/")


def _normalize_path(p: str) -> str:
    # abspath also normalizes ".." and duplicate separators
    p = _to_posix_path(os.path.abspath(p))
    if len(p) > 1 and p.endswith("/") and not (len(p) == 3 and p[1] == ":"):
        p = p[:-1]
    return p


def are_paths_equal(path1: Optional[str], path2: Optional[str]) -> bool:
    """
    Compare two paths the way the filesystem would.

    Case-insensitive on Windows, exact elsewhere. Separators and trailing
    slashes are normalized first.
    """
    if not path1 and not path2:
        return True
    if not path1 or not path2:
        return False

    path1 = _normalize_path(path1)
    path2 = _normalize_path(path2)

    if _IS_WINDOWS:
        return path1.lower() == path2.lower()
    return path1 == path2


class SessionStore:
    """
    Owns the list of sessions for one host.

    Ids are assigned here, not by the host, so they are known as soon as
    the terminal is created.
    """

    def __init__(self, host: TerminalHost):
        self.host = host
        self._sessions: list[Session] = []
        self._next_id = 1

    def create_terminal(self, cwd: Optional[str] = None) -> Session:
        """Create a new terminal in the given directory and start tracking it."""
        logger.debug("[Terminal] Creating terminal (cwd=%s)", cwd)

        terminal = self.host.create_terminal(
            name=TERMINAL_NAME, cwd=cwd, env=dict(TERMINAL_ENV)
        )
        terminal.show(True)

        session = Session(id=self._next_id, terminal=terminal, working_directory=cwd)
        self._next_id += 1
        self._sessions.append(session)
        return session

    def get_terminal(self, session_id: int) -> Optional[Session]:
        session = next((s for s in self._sessions if s.id == session_id), None)
        if session and self._is_closed(session):
            self.remove_terminal(session_id)
            return None
        return session

    def update_terminal(self, session_id: int, **changes) -> None:
        session = self.get_terminal(session_id)
        if session:
            for key, value in changes.items():
                setattr(session, key, value)

    def remove_terminal(self, session_id: int) -> None:
        self._sessions = [s for s in self._sessions if s.id != session_id]

    def get_all_terminals(self) -> list[Session]:
        self._sessions = [s for s in self._sessions if not self._is_closed(s)]
        return list(self._sessions)

    @staticmethod
    def _is_closed(session: Session) -> bool:
        return session.terminal.exit_status is not None
