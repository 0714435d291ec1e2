"""
Terminal services: sessions, capability detection, command execution.
"""
from .sessions import Session, SessionStore, are_paths_equal
from .capability import CapabilityDetector
from .process import ProcessHandle, TerminalProcess, CommandTimeoutError
from .capture import capture_terminal_output
from .terminal import TerminalService
from .local_host import LocalShellHost

__all__ = [
    'Session',
    'SessionStore',
    'are_paths_equal',
    'CapabilityDetector',
    'ProcessHandle',
    'TerminalProcess',
    'CommandTimeoutError',
    'capture_terminal_output',
    'TerminalService',
    'LocalShellHost',
]
