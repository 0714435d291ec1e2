"""
ShellGate: reusable terminal sessions for coding agents, plus the policy
that decides which command lines may run without asking the user.
"""
from .services.terminal import TerminalService
from .validation import parse_command, validate_command

__all__ = ['TerminalService', 'parse_command', 'validate_command']

__version__ = "0.1.0"
