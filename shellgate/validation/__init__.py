"""
Command-line validation: chain parsing and the auto-approval policy.
"""
from .parser import CommandParseError, parse_command, get_chain_operators
from .approval import is_allowed_single_command, validate_command

__all__ = [
    'CommandParseError',
    'parse_command',
    'get_chain_operators',
    'is_allowed_single_command',
    'validate_command',
]
