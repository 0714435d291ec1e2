"""
Auto-Approval Policy.

Decides whether a whole command chain may run without asking the user.
The allow-list is a list of command prefixes owned by the caller; this
module never stores it.

Rules:
- Any $( or backtick anywhere rejects the command outright
- The first sub-command must start with an allowed prefix
- A sub-command following &&, || or ; must start with an allowed prefix
- A sub-command following | is not checked (it consumes the previous
  command's output). Note that this lets `allowed | anything` through.
"""

import logging

from .parser import REDIRECTION_RE, CommandParseError, get_chain_operators, parse_command

logger = logging.getLogger(__name__)


def is_allowed_single_command(command: str, allowed_commands: list[str]) -> bool:
    """Check if a single command starts with one of the allowed prefixes (case-insensitive)."""
    if not command or not allowed_commands:
        return False
    trimmed = command.strip().lower()
    return any(trimmed.startswith(prefix.lower()) for prefix in allowed_commands)


def _strip_redirection(command: str) -> str:
    return REDIRECTION_RE.sub("", command, count=1).strip()


def validate_command(command: str, allowed_commands: list[str]) -> bool:
    """
    Check if a command line may be auto-approved.

    Returns True when every sub-command is covered by the allow-list
    (or follows a pipe), False otherwise. Empty input is approved since
    there is nothing to run.
    """
    if not command or not command.strip():
        return True

    # Subshells can evaluate to anything at run time
    if "$(" in command or "`" in command:
        logger.info("[Validation] Rejected (subshell): %s", command)
        return False

    try:
        sub_commands = parse_command(command)
        operators = get_chain_operators(command)
    except CommandParseError as e:
        logger.info("[Validation] Rejected (unparseable): %s (%s)", command, e)
        return False

    if not sub_commands:
        return True

    first = _strip_redirection(sub_commands[0])
    if not is_allowed_single_command(first, allowed_commands):
        logger.info("[Validation] Rejected (not allowed): %s", first)
        return False

    for i in range(1, len(sub_commands)):
        prev_operator = operators[i - 1] if i - 1 < len(operators) else None
        if prev_operator == "|":
            continue
        cmd = _strip_redirection(sub_commands[i])
        if not is_allowed_single_command(cmd, allowed_commands):
            logger.info(
                "[Validation] Rejected (not allowed after %s): %s", prev_operator, cmd
            )
            return False

    return True
