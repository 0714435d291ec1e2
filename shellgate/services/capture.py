"""
Clipboard-mediated terminal capture.

Hosts without a readable output stream still let us select terminal
text and copy it. The system clipboard is borrowed for the round trip
and its original contents are put back on every exit path.
"""

import logging

from .host import (
    CLEAR_SELECTION,
    COPY_SELECTION,
    SELECT_ALL,
    SELECT_TO_PREVIOUS_COMMAND,
    TerminalHost,
)

logger = logging.getLogger(__name__)


async def capture_terminal_output(host: TerminalHost, select_all: bool = False) -> str:
    """
    Copy terminal text through the clipboard.

    Args:
        host: Terminal host providing clipboard and selection commands
        select_all: Capture the whole buffer instead of the output since
                    the previous command

    Returns:
        The captured text, or "" if nothing new was copied.
    """
    original = await host.clipboard.read_text()

    try:
        await host.execute_command(CLEAR_SELECTION)
        await host.execute_command(SELECT_ALL if select_all else SELECT_TO_PREVIOUS_COMMAND)
        await host.execute_command(COPY_SELECTION)

        content = await host.clipboard.read_text()

        await host.execute_command(CLEAR_SELECTION)
    except Exception as e:
        logger.error("[Terminal] Failed to capture terminal contents: %s", e)
        raise
    finally:
        await host.clipboard.write_text(original)

    # Clipboard unchanged: the copy did not produce anything
    if content == original:
        return ""
    return content
