"""
Terminal API endpoints.

Provides REST endpoints for terminal-related operations:
- List sessions by busy state
- Fetch unretrieved output of a session
- Validate a command line against an allow-list
- Capture terminal contents (for adding to a conversation's context)
"""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from typing import Optional

from ..config import DEFAULT_ALLOWED_COMMANDS
from ..services.terminal import TerminalService
from ..validation import CommandParseError, parse_command, validate_command


router = APIRouter(prefix="/api/terminal")


class ValidateRequest(BaseModel):
    command: str
    allowed_commands: Optional[list[str]] = None


class ContentsRequest(BaseModel):
    all: bool = True


def get_terminal_service(request: Request) -> TerminalService:
    return request.app.state.terminal_service


@router.get("/sessions")
async def list_sessions(busy: bool = False, service: TerminalService = Depends(get_terminal_service)):
    """List sessions that are (or are not) running a command."""
    return {"sessions": service.list_by_busy_state(busy)}


@router.get("/sessions/{session_id}/output")
async def get_session_output(session_id: int, service: TerminalService = Depends(get_terminal_service)):
    """Return output the caller has not seen yet, and whether the process is still hot."""
    return {
        "id": session_id,
        "output": service.get_unretrieved_output(session_id),
        "hot": service.is_process_hot(session_id),
    }


@router.post("/validate")
async def validate(request: ValidateRequest):
    """Check whether a command may run without asking the user."""
    allowed = request.allowed_commands
    if allowed is None:
        allowed = DEFAULT_ALLOWED_COMMANDS

    try:
        sub_commands = parse_command(request.command)
    except CommandParseError:
        sub_commands = []

    return {
        "approved": validate_command(request.command, allowed),
        "sub_commands": sub_commands,
    }


@router.post("/contents")
async def get_contents(request: ContentsRequest, service: TerminalService = Depends(get_terminal_service)):
    """Copy text out of the active terminal."""
    content = await service.get_terminal_contents(-1 if request.all else 1)
    if not content:
        return {"error": "No terminal content selected"}
    return {"content": content}
