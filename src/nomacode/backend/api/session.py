"""Terminal session API endpoints"""

import logging
import uuid
from pathlib import Path
from typing import List

from fastapi import APIRouter, Request

from ..dep import RegistryDep
from ..exception import SessionNotFoundError, ValidationError
from ..schema.response import SuccessResponse
from ..schema.session import CreateSessionRequest, SessionSummary
from ..terminal.registry import SpawnParams
from ..tool.detector import SHELL_TOOL_ID, resolve_command

logger = logging.getLogger(__name__)

# Router configuration
router = APIRouter(prefix="/sessions", tags=["Session Management"])


def _resolve_cwd(req: Request, cwd: str | None) -> str:
    """Validate the requested working directory, default to the configured one"""
    path = Path(cwd).expanduser() if cwd else Path(req.app.state.default_cwd)
    if not path.is_absolute():
        raise ValidationError(f"Working directory must be an absolute path: {cwd}")
    if not path.is_dir():
        raise ValidationError(f"Working directory does not exist: {path}")
    return str(path.resolve())


def _spawn_params(cwd: str, tool: str | None, cols: int, rows: int) -> SpawnParams:
    tool = None if tool in (None, "", SHELL_TOOL_ID) else tool
    command, args = resolve_command(tool)
    return SpawnParams(command=command, args=args, cwd=cwd, tool=tool, cols=cols, rows=rows)


# ==================== API Endpoints ====================

@router.get("", response_model=SuccessResponse[List[SessionSummary]])
async def list_sessions(registry: RegistryDep):
    """List all sessions, running and stopped"""
    return SuccessResponse(data=registry.list())


@router.post("", response_model=SuccessResponse[SessionSummary])
async def create_session(request: CreateSessionRequest, req: Request, registry: RegistryDep):
    """Create a new terminal session

    Business logic:
    1. Validate working directory (defaults to the configured directory)
    2. Resolve tool id to a command (unknown/None → default shell)
    3. Generate a session id and spawn through the registry

    The caller is expected to check tool availability first (GET /api/tools);
    the command is not re-validated here.

    Raises:
        ValidationError: If the working directory is invalid
        SpawnError: If the process could not be started
    """
    cwd = _resolve_cwd(req, request.cwd)
    params = _spawn_params(cwd, request.tool, request.cols, request.rows)
    session_id = str(uuid.uuid4())

    logger.info(
        f"Creating session: session_id={session_id}, tool={params.tool}, "
        f"command={params.command}, cwd={cwd}"
    )

    session = registry.create(session_id, params)
    return SuccessResponse(data=session.summary())


@router.get("/{session_id}", response_model=SuccessResponse[SessionSummary])
async def get_session(session_id: str, registry: RegistryDep):
    """Get one session summary

    Raises:
        SessionNotFoundError: If the session does not exist
    """
    session = registry.get(session_id)
    if session is None:
        raise SessionNotFoundError("Session not found")
    return SuccessResponse(data=session.summary())


@router.delete("/{session_id}", response_model=SuccessResponse[None])
async def delete_session(session_id: str, registry: RegistryDep):
    """Kill the session process (if running) and remove the session

    Raises:
        SessionNotFoundError: If the session does not exist
    """
    if not registry.delete(session_id):
        raise SessionNotFoundError("Session not found")
    return SuccessResponse(data=None, message="Session deleted")


@router.post("/{session_id}/restart", response_model=SuccessResponse[SessionSummary])
async def restart_session(session_id: str, registry: RegistryDep):
    """Replace a session with a fresh one under the same id

    The new process reuses the previous working directory, tool and
    terminal size. Output history is not carried over.

    Raises:
        SessionNotFoundError: If the session does not exist
        SpawnError: If the new process could not be started
    """
    session = registry.get(session_id)
    if session is None:
        raise SessionNotFoundError("Session not found")

    params = _spawn_params(session.cwd, session.tool, session.cols, session.rows)
    registry.delete(session_id)

    logger.info(f"Restarting session: session_id={session_id}, tool={params.tool}, cwd={params.cwd}")

    new_session = registry.create(session_id, params)
    return SuccessResponse(data=new_session.summary())
