"""Terminal session schemas"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from ..enum import SessionStatus


# ==================== Request Schemas ====================


class CreateSessionRequest(BaseModel):
    """Request schema for creating a new terminal session

    Note:
        - cwd defaults to the configured default directory (home if unset)
        - tool is a tool catalog id; None or "shell" starts the default shell
    """
    cwd: Optional[str] = Field(
        default=None,
        description="Working directory for the session (must exist)"
    )
    tool: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Tool id to launch (claude-code, opencode, codex, shell)"
    )
    cols: int = Field(default=80, ge=1, le=1000, description="Initial terminal width")
    rows: int = Field(default=24, ge=1, le=1000, description="Initial terminal height")


# ==================== Response Schemas ====================


class SessionSummary(BaseModel):
    """Session summary exposed to listing and status APIs"""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Session identifier")
    pid: Optional[int] = Field(None, description="OS process id of the session process")
    tool: Optional[str] = Field(None, description="Tool id, null for the default shell")
    cwd: str = Field(..., description="Working directory")
    status: SessionStatus = Field(..., description="running or stopped")
    created_at: datetime = Field(..., alias="createdAt", description="Creation time (UTC)")
    exit_code: Optional[int] = Field(None, alias="exitCode", description="Exit code once stopped")
