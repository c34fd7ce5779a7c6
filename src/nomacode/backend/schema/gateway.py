"""WebSocket gateway message schemas

Client → Server:
    {"type": "attach", "sessionId": "..."}
    {"type": "input",  "sessionId": "...", "data": "ls\\r"}
    {"type": "resize", "sessionId": "...", "cols": 120, "rows": 40}
    {"type": "detach"}

Server → Client:
    {"type": "output",   "sessionId": "...", "data": "..."}
    {"type": "exit",     "sessionId": "...", "code": 0}
    {"type": "detached", "sessionId": "...", "reason": "attached-elsewhere"}
    {"type": "error",    "sessionId": "..." | null, "message": "..."}
"""

from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ..enum import GatewayMessageType


class GatewayMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ==================== Client Messages ====================


class AttachMessage(GatewayMessage):
    type: Literal["attach"]
    session_id: str = Field(..., alias="sessionId", min_length=1)


class InputMessage(GatewayMessage):
    type: Literal["input"]
    session_id: str = Field(..., alias="sessionId", min_length=1)
    data: str


class ResizeMessage(GatewayMessage):
    type: Literal["resize"]
    session_id: str = Field(..., alias="sessionId", min_length=1)
    cols: int = Field(..., ge=1, le=1000)
    rows: int = Field(..., ge=1, le=1000)


class DetachMessage(GatewayMessage):
    type: Literal["detach"]
    # Accepted for client convenience, the connection's own attachment is used
    session_id: Optional[str] = Field(None, alias="sessionId")


ClientMessage = Annotated[
    Union[AttachMessage, InputMessage, ResizeMessage, DetachMessage],
    Field(discriminator="type"),
]

client_message_adapter: TypeAdapter = TypeAdapter(ClientMessage)

CLIENT_MESSAGE_TYPES = tuple(
    t.value for t in (
        GatewayMessageType.ATTACH,
        GatewayMessageType.INPUT,
        GatewayMessageType.RESIZE,
        GatewayMessageType.DETACH,
    )
)


# ==================== Server Messages ====================


class OutputEvent(GatewayMessage):
    type: Literal["output"] = GatewayMessageType.OUTPUT.value
    session_id: str = Field(..., alias="sessionId")
    data: str


class ExitEvent(GatewayMessage):
    type: Literal["exit"] = GatewayMessageType.EXIT.value
    session_id: str = Field(..., alias="sessionId")
    code: Optional[int] = None


class DetachedEvent(GatewayMessage):
    type: Literal["detached"] = GatewayMessageType.DETACHED.value
    session_id: str = Field(..., alias="sessionId")
    reason: str


class ErrorEvent(GatewayMessage):
    type: Literal["error"] = GatewayMessageType.ERROR.value
    session_id: Optional[str] = Field(None, alias="sessionId")
    message: str
