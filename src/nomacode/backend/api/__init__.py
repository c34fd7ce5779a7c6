"""
API package for REST and WebSocket endpoints.
"""

from .session import router as session_router
from .system import router as system_router
from .tool import router as tool_router
from .websocket import router as websocket_router

__all__ = [
    "session_router",
    "system_router",
    "tool_router",
    "websocket_router",
]
