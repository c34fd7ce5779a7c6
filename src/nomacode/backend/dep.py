"""Dependency injection functions for FastAPI routes"""

from typing import Annotated

from fastapi import Depends, Request

from .terminal.registry import SessionRegistry
from .tool.detector import ToolDetector


def get_session_registry(request: Request) -> SessionRegistry:
    """Get the process-wide SessionRegistry from app state

    Usage:
        @router.get("/sessions")
        async def list_sessions(registry: RegistryDep):
            return registry.list()
    """
    return request.app.state.session_registry


def get_tool_detector(request: Request) -> ToolDetector:
    """Get the shared ToolDetector from app state"""
    return request.app.state.tool_detector


RegistryDep = Annotated[SessionRegistry, Depends(get_session_registry)]
ToolDetectorDep = Annotated[ToolDetector, Depends(get_tool_detector)]
