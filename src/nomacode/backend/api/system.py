"""System endpoints"""

from fastapi import APIRouter, Request

from ... import __version__
from ..schema.response import SuccessResponse

router = APIRouter(tags=["System"])


@router.get("/health", response_model=SuccessResponse[dict])
async def health_check(request: Request):
    """Health check with the active terminal backend"""
    registry = request.app.state.session_registry
    return SuccessResponse(data={
        "status": "ok",
        "version": __version__,
        "pty": registry.backend.kind.value,
        "sessions": len(registry),
    })
