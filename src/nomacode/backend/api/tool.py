"""Tool catalog API endpoints"""

import logging

from fastapi import APIRouter

from ..dep import ToolDetectorDep
from ..exception import NotFoundError
from ..schema.response import SuccessResponse
from ..schema.tool import ToolOut, ToolsOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tools", tags=["Tools"])


# Probing runs subprocesses, so these are sync endpoints (FastAPI threadpool)

@router.get("", response_model=SuccessResponse[ToolsOut])
def list_tools(detector: ToolDetectorDep):
    """List catalog tools split by availability, plus the preferred default"""
    return SuccessResponse(data=detector.detect_tools())


@router.post("/refresh", response_model=SuccessResponse[ToolsOut])
def refresh_tools(detector: ToolDetectorDep):
    """Drop the availability cache and probe again"""
    detector.clear_cache()
    return SuccessResponse(data=detector.detect_tools())


@router.get("/{tool_id}", response_model=SuccessResponse[ToolOut])
def get_tool(tool_id: str, detector: ToolDetectorDep):
    """Get availability of one tool

    Raises:
        NotFoundError: If the tool is not in the catalog
    """
    tool = detector.get_tool(tool_id)
    if tool is None:
        raise NotFoundError(f"Unknown tool: {tool_id}")
    return SuccessResponse(data=tool)
