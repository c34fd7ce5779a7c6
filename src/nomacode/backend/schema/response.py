"""
Response schemas for API endpoints.

This module defines the unified response format for all API endpoints:
- BaseResponse: Common fields for all responses
- SuccessResponse: Generic successful response wrapper
- ErrorResponse: Error response with error details
"""

from typing import TypeVar, Generic, Optional
from pydantic import BaseModel, Field


T = TypeVar('T')


class BaseResponse(BaseModel):
    """Base response model with common fields."""

    success: bool = Field(..., description="Indicates whether the request was successful")
    message: Optional[str] = Field(None, description="Optional message for additional context")


class SuccessResponse(BaseResponse, Generic[T]):
    """Generic successful response wrapper.

    Example:
        SuccessResponse[SessionSummary] for single session response
        SuccessResponse[list[SessionSummary]] for session list
    """

    success: bool = Field(True, description="Always true for successful responses")
    data: T = Field(..., description="Response data")


class ErrorResponse(BaseResponse):
    """Error response with detailed error information."""

    success: bool = Field(False, description="Always false for error responses")
    data: None = Field(None, description="Always null for error responses")
    error: Optional[dict] = Field(
        None,
        description="Error details including code and optional details",
        examples=[
            {"code": "SESSION_NOT_FOUND"},
            {"code": "VALIDATION_ERROR", "details": [{"field": "cols", "message": "Input should be greater than 0"}]}
        ]
    )
