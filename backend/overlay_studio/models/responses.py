"""
API response models shared by every route.
"""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Detailed error information."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: ErrorDetail


class WorkspaceCreatedResponse(BaseModel):
    """Response from POST /api/v1/workspaces."""
    workspace_id: str
    created_at: datetime
    expires_at: datetime
    ttl_seconds: int = Field(description="Seconds until the workspace expires")
