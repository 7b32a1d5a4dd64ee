"""
Pydantic models for request/response schemas.
"""

from overlay_studio.models.responses import (
    ErrorDetail,
    ErrorResponse,
    WorkspaceCreatedResponse,
)
from overlay_studio.models.workspace import (
    ScreenBox,
    BaseFrame,
    LayerFrame,
    ViewFrame,
    WorkspaceFrame,
    LayerUpdateRequest,
    NudgeRequest,
    ViewUpdateRequest,
    PointerTargetModel,
    PointerEventRequest,
    IngestFileError,
    IngestResponse,
    BlendModesResponse,
)

__all__ = [
    "ErrorDetail",
    "ErrorResponse",
    "WorkspaceCreatedResponse",
    "ScreenBox",
    "BaseFrame",
    "LayerFrame",
    "ViewFrame",
    "WorkspaceFrame",
    "LayerUpdateRequest",
    "NudgeRequest",
    "ViewUpdateRequest",
    "PointerTargetModel",
    "PointerEventRequest",
    "IngestFileError",
    "IngestResponse",
    "BlendModesResponse",
]
