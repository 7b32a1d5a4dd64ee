"""
Workspace models: presentation frames and editing requests.

A frame is everything a live-preview renderer needs for one tick: base
dimensions, ordered layer transforms, presentation blend names and the
current view scale. Canonical compositing operator names never appear here.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from overlay_studio.services.geometry import ResizeHandle
from overlay_studio.services.interaction import (
    InteractionMode,
    PointerPhase,
    PointerTargetKind,
)


# ============================================================
# Frame Models
# ============================================================

class ScreenBox(BaseModel):
    """Layer box in screen pixels (model geometry times view scale)."""
    x: float
    y: float
    width: float
    height: float


class BaseFrame(BaseModel):
    """The base document as seen by the renderer."""
    name: str
    mime_type: str = Field(description="Output format of composite exports")
    natural_width: int = Field(description="Base width in pixels (model space)")
    natural_height: int = Field(description="Base height in pixels (model space)")
    source_url: str = Field(description="URL of the original base file")


class LayerFrame(BaseModel):
    """One layer's render state."""
    id: str
    name: str
    x: float = Field(description="Left edge in model space")
    y: float = Field(description="Top edge in model space")
    width: float
    height: float
    rotation: float = Field(description="Rotation in degrees (unbounded, clockwise)")
    display_rotation: float = Field(description="Rotation normalized to [-180, 180)")
    opacity: float = Field(ge=0.0, le=1.0)
    blend_mode: str = Field(description="Presentation blend mode name")
    visible: bool
    natural_width: int
    natural_height: int
    screen: ScreenBox
    source_url: str = Field(description="URL of the layer's original file")


class ViewFrame(BaseModel):
    """Current view scale and stage geometry."""
    fit_scale: float
    zoom: float
    view_scale: float
    stage_width: int
    stage_height: int
    stage_left: float = 0.0
    stage_top: float = 0.0


class WorkspaceFrame(BaseModel):
    """Full render state of a workspace (first layer = bottom)."""
    workspace_id: str
    base: Optional[BaseFrame] = None
    layers: List[LayerFrame] = Field(default_factory=list)
    active_id: Optional[str] = None
    interaction_mode: InteractionMode = InteractionMode.IDLE
    aspect_locked: bool = True
    view: ViewFrame
    created_at: datetime
    expires_at: datetime


# ============================================================
# Request Models
# ============================================================

class LayerUpdateRequest(BaseModel):
    """Direct property edits. Omitted fields are left unchanged."""
    name: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = Field(default=None, description="Floored at the minimum layer size")
    height: Optional[float] = Field(default=None, description="Floored at the minimum layer size")
    rotation: Optional[float] = None
    opacity: Optional[float] = Field(default=None, description="Clamped to [0, 1]")
    blend_mode: Optional[str] = Field(
        default=None,
        description="Presentation blend mode name; unknown names resolve to normal",
    )
    visible: Optional[bool] = None


class NudgeRequest(BaseModel):
    """Arrow-key move, in steps of the configured nudge distance."""
    dx: float = Field(default=0.0, description="Horizontal steps (negative = left)")
    dy: float = Field(default=0.0, description="Vertical steps (negative = up)")
    large: bool = Field(default=False, description="Use the large step (Shift+arrow)")


class ViewUpdateRequest(BaseModel):
    """Viewport, zoom and stage placement reported by the presentation layer."""
    viewport_width: Optional[float] = Field(default=None, description="Available width in screen pixels")
    viewport_height: Optional[float] = Field(default=None, description="Available height in screen pixels")
    zoom: Optional[float] = Field(default=None, description="User zoom, clamped to the configured range")
    stage_left: Optional[float] = None
    stage_top: Optional[float] = None
    aspect_locked: Optional[bool] = None


class PointerTargetModel(BaseModel):
    """What the pointer hit."""
    kind: PointerTargetKind
    layer_id: str
    handle: Optional[ResizeHandle] = None


class PointerEventRequest(BaseModel):
    """One abstract pointer event in screen coordinates."""
    phase: PointerPhase
    x: float = 0.0
    y: float = 0.0
    pointer_id: int = 1
    target: Optional[PointerTargetModel] = None
    aspect_locked: Optional[bool] = None

    class Config:
        json_schema_extra = {
            "example": {
                "phase": "down",
                "x": 120.0,
                "y": 80.0,
                "pointer_id": 1,
                "target": {"kind": "resize_handle", "layer_id": "a1b2c3d4", "handle": "se"},
            }
        }


# ============================================================
# Response Models
# ============================================================

class IngestFileError(BaseModel):
    """A file of a batch that could not be ingested."""
    index: int = Field(description="Position of the file in the upload")
    filename: str
    code: str
    message: str


class IngestResponse(BaseModel):
    """Result of ingesting a batch of images."""
    workspace_id: str
    base_created: bool = Field(description="Whether the batch supplied the base document")
    added_layer_ids: List[str] = Field(default_factory=list, description="New layers in file order")
    errors: List[IngestFileError] = Field(default_factory=list)
    processing_time_ms: int = 0
    frame: WorkspaceFrame


class BlendModesResponse(BaseModel):
    """Available blend modes, by presentation name."""
    modes: List[str]
    default: str
