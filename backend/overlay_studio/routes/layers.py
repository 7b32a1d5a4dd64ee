"""
Layer endpoints: property edits, ordering, duplication and selection.

Operations on a layer id that is no longer in the workspace leave the
workspace unchanged and still return its current state.
"""

import logging

from fastapi import APIRouter

from overlay_studio.config import settings
from overlay_studio.models.responses import ErrorResponse
from overlay_studio.models.workspace import LayerUpdateRequest, NudgeRequest, WorkspaceFrame
from overlay_studio.routes.workspaces import get_workspace_or_404

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workspaces/{workspace_id}/layers", tags=["layers"])

NOT_FOUND = {404: {"model": ErrorResponse, "description": "Workspace not found"}}


@router.patch("/{layer_id}", response_model=WorkspaceFrame, responses=NOT_FOUND)
async def update_layer(workspace_id: str, layer_id: str, request: LayerUpdateRequest) -> WorkspaceFrame:
    """Edit layer properties. Omitted fields are left unchanged."""
    workspace = get_workspace_or_404(workspace_id)
    workspace.update_layer(layer_id, **request.model_dump(exclude_none=True))
    return workspace.frame()


@router.delete("/{layer_id}", response_model=WorkspaceFrame, responses=NOT_FOUND)
async def remove_layer(workspace_id: str, layer_id: str) -> WorkspaceFrame:
    """Delete a layer; clears the selection if it was active."""
    workspace = get_workspace_or_404(workspace_id)
    workspace.stack.remove(layer_id)
    return workspace.frame()


@router.post("/{layer_id}/raise", response_model=WorkspaceFrame, responses=NOT_FOUND)
async def raise_layer(workspace_id: str, layer_id: str) -> WorkspaceFrame:
    """Move a layer one step toward the top."""
    workspace = get_workspace_or_404(workspace_id)
    workspace.stack.raise_layer(layer_id)
    return workspace.frame()


@router.post("/{layer_id}/lower", response_model=WorkspaceFrame, responses=NOT_FOUND)
async def lower_layer(workspace_id: str, layer_id: str) -> WorkspaceFrame:
    """Move a layer one step toward the bottom."""
    workspace = get_workspace_or_404(workspace_id)
    workspace.stack.lower_layer(layer_id)
    return workspace.frame()


@router.post("/{layer_id}/duplicate", response_model=WorkspaceFrame, responses=NOT_FOUND)
async def duplicate_layer(workspace_id: str, layer_id: str) -> WorkspaceFrame:
    """Insert an offset copy directly above the layer."""
    workspace = get_workspace_or_404(workspace_id)
    workspace.stack.duplicate(layer_id)
    return workspace.frame()


@router.post("/{layer_id}/select", response_model=WorkspaceFrame, responses=NOT_FOUND)
async def select_layer(workspace_id: str, layer_id: str) -> WorkspaceFrame:
    """Make a layer the active one."""
    workspace = get_workspace_or_404(workspace_id)
    workspace.select(layer_id)
    return workspace.frame()


@router.post("/{layer_id}/nudge", response_model=WorkspaceFrame, responses=NOT_FOUND)
async def nudge_layer(workspace_id: str, layer_id: str, request: NudgeRequest) -> WorkspaceFrame:
    """Move a layer by whole nudge steps."""
    workspace = get_workspace_or_404(workspace_id)
    step = settings.nudge_step_large if request.large else settings.nudge_step
    workspace.nudge(layer_id, request.dx * step, request.dy * step)
    return workspace.frame()
