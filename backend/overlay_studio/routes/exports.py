"""
Export endpoints.

Each export returns the file bytes as an attachment. When there is nothing
to export (no base document, or the layer no longer exists) the response
is 204 with no body.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Response, status
from fastapi.concurrency import run_in_threadpool

from overlay_studio.models.responses import ErrorResponse
from overlay_studio.routes.workspaces import get_workspace_or_404
from overlay_studio.services.errors import RenderError
from overlay_studio.services.exporters import ExportPayload, export_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workspaces/{workspace_id}", tags=["exports"])

EXPORT_RESPONSES = {
    200: {"content": {"image/png": {}, "image/jpeg": {}, "image/webp": {}}, "description": "Exported image"},
    204: {"description": "Nothing to export"},
    404: {"model": ErrorResponse, "description": "Workspace not found"},
    500: {"model": ErrorResponse, "description": "Rendering failed"},
}


def payload_response(payload: Optional[ExportPayload]) -> Response:
    """Wrap an export payload as a download, or 204 when declined."""
    if payload is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return Response(
        content=payload.content,
        media_type=payload.media_type,
        headers={"Content-Disposition": f'attachment; filename="{payload.filename}"'},
    )


async def run_export(func, *args) -> Response:
    """Render off the event loop and translate render failures."""
    try:
        payload = await run_in_threadpool(func, *args)
    except RenderError as e:
        logger.error(f"Export failed: {e.code} - {e.message}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": e.code, "message": e.message, "details": e.details},
        )
    return payload_response(payload)


@router.get("/export/composite", responses=EXPORT_RESPONSES)
async def export_composite(workspace_id: str) -> Response:
    """Flattened document at the base's resolution and format."""
    workspace = get_workspace_or_404(workspace_id)
    return await run_export(export_service.export_composite, workspace.base, workspace.stack)


@router.get("/export/original", responses=EXPORT_RESPONSES)
async def export_base_original(workspace_id: str) -> Response:
    """The base file exactly as uploaded."""
    workspace = get_workspace_or_404(workspace_id)
    raster = workspace.base.raster if workspace.base is not None else None
    return payload_response(export_service.export_original(raster))


@router.get("/layers/{layer_id}/export/original", responses=EXPORT_RESPONSES)
async def export_layer_original(workspace_id: str, layer_id: str) -> Response:
    """A layer's source file exactly as uploaded."""
    workspace = get_workspace_or_404(workspace_id)
    layer = workspace.stack.get(layer_id)
    return payload_response(export_service.export_original(layer.raster if layer else None))


@router.get("/layers/{layer_id}/export/crop", responses=EXPORT_RESPONSES)
async def export_layer_crop(workspace_id: str, layer_id: str) -> Response:
    """A layer scaled to its current box, without rotation."""
    workspace = get_workspace_or_404(workspace_id)
    return await run_export(export_service.export_layer_crop, workspace.stack.get(layer_id))


@router.get("/layers/{layer_id}/export/transformed", responses=EXPORT_RESPONSES)
async def export_layer_transformed(workspace_id: str, layer_id: str) -> Response:
    """A layer rotated and isolated on its rotated bounding box."""
    workspace = get_workspace_or_404(workspace_id)
    return await run_export(export_service.export_layer_transformed, workspace.stack.get(layer_id))
