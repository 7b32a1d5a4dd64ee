"""
Workspace endpoints: lifecycle, image ingestion, view and pointer input.
"""

import logging
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, File, HTTPException, Response, UploadFile, status
from fastapi.concurrency import run_in_threadpool

from overlay_studio.models.responses import ErrorResponse, WorkspaceCreatedResponse
from overlay_studio.models.workspace import (
    IngestFileError,
    IngestResponse,
    PointerEventRequest,
    ViewUpdateRequest,
    WorkspaceFrame,
)
from overlay_studio.services.errors import IngestionError
from overlay_studio.services.ingestion import IncomingFile, decode_image
from overlay_studio.services.interaction import PointerEvent, PointerTarget
from overlay_studio.services.storage import workspace_store
from overlay_studio.services.workspace import Workspace

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


def get_workspace_or_404(workspace_id: str) -> Workspace:
    """Load workspace or raise 404."""
    workspace = workspace_store.get_workspace(workspace_id)
    if workspace is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "code": "WORKSPACE_NOT_FOUND",
                "message": f"Workspace '{workspace_id}' does not exist or has expired",
            },
        )
    return workspace


async def read_upload(file: UploadFile) -> IncomingFile:
    """Read an uploaded file into memory."""
    content = await file.read()
    return IncomingFile(
        filename=file.filename or "",
        content=content,
        content_type=file.content_type,
    )


@router.post(
    "",
    response_model=WorkspaceCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_workspace() -> WorkspaceCreatedResponse:
    """Create an empty workspace."""
    workspace_store.purge_expired()
    workspace = workspace_store.create_workspace()

    now = datetime.now(timezone.utc)
    return WorkspaceCreatedResponse(
        workspace_id=workspace.workspace_id,
        created_at=workspace.created_at,
        expires_at=workspace.expires_at,
        ttl_seconds=max(0, int((workspace.expires_at - now).total_seconds())),
    )


@router.get(
    "/{workspace_id}",
    response_model=WorkspaceFrame,
    responses={
        404: {"model": ErrorResponse, "description": "Workspace not found"},
    },
)
async def get_workspace(workspace_id: str) -> WorkspaceFrame:
    """Current render state of a workspace."""
    return get_workspace_or_404(workspace_id).frame()


@router.delete(
    "/{workspace_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        404: {"model": ErrorResponse, "description": "Workspace not found"},
    },
)
async def delete_workspace(workspace_id: str) -> Response:
    """Discard a workspace and everything in it."""
    get_workspace_or_404(workspace_id)
    workspace_store.delete_workspace(workspace_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{workspace_id}/base",
    response_model=WorkspaceFrame,
    responses={
        400: {"model": ErrorResponse, "description": "Not a decodable image"},
        404: {"model": ErrorResponse, "description": "Workspace not found"},
        413: {"model": ErrorResponse, "description": "File too large"},
    },
)
async def upload_base(
    workspace_id: str,
    file: UploadFile = File(..., description="Base image (PNG, JPEG, WebP, ...)"),
) -> WorkspaceFrame:
    """
    Replace the base document.

    All layers, the selection and the zoom are reset. On failure the
    previous base and layers are kept.
    """
    workspace = get_workspace_or_404(workspace_id)
    logger.info(f"Base upload for workspace {workspace_id}: {file.filename} ({file.content_type})")

    incoming = await read_upload(file)
    try:
        raster = await run_in_threadpool(
            decode_image, incoming.content, incoming.filename, incoming.content_type
        )
    except IngestionError as e:
        raise HTTPException(
            status_code=(
                status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
                if e.code == "FILE_TOO_LARGE"
                else status.HTTP_400_BAD_REQUEST
            ),
            detail={"code": e.code, "message": e.message, "details": e.details},
        )

    workspace.load_base(raster)
    return workspace.frame()


@router.post(
    "/{workspace_id}/images",
    response_model=IngestResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Workspace not found"},
    },
)
async def upload_images(
    workspace_id: str,
    files: List[UploadFile] = File(..., description="Images to add, in stacking order"),
) -> IngestResponse:
    """
    Add a batch of images.

    Without a base, the first decodable image becomes the base. Every other
    image becomes a layer, in upload order. Files that fail to decode are
    listed in `errors` and skipped.
    """
    workspace = get_workspace_or_404(workspace_id)
    incoming = [await read_upload(f) for f in files]

    report = await workspace.ingest_batch(incoming)

    return IngestResponse(
        workspace_id=workspace.workspace_id,
        base_created=report.base_created,
        added_layer_ids=report.added_layer_ids,
        errors=[
            IngestFileError(index=index, filename=filename, code=error.code, message=error.message)
            for index, filename, error in report.errors
        ],
        processing_time_ms=report.processing_time_ms,
        frame=workspace.frame(),
    )


@router.put(
    "/{workspace_id}/view",
    response_model=WorkspaceFrame,
    responses={
        404: {"model": ErrorResponse, "description": "Workspace not found"},
    },
)
async def update_view(workspace_id: str, request: ViewUpdateRequest) -> WorkspaceFrame:
    """Report viewport size, zoom, stage placement or aspect lock."""
    workspace = get_workspace_or_404(workspace_id)
    workspace.update_view(
        viewport_width=request.viewport_width,
        viewport_height=request.viewport_height,
        zoom=request.zoom,
        stage_left=request.stage_left,
        stage_top=request.stage_top,
        aspect_locked=request.aspect_locked,
    )
    return workspace.frame()


@router.delete(
    "/{workspace_id}/selection",
    response_model=WorkspaceFrame,
    responses={
        404: {"model": ErrorResponse, "description": "Workspace not found"},
    },
)
async def clear_selection(workspace_id: str) -> WorkspaceFrame:
    """Deselect the active layer."""
    workspace = get_workspace_or_404(workspace_id)
    workspace.select(None)
    return workspace.frame()


@router.post(
    "/{workspace_id}/pointer",
    response_model=WorkspaceFrame,
    responses={
        404: {"model": ErrorResponse, "description": "Workspace not found"},
    },
)
async def pointer_event(workspace_id: str, request: PointerEventRequest) -> WorkspaceFrame:
    """
    Feed one pointer event (down, move, up or cancel) to the workspace.

    Coordinates are screen pixels. Events that do not apply to the current
    interaction state are ignored.
    """
    workspace = get_workspace_or_404(workspace_id)

    target = None
    if request.target is not None:
        target = PointerTarget(
            kind=request.target.kind,
            layer_id=request.target.layer_id,
            handle=request.target.handle,
        )

    workspace.handle_pointer(PointerEvent(
        phase=request.phase,
        x=request.x,
        y=request.y,
        pointer_id=request.pointer_id,
        target=target,
        aspect_locked=request.aspect_locked,
    ))
    return workspace.frame()
