"""
Blend mode catalogue endpoint.
"""

from fastapi import APIRouter

from overlay_studio.models.workspace import BlendModesResponse
from overlay_studio.services.blend_modes import blend_registry

router = APIRouter(prefix="/blend-modes", tags=["blend-modes"])


@router.get("", response_model=BlendModesResponse)
async def list_blend_modes() -> BlendModesResponse:
    """Presentation names of every supported blend mode, in menu order."""
    return BlendModesResponse(
        modes=blend_registry.presentation_names(),
        default=blend_registry.default_presentation,
    )
