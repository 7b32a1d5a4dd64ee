"""
API route modules.
"""

from overlay_studio.routes.workspaces import router as workspaces_router
from overlay_studio.routes.layers import router as layers_router
from overlay_studio.routes.exports import router as exports_router
from overlay_studio.routes.blend_modes import router as blend_modes_router

__all__ = [
    "workspaces_router",
    "layers_router",
    "exports_router",
    "blend_modes_router",
]
