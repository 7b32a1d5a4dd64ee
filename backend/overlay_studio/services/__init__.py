"""
Business logic services.
"""

from overlay_studio.services.blend_modes import BlendMode, BlendModeRegistry, blend_registry
from overlay_studio.services.errors import OverlayStudioError, IngestionError, RenderError
from overlay_studio.services.exporters import ExportPayload, ExportService, export_service
from overlay_studio.services.geometry import Bounds, Point2D, ResizeHandle
from overlay_studio.services.ingestion import IncomingFile, RasterImage
from overlay_studio.services.interaction import InteractionStateMachine, PointerEvent, ViewState
from overlay_studio.services.layer_stack import BaseDocument, Layer, LayerStack

__all__ = [
    "BlendMode",
    "BlendModeRegistry",
    "blend_registry",
    "OverlayStudioError",
    "IngestionError",
    "RenderError",
    "ExportPayload",
    "ExportService",
    "export_service",
    "Bounds",
    "Point2D",
    "ResizeHandle",
    "IncomingFile",
    "RasterImage",
    "InteractionStateMachine",
    "PointerEvent",
    "ViewState",
    "BaseDocument",
    "Layer",
    "LayerStack",
]
