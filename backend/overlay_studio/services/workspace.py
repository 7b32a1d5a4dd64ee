"""
Editing workspace.

A workspace ties together one base document, its layer stack, the view
state and the interaction state machine. These are explicit objects owned
by the workspace; loading a new base resets all of them.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Union

from overlay_studio.config import settings
from overlay_studio.models.workspace import (
    BaseFrame,
    LayerFrame,
    ScreenBox,
    ViewFrame,
    WorkspaceFrame,
)
from overlay_studio.services.blend_modes import blend_registry
from overlay_studio.services.errors import IngestionError
from overlay_studio.services.geometry import Bounds, clamp_size, finite, normalize_rotation
from overlay_studio.services.ingestion import IncomingFile, RasterImage, decode_batch
from overlay_studio.services.interaction import (
    InteractionSession,
    InteractionStateMachine,
    PointerEvent,
    ViewState,
)
from overlay_studio.services.layer_stack import BaseDocument, Layer, LayerStack

logger = logging.getLogger(__name__)


@dataclass
class IngestReport:
    """Outcome of applying a decoded batch to a workspace."""
    base_created: bool = False
    added_layer_ids: List[str] = field(default_factory=list)
    # (file index, filename, error)
    errors: List[Tuple[int, str, IngestionError]] = field(default_factory=list)
    processing_time_ms: int = 0


class Workspace:
    """One editing session: base document, layers, view and interaction."""

    def __init__(self, workspace_id: str, created_at: datetime, expires_at: datetime):
        self.workspace_id = workspace_id
        self.created_at = created_at
        self.expires_at = expires_at

        self.base: Optional[BaseDocument] = None
        self.stack = LayerStack()
        self.view = ViewState()
        self.interaction = InteractionStateMachine(
            self.stack,
            self.view,
            has_base=lambda: self.base is not None,
        )

    # ------------------------------------------------------------
    # Base document & ingestion
    # ------------------------------------------------------------

    @property
    def base_size(self) -> Optional[Tuple[int, int]]:
        if self.base is None:
            return None
        return self.base.natural_width, self.base.natural_height

    def load_base(self, raster: RasterImage) -> BaseDocument:
        """Replace the base document, clearing all layers and view state."""
        self.base = BaseDocument.from_raster(raster)
        self.stack.clear()
        self.view.reset()
        self.interaction.reset()
        logger.info(
            f"Workspace {self.workspace_id}: loaded base '{raster.name}' "
            f"{self.base.natural_width}x{self.base.natural_height} ({self.base.mime_type})"
        )
        return self.base

    def append_layer(self, raster: RasterImage, suggested: Optional[Bounds] = None) -> Layer:
        """Add a raster on top of the stack, sized against the base."""
        layers = self.stack.append_new(raster, base_size=self.base_size, suggested=suggested)
        return layers[-1]

    def apply_decoded(
        self,
        files: Sequence[IncomingFile],
        results: Sequence[Union[RasterImage, IngestionError]],
    ) -> IngestReport:
        """
        Apply a decoded batch in file order.

        Without a base, the first successfully decoded image becomes the base
        and the rest become layers. Failed files are reported and skipped.
        The last added layer becomes the active selection.
        """
        report = IngestReport()

        for index, (incoming, result) in enumerate(zip(files, results)):
            if isinstance(result, IngestionError):
                report.errors.append((index, incoming.filename, result))
                continue
            if self.base is None:
                self.load_base(result)
                report.base_created = True
                continue
            report.added_layer_ids.append(self.append_layer(result).id)

        if report.added_layer_ids:
            self.stack.select(report.added_layer_ids[-1])

        return report

    async def ingest_batch(self, files: Sequence[IncomingFile]) -> IngestReport:
        """Decode a batch concurrently, then apply it in file order."""
        start_time = time.time()

        results = await decode_batch(files)
        report = self.apply_decoded(files, results)

        report.processing_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Workspace {self.workspace_id}: ingested {len(files)} files, "
            f"base_created={report.base_created}, layers={len(report.added_layer_ids)}, "
            f"errors={len(report.errors)}"
        )
        return report

    # ------------------------------------------------------------
    # Layer operations (unknown ids are no-ops)
    # ------------------------------------------------------------

    def update_layer(
        self,
        layer_id: str,
        name: Optional[str] = None,
        x: Optional[float] = None,
        y: Optional[float] = None,
        width: Optional[float] = None,
        height: Optional[float] = None,
        rotation: Optional[float] = None,
        opacity: Optional[float] = None,
        blend_mode: Optional[str] = None,
        visible: Optional[bool] = None,
    ) -> Optional[Layer]:
        """Apply direct property edits, clamping instead of rejecting."""
        layer = self.stack.get(layer_id)
        if layer is None:
            return None

        changes = {}
        if name is not None:
            changes["name"] = name
        if x is not None:
            changes["x"] = finite(x, layer.x)
        if y is not None:
            changes["y"] = finite(y, layer.y)
        if width is not None:
            changes["width"] = clamp_size(finite(width, layer.width))
        if height is not None:
            changes["height"] = clamp_size(finite(height, layer.height))
        if rotation is not None:
            changes["rotation"] = finite(rotation, layer.rotation)
        if opacity is not None:
            changes["opacity"] = min(1.0, max(0.0, finite(opacity, layer.opacity)))
        if blend_mode is not None:
            changes["blend_mode"] = blend_registry.from_presentation(blend_mode)
        if visible is not None:
            changes["visible"] = bool(visible)

        self.stack.update(layer_id, **changes)
        return self.stack.get(layer_id)

    def select(self, layer_id: Optional[str]) -> Optional[str]:
        return self.stack.select(layer_id)

    def nudge(self, layer_id: str, dx: float, dy: float) -> Optional[Layer]:
        """Translate a layer by a model-space offset."""
        layer = self.stack.get(layer_id)
        if layer is None:
            return None
        self.stack.update(layer_id, x=layer.x + finite(dx), y=layer.y + finite(dy))
        return self.stack.get(layer_id)

    # ------------------------------------------------------------
    # View & interaction
    # ------------------------------------------------------------

    def update_view(
        self,
        viewport_width: Optional[float] = None,
        viewport_height: Optional[float] = None,
        zoom: Optional[float] = None,
        stage_left: Optional[float] = None,
        stage_top: Optional[float] = None,
        aspect_locked: Optional[bool] = None,
    ) -> ViewState:
        if viewport_width is not None and viewport_height is not None:
            self.view.fit_to_viewport(viewport_width, viewport_height, self.base)
        if zoom is not None:
            self.view.set_zoom(zoom)
        if stage_left is not None or stage_top is not None:
            self.view.set_stage_origin(
                self.view.stage_left if stage_left is None else stage_left,
                self.view.stage_top if stage_top is None else stage_top,
            )
        if aspect_locked is not None:
            self.interaction.aspect_locked = bool(aspect_locked)
        return self.view

    def handle_pointer(self, event: PointerEvent) -> InteractionSession:
        return self.interaction.handle(event)

    # ------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------

    def frame(self) -> WorkspaceFrame:
        """Snapshot of everything the live-preview renderer reads."""
        prefix = f"{settings.api_v1_prefix}/workspaces/{self.workspace_id}"
        v = self.view.view_scale
        stage_width, stage_height = self.view.stage_size(self.base)

        base_frame = None
        if self.base is not None:
            base_frame = BaseFrame(
                name=self.base.name,
                mime_type=self.base.mime_type,
                natural_width=self.base.natural_width,
                natural_height=self.base.natural_height,
                source_url=f"{prefix}/export/original",
            )

        layers = [
            LayerFrame(
                id=layer.id,
                name=layer.name,
                x=layer.x,
                y=layer.y,
                width=layer.width,
                height=layer.height,
                rotation=layer.rotation,
                display_rotation=normalize_rotation(layer.rotation),
                opacity=layer.opacity,
                blend_mode=blend_registry.to_presentation(layer.blend_mode),
                visible=layer.visible,
                natural_width=layer.raster.natural_width,
                natural_height=layer.raster.natural_height,
                screen=ScreenBox(
                    x=layer.x * v,
                    y=layer.y * v,
                    width=layer.width * v,
                    height=layer.height * v,
                ),
                source_url=f"{prefix}/layers/{layer.id}/export/original",
            )
            for layer in self.stack
        ]

        return WorkspaceFrame(
            workspace_id=self.workspace_id,
            base=base_frame,
            layers=layers,
            active_id=self.stack.active_id,
            interaction_mode=self.interaction.mode,
            aspect_locked=self.interaction.aspect_locked,
            view=ViewFrame(
                fit_scale=self.view.fit_scale,
                zoom=self.view.zoom,
                view_scale=v,
                stage_width=stage_width,
                stage_height=stage_height,
                stage_left=self.view.stage_left,
                stage_top=self.view.stage_top,
            ),
            created_at=self.created_at,
            expires_at=self.expires_at,
        )
