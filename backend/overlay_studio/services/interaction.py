"""
Pointer interaction state machine.

One machine per workspace consumes abstract pointer events (mouse, touch and
pen adapters all produce the same PointerEvent) and writes geometry back to
the layer stack. Modes are mutually exclusive: idle, dragging, resizing or
rotating. Screen-space deltas for drag and resize are divided by the current
view scale; rotation angles are scale-invariant and use screen space as is.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Tuple, Union

from overlay_studio.config import settings
from overlay_studio.services.geometry import (
    Bounds,
    Point2D,
    ResizeHandle,
    finite,
    pointer_angle,
    resize,
    rotate,
)
from overlay_studio.services.layer_stack import BaseDocument, LayerStack

logger = logging.getLogger(__name__)


class PointerPhase(str, Enum):
    """Lifecycle phase of a pointer event."""
    DOWN = "down"
    MOVE = "move"
    UP = "up"
    CANCEL = "cancel"


class PointerTargetKind(str, Enum):
    """What the pointer went down on."""
    LAYER = "layer"
    RESIZE_HANDLE = "resize_handle"
    ROTATE_HANDLE = "rotate_handle"


class InteractionMode(str, Enum):
    """Current interaction mode."""
    IDLE = "idle"
    DRAGGING = "dragging"
    RESIZING = "resizing"
    ROTATING = "rotating"


@dataclass(frozen=True)
class PointerTarget:
    """Hit-test result supplied by the input adapter."""
    kind: PointerTargetKind
    layer_id: str
    handle: Optional[ResizeHandle] = None


@dataclass(frozen=True)
class PointerEvent:
    """A single abstract pointer event in screen coordinates."""
    phase: PointerPhase
    x: float
    y: float
    pointer_id: int = 1
    target: Optional[PointerTarget] = None
    # Overrides the machine's aspect lock for a resize started by this event
    aspect_locked: Optional[bool] = None

    @property
    def position(self) -> Point2D:
        return Point2D(x=finite(self.x), y=finite(self.y))


# ============================================================
# View State
# ============================================================

@dataclass
class ViewState:
    """
    Presentation scale of the stage.

    view_scale = fit_scale * zoom. Stored geometry never depends on it;
    it only converts pointer deltas from screen to model space.
    """
    fit_scale: float = 1.0
    zoom: float = 1.0
    # Screen position of the stage's top-left corner
    stage_left: float = 0.0
    stage_top: float = 0.0

    @property
    def view_scale(self) -> float:
        return self.fit_scale * self.zoom

    def set_zoom(self, zoom: float) -> float:
        self.zoom = min(settings.zoom_max, max(settings.zoom_min, finite(zoom, 1.0)))
        return self.zoom

    def set_stage_origin(self, left: float, top: float) -> None:
        self.stage_left = finite(left)
        self.stage_top = finite(top)

    def fit_to_viewport(
        self,
        viewport_width: float,
        viewport_height: float,
        base: Optional[BaseDocument],
    ) -> float:
        """Compute the scale that fits the base inside the viewport (never > 1)."""
        if base is None:
            self.fit_scale = 1.0
            return self.fit_scale

        max_w = max(settings.min_viewport, finite(viewport_width) - settings.viewport_padding)
        max_h = max(settings.min_viewport, finite(viewport_height) - settings.viewport_padding)
        scale = min(max_w / base.natural_width, max_h / base.natural_height)

        self.fit_scale = min(scale, 1.0) if finite(scale) > 0 else 1.0
        return self.fit_scale

    def stage_size(self, base: Optional[BaseDocument]) -> Tuple[int, int]:
        """On-screen size of the stage in pixels."""
        if base is None:
            return 640, 360
        return (
            round(base.natural_width * self.view_scale),
            round(base.natural_height * self.view_scale),
        )

    def to_screen(self, point: Point2D) -> Point2D:
        """Map a model-space point to screen space."""
        v = self.view_scale
        return Point2D(x=self.stage_left + point.x * v, y=self.stage_top + point.y * v)

    def to_model_delta(self, dx: float, dy: float) -> Tuple[float, float]:
        """Convert a screen-space delta to model space."""
        v = self.view_scale
        return finite(dx) / v, finite(dy) / v

    def reset(self) -> None:
        self.fit_scale = 1.0
        self.zoom = 1.0


# ============================================================
# Interaction Sessions
# ============================================================

@dataclass(frozen=True)
class Idle:
    """No gesture in progress."""
    mode: InteractionMode = field(default=InteractionMode.IDLE, init=False)


@dataclass(frozen=True)
class Dragging:
    """Moving a layer by its body."""
    layer_id: str
    pointer_id: int
    anchor: Point2D
    origin: Point2D
    mode: InteractionMode = field(default=InteractionMode.DRAGGING, init=False)


@dataclass(frozen=True)
class Resizing:
    """Dragging one corner handle of the active layer."""
    layer_id: str
    pointer_id: int
    handle: ResizeHandle
    anchor: Point2D
    start: Bounds
    aspect_locked: bool
    mode: InteractionMode = field(default=InteractionMode.RESIZING, init=False)


@dataclass(frozen=True)
class Rotating:
    """Dragging the rotation handle around the layer's center."""
    layer_id: str
    pointer_id: int
    anchor: Point2D
    pivot: Point2D
    start_angle_offset: float
    mode: InteractionMode = field(default=InteractionMode.ROTATING, init=False)


InteractionSession = Union[Idle, Dragging, Resizing, Rotating]

IDLE = Idle()


class InteractionStateMachine:
    """
    Routes pointer events to layer geometry updates.

    Only one session exists at a time. A pointer-down while a session is
    active is ignored; move events from any pointer other than the one that
    started the session are ignored (pointer capture). Up and cancel end the
    session unconditionally and keep whatever geometry was reached.
    """

    def __init__(
        self,
        stack: LayerStack,
        view: ViewState,
        has_base: Callable[[], bool],
        aspect_locked: bool = True,
    ):
        self.stack = stack
        self.view = view
        self.has_base = has_base
        self.aspect_locked = aspect_locked
        self._session: InteractionSession = IDLE

    @property
    def session(self) -> InteractionSession:
        return self._session

    @property
    def mode(self) -> InteractionMode:
        return self._session.mode

    def reset(self) -> None:
        """Discard any session without touching geometry."""
        self._session = IDLE

    def handle(self, event: PointerEvent) -> InteractionSession:
        """Feed one pointer event through the machine."""
        phase = PointerPhase(event.phase)

        if phase == PointerPhase.DOWN:
            self._on_down(event)
        elif phase == PointerPhase.MOVE:
            self._on_move(event)
        else:
            if self._session is not IDLE:
                logger.debug(f"Pointer {phase.value}: {self._session.mode.value} -> idle")
            self._session = IDLE

        return self._session

    # ------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------

    def _on_down(self, event: PointerEvent) -> None:
        if self._session is not IDLE:
            logger.debug(f"Ignoring pointer {event.pointer_id} down during {self.mode.value}")
            return
        if not self.has_base() or event.target is None:
            return

        target = event.target
        layer = self.stack.get(target.layer_id)
        if layer is None:
            return

        anchor = event.position
        kind = PointerTargetKind(target.kind)

        if kind == PointerTargetKind.LAYER:
            self._session = Dragging(
                layer_id=layer.id,
                pointer_id=event.pointer_id,
                anchor=anchor,
                origin=Point2D(x=layer.x, y=layer.y),
            )

        elif kind == PointerTargetKind.RESIZE_HANDLE:
            # Handles only exist on the active layer
            if layer.id != self.stack.active_id or target.handle is None:
                return
            locked = self.aspect_locked if event.aspect_locked is None else event.aspect_locked
            self._session = Resizing(
                layer_id=layer.id,
                pointer_id=event.pointer_id,
                handle=ResizeHandle(target.handle),
                anchor=anchor,
                start=layer.bounds,
                aspect_locked=locked,
            )

        elif kind == PointerTargetKind.ROTATE_HANDLE:
            if layer.id != self.stack.active_id:
                return
            pivot = self.view.to_screen(layer.bounds.center)
            self._session = Rotating(
                layer_id=layer.id,
                pointer_id=event.pointer_id,
                anchor=anchor,
                pivot=pivot,
                start_angle_offset=pointer_angle(anchor, pivot) - layer.rotation,
            )

        self.stack.select(layer.id)
        logger.debug(f"Pointer {event.pointer_id} down on {layer.id}: {self.mode.value}")

    def _on_move(self, event: PointerEvent) -> None:
        session = self._session
        if session is IDLE or event.pointer_id != session.pointer_id:
            return
        # Layer may have been removed mid-gesture
        if self.stack.get(session.layer_id) is None:
            return

        position = event.position

        if isinstance(session, Dragging):
            dx, dy = self.view.to_model_delta(
                position.x - session.anchor.x,
                position.y - session.anchor.y,
            )
            self.stack.update(
                session.layer_id,
                x=session.origin.x + dx,
                y=session.origin.y + dy,
            )

        elif isinstance(session, Resizing):
            dx, dy = self.view.to_model_delta(
                position.x - session.anchor.x,
                position.y - session.anchor.y,
            )
            bounds = resize(session.handle, dx, dy, session.start, session.aspect_locked)
            self.stack.update(
                session.layer_id,
                x=bounds.x,
                y=bounds.y,
                width=bounds.width,
                height=bounds.height,
            )

        elif isinstance(session, Rotating):
            self.stack.update(
                session.layer_id,
                rotation=rotate(position, session.pivot, session.start_angle_offset),
            )
