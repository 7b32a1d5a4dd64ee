"""
Layer stack: ordered layers over a base document.

Insertion order is z-order (later = drawn on top). The stack is a single
ordered collection of Layer values with id-based lookup; every mutating
operation builds a new sequence and replaces the old one.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple
from uuid import uuid4

from overlay_studio.config import settings
from overlay_studio.services.blend_modes import BlendMode
from overlay_studio.services.geometry import Bounds, clamp_size, finite
from overlay_studio.services.ingestion import RasterImage, output_mime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BaseDocument:
    """
    The fixed base image. Defines model space: all layer coordinates are
    pixels of this image, origin top-left.
    """
    raster: RasterImage
    mime_type: str

    @classmethod
    def from_raster(cls, raster: RasterImage) -> "BaseDocument":
        return cls(raster=raster, mime_type=output_mime(raster.mime_type))

    @property
    def natural_width(self) -> int:
        return self.raster.natural_width

    @property
    def natural_height(self) -> int:
        return self.raster.natural_height

    @property
    def name(self) -> str:
        return self.raster.name


@dataclass(frozen=True)
class Layer:
    """A transformable raster layer. Geometry is in model space."""
    id: str
    name: str
    raster: RasterImage
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0.0
    opacity: float = 1.0
    blend_mode: BlendMode = BlendMode.NORMAL
    visible: bool = True

    @property
    def bounds(self) -> Bounds:
        return Bounds(x=self.x, y=self.y, width=self.width, height=self.height)


def new_layer_id(existing: Optional[set] = None) -> str:
    """Generate a short layer id not present in `existing`."""
    existing = existing or set()
    while True:
        layer_id = uuid4().hex[:8]
        if layer_id not in existing:
            return layer_id


class LayerStack:
    """
    Ordered sequence of layers plus the active selection.

    The active id is either None or the id of a layer currently in the stack.
    Operations referencing an id that is no longer present are no-ops.
    """

    def __init__(self, layers: Optional[List[Layer]] = None, active_id: Optional[str] = None):
        self._layers: Tuple[Layer, ...] = tuple(layers or ())
        self._active_id: Optional[str] = None
        # Layers appended since the stack was last cleared; drives placement
        self._placed = 0
        self.select(active_id)

    # ------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------

    @property
    def layers(self) -> Tuple[Layer, ...]:
        return self._layers

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active_layer(self) -> Optional[Layer]:
        return self.get(self._active_id) if self._active_id else None

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self._layers)

    def ids(self) -> List[str]:
        return [layer.id for layer in self._layers]

    def index_of(self, layer_id: Optional[str]) -> int:
        """Position of a layer in z-order, or -1 if absent."""
        for i, layer in enumerate(self._layers):
            if layer.id == layer_id:
                return i
        return -1

    def get(self, layer_id: Optional[str]) -> Optional[Layer]:
        idx = self.index_of(layer_id)
        return self._layers[idx] if idx >= 0 else None

    def visible_layers(self) -> List[Layer]:
        """Visible layers in paint order."""
        return [layer for layer in self._layers if layer.visible]

    # ------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------

    def select(self, layer_id: Optional[str]) -> Optional[str]:
        """Set the active layer. None clears; unknown ids are ignored."""
        if layer_id is None:
            self._active_id = None
        elif self.index_of(layer_id) >= 0:
            self._active_id = layer_id
        return self._active_id

    # ------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------

    def _replace(self, layers: List[Layer]) -> Tuple[Layer, ...]:
        self._layers = tuple(layers)
        if self._active_id is not None and self.index_of(self._active_id) < 0:
            self._active_id = None
        return self._layers

    def raise_layer(self, layer_id: str) -> Tuple[Layer, ...]:
        """Swap a layer with its neighbor toward the top; no-op at the top."""
        idx = self.index_of(layer_id)
        if idx < 0 or idx == len(self._layers) - 1:
            return self._layers
        arr = list(self._layers)
        arr[idx], arr[idx + 1] = arr[idx + 1], arr[idx]
        return self._replace(arr)

    def lower_layer(self, layer_id: str) -> Tuple[Layer, ...]:
        """Swap a layer with its neighbor toward the bottom; no-op at the bottom."""
        idx = self.index_of(layer_id)
        if idx <= 0:
            return self._layers
        arr = list(self._layers)
        arr[idx], arr[idx - 1] = arr[idx - 1], arr[idx]
        return self._replace(arr)

    def duplicate(self, layer_id: str) -> Tuple[Layer, ...]:
        """Insert a copy right above the source, offset so it is visible."""
        idx = self.index_of(layer_id)
        if idx < 0:
            return self._layers
        src = self._layers[idx]
        clone = dataclasses.replace(
            src,
            id=new_layer_id(set(self.ids())),
            name=f"{src.name} copy",
            x=src.x + settings.duplicate_offset,
            y=src.y + settings.duplicate_offset,
        )
        arr = list(self._layers)
        arr.insert(idx + 1, clone)
        logger.info(f"Duplicated layer {src.id} as {clone.id}")
        return self._replace(arr)

    def remove(self, layer_id: str) -> Tuple[Layer, ...]:
        """Delete a layer; clears the selection if it was active."""
        if self.index_of(layer_id) < 0:
            return self._layers
        logger.info(f"Removed layer {layer_id}")
        return self._replace([layer for layer in self._layers if layer.id != layer_id])

    def update(self, layer_id: str, **changes) -> Tuple[Layer, ...]:
        """Replace fields of one layer. Unknown ids are ignored."""
        idx = self.index_of(layer_id)
        if idx < 0:
            return self._layers
        arr = list(self._layers)
        arr[idx] = dataclasses.replace(arr[idx], **changes)
        return self._replace(arr)

    def append_new(
        self,
        raster: RasterImage,
        base_size: Optional[Tuple[int, int]] = None,
        suggested: Optional[Bounds] = None,
        name: Optional[str] = None,
    ) -> Tuple[Layer, ...]:
        """
        Append a layer on top of the stack with default properties.

        Without suggested bounds, the layer takes the raster's natural size
        clamped per axis to the base size (if any), and is placed with a
        growing offset so consecutive additions do not overlap exactly.

        Args:
            raster: Decoded source image owned by the new layer
            base_size: (width, height) of the base document, if one exists
            suggested: Explicit placement, overriding the defaults
            name: Layer name (defaults to the raster name)

        Returns:
            The new layer sequence; the new layer is last
        """
        if suggested is not None:
            bounds = Bounds(
                x=finite(suggested.x),
                y=finite(suggested.y),
                width=clamp_size(suggested.width),
                height=clamp_size(suggested.height),
            )
        else:
            max_w, max_h = base_size or (raster.natural_width, raster.natural_height)
            offset = settings.new_layer_offset + self._placed * settings.new_layer_step
            bounds = Bounds(
                x=offset,
                y=offset,
                width=clamp_size(min(raster.natural_width, max_w)),
                height=clamp_size(min(raster.natural_height, max_h)),
            )

        layer = Layer(
            id=new_layer_id(set(self.ids())),
            name=name or raster.name or f"Layer {len(self._layers) + 1}",
            raster=raster,
            x=bounds.x,
            y=bounds.y,
            width=bounds.width,
            height=bounds.height,
        )
        self._placed += 1

        logger.info(
            f"Appended layer {layer.id} '{layer.name}' "
            f"{layer.width:.0f}x{layer.height:.0f} at ({layer.x:.0f},{layer.y:.0f})"
        )
        return self._replace(list(self._layers) + [layer])

    def clear(self) -> None:
        """Drop all layers and the selection."""
        self._layers = ()
        self._active_id = None
        self._placed = 0
