"""
Blend mode registry.

Canonical operators are the compositing operator names used by the
compositor (the 2D canvas `globalCompositeOperation` vocabulary). The
presentation namespace is what a live-preview renderer uses (CSS
`mix-blend-mode` names). Both are derived from a single table, checked for
bijectivity when the registry is built, so preview and export can never
disagree about which operator a layer uses.
"""

import logging
from enum import Enum
from typing import Dict, List, Sequence, Tuple

logger = logging.getLogger(__name__)


class BlendMode(str, Enum):
    """Canonical compositing operators."""
    NORMAL = "source-over"
    MULTIPLY = "multiply"
    SCREEN = "screen"
    OVERLAY = "overlay"
    DARKEN = "darken"
    LIGHTEN = "lighten"
    COLOR_DODGE = "color-dodge"
    COLOR_BURN = "color-burn"
    HARD_LIGHT = "hard-light"
    SOFT_LIGHT = "soft-light"
    DIFFERENCE = "difference"
    EXCLUSION = "exclusion"
    HUE = "hue"
    SATURATION = "saturation"
    COLOR = "color"
    LUMINOSITY = "luminosity"


# Single source of truth: (canonical operator, presentation name), in menu order
BLEND_MODE_TABLE: Tuple[Tuple[BlendMode, str], ...] = (
    (BlendMode.NORMAL, "normal"),
    (BlendMode.MULTIPLY, "multiply"),
    (BlendMode.SCREEN, "screen"),
    (BlendMode.OVERLAY, "overlay"),
    (BlendMode.DARKEN, "darken"),
    (BlendMode.LIGHTEN, "lighten"),
    (BlendMode.COLOR_DODGE, "color-dodge"),
    (BlendMode.COLOR_BURN, "color-burn"),
    (BlendMode.HARD_LIGHT, "hard-light"),
    (BlendMode.SOFT_LIGHT, "soft-light"),
    (BlendMode.DIFFERENCE, "difference"),
    (BlendMode.EXCLUSION, "exclusion"),
    (BlendMode.HUE, "hue"),
    (BlendMode.SATURATION, "saturation"),
    (BlendMode.COLOR, "color"),
    (BlendMode.LUMINOSITY, "luminosity"),
)


class BlendModeRegistry:
    """
    Total, bijective mapping between canonical operators and presentation names.

    Lookups by presentation name fail closed: an unknown name resolves to the
    default operator instead of raising.
    """

    def __init__(
        self,
        table: Sequence[Tuple[BlendMode, str]] = BLEND_MODE_TABLE,
        default: BlendMode = BlendMode.NORMAL,
    ):
        self._to_presentation: Dict[BlendMode, str] = {}
        self._to_canonical: Dict[str, BlendMode] = {}

        for mode, name in table:
            mode = BlendMode(mode)
            if mode in self._to_presentation:
                raise ValueError(f"Blend mode {mode.value!r} mapped twice")
            if name in self._to_canonical:
                raise ValueError(f"Presentation name {name!r} mapped twice")
            self._to_presentation[mode] = name
            self._to_canonical[name] = mode

        missing = [m.value for m in BlendMode if m not in self._to_presentation]
        if missing:
            raise ValueError(f"Blend modes without a presentation name: {missing}")

        if default not in self._to_presentation:
            raise ValueError(f"Default blend mode {default!r} is not registered")

        self.default = default
        self._order = [name for _, name in table]

    def to_presentation(self, mode: BlendMode) -> str:
        """Presentation name for a canonical operator."""
        return self._to_presentation[BlendMode(mode)]

    def from_presentation(self, name: str) -> BlendMode:
        """Canonical operator for a presentation name (default if unknown)."""
        mode = self._to_canonical.get((name or "").strip().lower())
        if mode is None:
            logger.debug(f"Unknown blend mode {name!r}, using {self.default.value}")
            return self.default
        return mode

    @property
    def default_presentation(self) -> str:
        return self._to_presentation[self.default]

    def presentation_names(self) -> List[str]:
        """Presentation names in menu order."""
        return list(self._order)

    def __len__(self) -> int:
        return len(self._to_presentation)


# Global registry instance
blend_registry = BlendModeRegistry()
