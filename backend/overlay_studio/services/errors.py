"""
Service-level error types.

Every error carries a machine-readable code, a human-readable message and
optional details so routes can map it to a consistent error response.
"""

from typing import Optional


class OverlayStudioError(Exception):
    """Base error for compositing engine failures."""
    def __init__(self, code: str, message: str, details: Optional[dict] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class IngestionError(OverlayStudioError):
    """A file could not be read or decoded into a raster."""


class RenderError(OverlayStudioError):
    """An output surface could not be created or encoded."""
