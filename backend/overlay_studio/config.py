"""
Application configuration settings.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""
    
    # API Settings
    api_v1_prefix: str = "/api/v1"
    debug: bool = False
    
    # Upload Limits
    max_file_size_mb: int = 25
    
    # Workspace Settings
    workspace_ttl_hours: int = 4
    
    # ============================================================
    # GEOMETRY SETTINGS
    # ============================================================
    
    # Width/height floor applied during resize and property edits
    min_layer_size: float = 5.0
    
    # Offset applied to a duplicated layer so it is visibly distinct
    duplicate_offset: float = 20.0
    
    # Placement of newly ingested layers: offset + step * n
    new_layer_offset: float = 20.0
    new_layer_step: float = 10.0
    
    # Keyboard nudge distances (model-space pixels)
    nudge_step: float = 1.0
    nudge_step_large: float = 10.0
    
    # ============================================================
    # VIEW SETTINGS
    # ============================================================
    
    zoom_min: float = 0.25
    zoom_max: float = 2.0
    viewport_padding: int = 16   # Subtracted from the viewport before fitting
    min_viewport: int = 200      # Smallest usable viewport edge
    
    # ============================================================
    # EXPORT SETTINGS
    # ============================================================
    
    jpeg_quality: int = 92
    default_base_name: str = "image"
    default_composite_name: str = "composition"
    
    # Largest render surface (width x height); 16384 x 16384 like browser canvases
    max_surface_pixels: int = 16384 * 16384
    
    
    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024
    
    class Config:
        env_prefix = "OVERLAY_STUDIO_"
        env_file = ".env"
        extra = "ignore"


# Global settings instance
settings = Settings()
