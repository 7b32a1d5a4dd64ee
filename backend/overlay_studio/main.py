"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from overlay_studio import __version__
from overlay_studio.config import settings
from overlay_studio.routes import (
    workspaces_router,
    layers_router,
    exports_router,
    blend_modes_router,
)
from overlay_studio.services.blend_modes import blend_registry
from overlay_studio.services.storage import workspace_store

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting Overlay Studio v{__version__}")
    logger.info(f"Blend modes: {len(blend_registry)}, workspace TTL: {settings.workspace_ttl_hours}h")

    yield

    # Shutdown
    logger.info(f"Shutting down, dropping {len(workspace_store)} workspaces...")
    workspace_store.clear()


# Create FastAPI app
app = FastAPI(
    title="Overlay Studio",
    description="API for layering, transforming and compositing images over a base document",
    version=__version__,
    lifespan=lifespan,
    docs_url=f"{settings.api_v1_prefix}/docs",
    redoc_url=f"{settings.api_v1_prefix}/redoc",
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


# Global exception handler for consistent error responses
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            }
        },
    )


# Include routers
app.include_router(workspaces_router, prefix=settings.api_v1_prefix)
app.include_router(layers_router, prefix=settings.api_v1_prefix)
app.include_router(exports_router, prefix=settings.api_v1_prefix)
app.include_router(blend_modes_router, prefix=settings.api_v1_prefix)


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {
        "ok": True,
        "status": "healthy",
        "version": __version__,
    }


@app.get("/", include_in_schema=False)
async def root():
    """Point at the API documentation."""
    return {
        "message": "Overlay Studio API",
        "version": __version__,
        "docs": f"{settings.api_v1_prefix}/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "overlay_studio.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
