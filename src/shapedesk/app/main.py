"""ShapeDesk - shapefile viewer core.

Main FastAPI application.
"""

import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from shapedesk import __version__
from shapedesk.app.routers import layers_router, selection_router
from shapedesk.codec import PyshpCodec
from shapedesk.config import Settings, settings as default_settings
from shapedesk.headless import HeadlessMapView
from shapedesk.layers.geometry import WGS84, Point
from shapedesk.reproject import WebMercatorReprojector
from shapedesk.session import MapSession
from shapedesk.view import SpatialView


def configure_logging(level: str) -> None:
    """Route loguru output to stderr at the configured level."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def build_session(cfg: Settings, view: Optional[SpatialView] = None) -> MapSession:
    """Create a map session on the given view, or on a headless one."""
    if view is None:
        view = HeadlessMapView(
            center=Point(cfg.initial_center_x, cfg.initial_center_y, WGS84),
            zoom=cfg.initial_zoom,
            width=cfg.viewport_width,
            height=cfg.viewport_height,
            hit_tolerance_px=cfg.hit_tolerance_px,
        )
    return MapSession(view, PyshpCodec(), WebMercatorReprojector(), settings=cfg)


def create_app(cfg: Optional[Settings] = None, view: Optional[SpatialView] = None) -> FastAPI:
    """Build the FastAPI app with a fresh map session on app.state.session."""
    cfg = cfg or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(cfg.log_level)
        logger.info(f"{cfg.app_name} v{__version__} starting")
        yield
        removed = app.state.session.registry.clear()
        logger.info(f"{cfg.app_name} shutting down ({removed} layers released)")

    app = FastAPI(
        title=cfg.app_name,
        description="Shapefile viewer: layers, selection, batch edit, export",
        version=__version__,
        debug=cfg.debug,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.session = build_session(cfg, view)

    app.include_router(layers_router)
    app.include_router(selection_router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "operational",
            "version": __version__,
            "system": cfg.app_name,
            "layers": len(app.state.session.registry),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.host, port=default_settings.port)
