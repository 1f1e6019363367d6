"""API routers."""

from shapedesk.app.routers.layers import router as layers_router
from shapedesk.app.routers.selection import router as selection_router

__all__ = ["layers_router", "selection_router"]
