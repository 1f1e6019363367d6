"""Drag-box selection.

A drag starts at a screen point, draws a transient rectangle on the view
while the pointer moves, and on release selects, for every visible and
ready layer, the features intersecting the rectangle.  The new result
replaces each layer's previous selection.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Optional

from loguru import logger

from shapedesk.config import Settings, settings as default_settings
from shapedesk.layers.geometry import Extent
from shapedesk.view import Query, ScreenPoint, external_call

if TYPE_CHECKING:
    from shapedesk.layers.layer import LayerEntry
    from shapedesk.layers.registry import LayerRegistry
    from shapedesk.view import Graphic, SpatialView


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


async def _select_entry(
    registry: LayerRegistry,
    entry: LayerEntry,
    token: int,
    extent: Extent,
    timeout: Optional[float],
) -> None:
    try:
        layer_view = entry.layer_view
        features = await external_call(
            layer_view.query_features(Query(geometry=extent)),
            what=f"box query on {entry.name}",
            timeout=timeout,
        )
        oid_field = entry.object_id_field
        ids = [f.attributes.get(oid_field) for f in features]
        ids = [oid for oid in ids if oid is not None]
        committed = registry.commit_selection(
            entry.id, token, ids, lambda: layer_view.highlight(features)
        )
        if committed:
            logger.debug(f"Box selected {len(ids)} features in '{entry.name}'")
    except Exception as e:
        # Prior selection of this layer is left as it was.
        logger.error(f"Box selection failed for layer '{entry.name}': {e}")


async def select_extent(
    registry: LayerRegistry,
    extent: Extent,
    *,
    timeout: Optional[float] = None,
) -> int:
    """Select features intersecting an extent across all layers.

    Hidden and not-yet-ready layers have their selection cleared.  Layers
    are queried concurrently; a failure on one layer is logged and does not
    stop the others.

    Returns:
        The global selection total afterwards.
    """
    jobs = []
    for entry in registry.list_layers():
        if not entry.visible or not entry.ready:
            registry.clear_selection(entry.id)
            continue
        token = registry.begin_selection(entry.id)
        if token is None:
            continue
        jobs.append(_select_entry(registry, entry, token, extent, timeout))

    if jobs:
        await asyncio.gather(*jobs)
    total = registry.total_selected()
    logger.info(f"Box selection: {total} features selected")
    return total


class BoxSelection:
    """idle -> dragging -> idle state machine for one drag gesture at a time."""

    def __init__(
        self,
        registry: LayerRegistry,
        view: SpatialView,
        settings: Optional[Settings] = None,
    ) -> None:
        self._registry = registry
        self._view = view
        self._settings = settings or default_settings
        self.state = DragState.IDLE
        self.origin: Optional[ScreenPoint] = None
        self.extent: Optional[Extent] = None
        self._graphic: Optional[Graphic] = None

    @property
    def dragging(self) -> bool:
        return self.state is DragState.DRAGGING

    @property
    def graphic(self) -> Optional[Graphic]:
        return self._graphic

    def _extent_to(self, point: ScreenPoint) -> Extent:
        return Extent.from_points(
            self._view.screen_to_map(self.origin),
            self._view.screen_to_map(point),
        )

    def start(self, point: ScreenPoint) -> None:
        """Record the origin and draw the rectangle graphic."""
        if self.dragging:
            self.cancel()
        self.origin = point
        self.extent = self._extent_to(point)
        self._graphic = self._view.add_graphic(self.extent.to_polygon())
        self.state = DragState.DRAGGING

    def update(self, point: ScreenPoint) -> Optional[Extent]:
        """Stretch the rectangle to the current pointer position."""
        if not self.dragging:
            return None
        self.extent = self._extent_to(point)
        self._graphic.geometry = self.extent.to_polygon()
        return self.extent

    def _finish(self) -> None:
        if self._graphic is not None:
            self._view.remove_graphic(self._graphic)
        self._graphic = None
        self.origin = None
        self.state = DragState.IDLE

    def cancel(self) -> None:
        """Abort the gesture without touching any selection."""
        self._finish()
        self.extent = None

    async def end(self, point: ScreenPoint) -> int:
        """Close the rectangle and run the selection.

        Returns:
            The global selection total afterwards.
        """
        if not self.dragging:
            return self._registry.total_selected()
        extent = self._extent_to(point)
        self.extent = extent
        self._finish()
        return await select_extent(
            self._registry, extent, timeout=self._settings.external_call_timeout
        )
