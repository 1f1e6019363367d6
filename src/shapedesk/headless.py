"""Headless map view: an in-memory implementation of the spatial view.

Runs the whole selection/edit/export stack without a browser: features are
kept in memory, spatial predicates are evaluated with shapely, and the
screen/map projection is a linear viewport around a center point.

Convention:
    - Screen origin (0, 0) is the top-left pixel; +y is down.
    - Map resolution (map units per pixel) halves with every zoom level.
    - Layers draw in insertion order; hit-tests report the topmost first.
"""

from __future__ import annotations

import asyncio
import copy
import math
from typing import Any, Optional

from loguru import logger
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import box, shape
from shapely.validation import make_valid

from shapedesk.layers.geometry import (
    WGS84,
    Extent,
    NativeGeometry,
    Point,
    SpatialReference,
    extent_of,
    to_interchange,
)
from shapedesk.view import EditResult, Graphic, HitResult, Query, ScreenPoint

# Degrees per pixel at zoom 0 for a 256px world tile.
BASE_RESOLUTION = 360.0 / 256.0


def _to_shapely(geometry: Optional[NativeGeometry]):
    interchange = to_interchange(geometry)
    if interchange is None:
        return None
    try:
        geom = shape(interchange)
    except Exception as e:
        logger.warning(f"Degenerate geometry ignored by headless view: {e}")
        return None
    if not geom.is_valid:
        # Flattened multipolygon rings read as out-of-shell holes.
        geom = make_valid(geom)
    return geom


class HeadlessHighlight:
    """Highlight handle; tracked on its layer view until removed."""

    def __init__(self, layer_view: HeadlessLayerView, object_ids: list) -> None:
        self.layer_view = layer_view
        self.object_ids = object_ids
        self.removed = False

    def remove(self) -> None:
        if self.removed:
            return
        self.removed = True
        self.layer_view.live_highlights.remove(self)


class HeadlessLayer:
    """In-memory feature layer."""

    def __init__(
        self,
        graphics: list[Graphic],
        *,
        title: str,
        fields: list,
        renderer: dict,
        object_id_field: str = "OBJECTID",
        spatial_reference: SpatialReference = WGS84,
    ) -> None:
        self.title = title
        self.fields = list(fields)
        self.renderer = renderer
        self.object_id_field = object_id_field
        self.spatial_reference = spatial_reference
        self.visible = True
        self._features: dict[Any, Graphic] = {}
        self._shapes: dict[Any, Any] = {}

        for index, graphic in enumerate(graphics, start=1):
            attributes = dict(graphic.attributes)
            oid = attributes.setdefault(object_id_field, index)
            self._features[oid] = Graphic(
                geometry=graphic.geometry, attributes=attributes, layer=self
            )
            self._shapes[oid] = _to_shapely(graphic.geometry)

    def __len__(self) -> int:
        return len(self._features)

    @property
    def geometries(self) -> list[NativeGeometry]:
        return [g.geometry for g in self._features.values() if g.geometry is not None]

    def _copy(self, graphic: Graphic, with_geometry: bool = True) -> Graphic:
        return Graphic(
            geometry=copy.deepcopy(graphic.geometry) if with_geometry else None,
            attributes=dict(graphic.attributes),
            layer=self,
        )

    def select(self, query: Query) -> list[Graphic]:
        """Synchronous query evaluation shared by the layer and its view."""
        oids = list(self._features)
        if query.object_ids is not None:
            wanted = set(query.object_ids)
            oids = [oid for oid in oids if oid in wanted]
        if query.geometry is not None:
            region = box(
                query.geometry.xmin,
                query.geometry.ymin,
                query.geometry.xmax,
                query.geometry.ymax,
            )
            oids = [
                oid for oid in oids
                if self._shapes[oid] is not None and self._shapes[oid].intersects(region)
            ]
        return [self._copy(self._features[oid], query.return_geometry) for oid in oids]

    def shape_of(self, object_id: Any):
        return self._shapes.get(object_id)

    async def query_features(self, query: Query) -> list[Graphic]:
        await asyncio.sleep(0)
        return self.select(query)

    async def query_extent(self) -> Optional[Extent]:
        await asyncio.sleep(0)
        return extent_of(self.geometries)

    async def apply_edits(self, updates: list[dict]) -> list[EditResult]:
        await asyncio.sleep(0)
        results: list[EditResult] = []
        for update in updates:
            attributes = dict(update.get("attributes", update))
            oid = attributes.pop(self.object_id_field, None)
            feature = self._features.get(oid)
            if feature is None:
                results.append(EditResult(oid, False, "Feature not found"))
                continue
            feature.attributes.update(attributes)
            results.append(EditResult(oid, True))
        return results


class HeadlessLayerView:
    """View-side handle of a HeadlessLayer: query + highlight."""

    def __init__(self, layer: HeadlessLayer) -> None:
        self.layer = layer
        self.live_highlights: list[HeadlessHighlight] = []

    async def query_features(self, query: Query) -> list[Graphic]:
        await asyncio.sleep(0)
        return self.layer.select(query)

    def highlight(self, features: list[Graphic]) -> HeadlessHighlight:
        oid_field = self.layer.object_id_field
        handle = HeadlessHighlight(self, [f.attributes.get(oid_field) for f in features])
        self.live_highlights.append(handle)
        return handle


class HeadlessMapView:
    """In-memory spatial view with a linear viewport."""

    def __init__(
        self,
        center: Optional[Point] = None,
        zoom: float = 4.0,
        width: int = 1024,
        height: int = 768,
        spatial_reference: SpatialReference = WGS84,
        hit_tolerance_px: float = 4.0,
    ) -> None:
        self.spatial_reference = spatial_reference
        self.center = center or Point(-100.0, 40.0, spatial_reference)
        self.zoom = zoom
        self.width = width
        self.height = height
        self.hit_tolerance_px = hit_tolerance_px
        self.layers: list[HeadlessLayer] = []
        self.graphics: list[Graphic] = []
        self.render_count = 0
        self._layer_views: dict[int, HeadlessLayerView] = {}

    # ------------------------------------------------------------------
    # Viewport
    # ------------------------------------------------------------------

    @property
    def resolution(self) -> float:
        return BASE_RESOLUTION / (2 ** self.zoom)

    @property
    def extent(self) -> Extent:
        half_w = self.width * self.resolution / 2.0
        half_h = self.height * self.resolution / 2.0
        return Extent(
            self.center.x - half_w,
            self.center.y - half_h,
            self.center.x + half_w,
            self.center.y + half_h,
            self.spatial_reference,
        )

    def screen_to_map(self, point: ScreenPoint) -> Point:
        res = self.resolution
        return Point(
            self.center.x + (point.x - self.width / 2.0) * res,
            self.center.y - (point.y - self.height / 2.0) * res,
            self.spatial_reference,
        )

    def map_to_screen(self, point: Point) -> ScreenPoint:
        res = self.resolution
        return ScreenPoint(
            (point.x - self.center.x) / res + self.width / 2.0,
            (self.center.y - point.y) / res + self.height / 2.0,
        )

    async def go_to(
        self,
        target: Optional[Extent] = None,
        *,
        center: Optional[Point] = None,
        zoom: Optional[float] = None,
        padding: int = 0,
    ) -> None:
        await asyncio.sleep(0)
        if target is not None:
            self.center = target.center
            usable_w = max(self.width - 2 * padding, 1)
            usable_h = max(self.height - 2 * padding, 1)
            res = max(target.width / usable_w, target.height / usable_h)
            if res > 0:
                self.zoom = math.log2(BASE_RESOLUTION / res)
        if center is not None:
            self.center = center
        if zoom is not None:
            self.zoom = zoom

    def request_render(self) -> None:
        self.render_count += 1

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    def add_layer(
        self,
        graphics: list[Graphic],
        *,
        title: str,
        fields: list,
        renderer: dict,
        object_id_field: str = "OBJECTID",
    ) -> HeadlessLayer:
        layer = HeadlessLayer(
            graphics,
            title=title,
            fields=fields,
            renderer=renderer,
            object_id_field=object_id_field,
            spatial_reference=self.spatial_reference,
        )
        self.layers.append(layer)
        return layer

    def remove_layer(self, layer: HeadlessLayer) -> None:
        if layer in self.layers:
            self.layers.remove(layer)
        layer_view = self._layer_views.pop(id(layer), None)
        if layer_view is not None and layer_view.live_highlights:
            logger.warning(
                f"Layer '{layer.title}' removed with "
                f"{len(layer_view.live_highlights)} live highlight(s)"
            )

    async def when_layer_ready(self, layer: HeadlessLayer) -> HeadlessLayerView:
        await asyncio.sleep(0)
        if layer not in self.layers:
            raise RuntimeError(f"Layer '{layer.title}' is not attached to the view")
        return self._layer_views.setdefault(id(layer), HeadlessLayerView(layer))

    async def hit_test(self, point: ScreenPoint) -> list[HitResult]:
        await asyncio.sleep(0)
        where = self.screen_to_map(point)
        probe = ShapelyPoint(where.x, where.y)
        tolerance = self.hit_tolerance_px * self.resolution
        results: list[HitResult] = []
        for layer in reversed(self.layers):
            if not layer.visible:
                continue
            for graphic in layer.select(Query()):
                geom = layer.shape_of(graphic.attributes.get(layer.object_id_field))
                if geom is not None and geom.distance(probe) <= tolerance:
                    results.append(HitResult(graphic))
        return results

    # ------------------------------------------------------------------
    # Transient graphics
    # ------------------------------------------------------------------

    def add_graphic(self, geometry: NativeGeometry) -> Graphic:
        graphic = Graphic(geometry=geometry, attributes={})
        self.graphics.append(graphic)
        return graphic

    def remove_graphic(self, graphic: Graphic) -> None:
        self.graphics = [g for g in self.graphics if g is not graphic]
