"""Reprojection of native geometries to geographic coordinates using pyproj."""

from __future__ import annotations

from pyproj import Transformer

from shapedesk.layers.geometry import WGS84, NativeGeometry, Point, Polygon, Polyline


def _transform_part(part: list, transform) -> list:
    out = []
    for vertex in part:
        x, y = transform(vertex[0], vertex[1])
        out.append([x, y, *vertex[2:]])
    return out


class WebMercatorReprojector:
    """Converts Web Mercator geometries to WGS84; anything else passes through."""

    def __init__(self) -> None:
        self._transformer = Transformer.from_crs("EPSG:3857", "EPSG:4326", always_xy=True)

    def to_geographic(self, geometry: NativeGeometry) -> NativeGeometry:
        sr = geometry.spatial_reference
        if sr is None or not sr.is_web_mercator:
            return geometry

        transform = self._transformer.transform
        if isinstance(geometry, Point):
            x, y = transform(geometry.x, geometry.y)
            return Point(x, y, WGS84)
        if isinstance(geometry, Polyline):
            return Polyline([_transform_part(p, transform) for p in geometry.paths], WGS84)
        if isinstance(geometry, Polygon):
            return Polygon([_transform_part(r, transform) for r in geometry.rings], WGS84)
        return geometry
