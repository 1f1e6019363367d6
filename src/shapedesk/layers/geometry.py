"""Geometry adapter between GeoJSON-style interchange and native map geometry.

Interchange geometries are GeoJSON dicts ({"type": ..., "coordinates": ...}).
Native geometries are the map engine's representation:

    Point     -> x, y
    Polyline  -> paths  (one vertex list per path)
    Polygon   -> rings  (first ring exterior, later rings holes, unchanged)

MultiPolygon is flattened one level into a single ring list on import and is
never reconstructed on export.  That loses which rings belong to which member
polygon; downstream consumers rely on the flattened form, so it stays.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import ClassVar, Union

from loguru import logger

WEB_MERCATOR_WKIDS = frozenset({3857, 102100, 102113, 900913})
GEOGRAPHIC_WKID = 4326


@dataclass(frozen=True)
class SpatialReference:
    """Coordinate system tag carried by native geometries and extents."""

    wkid: int = GEOGRAPHIC_WKID

    @property
    def is_web_mercator(self) -> bool:
        return self.wkid in WEB_MERCATOR_WKIDS

    @property
    def is_geographic(self) -> bool:
        return self.wkid == GEOGRAPHIC_WKID


WGS84 = SpatialReference(GEOGRAPHIC_WKID)
WEB_MERCATOR = SpatialReference(3857)


@dataclass
class Point:
    x: float
    y: float
    spatial_reference: SpatialReference | None = None

    type: ClassVar[str] = "point"


@dataclass
class Polyline:
    paths: list
    spatial_reference: SpatialReference | None = None

    type: ClassVar[str] = "polyline"


@dataclass
class Polygon:
    rings: list
    spatial_reference: SpatialReference | None = None

    type: ClassVar[str] = "polygon"


NativeGeometry = Union[Point, Polyline, Polygon]


@dataclass(frozen=True)
class Extent:
    """Axis-aligned bounding region in map coordinates."""

    xmin: float
    ymin: float
    xmax: float
    ymax: float
    spatial_reference: SpatialReference | None = None

    @classmethod
    def from_points(cls, p1: Point, p2: Point) -> Extent:
        """Build the axis-aligned box spanned by two corners, in any order."""
        return cls(
            xmin=min(p1.x, p2.x),
            ymin=min(p1.y, p2.y),
            xmax=max(p1.x, p2.x),
            ymax=max(p1.y, p2.y),
            spatial_reference=p1.spatial_reference,
        )

    @property
    def width(self) -> float:
        return self.xmax - self.xmin

    @property
    def height(self) -> float:
        return self.ymax - self.ymin

    @property
    def center(self) -> Point:
        return Point(
            (self.xmin + self.xmax) / 2.0,
            (self.ymin + self.ymax) / 2.0,
            self.spatial_reference,
        )

    def union(self, other: Extent) -> Extent:
        return Extent(
            xmin=min(self.xmin, other.xmin),
            ymin=min(self.ymin, other.ymin),
            xmax=max(self.xmax, other.xmax),
            ymax=max(self.ymax, other.ymax),
            spatial_reference=self.spatial_reference,
        )

    def expand(self, margin: float) -> Extent:
        return replace(
            self,
            xmin=self.xmin - margin,
            ymin=self.ymin - margin,
            xmax=self.xmax + margin,
            ymax=self.ymax + margin,
        )

    def to_polygon(self) -> Polygon:
        """Closed rectangle ring, used for the drag-box graphic."""
        ring = [
            [self.xmin, self.ymin],
            [self.xmin, self.ymax],
            [self.xmax, self.ymax],
            [self.xmax, self.ymin],
            [self.xmin, self.ymin],
        ]
        return Polygon(rings=[ring], spatial_reference=self.spatial_reference)


# ---------------------------------------------------------------------------
# Interchange -> native
# ---------------------------------------------------------------------------

def to_native(
    geometry: dict | None,
    spatial_reference: SpatialReference | None = None,
) -> NativeGeometry | None:
    """Convert a GeoJSON geometry dict to a native geometry.

    Args:
        geometry: GeoJSON geometry ({"type", "coordinates"}), or None.
        spatial_reference: Spatial reference to tag the result with.

    Returns:
        The native geometry, or None for a missing or unsupported type
        (the caller skips that feature).
    """
    if not geometry or not isinstance(geometry, dict):
        return None

    geom_type = str(geometry.get("type", "")).lower()
    coords = geometry.get("coordinates")
    if coords is None:
        return None

    if geom_type == "point":
        return Point(x=coords[0], y=coords[1], spatial_reference=spatial_reference)
    if geom_type == "linestring":
        return Polyline(paths=[coords], spatial_reference=spatial_reference)
    if geom_type == "multilinestring":
        return Polyline(paths=coords, spatial_reference=spatial_reference)
    if geom_type == "polygon":
        return Polygon(rings=coords, spatial_reference=spatial_reference)
    if geom_type == "multipolygon":
        # One level of flattening: [[ring, ...], [ring, ...]] -> [ring, ...]
        rings = [ring for polygon in coords for ring in polygon]
        return Polygon(rings=rings, spatial_reference=spatial_reference)

    logger.warning(f"Unsupported geometry type skipped: {geometry.get('type')}")
    return None


# ---------------------------------------------------------------------------
# Native -> interchange
# ---------------------------------------------------------------------------

def to_interchange(geometry: NativeGeometry | None) -> dict | None:
    """Convert a native geometry back to a GeoJSON geometry dict.

    A polyline with a single path becomes LineString, more than one path
    becomes MultiLineString.  Polygon rings are emitted as-is under
    "Polygon"; multipolygons are not reconstructed.
    """
    if isinstance(geometry, Point):
        return {"type": "Point", "coordinates": [geometry.x, geometry.y]}
    if isinstance(geometry, Polyline):
        if len(geometry.paths) == 1:
            return {"type": "LineString", "coordinates": geometry.paths[0]}
        return {"type": "MultiLineString", "coordinates": geometry.paths}
    if isinstance(geometry, Polygon):
        return {"type": "Polygon", "coordinates": geometry.rings}
    return None


def interchange_kind(geom_type: str) -> str:
    """Map a GeoJSON type name to the layer geometry kind used for symbology."""
    geom_type = geom_type.lower()
    if geom_type in ("point", "multipoint"):
        return "point"
    if "line" in geom_type:
        return "polyline"
    return "polygon"


def native_coordinates(geometry: NativeGeometry) -> list[tuple[float, float]]:
    """Flat vertex list of a native geometry (used for extents)."""
    if isinstance(geometry, Point):
        return [(geometry.x, geometry.y)]
    parts = geometry.paths if isinstance(geometry, Polyline) else geometry.rings
    return [(v[0], v[1]) for part in parts for v in part]


def extent_of(geometries: list[NativeGeometry]) -> Extent | None:
    """Bounding extent of a set of native geometries, or None if empty."""
    xs: list[float] = []
    ys: list[float] = []
    sr = None
    for geometry in geometries:
        if sr is None:
            sr = geometry.spatial_reference
        for x, y in native_coordinates(geometry):
            xs.append(x)
            ys.append(y)
    if not xs:
        return None
    return Extent(min(xs), min(ys), max(xs), max(ys), sr)
