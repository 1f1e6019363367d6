"""Tests for the interchange <-> native geometry adapter."""

import pytest

from shapedesk.layers.geometry import (
    WEB_MERCATOR,
    WGS84,
    Extent,
    Point,
    Polygon,
    Polyline,
    extent_of,
    interchange_kind,
    to_interchange,
    to_native,
)

pytestmark = pytest.mark.unit


SQUARE_A = [[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]
SQUARE_B = [[5, 5], [6, 5], [6, 6], [5, 6], [5, 5]]


class TestToNative:
    """GeoJSON dict -> native geometry."""

    def test_point(self):
        geom = to_native({"type": "Point", "coordinates": [-3.7, 40.4]}, WGS84)
        assert isinstance(geom, Point)
        assert (geom.x, geom.y) == (-3.7, 40.4)
        assert geom.spatial_reference == WGS84

    def test_linestring_single_path(self):
        geom = to_native({"type": "LineString", "coordinates": [[0, 0], [1, 1]]})
        assert isinstance(geom, Polyline)
        assert geom.paths == [[[0, 0], [1, 1]]]

    def test_multilinestring_paths(self):
        coords = [[[0, 0], [1, 1]], [[2, 2], [3, 3]]]
        geom = to_native({"type": "MultiLineString", "coordinates": coords})
        assert geom.paths == coords

    def test_polygon_rings_unchanged(self):
        hole = [[0.2, 0.2], [0.2, 0.8], [0.8, 0.8], [0.2, 0.2]]
        geom = to_native({"type": "Polygon", "coordinates": [SQUARE_A, hole]})
        assert isinstance(geom, Polygon)
        assert geom.rings == [SQUARE_A, hole]

    def test_type_name_case_insensitive(self):
        geom = to_native({"type": "point", "coordinates": [1, 2]})
        assert isinstance(geom, Point)

    def test_unsupported_type_returns_none(self):
        assert to_native({"type": "GeometryCollection", "coordinates": []}) is None

    def test_missing_geometry_returns_none(self):
        assert to_native(None) is None
        assert to_native({"type": "Point"}) is None


class TestRoundTrip:
    """to_interchange(to_native(g)) == g for the supported types."""

    @pytest.mark.parametrize("geometry", [
        {"type": "Point", "coordinates": [12.5, -8.25]},
        {"type": "LineString", "coordinates": [[0, 0], [1, 2], [3, 4]]},
        {"type": "MultiLineString", "coordinates": [[[0, 0], [1, 1]], [[5, 5], [6, 7]]]},
        {"type": "Polygon", "coordinates": [SQUARE_A]},
    ])
    def test_round_trip(self, geometry):
        assert to_interchange(to_native(geometry)) == geometry

    def test_multipolygon_is_flattened(self):
        """Two disjoint squares come back as one Polygon with both rings.

        The grouping of rings into member polygons is not reconstructed:
        the result has two 5-vertex rings under a single Polygon.
        """
        multi = {"type": "MultiPolygon", "coordinates": [[SQUARE_A], [SQUARE_B]]}
        result = to_interchange(to_native(multi))
        assert result == {"type": "Polygon", "coordinates": [SQUARE_A, SQUARE_B]}
        assert sum(len(ring) for ring in result["coordinates"]) == 10

    def test_single_path_polyline_becomes_linestring(self):
        result = to_interchange(Polyline(paths=[[[0, 0], [1, 1]]]))
        assert result["type"] == "LineString"

    def test_unknown_native_returns_none(self):
        assert to_interchange(None) is None


class TestExtent:
    """Extent value type."""

    def test_from_points_any_drag_direction(self):
        """Corners are normalised to min/max whatever the drag direction."""
        a = Extent.from_points(Point(5, 1), Point(2, 7))
        b = Extent.from_points(Point(2, 7), Point(5, 1))
        assert a == b == Extent(2, 1, 5, 7)

    def test_union(self):
        assert Extent(0, 0, 1, 1).union(Extent(3, -2, 4, 0.5)) == Extent(0, -2, 4, 1)

    def test_to_polygon_closed_ring(self):
        ring = Extent(0, 0, 2, 1).to_polygon().rings[0]
        assert ring[0] == ring[-1]
        assert len(ring) == 5

    def test_center_width_height(self):
        extent = Extent(-2, 0, 2, 6)
        assert (extent.width, extent.height) == (4, 6)
        assert (extent.center.x, extent.center.y) == (0, 3)

    def test_expand(self):
        assert Extent(0, 0, 1, 1).expand(1) == Extent(-1, -1, 2, 2)

    def test_extent_of_geometries(self):
        geoms = [to_native({"type": "Polygon", "coordinates": [SQUARE_A]}), Point(-3, 9)]
        assert extent_of(geoms) == Extent(-3, 0, 1, 9)

    def test_extent_of_nothing(self):
        assert extent_of([]) is None


class TestSpatialReference:

    def test_web_mercator_wkids(self):
        assert WEB_MERCATOR.is_web_mercator
        assert not WGS84.is_web_mercator
        assert WGS84.is_geographic


class TestInterchangeKind:
    """GeoJSON type -> layer geometry kind."""

    @pytest.mark.parametrize("geom_type,kind", [
        ("Point", "point"),
        ("MultiPoint", "point"),
        ("LineString", "polyline"),
        ("MultiLineString", "polyline"),
        ("Polygon", "polygon"),
        ("MultiPolygon", "polygon"),
        ("linestring", "polyline"),
        ("point", "point"),
    ])
    def test_kind(self, geom_type, kind):
        assert interchange_kind(geom_type) == kind
