"""Shared fixtures for the shapedesk test suite.

Everything runs against the headless map view; zipped shapefiles are built
on the fly with the pyshp codec.
"""

from __future__ import annotations

import asyncio
import io
import zipfile

import pytest

from shapedesk.codec import PyshpCodec, write_zip
from shapedesk.config import Settings
from shapedesk.headless import HeadlessMapView
from shapedesk.layers.colors import color_for_index, renderer_for
from shapedesk.layers.geometry import WGS84, Point, extent_of, interchange_kind, to_native
from shapedesk.layers.layer import LayerEntry, infer_fields
from shapedesk.layers.registry import LayerRegistry
from shapedesk.reproject import WebMercatorReprojector
from shapedesk.session import MapSession
from shapedesk.view import Graphic


def square(x: float, y: float, size: float = 1.0) -> dict:
    """GeoJSON polygon for an axis-aligned square with its min corner at (x, y)."""
    return {
        "type": "Polygon",
        "coordinates": [[
            [x, y], [x + size, y], [x + size, y + size], [x, y + size], [x, y],
        ]],
    }


def collection(geometries: list[dict], properties: list[dict] | None = None) -> dict:
    properties = properties or [{} for _ in geometries]
    return {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "geometry": g, "properties": p}
            for g, p in zip(geometries, properties)
        ],
    }


@pytest.fixture
def settings():
    return Settings(external_call_timeout=None)


@pytest.fixture
def view():
    """Headless view centred on (0, 0) at zoom 4."""
    return HeadlessMapView(center=Point(0.0, 0.0, WGS84), zoom=4)


@pytest.fixture
def registry(view):
    return LayerRegistry(view)


@pytest.fixture
def session(view, registry, settings):
    return MapSession(
        view, PyshpCodec(), WebMercatorReprojector(), settings=settings, registry=registry
    )


@pytest.fixture
def make_square():
    return square


@pytest.fixture
def make_zip():
    """Factory: FeatureCollection -> zipped shapefile bytes, optionally without .prj."""

    def _make(geometries, properties=None, name="parcels", prj=True) -> bytes:
        data = write_zip(collection(geometries, properties), name)
        if prj:
            return data
        src = zipfile.ZipFile(io.BytesIO(data))
        out = io.BytesIO()
        with zipfile.ZipFile(out, "w") as zf:
            for member in src.namelist():
                if not member.lower().endswith(".prj"):
                    zf.writestr(member, src.read(member))
        return out.getvalue()

    return _make


@pytest.fixture
def add_entry(view, registry):
    """Factory: register a layer built directly from GeoJSON geometries."""

    def _add(name, geometries, properties=None, ready=True) -> LayerEntry:
        properties = properties or [{} for _ in geometries]
        graphics = [
            Graphic(geometry=to_native(g, WGS84), attributes=dict(p))
            for g, p in zip(geometries, properties)
        ]
        entry_id = registry.reserve_id()
        color = color_for_index(entry_id)
        kind = interchange_kind(geometries[0]["type"])
        layer = view.add_layer(
            graphics,
            title=name,
            fields=infer_fields(properties[0]),
            renderer=renderer_for(kind, color),
            object_id_field="OBJECTID",
        )
        layer_view = asyncio.run(view.when_layer_ready(layer)) if ready else None
        entry = LayerEntry(
            name=name,
            native_layer=layer,
            layer_view=layer_view,
            fields=infer_fields(properties[0]),
            geometry_type=kind,
            color=color,
            extent=extent_of(layer.geometries),
            id=entry_id,
        )
        registry.add(entry)
        return entry

    return _add


@pytest.fixture
def screen_of(view):
    """Factory: map (x, y) -> screen point in the view's current viewport."""

    def _screen(x: float, y: float):
        return view.map_to_screen(Point(x, y, WGS84))

    return _screen
