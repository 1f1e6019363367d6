"""Collaborator interfaces consumed by the core.

The map engine, the shapefile codec and the reprojection library are
external: the core only talks to them through the protocols below.  Every
engine call that may yield to the event loop is a coroutine.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Optional, Protocol, TypeVar, runtime_checkable

from shapedesk.errors import ExternalCallFailure
from shapedesk.layers.geometry import Extent, NativeGeometry, Point, SpatialReference

T = TypeVar("T")


@dataclass(frozen=True)
class ScreenPoint:
    """Pixel position inside the map view (origin top-left)."""

    x: float
    y: float


@dataclass
class Graphic:
    """A feature as the map engine hands it back: geometry plus attributes."""

    geometry: Optional[NativeGeometry]
    attributes: dict
    layer: Any = None

    def get_attribute(self, name: str) -> Any:
        return self.attributes.get(name)


@dataclass
class HitResult:
    """One candidate returned by a hit-test, topmost first."""

    graphic: Graphic


@dataclass
class Query:
    """Feature query against a layer or layer view."""

    geometry: Optional[Extent] = None
    object_ids: Optional[list] = None
    where: str = "1=1"
    return_geometry: bool = True
    out_fields: list[str] = field(default_factory=lambda: ["*"])


@dataclass
class EditResult:
    """Per-feature outcome of an apply_edits call."""

    object_id: Any
    success: bool
    error: Optional[str] = None


@runtime_checkable
class HighlightHandle(Protocol):
    def remove(self) -> None: ...


class NativeLayer(Protocol):
    title: str
    visible: bool
    fields: list
    object_id_field: str

    async def query_features(self, query: Query) -> list[Graphic]: ...

    async def query_extent(self) -> Optional[Extent]: ...

    async def apply_edits(self, updates: list[dict]) -> list[EditResult]: ...


class LayerView(Protocol):
    layer: NativeLayer

    async def query_features(self, query: Query) -> list[Graphic]: ...

    def highlight(self, features: list[Graphic]) -> HighlightHandle: ...


class SpatialView(Protocol):
    spatial_reference: SpatialReference
    center: Point
    zoom: float
    extent: Extent

    def screen_to_map(self, point: ScreenPoint) -> Point: ...

    def add_layer(
        self,
        graphics: list[Graphic],
        *,
        title: str,
        fields: list,
        renderer: dict,
        object_id_field: str,
    ) -> NativeLayer: ...

    def remove_layer(self, layer: NativeLayer) -> None: ...

    async def when_layer_ready(self, layer: NativeLayer) -> LayerView: ...

    async def hit_test(self, point: ScreenPoint) -> list[HitResult]: ...

    def add_graphic(self, geometry: NativeGeometry) -> Graphic: ...

    def remove_graphic(self, graphic: Graphic) -> None: ...

    async def go_to(
        self,
        target: Optional[Extent] = None,
        *,
        center: Optional[Point] = None,
        zoom: Optional[float] = None,
        padding: int = 0,
    ) -> None: ...


class Codec(Protocol):
    async def parse(self, data: bytes) -> dict: ...

    async def zip(self, collection: dict, *, name: str) -> bytes: ...


class Reprojector(Protocol):
    def to_geographic(self, geometry: NativeGeometry) -> NativeGeometry: ...


async def external_call(
    awaitable: Awaitable[T],
    *,
    what: str,
    timeout: Optional[float] = None,
) -> T:
    """Await a collaborator call, normalising failures to ExternalCallFailure.

    Args:
        awaitable: The pending collaborator call.
        what: Short description used in the error message.
        timeout: Seconds to wait, or None to wait indefinitely.
    """
    try:
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout)
    except ExternalCallFailure:
        raise
    except asyncio.TimeoutError as e:
        raise ExternalCallFailure(f"{what} timed out after {timeout}s") from e
    except Exception as e:
        raise ExternalCallFailure(f"{what} failed: {e}") from e
