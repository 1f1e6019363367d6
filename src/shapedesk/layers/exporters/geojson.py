"""Export a layer as a GeoJSON file.

Uses stdlib json.  Date attribute values are written as ISO strings.
"""

from __future__ import annotations

import datetime as dt
import json
from typing import TYPE_CHECKING, Any, Optional

from loguru import logger

from shapedesk.layers.exporters.collection import ExportPayload, build_feature_collection

if TYPE_CHECKING:
    from shapedesk.layers.layer import LayerEntry
    from shapedesk.view import Reprojector

MEDIA_TYPE = "application/geo+json"


def _default(value: Any) -> Any:
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def dump_geojson(collection: dict, indent: int = 2) -> bytes:
    """Serialize a FeatureCollection dict to UTF-8 JSON bytes."""
    return json.dumps(collection, indent=indent, default=_default, ensure_ascii=False).encode("utf-8")


async def export_geojson(
    entry: LayerEntry,
    reprojector: Reprojector,
    *,
    indent: int = 2,
    timeout: Optional[float] = None,
) -> ExportPayload:
    """Export a layer to `<name>.geojson`.

    Args:
        entry: The layer to export.
        reprojector: Converts Web Mercator geometries to geographic.
        indent: JSON indent width.
        timeout: Seconds to wait on the map engine, None for no limit.

    Returns:
        ExportPayload holding the JSON document.
    """
    collection = await build_feature_collection(entry, reprojector, timeout)
    data = dump_geojson(collection, indent)
    logger.info(f"Exported '{entry.name}' as GeoJSON ({len(collection['features'])} features)")
    return ExportPayload(filename=f"{entry.name}.geojson", media_type=MEDIA_TYPE, data=data)
