"""Build an interchange FeatureCollection from a layer's features.

Every feature is fetched from the native layer, reprojected to geographic
coordinates when the engine stores it in Web Mercator, and converted back to
interchange geometry.  Features whose geometry cannot be converted are left
out of the collection.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from loguru import logger

from shapedesk.errors import NoExportableFeatures
from shapedesk.layers.geometry import to_interchange
from shapedesk.view import Query, external_call

if TYPE_CHECKING:
    from shapedesk.layers.layer import LayerEntry
    from shapedesk.view import Reprojector


@dataclass(frozen=True)
class ExportPayload:
    """A complete in-memory download."""

    filename: str
    media_type: str
    data: bytes


async def build_feature_collection(
    entry: LayerEntry,
    reprojector: Reprojector,
    timeout: Optional[float] = None,
) -> dict:
    """Query all features of a layer into a FeatureCollection dict.

    Args:
        entry: The layer to export.
        reprojector: Converts Web Mercator geometries to geographic.
        timeout: Seconds to wait on the map engine, None for no limit.

    Returns:
        GeoJSON-like FeatureCollection dict.

    Raises:
        NoExportableFeatures: If no feature has an exportable geometry.
        ExternalCallFailure: If the feature query fails.
    """
    query = Query(where="1=1", return_geometry=True, out_fields=["*"])
    graphics = await external_call(
        entry.native_layer.query_features(query),
        what=f"query features of {entry.name}",
        timeout=timeout,
    )

    features = []
    for graphic in graphics:
        if graphic.geometry is None:
            continue
        geometry = to_interchange(reprojector.to_geographic(graphic.geometry))
        if geometry is None:
            continue
        features.append({
            "type": "Feature",
            "geometry": geometry,
            "properties": dict(graphic.attributes),
        })

    skipped = len(graphics) - len(features)
    if skipped:
        logger.warning(f"Export of '{entry.name}' skipped {skipped} feature(s) without geometry")
    if not features:
        raise NoExportableFeatures(f"No features with geometry found in '{entry.name}'")

    return {"type": "FeatureCollection", "features": features}
