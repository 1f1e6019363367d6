"""Export a layer as a zipped shapefile set."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from loguru import logger

from shapedesk.errors import InvalidArchive
from shapedesk.layers.exporters.collection import ExportPayload, build_feature_collection
from shapedesk.view import external_call

if TYPE_CHECKING:
    from shapedesk.layers.layer import LayerEntry
    from shapedesk.view import Codec, Reprojector

MEDIA_TYPE = "application/zip"


async def export_shapefile(
    entry: LayerEntry,
    reprojector: Reprojector,
    codec: Codec,
    *,
    min_bytes: int = 100,
    timeout: Optional[float] = None,
) -> ExportPayload:
    """Export a layer to `<name>.zip`.

    Args:
        entry: The layer to export.
        reprojector: Converts Web Mercator geometries to geographic.
        codec: Shapefile codec producing the archive.
        min_bytes: Archives smaller than this are rejected as broken.
        timeout: Seconds to wait on the engine and codec, None for no limit.

    Raises:
        NoExportableFeatures: If no feature has an exportable geometry.
        InvalidArchive: If the codec produced an implausibly small archive.
        ExternalCallFailure: If the query or the codec fails.
    """
    collection = await build_feature_collection(entry, reprojector, timeout)
    data = await external_call(
        codec.zip(collection, name=entry.name), what=f"zip {entry.name}", timeout=timeout
    )
    if data is None or len(data) < min_bytes:
        size = 0 if data is None else len(data)
        logger.error(f"Shapefile archive for '{entry.name}' is only {size} bytes")
        raise InvalidArchive(f"Generated shapefile archive is invalid or empty ({size} bytes)")

    logger.info(
        f"Exported '{entry.name}' as shapefile "
        f"({len(collection['features'])} features, {len(data)} bytes)"
    )
    return ExportPayload(filename=f"{entry.name}.zip", media_type=MEDIA_TYPE, data=data)
