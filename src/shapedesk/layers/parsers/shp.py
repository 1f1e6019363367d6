"""Load a zipped shapefile into a new registry entry.

Steps: reject duplicate names, require a .prj, parse with the codec, infer
the field schema from the first feature, convert geometries for the map
engine, attach the native layer, wait for it to be ready, zoom to its
extent, and register it.  If anything fails after the native layer was
attached, it is detached again before the error propagates.
"""

from __future__ import annotations

import os
import zipfile
from typing import TYPE_CHECKING, Optional

from loguru import logger

from shapedesk.codec import has_projection
from shapedesk.config import Settings, settings as default_settings
from shapedesk.errors import (
    DuplicateLayerName,
    EmptyOrUnparseable,
    ExternalCallFailure,
    NoGeoreference,
)
from shapedesk.layers.colors import color_for_index, renderer_for
from shapedesk.layers.geometry import WGS84, interchange_kind, to_native
from shapedesk.layers.layer import LayerEntry, infer_fields
from shapedesk.view import Graphic, external_call

if TYPE_CHECKING:
    from shapedesk.layers.registry import LayerRegistry
    from shapedesk.view import Codec, SpatialView


def layer_name_for(filename: str) -> str:
    """Layer name from a file name: directory and last extension stripped."""
    return os.path.splitext(os.path.basename(filename))[0]


async def load_shapefile(
    filename: str,
    data: bytes,
    *,
    registry: LayerRegistry,
    view: SpatialView,
    codec: Codec,
    settings: Optional[Settings] = None,
) -> LayerEntry:
    """Parse a shapefile archive and register it as a new layer.

    Args:
        filename: Original file name; the layer name is derived from it.
        data: Raw .zip bytes.
        registry: Registry receiving the new entry.
        view: Map view the native layer is attached to.
        codec: Shapefile codec used to parse the archive.
        settings: Settings override (defaults to the module settings).

    Returns:
        The registered LayerEntry.

    Raises:
        DuplicateLayerName: A layer with the same name is already loaded.
        NoGeoreference: The archive has no .prj.
        EmptyOrUnparseable: The archive is corrupt or has no usable features.
        ExternalCallFailure: The map engine failed while attaching the layer.
    """
    cfg = settings or default_settings
    timeout = cfg.external_call_timeout
    name = layer_name_for(filename)

    if registry.find_by_name(name) is not None:
        logger.warning(f"Rejected duplicate layer: {name}")
        raise DuplicateLayerName(name)

    try:
        if not has_projection(data):
            raise NoGeoreference(f"'{filename}' has no .prj file; cannot place it on the map")
    except zipfile.BadZipFile as e:
        raise EmptyOrUnparseable(f"'{filename}' is not a zip archive") from e

    try:
        collection = await external_call(codec.parse(data), what=f"parse {filename}", timeout=timeout)
    except ExternalCallFailure as e:
        raise EmptyOrUnparseable(f"Could not parse '{filename}': {e}") from e

    raw_features = collection.get("features") or []
    if not raw_features:
        logger.warning(f"No valid features found in shapefile: {filename}")
        raise EmptyOrUnparseable(f"No valid features found in '{filename}'")

    first = raw_features[0]
    fields = infer_fields(first.get("properties") or {})
    geometry_type: Optional[str] = None

    graphics: list[Graphic] = []
    for raw in raw_features:
        geometry = to_native(raw.get("geometry"), WGS84)
        if geometry is None:
            continue
        if geometry_type is None:
            geometry_type = interchange_kind(raw["geometry"]["type"])
        graphics.append(Graphic(geometry=geometry, attributes=dict(raw.get("properties") or {})))
    if not graphics:
        raise EmptyOrUnparseable(f"No supported geometries in '{filename}'")

    entry_id = registry.reserve_id()
    color = color_for_index(entry_id)
    native_layer = view.add_layer(
        graphics,
        title=name,
        fields=fields,
        renderer=renderer_for(geometry_type, color),
        object_id_field=cfg.object_id_field,
    )

    try:
        layer_view = await external_call(
            view.when_layer_ready(native_layer), what=f"attach {name}", timeout=timeout
        )
        extent = await external_call(
            native_layer.query_extent(), what=f"extent of {name}", timeout=timeout
        )
        if extent is not None:
            await external_call(
                view.go_to(extent, padding=cfg.goto_padding), what="zoom to layer", timeout=timeout
            )

        entry = LayerEntry(
            name=name,
            native_layer=native_layer,
            layer_view=layer_view,
            fields=fields,
            geometry_type=geometry_type,
            color=color,
            extent=extent,
            id=entry_id,
            object_id_field=cfg.object_id_field,
        )
        registry.add(entry)
    except BaseException:
        view.remove_layer(native_layer)
        raise

    skipped = len(raw_features) - len(graphics)
    logger.info(
        f"Loaded '{name}': {len(graphics)} {geometry_type} features"
        + (f" ({skipped} unsupported skipped)" if skipped else "")
    )
    return entry
