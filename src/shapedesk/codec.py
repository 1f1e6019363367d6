"""Zipped shapefile codec built on pyshp.

parse() turns a .zip holding .shp/.shx/.dbf(/.prj) into a GeoJSON-like
FeatureCollection in WGS84, reprojecting with pyproj when the .prj names
another CRS.  zip() writes a FeatureCollection back out as a .zip with one
shapefile per geometry family and a WGS84 .prj.

pyshp and pyproj are blocking; both directions run in a worker thread.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import io
import zipfile
from typing import Any, Callable, Optional

import shapefile
from loguru import logger
from pyproj import CRS, Transformer
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry.polygon import orient

WGS84_WKT = (
    'GEOGCS["GCS_WGS_1984",DATUM["D_WGS_1984",SPHEROID["WGS_1984",6378137.0,'
    '298.257223563]],PRIMEM["Greenwich",0.0],UNIT["Degree",0.0174532925199433]]'
)

# GeoJSON type -> (family suffix, pyshp shape type)
_FAMILIES = {
    "Point": ("points", shapefile.POINT),
    "MultiPoint": ("multipoints", shapefile.MULTIPOINT),
    "LineString": ("lines", shapefile.POLYLINE),
    "MultiLineString": ("lines", shapefile.POLYLINE),
    "Polygon": ("polygons", shapefile.POLYGON),
    "MultiPolygon": ("polygons", shapefile.POLYGON),
}

DBF_NAME_LIMIT = 10


def _member(names: list[str], base: str, ext: str) -> Optional[str]:
    target = f"{base}{ext}".lower()
    for name in names:
        if name.lower() == target:
            return name
    return None


def has_projection(data: bytes) -> bool:
    """True if the zip archive contains a .prj file.

    Raises:
        zipfile.BadZipFile: If data is not a zip archive.
    """
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return any(n.lower().endswith(".prj") for n in zf.namelist())


def _listify(coords: Any, transform: Optional[Callable] = None) -> Any:
    """Tuples -> lists, optionally reprojecting each (x, y[, z]) vertex."""
    if coords and isinstance(coords[0], (int, float)):
        if transform is None:
            return list(coords)
        x, y = transform(coords[0], coords[1])
        return [x, y, *coords[2:]]
    return [_listify(c, transform) for c in coords]


def _geographic_transform(prj_text: Optional[str]) -> Optional[Callable]:
    if not prj_text:
        return None
    try:
        crs = CRS.from_wkt(prj_text)
    except Exception as e:
        logger.warning(f"Unreadable .prj, coordinates left as-is: {e}")
        return None
    if crs.is_geographic:
        return None
    transformer = Transformer.from_crs(crs, "EPSG:4326", always_xy=True)
    return transformer.transform


def parse_zip(data: bytes) -> dict:
    """Parse a zipped shapefile into a FeatureCollection dict."""
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        names = [n for n in zf.namelist() if not n.startswith("__MACOSX/")]
        shp_name = next((n for n in names if n.lower().endswith(".shp")), None)
        if shp_name is None:
            raise ValueError("Archive contains no .shp file")
        base = shp_name[:-4]

        def read(ext: str) -> Optional[io.BytesIO]:
            member = _member(names, base, ext)
            return io.BytesIO(zf.read(member)) if member else None

        shp, shx, dbf = read(".shp"), read(".shx"), read(".dbf")
        prj_name = _member(names, base, ".prj")
        prj_text = zf.read(prj_name).decode("utf-8", errors="replace") if prj_name else None

    transform = _geographic_transform(prj_text)
    features = []
    sources = {k: v for k, v in (("shp", shp), ("shx", shx), ("dbf", dbf)) if v is not None}
    with shapefile.Reader(**sources) as reader:
        for sr in reader.iterShapeRecords():
            if sr.shape.shapeType == shapefile.NULL:
                geometry = None
            else:
                geo = sr.shape.__geo_interface__
                geometry = {
                    "type": geo["type"],
                    "coordinates": _listify(geo["coordinates"], transform),
                }
            features.append({
                "type": "Feature",
                "geometry": geometry,
                "properties": sr.record.as_dict(date_strings=False),
            })

    logger.debug(f"Parsed {len(features)} features from {shp_name}")
    return {"type": "FeatureCollection", "features": features}


def _dbf_field(values: list) -> tuple:
    """DBF column spec wide enough for every non-null value in the column."""
    present = [v for v in values if v is not None]
    if not present:
        return ("C", 254, 0)
    if all(isinstance(v, bool) for v in present):
        return ("L", 1, 0)
    if all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in present):
        if any(isinstance(v, float) for v in present):
            return ("N", 24, 15)
        return ("N", 18, 0)
    if all(isinstance(v, (dt.date, dt.datetime)) for v in present):
        return ("D", 8, 0)
    return ("C", 254, 0)


def _dbf_names(keys: list[str]) -> list[str]:
    names: list[str] = []
    for key in keys:
        name = key[:DBF_NAME_LIMIT]
        suffix = 1
        while name in names:
            tail = str(suffix)
            name = f"{key[:DBF_NAME_LIMIT - len(tail)]}{tail}"
            suffix += 1
        names.append(name)
    return names


def _record_value(value: Any, field_type: str) -> Any:
    if value is None:
        return None
    if field_type == "C":
        return str(value)
    if field_type == "D" and isinstance(value, dt.datetime):
        return value.date()
    return value


def _clockwise(rings: list) -> list:
    """Shapefile ring order: clockwise exterior, counter-clockwise holes."""
    if not rings:
        return rings
    shell, *holes = rings
    if len(shell) < 4 or any(len(hole) < 4 for hole in holes):
        return rings
    polygon = orient(ShapelyPolygon(shell, holes), sign=-1.0)
    return [list(polygon.exterior.coords), *(list(ring.coords) for ring in polygon.interiors)]


def _write_shape(writer: shapefile.Writer, geometry: dict) -> None:
    geom_type = geometry["type"]
    coords = geometry["coordinates"]
    if geom_type == "Point":
        writer.point(coords[0], coords[1])
    elif geom_type == "MultiPoint":
        writer.multipoint(coords)
    elif geom_type == "LineString":
        writer.line([coords])
    elif geom_type == "MultiLineString":
        writer.line(coords)
    elif geom_type == "Polygon":
        writer.poly(_clockwise(coords))
    else:
        writer.poly([ring for polygon in coords for ring in _clockwise(polygon)])


def write_zip(collection: dict, name: str) -> bytes:
    """Write a FeatureCollection to a zipped shapefile set."""
    groups: dict[str, list[dict]] = {}
    shape_types: dict[str, int] = {}
    for feature in collection.get("features", []):
        geometry = feature.get("geometry") or {}
        family = _FAMILIES.get(geometry.get("type"))
        if family is None:
            continue
        suffix, shape_type = family
        groups.setdefault(suffix, []).append(feature)
        shape_types[suffix] = shape_type

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for suffix, features in groups.items():
            stem = name if len(groups) == 1 else f"{name}_{suffix}"
            keys = list(dict.fromkeys(k for f in features for k in (f.get("properties") or {})))
            specs = [_dbf_field([(f.get("properties") or {}).get(k) for f in features]) for k in keys]

            shp_io, shx_io, dbf_io = io.BytesIO(), io.BytesIO(), io.BytesIO()
            writer = shapefile.Writer(
                shp=shp_io, shx=shx_io, dbf=dbf_io, shapeType=shape_types[suffix]
            )
            for dbf_name, (ftype, size, decimal) in zip(_dbf_names(keys), specs):
                writer.field(dbf_name, ftype, size=size, decimal=decimal)
            if not keys:
                writer.field("FID", "N", size=18, decimal=0)

            for index, feature in enumerate(features):
                _write_shape(writer, feature["geometry"])
                props = feature.get("properties") or {}
                if keys:
                    writer.record(*[
                        _record_value(props.get(k), spec[0]) for k, spec in zip(keys, specs)
                    ])
                else:
                    writer.record(index)
            writer.close()

            zf.writestr(f"{stem}.shp", shp_io.getvalue())
            zf.writestr(f"{stem}.shx", shx_io.getvalue())
            zf.writestr(f"{stem}.dbf", dbf_io.getvalue())
            zf.writestr(f"{stem}.prj", WGS84_WKT)
            zf.writestr(f"{stem}.cpg", "UTF-8")

    return buffer.getvalue()


class PyshpCodec:
    """Codec collaborator backed by pyshp, run off the event loop."""

    async def parse(self, data: bytes) -> dict:
        return await asyncio.to_thread(parse_zip, data)

    async def zip(self, collection: dict, *, name: str) -> bytes:
        return await asyncio.to_thread(write_zip, collection, name)
