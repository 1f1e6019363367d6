"""Layer exporters: registered layer -> downloadable payload."""

from shapedesk.layers.exporters.collection import ExportPayload, build_feature_collection
from shapedesk.layers.exporters.geojson import export_geojson
from shapedesk.layers.exporters.shp import export_shapefile

__all__ = [
    "ExportPayload",
    "build_feature_collection",
    "export_geojson",
    "export_shapefile",
]
