"""ShapeDesk - shapefile viewer core: layers, selection, batch edit, export."""

__version__ = "0.1.0"
