"""Interactive feature selection: drag-box and accumulative point select."""

from shapedesk.selection.box import BoxSelection, DragState, select_extent
from shapedesk.selection.engine import ClickEvent, DragEvent, SelectionEngine
from shapedesk.selection.point import PointSelection

__all__ = [
    "BoxSelection",
    "ClickEvent",
    "DragEvent",
    "DragState",
    "PointSelection",
    "SelectionEngine",
    "select_extent",
]
