"""LayerEntry and field definitions for loaded datasets.

A LayerEntry is one loaded shapefile together with its map handles and
selection state.  Entries are owned by the LayerRegistry; code outside the
registry reads them but changes them only through registry methods so the
selection total stays consistent.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from shapedesk.layers.geometry import Extent
from shapedesk.layers.highlight import HighlightSlot


class FieldType(str, Enum):
    """Attribute field types understood by the batch editor."""

    INTEGER = "integer"
    SMALL_INTEGER = "small-integer"
    DOUBLE = "double"
    DATE = "date"
    BOOLEAN = "boolean"
    STRING = "string"


@dataclass(frozen=True)
class FieldDef:
    name: str
    type: FieldType
    alias: str = ""


def infer_field_type(value: Any) -> FieldType:
    """Infer a field type from a single attribute value."""
    # bool is an int subclass, test it first
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float)):
        return FieldType.DOUBLE
    if isinstance(value, (dt.date, dt.datetime)):
        return FieldType.DATE
    return FieldType.STRING


def infer_fields(properties: dict) -> list[FieldDef]:
    """Derive the field list from one feature's properties.

    Only the first feature of a dataset is sampled; later features with a
    different runtime type for the same key do not change the schema.
    """
    return [
        FieldDef(name=key, type=infer_field_type(value), alias=key)
        for key, value in (properties or {}).items()
    ]


@dataclass
class LayerEntry:
    """One loaded dataset and its map/selection state.

    Attributes:
        name: Source file name with the extension stripped; unique.
        native_layer: Engine-owned layer handle, dropped on removal.
        layer_view: Engine view of the layer, None until ready.
        fields: Field schema inferred from the first feature.
        geometry_type: "point", "polyline" or "polygon".
        color: (r, g, b) assigned at load time.
        extent: Bounding box of the features, computed once at load.
        visible: Whether the layer is drawn (and selectable).
        selected_ids: Object ids currently selected, no duplicates.
        id: Registry id, assigned by the registry (monotonic, never reused).
        object_id_field: Attribute holding each feature's object id.
        highlight: Slot owning the live highlight handle, if any.
        selection_seq: Sequence number of the latest selection request.
    """

    name: str
    native_layer: Any
    layer_view: Any = None
    fields: list[FieldDef] = field(default_factory=list)
    geometry_type: str = "polygon"
    color: tuple[int, int, int] = (0, 0, 0)
    extent: Optional[Extent] = None
    visible: bool = True
    selected_ids: tuple = ()
    id: Optional[int] = None
    object_id_field: str = "OBJECTID"
    highlight: HighlightSlot = field(default_factory=HighlightSlot, repr=False)
    selection_seq: int = 0

    @property
    def highlight_handle(self):
        return self.highlight.handle

    @property
    def ready(self) -> bool:
        return self.layer_view is not None

    def field_named(self, name: str) -> Optional[FieldDef]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_dict(self) -> dict:
        """Summary used by the UI shell."""
        return {
            "id": self.id,
            "name": self.name,
            "visible": self.visible,
            "geometry_type": self.geometry_type,
            "color": list(self.color),
            "selected_count": len(self.selected_ids),
            "selected_ids": list(self.selected_ids),
            "fields": [{"name": f.name, "type": f.type.value} for f in self.fields],
            "extent": (
                [self.extent.xmin, self.extent.ymin, self.extent.xmax, self.extent.ymax]
                if self.extent is not None
                else None
            ),
        }
