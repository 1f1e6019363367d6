"""Map layer system: registry, geometry adapter, colours, load/edit/export.

Loaded shapefiles become LayerEntry records in a LayerRegistry; the parsers
and exporters subpackages and the batch editor operate on single entries.
"""

from shapedesk.layers.colors import color_for_index
from shapedesk.layers.layer import FieldDef, FieldType, LayerEntry
from shapedesk.layers.registry import LayerRegistry

__all__ = ["FieldDef", "FieldType", "LayerEntry", "LayerRegistry", "color_for_index"]
