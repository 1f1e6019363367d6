"""Error taxonomy for layer loading, selection, editing and export.

Every user-facing failure is a ShapeDeskError subclass so the UI shell can
surface it as a blocking notification; anything else is logged only.
"""

from __future__ import annotations


class ShapeDeskError(Exception):
    """Base class for all ShapeDesk failures."""


class LayerNotFound(ShapeDeskError):
    """Raised when a layer id is not in the registry."""

    def __init__(self, layer_id: int) -> None:
        super().__init__(f"Layer not found: {layer_id}")
        self.layer_id = layer_id


class DuplicateLayerName(ShapeDeskError):
    """Raised when a load would create a second layer with the same name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"A layer named '{name}' is already loaded")
        self.name = name


class NoGeoreference(ShapeDeskError):
    """Raised when a shapefile archive has no .prj projection file."""


class EmptyOrUnparseable(ShapeDeskError):
    """Raised when an archive cannot be parsed or yields no usable features."""


class FieldNotFound(ShapeDeskError):
    """Raised when a batch edit names a field the layer does not have."""

    def __init__(self, field_name: str) -> None:
        super().__init__(f"Field not found: {field_name}")
        self.field_name = field_name


class InvalidValue(ShapeDeskError):
    """Raised when a raw value cannot be parsed for the field's type."""


class EmptySelection(ShapeDeskError):
    """Raised when a batch edit targets a layer with nothing selected."""


class EmptyValueNotConfirmed(ShapeDeskError):
    """Raised when an empty value is applied without explicit confirmation."""


class NoExportableFeatures(ShapeDeskError):
    """Raised when an export would produce an empty feature collection."""


class InvalidArchive(ShapeDeskError):
    """Raised when the codec produces an implausibly small archive."""


class ExternalCallFailure(ShapeDeskError):
    """Raised when a view, codec or reprojection call fails or times out."""
