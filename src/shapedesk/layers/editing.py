"""Batch attribute editing across a layer's selected features.

A raw string from the edit dialog is parsed according to the field's
declared type, then written to one field of every selected feature in a
single apply_edits call.  All precondition failures (unknown layer, empty
selection, unknown field, unparseable value, unconfirmed empty value) are
raised before anything is mutated.  Per-feature failures from the engine are
logged and reported, not escalated.
"""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional

from loguru import logger

from shapedesk.config import Settings, settings as default_settings
from shapedesk.errors import (
    EmptySelection,
    EmptyValueNotConfirmed,
    ExternalCallFailure,
    FieldNotFound,
    InvalidValue,
)
from shapedesk.layers.layer import FieldType
from shapedesk.view import EditResult, Query, external_call

if TYPE_CHECKING:
    from shapedesk.layers.registry import LayerRegistry
    from shapedesk.view import SpatialView


# ---------------------------------------------------------------------------
# Value parsing, one function per field type
# ---------------------------------------------------------------------------

def parse_integer(raw: str) -> int:
    try:
        return int(raw.strip())
    except (ValueError, AttributeError) as e:
        raise InvalidValue(f"Invalid value for integer field: {raw!r}") from e


def parse_double(raw: str) -> float:
    try:
        value = float(raw.strip())
    except (ValueError, AttributeError) as e:
        raise InvalidValue(f"Invalid value for numeric field: {raw!r}") from e
    if not math.isfinite(value):
        raise InvalidValue(f"Invalid value for numeric field: {raw!r}")
    return value


def parse_date(raw: str) -> Optional[dt.date]:
    if not raw:
        return None
    try:
        return dt.date.fromisoformat(raw.strip())
    except ValueError as e:
        raise InvalidValue(f"Invalid date: {raw!r}") from e


def parse_boolean(raw: str) -> bool:
    if raw == "true":
        return True
    if raw == "false":
        return False
    raise InvalidValue(f"Boolean fields accept 'true' or 'false', got {raw!r}")


def parse_text(raw: str) -> str:
    return raw


_PARSERS: dict[FieldType, Callable[[str], Any]] = {
    FieldType.INTEGER: parse_integer,
    FieldType.SMALL_INTEGER: parse_integer,
    FieldType.DOUBLE: parse_double,
    FieldType.DATE: parse_date,
    FieldType.BOOLEAN: parse_boolean,
    FieldType.STRING: parse_text,
}


def parse_value(field_type: FieldType, raw: str) -> Any:
    """Parse a raw string for a field of the given type.

    Raises:
        InvalidValue: If the string is not valid for the type.
    """
    return _PARSERS.get(field_type, parse_text)(raw)


# ---------------------------------------------------------------------------
# Editor
# ---------------------------------------------------------------------------

@dataclass
class EditReport:
    """Outcome of one batch edit.

    Attributes:
        requested: Number of selected features the edit targeted.
        updated: Features the engine reported as successfully updated.
        verified: Features holding the new value on re-query, or None if
            the verification query failed.
        failures: Per-feature failures reported by the engine.
    """

    layer_name: str
    field_name: str
    value: Any
    requested: int
    updated: int
    verified: Optional[int]
    failures: list[EditResult] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failures)

    def to_dict(self) -> dict:
        return {
            "layer": self.layer_name,
            "field": self.field_name,
            "value": self.value,
            "requested": self.requested,
            "updated": self.updated,
            "verified": self.verified,
            "partial": self.partial,
            "failures": [
                {"object_id": f.object_id, "error": f.error} for f in self.failures
            ],
        }


class BatchAttributeEditor:
    """Applies one attribute value to every selected feature of a layer."""

    def __init__(
        self,
        registry: LayerRegistry,
        view: Optional[SpatialView] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._registry = registry
        self._view = view
        self._settings = settings or default_settings

    async def apply(
        self,
        entry_id: int,
        field_name: str,
        raw_value: str,
        *,
        confirm_empty: bool = False,
    ) -> EditReport:
        """Validate and apply a batch edit.

        Args:
            entry_id: Registry id of the layer to edit.
            field_name: Field to overwrite.
            raw_value: Value as typed by the user.
            confirm_empty: Must be True to write an empty string.

        Returns:
            EditReport with per-feature results.

        Raises:
            LayerNotFound, EmptySelection, FieldNotFound, InvalidValue,
            EmptyValueNotConfirmed: Preconditions, checked before any edit.
            ExternalCallFailure: The engine rejected the edit call itself.
        """
        entry = self._registry.require(entry_id)
        selected = list(entry.selected_ids)
        if not selected:
            raise EmptySelection(f"No features selected in '{entry.name}'")

        field_def = entry.field_named(field_name)
        if field_def is None:
            raise FieldNotFound(field_name)

        value = parse_value(field_def.type, raw_value)
        if raw_value == "" and field_def.type is not FieldType.DATE and not confirm_empty:
            raise EmptyValueNotConfirmed(
                f"Empty value for '{field_name}' must be confirmed before applying"
            )

        layer = entry.native_layer
        oid_field = entry.object_id_field
        timeout = self._settings.external_call_timeout
        snapshot = Query(return_geometry=False)

        await self._dump(layer, snapshot, oid_field, field_name, "before edit")

        updates = [{"attributes": {oid_field: oid, field_name: value}} for oid in selected]
        results = await external_call(
            layer.apply_edits(updates), what=f"edit {entry.name}", timeout=timeout
        )

        failures = [r for r in results if not r.success]
        for failure in failures:
            logger.error(
                f"Failed to update feature {failure.object_id} in '{entry.name}': {failure.error}"
            )

        after = await self._dump(layer, snapshot, oid_field, field_name, "after edit")
        verified = None
        if after is not None:
            wanted = set(selected)
            verified = sum(
                1 for f in after
                if f.attributes.get(oid_field) in wanted and f.attributes.get(field_name) == value
            )

        self._redraw(layer)

        report = EditReport(
            layer_name=entry.name,
            field_name=field_name,
            value=value,
            requested=len(selected),
            updated=len(results) - len(failures),
            verified=verified,
            failures=failures,
        )
        logger.info(
            f"Batch edit '{entry.name}'.{field_name} = {value!r}: "
            f"{report.updated}/{report.requested} updated"
        )
        return report

    async def _dump(self, layer, query: Query, oid_field: str, field_name: str, label: str):
        try:
            features = await external_call(
                layer.query_features(query),
                what=f"query {label}",
                timeout=self._settings.external_call_timeout,
            )
        except ExternalCallFailure as e:
            logger.error(f"Attribute query {label} failed: {e}")
            return None
        logger.debug(
            f"Attributes {label}: "
            f"{[(f.attributes.get(oid_field), f.attributes.get(field_name)) for f in features]}"
        )
        return features

    def _redraw(self, layer) -> None:
        render = getattr(self._view, "request_render", None)
        if callable(render):
            render()
            return
        # No on-demand redraw: a visibility flip forces the engine to repaint.
        visible = layer.visible
        layer.visible = False
        layer.visible = visible
