"""MapSession: the layer workspace the UI shell drives.

Wires the registry, the map view, the shapefile codec, the reprojector, the
selection engine and the batch editor together, and adds the view-level
operations of the viewer (reset, center, clear).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional

from loguru import logger

from shapedesk.config import Settings, settings as default_settings
from shapedesk.errors import ExternalCallFailure, LayerNotFound, ShapeDeskError
from shapedesk.layers.editing import BatchAttributeEditor, EditReport
from shapedesk.layers.exporters import ExportPayload, export_geojson, export_shapefile
from shapedesk.layers.parsers.shp import load_shapefile
from shapedesk.layers.registry import InitialView, LayerRegistry
from shapedesk.selection import ClickEvent, DragEvent, SelectionEngine
from shapedesk.view import external_call

if TYPE_CHECKING:
    from shapedesk.layers.layer import LayerEntry
    from shapedesk.view import Codec, Reprojector, SpatialView

EXPORT_FORMATS = ("shapefile", "geojson")


@dataclass
class LoadReport:
    """Result of a multi-file load: what loaded and why the rest did not."""

    loaded: list[LayerEntry] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "loaded": [e.to_dict() for e in self.loaded],
            "errors": dict(self.errors),
        }


class MapSession:
    """One viewer workspace: loaded layers plus the map they are drawn on."""

    def __init__(
        self,
        view: SpatialView,
        codec: Codec,
        reprojector: Reprojector,
        settings: Optional[Settings] = None,
        registry: Optional[LayerRegistry] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.view = view
        self.codec = codec
        self.reprojector = reprojector
        self.registry = registry if registry is not None else LayerRegistry(view)
        self.selection = SelectionEngine(self.registry, view, self.settings)
        self.editor = BatchAttributeEditor(self.registry, view, self.settings)
        self.selection_total = 0
        self.registry.add_listener(self._on_total)
        self.capture_initial_view()

    def _on_total(self, total: int) -> None:
        self.selection_total = total

    @property
    def _timeout(self) -> Optional[float]:
        return self.settings.external_call_timeout

    # ------------------------------------------------------------------
    # View state
    # ------------------------------------------------------------------

    def capture_initial_view(self) -> InitialView:
        """Remember where the map started; later calls return the first capture."""
        return self.registry.capture_initial_view(
            self.view.center, self.view.zoom, self.view.extent
        )

    async def reset_view(self) -> None:
        """Return the map to its initial center/zoom, or its initial extent."""
        initial = self.registry.initial_view
        if initial is None:
            return
        try:
            if initial.center is not None and initial.zoom is not None:
                await external_call(
                    self.view.go_to(center=initial.center, zoom=initial.zoom),
                    what="reset view",
                    timeout=self._timeout,
                )
            elif initial.extent is not None:
                await external_call(
                    self.view.go_to(initial.extent), what="reset view", timeout=self._timeout
                )
        except ExternalCallFailure as e:
            logger.error(f"Could not reset the map view: {e}")

    async def center_view(self) -> bool:
        """Zoom to the union extent of the visible layers.

        Returns:
            False if no visible layer has an extent.
        """
        extent = self.registry.union_extent(only_visible=True)
        if extent is None:
            logger.info("Nothing to center on")
            return False
        await external_call(
            self.view.go_to(extent, padding=self.settings.goto_padding),
            what="center view",
            timeout=self._timeout,
        )
        return True

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    async def load_file(self, filename: str, data: bytes) -> LayerEntry:
        """Load one zipped shapefile as a new layer."""
        return await load_shapefile(
            filename,
            data,
            registry=self.registry,
            view=self.view,
            codec=self.codec,
            settings=self.settings,
        )

    async def load_files(self, files: Iterable[tuple[str, bytes]]) -> LoadReport:
        """Load several files in order; one bad file does not stop the rest."""
        report = LoadReport()
        for filename, data in files:
            try:
                report.loaded.append(await self.load_file(filename, data))
            except ShapeDeskError as e:
                logger.warning(f"Failed to load {filename}: {e}")
                report.errors[filename] = str(e)
        return report

    async def remove_layer(self, entry_id: int) -> None:
        """Remove a layer; removing the last one resets the view.

        Raises:
            LayerNotFound: If the id is unknown.
        """
        if not self.registry.remove(entry_id):
            raise LayerNotFound(entry_id)
        if self.registry.is_empty:
            await self.reset_view()

    def toggle_visibility(self, entry_id: int) -> bool:
        return self.registry.toggle_visibility(entry_id)

    async def clear_map(self) -> int:
        """Remove every layer and reset the view.

        Returns:
            Number of layers removed.
        """
        count = self.registry.clear()
        await self.reset_view()
        return count

    def list_layers(self) -> list[LayerEntry]:
        return self.registry.list_layers()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def deselect_all(self) -> None:
        self.registry.deselect_all()
        logger.info("Selection cleared")

    async def handle_drag(self, event: DragEvent) -> Optional[int]:
        return await self.selection.handle_drag(event)

    async def handle_click(self, event: ClickEvent) -> Optional[int]:
        return await self.selection.handle_click(event)

    def set_multi_select(self, enabled: bool) -> None:
        self.selection.set_multi_select(enabled)

    def has_selected_polygons(self) -> bool:
        """True if any polygon layer has a selection (enables polygon-only tools)."""
        return any(
            e.selected_ids and e.geometry_type == "polygon" for e in self.registry.list_layers()
        )

    # ------------------------------------------------------------------
    # Edit / export
    # ------------------------------------------------------------------

    async def batch_edit(
        self,
        entry_id: int,
        field_name: str,
        raw_value: str,
        confirm_empty: bool = False,
    ) -> EditReport:
        return await self.editor.apply(
            entry_id, field_name, raw_value, confirm_empty=confirm_empty
        )

    async def export(self, entry_id: int, fmt: str) -> ExportPayload:
        """Export a layer as "shapefile" (.zip) or "geojson".

        Raises:
            LayerNotFound: If the id is unknown.
            ValueError: If the format is not supported.
        """
        entry = self.registry.require(entry_id)
        if fmt == "shapefile":
            return await export_shapefile(
                entry,
                self.reprojector,
                self.codec,
                min_bytes=self.settings.min_archive_bytes,
                timeout=self._timeout,
            )
        if fmt == "geojson":
            return await export_geojson(
                entry,
                self.reprojector,
                indent=self.settings.export_indent,
                timeout=self._timeout,
            )
        raise ValueError(f"Unsupported export format: {fmt!r} (expected one of {EXPORT_FORMATS})")

    # ------------------------------------------------------------------
    # State for the UI shell
    # ------------------------------------------------------------------

    def snapshot(self) -> dict:
        """Everything the shell needs to redraw its panels."""
        center = self.view.center
        return {
            "layers": [e.to_dict() for e in self.registry.list_layers()],
            "selection_total": self.registry.total_selected(),
            "multi_select": self.selection.multi_select_mode,
            "has_selected_polygons": self.has_selected_polygons(),
            "view": {
                "center": [center.x, center.y] if center is not None else None,
                "zoom": self.view.zoom,
            },
        }
