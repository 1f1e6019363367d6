"""LayerRegistry: the single owner of loaded layers and their selection state.

All changes to an entry's visibility, selection or highlight go through the
registry so the global selection total is computed in one place and pushed to
listeners (the selection-count banner) after every mutation.

Each synchronous step runs under a re-entrant lock.  Multi-step selection
work is split into begin/commit pairs: a request takes a per-entry sequence
token, awaits the map engine without holding the lock, and its result is only
committed if the token is still current.  Hiding, deselecting or removing a
layer bumps the token, which invalidates anything still in flight.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

from loguru import logger

from shapedesk.errors import DuplicateLayerName, LayerNotFound
from shapedesk.layers.geometry import Extent, Point
from shapedesk.layers.layer import LayerEntry

if TYPE_CHECKING:
    from shapedesk.view import HighlightHandle, SpatialView


@dataclass(frozen=True)
class InitialView:
    """Map view state captured once, the first time the view is ready."""

    center: Optional[Point]
    zoom: Optional[float]
    extent: Optional[Extent]


def _dedupe(ids: Iterable) -> tuple:
    return tuple(dict.fromkeys(ids))


class LayerRegistry:
    """Registry of loaded layers, keyed by a monotonic integer id."""

    def __init__(self, view: Optional[SpatialView] = None) -> None:
        self._view = view
        self._entries: dict[int, LayerEntry] = {}
        self._next_id = 0
        self._lock = threading.RLock()
        self._listeners: list[Callable[[int], None]] = []
        self._initial_view: Optional[InitialView] = None

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def is_empty(self) -> bool:
        return not self._entries

    def get(self, entry_id: int) -> Optional[LayerEntry]:
        return self._entries.get(entry_id)

    def require(self, entry_id: int) -> LayerEntry:
        """Like get(), but raise LayerNotFound for an unknown id."""
        entry = self._entries.get(entry_id)
        if entry is None:
            raise LayerNotFound(entry_id)
        return entry

    def find_by_name(self, name: str) -> Optional[LayerEntry]:
        for entry in self._entries.values():
            if entry.name == name:
                return entry
        return None

    def find_by_layer(self, native_layer: Any) -> Optional[LayerEntry]:
        for entry in self._entries.values():
            if entry.native_layer is native_layer:
                return entry
        return None

    def list_layers(self) -> list[LayerEntry]:
        """All entries in load order."""
        with self._lock:
            return list(self._entries.values())

    # ------------------------------------------------------------------
    # Listeners / totals
    # ------------------------------------------------------------------

    def add_listener(self, callback: Callable[[int], None]) -> None:
        """Register a callback receiving the selection total after each change."""
        self._listeners.append(callback)

    def total_selected(self) -> int:
        """Sum of selected feature counts across all entries."""
        with self._lock:
            return sum(len(e.selected_ids) for e in self._entries.values())

    def _notify(self) -> None:
        total = self.total_selected()
        for callback in list(self._listeners):
            try:
                callback(total)
            except Exception as e:
                logger.error(f"Selection listener failed: {e}")

    # ------------------------------------------------------------------
    # Add / remove / clear
    # ------------------------------------------------------------------

    def reserve_id(self) -> int:
        """Take the next id from the monotonic counter."""
        with self._lock:
            entry_id = self._next_id
            self._next_id += 1
            return entry_id

    def add(self, entry: LayerEntry) -> int:
        """Register a new entry.

        Args:
            entry: The entry to add.  If its id is None the next id is
                assigned; a pre-reserved id is kept.

        Returns:
            The entry id.

        Raises:
            DuplicateLayerName: If an entry with the same name is loaded.
        """
        with self._lock:
            if self.find_by_name(entry.name) is not None:
                raise DuplicateLayerName(entry.name)
            if entry.id is None:
                entry.id = self.reserve_id()
            elif entry.id in self._entries or entry.id >= self._next_id:
                raise ValueError(f"Layer id {entry.id} was not reserved")
            self._entries[entry.id] = entry
        logger.info(f"Layer added: {entry.name} (id={entry.id})")
        self._notify()
        return entry.id

    def _drop(self, entry: LayerEntry) -> None:
        # Highlight first, then the native layer: no dangling handles.
        entry.highlight.release()
        entry.selected_ids = ()
        entry.selection_seq += 1
        if self._view is not None and entry.native_layer is not None:
            try:
                self._view.remove_layer(entry.native_layer)
            except Exception as e:
                logger.error(f"Failed to remove native layer '{entry.name}': {e}")

    def remove(self, entry_id: int) -> bool:
        """Remove an entry, releasing its highlight and native layer.

        Returns:
            True if the entry was removed, False if it didn't exist.
        """
        with self._lock:
            entry = self._entries.pop(entry_id, None)
            if entry is None:
                return False
            self._drop(entry)
        logger.info(f"Layer removed: {entry.name} (id={entry_id})")
        self._notify()
        return True

    def clear(self) -> int:
        """Release every highlight, drop every native layer, empty the registry.

        The id counter keeps running so ids stay unique for the session.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
            for entry in entries:
                self._drop(entry)
        logger.info(f"Registry cleared ({len(entries)} layers)")
        self._notify()
        return len(entries)

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def set_visibility(self, entry_id: int, visible: bool) -> None:
        """Show or hide a layer; hiding also empties its selection.

        Raises:
            LayerNotFound: If the entry_id is not found.
        """
        with self._lock:
            entry = self.require(entry_id)
            entry.visible = visible
            if entry.native_layer is not None:
                entry.native_layer.visible = visible
            if not visible:
                entry.highlight.release()
                entry.selected_ids = ()
                entry.selection_seq += 1
        self._notify()

    def toggle_visibility(self, entry_id: int) -> bool:
        """Flip visibility.

        Returns:
            The new visibility.
        """
        with self._lock:
            visible = not self.require(entry_id).visible
            self.set_visibility(entry_id, visible)
            return visible

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def _accepts(self, entry: Optional[LayerEntry], token: int) -> bool:
        return (
            entry is not None
            and entry.selection_seq == token
            and entry.visible
            and entry.ready
        )

    def begin_selection(self, entry_id: int) -> Optional[int]:
        """Start a selection request for an entry.

        Returns:
            The request token, or None if the entry is gone.
        """
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                return None
            entry.selection_seq += 1
            return entry.selection_seq

    def commit_selection(
        self,
        entry_id: int,
        token: int,
        ids: Iterable,
        acquire: Optional[Callable[[], HighlightHandle]] = None,
    ) -> bool:
        """Replace an entry's selection with a query result.

        The old highlight is released before the new one is acquired, and a
        new one is acquired only for a non-empty selection.

        Returns:
            False if the result was stale (newer request, entry removed,
            hidden or not ready) and was discarded.
        """
        with self._lock:
            entry = self._entries.get(entry_id)
            if not self._accepts(entry, token):
                logger.debug(f"Discarded stale selection for layer {entry_id}")
                return False
            entry.selected_ids = _dedupe(ids)
            try:
                entry.highlight.replace(acquire if entry.selected_ids else None)
            finally:
                self._notify()
            return True

    def clear_selection(self, entry_id: int) -> None:
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                return
            entry.highlight.release()
            entry.selected_ids = ()
            entry.selection_seq += 1
        self._notify()

    def deselect_all(self) -> None:
        """Empty every selection and release every highlight."""
        with self._lock:
            for entry in self._entries.values():
                entry.highlight.release()
                entry.selected_ids = ()
                entry.selection_seq += 1
        self._notify()

    def toggle_feature(self, entry_id: int, object_id: Any) -> Optional[tuple[int, tuple]]:
        """XOR one object id into an entry's selection.

        The highlight is released; the caller re-highlights the remaining
        ids with attach_highlight() using the returned token.

        Returns:
            (token, new_ids), or None if the entry is gone, hidden or not
            ready.
        """
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None or not entry.visible or not entry.ready:
                return None
            if object_id in entry.selected_ids:
                ids = tuple(i for i in entry.selected_ids if i != object_id)
            else:
                ids = entry.selected_ids + (object_id,)
            entry.selected_ids = ids
            entry.highlight.release()
            entry.selection_seq += 1
            token = entry.selection_seq
        self._notify()
        return token, ids

    def attach_highlight(
        self,
        entry_id: int,
        token: int,
        acquire: Callable[[], HighlightHandle],
    ) -> bool:
        """Highlight an entry's current selection if the token is still current."""
        with self._lock:
            entry = self._entries.get(entry_id)
            if not self._accepts(entry, token) or not entry.selected_ids:
                return False
            entry.highlight.replace(acquire)
            return True

    # ------------------------------------------------------------------
    # Extents / initial view
    # ------------------------------------------------------------------

    def union_extent(self, only_visible: bool = True) -> Optional[Extent]:
        """Union of the qualifying entries' extents, or None if none qualify."""
        result: Optional[Extent] = None
        for entry in self.list_layers():
            if only_visible and not entry.visible:
                continue
            if entry.extent is None:
                continue
            result = entry.extent if result is None else result.union(entry.extent)
        return result

    def capture_initial_view(
        self,
        center: Optional[Point],
        zoom: Optional[float],
        extent: Optional[Extent],
    ) -> InitialView:
        """Remember the view's starting state; only the first call counts."""
        with self._lock:
            if self._initial_view is None:
                self._initial_view = InitialView(center=center, zoom=zoom, extent=extent)
            return self._initial_view

    @property
    def initial_view(self) -> Optional[InitialView]:
        return self._initial_view
