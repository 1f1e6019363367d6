"""Tests for LayerRegistry: ids, visibility, selection state, extents."""

import pytest

from shapedesk.errors import DuplicateLayerName, LayerNotFound
from shapedesk.layers.geometry import Extent, Point
from shapedesk.layers.layer import LayerEntry

pytestmark = pytest.mark.unit


def _highlighter(entry):
    return lambda: entry.layer_view.highlight([])


def _select(registry, entry, ids):
    token = registry.begin_selection(entry.id)
    return registry.commit_selection(entry.id, token, ids, _highlighter(entry))


class TestAddRemove:
    """Adding, removing and clearing entries."""

    def test_add_assigns_monotonic_ids(self, add_entry, make_square):
        a = add_entry("a", [make_square(0, 0)])
        b = add_entry("b", [make_square(2, 0)])
        assert (a.id, b.id) == (0, 1)

    def test_duplicate_name_rejected(self, registry, add_entry, make_square, view):
        """A second entry with the same name is refused; one entry remains."""
        add_entry("parcels", [make_square(0, 0)])
        with pytest.raises(DuplicateLayerName):
            registry.add(LayerEntry(name="parcels", native_layer=object()))
        assert [e.name for e in registry.list_layers()] == ["parcels"]

    def test_add_rejects_unreserved_id(self, registry):
        with pytest.raises(ValueError):
            registry.add(LayerEntry(name="x", native_layer=object(), id=42))

    def test_remove_drops_native_layer_and_highlight(self, registry, add_entry, make_square, view):
        entry = add_entry("a", [make_square(0, 0)])
        _select(registry, entry, [1])
        layer_view = entry.layer_view
        assert len(layer_view.live_highlights) == 1

        assert registry.remove(entry.id) is True
        assert layer_view.live_highlights == []
        assert entry.native_layer not in view.layers
        assert registry.get(entry.id) is None

    def test_remove_unknown_returns_false(self, registry):
        assert registry.remove(99) is False

    def test_require_unknown_raises(self, registry):
        with pytest.raises(LayerNotFound):
            registry.require(7)

    def test_clear_keeps_id_counter(self, registry, add_entry, make_square, view):
        """Ids are never reused, even after clearing everything."""
        add_entry("a", [make_square(0, 0)])
        add_entry("b", [make_square(2, 0)])
        assert registry.clear() == 2
        assert registry.is_empty
        assert view.layers == []
        c = add_entry("c", [make_square(0, 0)])
        assert c.id == 2

    def test_find_by_layer_uses_identity(self, registry, add_entry, make_square):
        entry = add_entry("a", [make_square(0, 0)])
        assert registry.find_by_layer(entry.native_layer) is entry
        assert registry.find_by_layer(object()) is None


class TestSelectionTotal:
    """The published total always equals the sum of selected ids."""

    def test_total_tracks_every_mutation(self, registry, add_entry, make_square):
        seen = []
        registry.add_listener(seen.append)
        a = add_entry("a", [make_square(0, 0), make_square(2, 0), make_square(4, 0)])
        b = add_entry("b", [make_square(0, 5), make_square(2, 5)])

        def check():
            expected = sum(len(e.selected_ids) for e in registry.list_layers())
            assert registry.total_selected() == expected
            assert seen[-1] == expected

        _select(registry, a, [1, 2, 3])
        check()
        _select(registry, b, [1])
        check()
        registry.toggle_feature(a.id, 2)
        check()
        registry.toggle_visibility(b.id)
        check()
        registry.deselect_all()
        check()
        assert seen[-1] == 0

    def test_commit_dedupes_ids(self, registry, add_entry, make_square):
        a = add_entry("a", [make_square(0, 0)])
        _select(registry, a, [1, 1, 1])
        assert a.selected_ids == (1,)
        assert registry.total_selected() == 1

    def test_listener_failure_is_contained(self, registry, add_entry, make_square):
        def broken(total):
            raise RuntimeError("banner gone")

        registry.add_listener(broken)
        a = add_entry("a", [make_square(0, 0)])
        assert _select(registry, a, [1]) is True


class TestVisibility:
    """Hiding a layer empties its selection."""

    def test_hide_clears_selection_and_highlight(self, registry, add_entry, make_square):
        entry = add_entry("a", [make_square(0, 0), make_square(2, 0)])
        _select(registry, entry, [1, 2])
        assert registry.toggle_visibility(entry.id) is False
        assert entry.selected_ids == ()
        assert entry.highlight_handle is None
        assert entry.layer_view.live_highlights == []
        assert entry.native_layer.visible is False

    def test_show_again(self, registry, add_entry, make_square):
        entry = add_entry("a", [make_square(0, 0)])
        registry.toggle_visibility(entry.id)
        assert registry.toggle_visibility(entry.id) is True
        assert entry.native_layer.visible is True

    def test_unknown_layer(self, registry):
        with pytest.raises(LayerNotFound):
            registry.toggle_visibility(3)


class TestHighlightOwnership:
    """Never more than one live highlight per entry."""

    def test_reselect_replaces_highlight(self, registry, add_entry, make_square):
        entry = add_entry("a", [make_square(0, 0), make_square(2, 0)])
        for ids in ([1], [1, 2], [2]):
            _select(registry, entry, ids)
            assert len(entry.layer_view.live_highlights) == 1

    def test_empty_result_releases_without_acquiring(self, registry, add_entry, make_square):
        entry = add_entry("a", [make_square(0, 0)])
        _select(registry, entry, [1])
        _select(registry, entry, [])
        assert entry.layer_view.live_highlights == []
        assert entry.highlight_handle is None


class TestSequenceTokens:
    """Stale selection results are discarded."""

    def test_older_token_loses(self, registry, add_entry, make_square):
        entry = add_entry("a", [make_square(0, 0), make_square(2, 0)])
        old = registry.begin_selection(entry.id)
        new = registry.begin_selection(entry.id)
        assert registry.commit_selection(entry.id, new, [2], _highlighter(entry)) is True
        assert registry.commit_selection(entry.id, old, [1], _highlighter(entry)) is False
        assert entry.selected_ids == (2,)
        assert len(entry.layer_view.live_highlights) == 1

    def test_hide_invalidates_in_flight(self, registry, add_entry, make_square):
        entry = add_entry("a", [make_square(0, 0)])
        token = registry.begin_selection(entry.id)
        registry.set_visibility(entry.id, False)
        assert registry.commit_selection(entry.id, token, [1]) is False
        assert entry.selected_ids == ()

    def test_removed_entry_commit_dropped(self, registry, add_entry, make_square):
        entry = add_entry("a", [make_square(0, 0)])
        token = registry.begin_selection(entry.id)
        registry.remove(entry.id)
        assert registry.commit_selection(entry.id, token, [1]) is False
        assert registry.total_selected() == 0

    def test_not_ready_entry_refuses_commit(self, registry, add_entry, make_square):
        entry = add_entry("a", [make_square(0, 0)], ready=False)
        token = registry.begin_selection(entry.id)
        assert registry.commit_selection(entry.id, token, [1]) is False

    def test_begin_on_missing_entry(self, registry):
        assert registry.begin_selection(5) is None


class TestToggleFeature:
    """XOR toggling of single object ids."""

    def test_xor_pair_restores_state(self, registry, add_entry, make_square):
        entry = add_entry("a", [make_square(0, 0), make_square(2, 0), make_square(4, 0)])
        _select(registry, entry, [1, 3])
        before = set(entry.selected_ids)
        registry.toggle_feature(entry.id, 2)
        assert set(entry.selected_ids) == {1, 2, 3}
        registry.toggle_feature(entry.id, 2)
        assert set(entry.selected_ids) == before

    def test_toggle_releases_highlight_and_bumps_token(self, registry, add_entry, make_square):
        entry = add_entry("a", [make_square(0, 0)])
        _select(registry, entry, [1])
        seq = entry.selection_seq
        token, ids = registry.toggle_feature(entry.id, 1)
        assert ids == ()
        assert token == seq + 1
        assert entry.layer_view.live_highlights == []

    def test_attach_highlight_guarded_by_token(self, registry, add_entry, make_square):
        entry = add_entry("a", [make_square(0, 0), make_square(2, 0)])
        token, _ = registry.toggle_feature(entry.id, 1)
        registry.toggle_feature(entry.id, 2)
        assert registry.attach_highlight(entry.id, token, _highlighter(entry)) is False
        assert entry.layer_view.live_highlights == []

    def test_toggle_on_hidden_layer_is_noop(self, registry, add_entry, make_square):
        entry = add_entry("a", [make_square(0, 0)])
        registry.set_visibility(entry.id, False)
        assert registry.toggle_feature(entry.id, 1) is None


class TestExtents:
    """Union extent and the captured initial view."""

    def test_union_skips_hidden(self, registry, add_entry, make_square):
        """A, B, C with B hidden -> union of A and C only."""
        a = add_entry("a", [make_square(0, 0)])
        b = add_entry("b", [make_square(50, 50)])
        c = add_entry("c", [make_square(3, -2)])
        registry.set_visibility(b.id, False)
        assert registry.union_extent() == a.extent.union(c.extent)
        assert registry.union_extent() == Extent(0, -2, 4, 1, a.extent.spatial_reference)

    def test_union_all_layers(self, registry, add_entry, make_square):
        add_entry("a", [make_square(0, 0)])
        b = add_entry("b", [make_square(50, 50)])
        registry.set_visibility(b.id, False)
        assert registry.union_extent(only_visible=False).xmax == 51

    def test_union_empty(self, registry):
        assert registry.union_extent() is None

    def test_initial_view_captured_once(self, registry):
        first = registry.capture_initial_view(Point(1, 2), 3, None)
        registry.capture_initial_view(Point(9, 9), 9, None)
        assert registry.initial_view is first
        assert registry.initial_view.zoom == 3
