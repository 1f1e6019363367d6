"""Tests for drag-box selection."""

import asyncio

import pytest

from shapedesk.layers.geometry import Extent
from shapedesk.selection import BoxSelection, DragState, select_extent

pytestmark = pytest.mark.unit


@pytest.fixture
def two_layers(add_entry, make_square):
    """Layer a: squares at x=0,2,4; layer b: squares at y=5."""
    a = add_entry("a", [make_square(0, 0), make_square(2, 0), make_square(4, 0)])
    b = add_entry("b", [make_square(0, 5), make_square(2, 5)])
    return a, b


def _run(registry, extent):
    return asyncio.run(select_extent(registry, extent))


class TestSelectExtent:
    """Query every visible, ready layer and replace its selection."""

    def test_selects_across_layers(self, registry, two_layers):
        a, b = two_layers
        total = _run(registry, Extent(-0.5, -0.5, 2.5, 5.5))
        assert set(a.selected_ids) == {1, 2}
        assert set(b.selected_ids) == {1, 2}
        assert total == 4 == registry.total_selected()

    def test_result_replaces_previous(self, registry, two_layers):
        a, _ = two_layers
        _run(registry, Extent(-0.5, -0.5, 1.5, 1.5))
        _run(registry, Extent(3.5, -0.5, 5.5, 1.5))
        assert a.selected_ids == (3,)

    def test_empty_region_clears_everything(self, registry, two_layers):
        """A drag over nothing empties every selection and releases highlights."""
        a, b = two_layers
        _run(registry, Extent(-0.5, -0.5, 5.5, 6.5))
        assert registry.total_selected() == 5
        total = _run(registry, Extent(100, 100, 101, 101))
        assert total == 0
        for entry in (a, b):
            assert entry.selected_ids == ()
            assert entry.highlight_handle is None
            assert entry.layer_view.live_highlights == []

    def test_at_most_one_highlight(self, registry, two_layers):
        a, b = two_layers
        for extent in (Extent(-1, -1, 6, 7), Extent(-1, -1, 1, 1), Extent(1.5, -1, 6, 7)):
            _run(registry, extent)
            assert len(a.layer_view.live_highlights) <= 1
            assert len(b.layer_view.live_highlights) <= 1

    def test_hidden_layer_cleared_not_queried(self, registry, two_layers):
        a, b = two_layers
        registry.set_visibility(b.id, False)
        _run(registry, Extent(-1, -1, 6, 7))
        assert b.selected_ids == ()
        assert len(a.selected_ids) == 3

    def test_not_ready_layer_cleared(self, registry, add_entry, make_square):
        entry = add_entry("pending", [make_square(0, 0)], ready=False)
        assert _run(registry, Extent(-1, -1, 2, 2)) == 0
        assert entry.selected_ids == ()

    def test_no_layers(self, registry):
        assert _run(registry, Extent(0, 0, 1, 1)) == 0

    def test_failure_isolated_per_layer(self, registry, two_layers, monkeypatch):
        """A failing layer keeps its old selection; the others still update."""
        a, b = two_layers
        _run(registry, Extent(-0.5, -0.5, 0.5, 0.5))
        assert a.selected_ids == (1,)

        async def broken(query):
            raise RuntimeError("layer view crashed")

        monkeypatch.setattr(a.layer_view, "query_features", broken)
        total = _run(registry, Extent(-1, -1, 6, 7))
        assert a.selected_ids == (1,)
        assert set(b.selected_ids) == {1, 2}
        assert total == 3

    def test_overlapping_requests_keep_latest(self, registry, two_layers):
        """The older of two concurrent drags is discarded."""
        a, _ = two_layers

        async def both():
            await asyncio.gather(
                select_extent(registry, Extent(-0.5, -0.5, 0.5, 0.5)),
                select_extent(registry, Extent(3.5, -0.5, 5.5, 1.5)),
            )

        asyncio.run(both())
        assert a.selected_ids == (3,)
        assert len(a.layer_view.live_highlights) == 1

    def test_removed_mid_query(self, registry, two_layers, monkeypatch):
        """A layer removed while its query is in flight is silently dropped."""
        a, b = two_layers
        original = a.layer_view.query_features

        async def remove_then_query(query):
            registry.remove(a.id)
            return await original(query)

        monkeypatch.setattr(a.layer_view, "query_features", remove_then_query)
        total = _run(registry, Extent(-1, -1, 6, 7))
        assert registry.get(a.id) is None
        assert a.selected_ids == ()
        assert a.layer_view.live_highlights == []
        assert total == 2


class TestBoxSelection:
    """idle -> dragging -> idle with a transient rectangle graphic."""

    def test_gesture_lifecycle(self, registry, view, two_layers, screen_of):
        a, _ = two_layers
        box = BoxSelection(registry, view)
        box.start(screen_of(-0.5, -0.5))
        assert box.state is DragState.DRAGGING
        assert view.graphics == [box.graphic]

        extent = box.update(screen_of(2.5, 1.5))
        assert extent.xmin == pytest.approx(-0.5)
        assert extent.xmax == pytest.approx(2.5)
        assert box.graphic.geometry.rings[0][2] == pytest.approx([2.5, 1.5])

        total = asyncio.run(box.end(screen_of(2.5, 1.5)))
        assert box.state is DragState.IDLE
        assert view.graphics == []
        assert set(a.selected_ids) == {1, 2}
        assert total == 2

    def test_reverse_drag_same_extent(self, registry, view, screen_of):
        box = BoxSelection(registry, view)
        box.start(screen_of(3, 3))
        forward = box.update(screen_of(-1, -2))
        box.cancel()
        box.start(screen_of(-1, -2))
        backward = box.update(screen_of(3, 3))
        assert forward == backward

    def test_end_without_start(self, registry, view):
        box = BoxSelection(registry, view)
        assert asyncio.run(box.end(view.map_to_screen(view.center))) == 0
        assert view.graphics == []

    def test_cancel_removes_graphic(self, registry, view, screen_of):
        box = BoxSelection(registry, view)
        box.start(screen_of(0, 0))
        box.cancel()
        assert view.graphics == []
        assert not box.dragging
