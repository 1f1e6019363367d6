"""Accumulative point selection: each click toggles one feature."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from loguru import logger

from shapedesk.config import Settings, settings as default_settings
from shapedesk.errors import ExternalCallFailure
from shapedesk.view import Query, ScreenPoint, external_call

if TYPE_CHECKING:
    from shapedesk.layers.layer import LayerEntry
    from shapedesk.layers.registry import LayerRegistry
    from shapedesk.view import Graphic, SpatialView


class PointSelection:
    """XOR-toggles the clicked feature in its layer's selection."""

    def __init__(
        self,
        registry: LayerRegistry,
        view: SpatialView,
        settings: Optional[Settings] = None,
    ) -> None:
        self._registry = registry
        self._view = view
        self._settings = settings or default_settings

    def _resolve(self, hits) -> Optional[tuple[LayerEntry, Graphic]]:
        for hit in hits:
            entry = self._registry.find_by_layer(hit.graphic.layer)
            if entry is not None and entry.visible and entry.ready:
                return entry, hit.graphic
        return None

    async def click(self, point: ScreenPoint) -> int:
        """Toggle the feature under a screen point.

        Clicks that miss every registered layer are no-ops.

        Returns:
            The global selection total afterwards.
        """
        timeout = self._settings.external_call_timeout
        try:
            hits = await external_call(self._view.hit_test(point), what="hit test", timeout=timeout)
        except ExternalCallFailure as e:
            logger.error(f"Point selection failed: {e}")
            return self._registry.total_selected()

        resolved = self._resolve(hits)
        if resolved is None:
            return self._registry.total_selected()
        entry, graphic = resolved

        object_id = graphic.get_attribute(entry.object_id_field)
        if object_id is None:
            logger.warning(f"Clicked feature in '{entry.name}' has no {entry.object_id_field}")
            return self._registry.total_selected()

        toggled = self._registry.toggle_feature(entry.id, object_id)
        if toggled is None:
            return self._registry.total_selected()
        token, ids = toggled

        if ids:
            layer_view = entry.layer_view
            try:
                features = await external_call(
                    layer_view.query_features(Query(object_ids=list(ids))),
                    what=f"re-query selection of {entry.name}",
                    timeout=timeout,
                )
            except ExternalCallFailure as e:
                logger.error(f"Could not re-highlight '{entry.name}': {e}")
            else:
                self._registry.attach_highlight(
                    entry.id, token, lambda: layer_view.highlight(features)
                )

        total = self._registry.total_selected()
        logger.debug(f"Toggled feature {object_id} in '{entry.name}', total {total}")
        return total
