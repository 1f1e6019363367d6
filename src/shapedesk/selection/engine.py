"""Routes pointer events to the drag-box and point selection protocols."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from loguru import logger

from shapedesk.config import Settings, settings as default_settings
from shapedesk.selection.box import BoxSelection, select_extent
from shapedesk.selection.point import PointSelection
from shapedesk.view import ScreenPoint

if TYPE_CHECKING:
    from shapedesk.layers.geometry import Extent
    from shapedesk.layers.registry import LayerRegistry
    from shapedesk.view import SpatialView

PRIMARY_BUTTON = 0
DRAG_ACTIONS = ("start", "update", "end")


@dataclass(frozen=True)
class DragEvent:
    """Pointer drag event in screen pixels.

    Attributes:
        action: "start", "update" or "end".
        modifiers: Names of the modifier keys held, e.g. ("shift",).
    """

    action: str
    x: float
    y: float
    button: int = PRIMARY_BUTTON
    modifiers: tuple[str, ...] = ()

    @property
    def point(self) -> ScreenPoint:
        return ScreenPoint(self.x, self.y)


@dataclass(frozen=True)
class ClickEvent:
    """Pointer click in screen pixels."""

    x: float
    y: float
    button: int = PRIMARY_BUTTON
    modifiers: tuple[str, ...] = ()

    @property
    def point(self) -> ScreenPoint:
        return ScreenPoint(self.x, self.y)


class SelectionEngine:
    """Entry point for interactive selection.

    Drag-box selection fires on a primary-button drag with the box modifier
    held (shift by default); accumulative point selection fires on a click
    with the point modifier held (ctrl by default).  With multi-select mode
    on, as on touch devices without modifier keys, both fire without one.
    """

    def __init__(
        self,
        registry: LayerRegistry,
        view: SpatialView,
        settings: Optional[Settings] = None,
    ) -> None:
        self._registry = registry
        self._settings = settings or default_settings
        self.box = BoxSelection(registry, view, self._settings)
        self.point = PointSelection(registry, view, self._settings)
        self.multi_select_mode = False

    def set_multi_select(self, enabled: bool) -> None:
        self.multi_select_mode = bool(enabled)
        logger.info(f"Multi-select mode {'on' if enabled else 'off'}")

    def _triggered(self, button: int, modifiers: tuple[str, ...], modifier: str) -> bool:
        if button != PRIMARY_BUTTON:
            return False
        return self.multi_select_mode or modifier in modifiers

    async def handle_drag(self, event: DragEvent) -> Optional[int]:
        """Feed one drag event to the box protocol.

        Returns:
            The selection total after an "end" that ran a selection, else None.

        Raises:
            ValueError: If the action is not a known drag action.
        """
        if event.action not in DRAG_ACTIONS:
            raise ValueError(f"Unknown drag action: {event.action!r}")

        if event.action == "start":
            if self._triggered(event.button, event.modifiers, self._settings.box_select_modifier):
                self.box.start(event.point)
            return None
        if not self.box.dragging:
            return None
        if event.action == "update":
            self.box.update(event.point)
            return None
        return await self.box.end(event.point)

    async def handle_click(self, event: ClickEvent) -> Optional[int]:
        """Feed one click to the point protocol.

        Returns:
            The selection total if the click was a selection click, else None.
        """
        if not self._triggered(event.button, event.modifiers, self._settings.point_select_modifier):
            return None
        return await self.point.click(event.point)

    async def select_extent(self, extent: Extent) -> int:
        return await select_extent(
            self._registry, extent, timeout=self._settings.external_call_timeout
        )

    @property
    def total(self) -> int:
        return self._registry.total_selected()
