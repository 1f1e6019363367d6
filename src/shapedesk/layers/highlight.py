"""Scoped ownership of a layer's highlight handle.

A HighlightSlot holds at most one live handle.  Replacing it always releases
the previous handle first, exactly once, even when acquiring the new one
fails part way.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Optional

from loguru import logger

if TYPE_CHECKING:
    from shapedesk.view import HighlightHandle


class HighlightSlot:
    """Single-occupancy holder for a highlight handle."""

    def __init__(self) -> None:
        self._handle: Optional[HighlightHandle] = None

    @property
    def handle(self) -> Optional[HighlightHandle]:
        return self._handle

    @property
    def active(self) -> bool:
        return self._handle is not None

    def replace(self, acquire: Optional[Callable[[], HighlightHandle]]) -> None:
        """Release the current handle, then acquire a new one if asked.

        Args:
            acquire: Zero-arg callable returning the new handle, or None to
                leave the slot empty.
        """
        old, self._handle = self._handle, None
        if old is not None:
            try:
                old.remove()
            except Exception as e:
                # The engine already dropped it; the slot is empty either way.
                logger.warning(f"Highlight release failed: {e}")
        if acquire is not None:
            self._handle = acquire()

    def release(self) -> None:
        self.replace(None)
