"""Selection API: pointer events from the map widget and selection state."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from shapedesk.app.deps import get_session
from shapedesk.selection import ClickEvent, DragEvent

router = APIRouter(prefix="/api/selection", tags=["selection"])


class DragRequest(BaseModel):
    """One drag event in screen pixels."""
    action: Literal["start", "update", "end"]
    x: float
    y: float
    button: int = 0
    modifiers: list[str] = []


class ClickRequest(BaseModel):
    """One click in screen pixels."""
    x: float
    y: float
    button: int = 0
    modifiers: list[str] = []


class MultiSelectRequest(BaseModel):
    enabled: bool


@router.get("")
async def get_selection(request: Request):
    """Global selection total and per-layer counts."""
    session = get_session(request)
    return {
        "total": session.registry.total_selected(),
        "multi_select": session.selection.multi_select_mode,
        "layers": {
            e.id: len(e.selected_ids) for e in session.list_layers()
        },
    }


@router.delete("")
async def deselect_all(request: Request):
    """Clear every layer's selection."""
    session = get_session(request)
    session.deselect_all()
    return {"total": session.registry.total_selected()}


@router.post("/drag")
async def drag(body: DragRequest, request: Request):
    """Feed a drag event to the box selection."""
    session = get_session(request)
    event = DragEvent(
        action=body.action,
        x=body.x,
        y=body.y,
        button=body.button,
        modifiers=tuple(body.modifiers),
    )
    try:
        total = await session.handle_drag(event)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return {
        "state": session.selection.box.state.value,
        "selected": total is not None,
        "total": session.registry.total_selected(),
    }


@router.post("/click")
async def click(body: ClickRequest, request: Request):
    """Feed a click to the accumulative point selection."""
    session = get_session(request)
    event = ClickEvent(x=body.x, y=body.y, button=body.button, modifiers=tuple(body.modifiers))
    total = await session.handle_click(event)
    return {
        "selected": total is not None,
        "total": session.registry.total_selected(),
    }


@router.put("/multi-select")
async def set_multi_select(body: MultiSelectRequest, request: Request):
    """Turn touch-style multi-select mode on or off."""
    session = get_session(request)
    session.set_multi_select(body.enabled)
    return {"multi_select": session.selection.multi_select_mode}
