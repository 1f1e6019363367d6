"""Layer API: load, list, show/hide, remove, clear, center, edit, export."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import Response
from loguru import logger
from pydantic import BaseModel

from shapedesk.app.deps import get_session, to_http
from shapedesk.errors import ShapeDeskError

router = APIRouter(prefix="/api/layers", tags=["layers"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class BatchEditRequest(BaseModel):
    """Write one value to a field of every selected feature."""
    field: str
    value: str
    confirm_empty: bool = False


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("")
async def list_layers(request: Request):
    """Session snapshot: layers, selection total and view state."""
    return get_session(request).snapshot()


@router.post("", status_code=201)
async def load_layer(request: Request, filename: str = Query(..., min_length=1)):
    """Load a zipped shapefile sent as the raw request body."""
    session = get_session(request)
    data = await request.body()
    if not data:
        raise HTTPException(status_code=422, detail="Empty upload")
    try:
        entry = await session.load_file(filename, data)
    except ShapeDeskError as e:
        logger.warning(f"Upload of {filename} rejected: {e}")
        raise to_http(e) from e
    return entry.to_dict()


@router.post("/center")
async def center_view(request: Request):
    """Zoom the map to all visible layers."""
    session = get_session(request)
    try:
        centered = await session.center_view()
    except ShapeDeskError as e:
        raise to_http(e) from e
    return {"centered": centered}


@router.delete("")
async def clear_map(request: Request):
    """Remove every layer and reset the map view."""
    removed = await get_session(request).clear_map()
    return {"removed": removed}


@router.post("/{entry_id}/visibility")
async def toggle_visibility(entry_id: int, request: Request):
    """Show or hide a layer; hiding clears its selection."""
    session = get_session(request)
    try:
        visible = session.toggle_visibility(entry_id)
    except ShapeDeskError as e:
        raise to_http(e) from e
    return {"id": entry_id, "visible": visible, "selection_total": session.selection_total}


@router.delete("/{entry_id}")
async def remove_layer(entry_id: int, request: Request):
    """Remove one layer."""
    session = get_session(request)
    try:
        await session.remove_layer(entry_id)
    except ShapeDeskError as e:
        raise to_http(e) from e
    return {"removed": entry_id, "remaining": len(session.list_layers())}


@router.post("/{entry_id}/batch-edit")
async def batch_edit(entry_id: int, body: BatchEditRequest, request: Request):
    """Apply a value to the selected features of a layer."""
    session = get_session(request)
    try:
        report = await session.batch_edit(
            entry_id, body.field, body.value, confirm_empty=body.confirm_empty
        )
    except ShapeDeskError as e:
        raise to_http(e) from e
    return report.to_dict()


@router.get("/{entry_id}/export")
async def export_layer(
    entry_id: int,
    request: Request,
    fmt: str = Query("shapefile", alias="format", pattern="^(shapefile|geojson)$"),
):
    """Download a layer as a zipped shapefile or a GeoJSON file."""
    session = get_session(request)
    try:
        payload = await session.export(entry_id, fmt)
    except ShapeDeskError as e:
        logger.error(f"Export of layer {entry_id} failed: {e}")
        raise to_http(e) from e
    return Response(
        content=payload.data,
        media_type=payload.media_type,
        headers={"Content-Disposition": f'attachment; filename="{payload.filename}"'},
    )
