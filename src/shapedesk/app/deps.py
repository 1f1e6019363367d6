"""Shared router helpers: session lookup and error translation."""

from __future__ import annotations

from fastapi import HTTPException, Request

from shapedesk.errors import (
    DuplicateLayerName,
    EmptyOrUnparseable,
    EmptySelection,
    EmptyValueNotConfirmed,
    ExternalCallFailure,
    FieldNotFound,
    InvalidArchive,
    InvalidValue,
    LayerNotFound,
    NoExportableFeatures,
    NoGeoreference,
    ShapeDeskError,
)
from shapedesk.session import MapSession

_STATUS: dict[type, int] = {
    LayerNotFound: 404,
    DuplicateLayerName: 409,
    EmptyValueNotConfirmed: 409,
    NoGeoreference: 422,
    EmptyOrUnparseable: 422,
    FieldNotFound: 422,
    InvalidValue: 422,
    EmptySelection: 422,
    NoExportableFeatures: 422,
    InvalidArchive: 502,
    ExternalCallFailure: 502,
}


def get_session(request: Request) -> MapSession:
    """Get the map session from app state."""
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Map session not initialized")
    return session


def to_http(error: ShapeDeskError) -> HTTPException:
    """Translate a domain error into an HTTPException."""
    status = _STATUS.get(type(error), 400)
    return HTTPException(
        status_code=status,
        detail={"error": type(error).__name__, "message": str(error)},
    )
