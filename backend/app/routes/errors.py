from __future__ import annotations
from fastapi import HTTPException
from app.services.errors import AssignmentError

_STATUS = {
    "not_found": 404,
    "forbidden": 403,
    # lost races and repeated actions
    "already_taken": 409,
    "already_assigned": 409,
    "already_joined": 409,
    "already_submitted": 409,
    "already_awarded": 409,
    "already_revoked": 409,
    "not_available": 409,
    "out_of_window": 409,
    # media
    "media_not_found": 404,
    "unsupported_media": 415,
    "too_large": 413,
}

def to_http(e: AssignmentError) -> HTTPException:
    """Anything not listed is a failed precondition (400)."""
    return HTTPException(status_code=_STATUS.get(e.code, 400), detail={"code": e.code, "message": e.message})
