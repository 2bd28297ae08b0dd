from __future__ import annotations

from collections.abc import Mapping

from fastapi import HTTPException

from wtw.core.errors import (
    ConflictError,
    NotFoundError,
    SessionError,
    TransientStoreError,
    ValidationError,
)

_SESSION_ERROR_STATUSES: tuple[tuple[type[SessionError], int], ...] = (
    (NotFoundError, 404),
    (ValidationError, 400),
    (ConflictError, 409),
    (TransientStoreError, 503),
)


def permission_error(exc: PermissionError) -> HTTPException:
    return HTTPException(status_code=403, detail=str(exc))


def session_error(exc: SessionError) -> HTTPException:
    for exc_type, status in _SESSION_ERROR_STATUSES:
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def value_error(
    exc: ValueError,
    *,
    phrase_statuses: Mapping[str, int] | None = None,
    default_status: int = 400,
) -> HTTPException:
    raw_detail = str(exc)

    lowered = raw_detail.lower()
    if phrase_statuses:
        # first matching phrase wins
        for phrase, status in phrase_statuses.items():
            if phrase in lowered:
                return HTTPException(status_code=status, detail=raw_detail)

    return HTTPException(status_code=default_status, detail=raw_detail)
