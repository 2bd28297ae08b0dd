from __future__ import annotations


class SessionError(Exception):
    """Base class for coordinator failures that callers are expected to handle."""


class ValidationError(SessionError, ValueError):
    """Bad input shape or enum value. Raised before any state is written."""


class NotFoundError(SessionError, ValueError):
    """Unknown session, participant or item."""


class ConflictError(SessionError):
    """The request contradicts current state (e.g. a second final vote)."""


class TransientStoreError(SessionError):
    """Storage failed before anything was committed; the whole call may be retried."""
