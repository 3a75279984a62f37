"""Application-level exception types.

Convention:
- ``InternalServerError``: for errors whose details must never reach clients
  (corrupt storage document, config validation, etc.).  The global handler
  logs the full message at ERROR and returns a generic "Internal server
  error" (500) to the client.
- ``ValueError``: for *business logic* validation errors that are safe to
  forward to clients (duplicate ids, bad slugs, invalid tree edits).  The
  global ``ValueError`` handler returns ``str(exc)`` as the 422 detail.
- ``NotFoundError``: a referenced page, API, user, sidebar item or component
  does not exist.  Mapped to 404.
"""

from __future__ import annotations


class InternalServerError(Exception):
    """Raised for internal errors whose details must not be exposed to clients.

    The global exception handler in ``backend/main.py`` catches this, logs
    the full message server-side, and returns HTTP 500 with a generic
    ``"Internal server error"`` detail.
    """


class NotFoundError(LookupError):
    """Raised when a referenced entity does not exist in the app document."""
