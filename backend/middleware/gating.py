"""Route gating: redirect or reject requests that lack the session a path needs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, RedirectResponse

from backend.services.auth_service import (
    ADMIN_COOKIE,
    USER_COOKIE,
    decode_session_token,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from starlette.requests import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)

PUBLIC_PREFIXES: tuple[str, ...] = (
    "/api/auth/",
    "/api/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
    "/logout",
    "/admin/logout",
)
ADMIN_API_PREFIXES: tuple[str, ...] = ("/api/admin", "/api/storage")


@dataclass(frozen=True)
class GateDecision:
    """What to do with a request: let it pass, redirect it, or answer 401."""

    action: Literal["allow", "redirect", "unauthorized"]
    location: str | None = None


ALLOW = GateDecision("allow")


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


def decide(path: str, *, has_admin: bool, has_user: bool) -> GateDecision:
    """Gating rules by path.

    - ``/admin/login``: open, but a signed-in admin goes to ``/admin``.
    - ``/admin/*``: needs the admin session, else ``/admin/login``.
    - admin APIs: need the admin session, else 401.
    - ``/login``: open, but a signed-in user goes to ``/``.
    - other APIs: need the end-user session, else 401.
    - everything else: needs the end-user session, else ``/login``.
    """
    if any(_under(path, prefix) for prefix in PUBLIC_PREFIXES):
        return ALLOW
    if path == "/admin/login":
        return GateDecision("redirect", "/admin") if has_admin else ALLOW
    if _under(path, "/admin"):
        return ALLOW if has_admin else GateDecision("redirect", "/admin/login")
    if any(_under(path, prefix) for prefix in ADMIN_API_PREFIXES):
        return ALLOW if has_admin else GateDecision("unauthorized")
    if path == "/login":
        return GateDecision("redirect", "/") if has_user else ALLOW
    if _under(path, "/api"):
        return ALLOW if has_user else GateDecision("unauthorized")
    return ALLOW if has_user else GateDecision("redirect", "/login")


class RouteGatingMiddleware(BaseHTTPMiddleware):
    """Apply :func:`decide` using the signed session cookies of each request."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        secret_key: str = request.app.state.settings.secret_key
        has_admin = _valid(request.cookies.get(ADMIN_COOKIE), secret_key, admin=True)
        has_user = _valid(request.cookies.get(USER_COOKIE), secret_key, admin=False)

        decision = decide(request.url.path, has_admin=has_admin, has_user=has_user)
        if decision.action == "redirect":
            if decision.location is None:
                raise RuntimeError(f"Redirect decision for {request.url.path} has no location")
            return RedirectResponse(decision.location, status_code=307)
        if decision.action == "unauthorized":
            logger.debug("Rejected unauthenticated request to %s", request.url.path)
            return JSONResponse(status_code=401, content={"detail": "Not authenticated"})
        return await call_next(request)


def _valid(token: str | None, secret_key: str, *, admin: bool) -> bool:
    if not token:
        return False
    return decode_session_token(token, secret_key, "admin" if admin else "user") is not None
