"""Authentication endpoints: admin and end-user sessions."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Form, HTTPException, Response, status
from fastapi.responses import HTMLResponse, RedirectResponse

from backend.api.deps import get_documents, get_settings, require_user
from backend.config import Settings
from backend.rendering.html import render_login_page
from backend.schemas.app import User
from backend.schemas.auth import CurrentUserResponse, LoginRequest, LoginResponse
from backend.services.auth_service import (
    ADMIN_COOKIE,
    USER_COOKIE,
    SessionType,
    authenticate_user,
    check_admin_credentials,
    create_session_token,
)
from backend.services.document_service import DocumentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])
page_router = APIRouter(tags=["auth"], include_in_schema=False)

_INVALID_CREDENTIALS = "Invalid credentials"


def _set_session_cookie(
    response: Response,
    settings: Settings,
    cookie: str,
    subject: str,
    session_type: SessionType,
) -> None:
    token = create_session_token(
        subject, session_type, settings.secret_key, settings.session_max_age_seconds
    )
    response.set_cookie(
        key=cookie,
        value=token,
        httponly=True,
        secure=not settings.debug,
        samesite="lax",
        path="/",
        max_age=settings.session_max_age_seconds,
    )


def _clear_session_cookie(response: Response, cookie: str) -> None:
    response.delete_cookie(cookie, path="/")


def _login_user(
    username: str, password: str, documents: DocumentService
) -> User | None:
    user = authenticate_user(documents.document, username, password)
    if user is None:
        logger.info("Failed login for user '%s'", username)
    return user


@router.post("/admin", response_model=LoginResponse)
async def admin_login(
    body: LoginRequest,
    response: Response,
    settings: Annotated[Settings, Depends(get_settings)],
) -> LoginResponse:
    """Sign in to the admin panel."""
    if not check_admin_credentials(body.username, body.password, settings):
        logger.info("Failed admin login for '%s'", body.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=_INVALID_CREDENTIALS,
        )
    _set_session_cookie(response, settings, ADMIN_COOKIE, body.username, "admin")
    return LoginResponse(username=body.username)


@router.post("/admin/logout", status_code=204)
async def admin_logout(response: Response) -> None:
    """Sign out of the admin panel."""
    _clear_session_cookie(response, ADMIN_COOKIE)


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    response: Response,
    settings: Annotated[Settings, Depends(get_settings)],
    documents: Annotated[DocumentService, Depends(get_documents)],
) -> LoginResponse:
    """Sign in as an end user of the published app."""
    user = _login_user(body.username, body.password, documents)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=_INVALID_CREDENTIALS,
        )
    _set_session_cookie(response, settings, USER_COOKIE, user.id, "user")
    return LoginResponse(username=user.username)


@router.post("/logout", status_code=204)
async def logout(response: Response) -> None:
    """Sign out of the published app."""
    _clear_session_cookie(response, USER_COOKIE)


@router.get("/me", response_model=CurrentUserResponse)
async def me(user: Annotated[User, Depends(require_user)]) -> CurrentUserResponse:
    """Return the signed-in end user."""
    return CurrentUserResponse(
        id=user.id, username=user.username, email=str(user.email), scopes=user.scopes
    )


@page_router.get("/login", response_class=HTMLResponse)
async def login_page() -> HTMLResponse:
    return HTMLResponse(render_login_page("/login", "Sign in"))


@page_router.post("/login", response_model=None)
async def login_form(
    username: Annotated[str, Form(max_length=50)],
    password: Annotated[str, Form(max_length=200)],
    settings: Annotated[Settings, Depends(get_settings)],
    documents: Annotated[DocumentService, Depends(get_documents)],
) -> Response:
    user = _login_user(username, password, documents)
    if user is None:
        return HTMLResponse(
            render_login_page("/login", "Sign in", _INVALID_CREDENTIALS),
            status_code=status.HTTP_401_UNAUTHORIZED,
        )
    response = RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)
    _set_session_cookie(response, settings, USER_COOKIE, user.id, "user")
    return response


@page_router.post("/logout")
async def logout_form() -> RedirectResponse:
    response = RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)
    _clear_session_cookie(response, USER_COOKIE)
    return response


@page_router.get("/admin/login", response_class=HTMLResponse)
async def admin_login_page() -> HTMLResponse:
    return HTMLResponse(render_login_page("/admin/login", "Admin sign in"))


@page_router.post("/admin/login", response_model=None)
async def admin_login_form(
    username: Annotated[str, Form(max_length=50)],
    password: Annotated[str, Form(max_length=200)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Response:
    if not check_admin_credentials(username, password, settings):
        logger.info("Failed admin login for '%s'", username)
        return HTMLResponse(
            render_login_page("/admin/login", "Admin sign in", _INVALID_CREDENTIALS),
            status_code=status.HTTP_401_UNAUTHORIZED,
        )
    response = RedirectResponse("/admin", status_code=status.HTTP_303_SEE_OTHER)
    _set_session_cookie(response, settings, ADMIN_COOKIE, username, "admin")
    return response


@page_router.post("/admin/logout")
async def admin_logout_form() -> RedirectResponse:
    response = RedirectResponse("/admin/login", status_code=status.HTTP_303_SEE_OTHER)
    _clear_session_cookie(response, ADMIN_COOKIE)
    return response
