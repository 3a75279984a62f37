"""Shared API dependencies: settings, document, outbound client, sessions."""

from __future__ import annotations

from typing import Annotated

import httpx
from fastapi import Depends, HTTPException, Request, status

from backend.config import Settings
from backend.schemas.app import User
from backend.services.action_service import ActionStatusBoard
from backend.services.auth_service import ADMIN_COOKIE, USER_COOKIE, decode_session_token
from backend.services.document_service import DocumentService


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_documents(request: Request) -> DocumentService:
    """Get the document service from app state."""
    documents: DocumentService = request.app.state.documents
    return documents


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Get the shared outbound HTTP client from app state."""
    client: httpx.AsyncClient = request.app.state.http_client
    return client


def get_status_board(request: Request) -> ActionStatusBoard:
    """Get the runtime action status board from app state."""
    board: ActionStatusBoard = request.app.state.status_board
    return board


def is_admin_session(request: Request, settings: Settings) -> bool:
    token = request.cookies.get(ADMIN_COOKIE)
    if not token:
        return False
    return decode_session_token(token, settings.secret_key, "admin") is not None


def session_user(request: Request, settings: Settings, documents: DocumentService) -> User | None:
    """Resolve the end user from the ``auth-token`` cookie.

    A valid token for a user that has since been deleted yields None.
    """
    token = request.cookies.get(USER_COOKIE)
    if not token:
        return None
    payload = decode_session_token(token, settings.secret_key, "user")
    if payload is None:
        return None
    return documents.document.find_user(str(payload["sub"]))


async def get_current_user(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    documents: Annotated[DocumentService, Depends(get_documents)],
) -> User | None:
    """Get the signed-in end user, or None."""
    return session_user(request, settings, documents)


async def require_user(
    user: Annotated[User | None, Depends(get_current_user)],
) -> User:
    """Require an end-user session. Raises 401 if not signed in."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user


async def require_admin(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Require an admin session. Raises 401 without a valid admin cookie."""
    if not is_admin_session(request, settings):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin authentication required",
        )
