"""Server-rendered HTML: published pages and the admin design preview.

The catch-all published route must be registered after every other router.
"""

from __future__ import annotations

import html
import json
import logging
from typing import Annotated, Any

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from backend.api.deps import (
    get_current_user,
    get_documents,
    get_http_client,
    get_settings,
    get_status_board,
    require_admin,
)
from backend.api.runtime import form_values, render_published
from backend.config import Settings
from backend.exceptions import NotFoundError
from backend.rendering.html import (
    render_design_preview,
    render_not_found,
    render_published_page,
)
from backend.schemas.app import User
from backend.services.action_service import (
    ActionStatusBoard,
    run_button,
    run_row_action,
    submit_form,
)
from backend.services.document_service import DocumentService
from backend.services.render_service import render_page
from backend.services.route_service import normalize_path
from backend.services.sidebar_service import build_sidebar

logger = logging.getLogger(__name__)

admin_router = APIRouter(
    prefix="/admin", tags=["pages"], include_in_schema=False, dependencies=[Depends(require_admin)]
)
router = APIRouter(tags=["pages"], include_in_schema=False)


@admin_router.get("", response_class=HTMLResponse)
async def admin_home(
    documents: Annotated[DocumentService, Depends(get_documents)],
) -> HTMLResponse:
    """Page list with links to each design preview."""
    items = "".join(
        f'<li><a href="/admin/pages/{html.escape(p.id, quote=True)}">{html.escape(p.name)}</a>'
        f" <code>/{html.escape(p.slug)}</code></li>"
        for p in documents.document.pages
    )
    body = (
        "<!DOCTYPE html><html><head><title>Admin</title></head><body>"
        f"<h1>Pages</h1><ul>{items}</ul>"
        '<form method="post" action="/admin/logout"><button type="submit">Logout</button></form>'
        "</body></html>"
    )
    return HTMLResponse(body)


@admin_router.get("/pages/{page_id}", response_class=HTMLResponse)
async def design_preview(
    page_id: str,
    documents: Annotated[DocumentService, Depends(get_documents)],
    selected: Annotated[str | None, Query(max_length=100)] = None,
) -> HTMLResponse:
    """Editor canvas for a page, rendered in design mode."""
    document = documents.document
    page = document.find_page(page_id)
    if page is None:
        raise HTTPException(status_code=404, detail=f"Page '{page_id}' not found")
    rendered = await render_page(
        page, document.apis, document.pages, mode="design", selected_id=selected
    )
    return HTMLResponse(render_design_preview(rendered))


@router.get("/{path:path}", response_model=None)
async def published_page(
    path: str,
    documents: Annotated[DocumentService, Depends(get_documents)],
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    board: Annotated[ActionStatusBoard, Depends(get_status_board)],
    settings: Annotated[Settings, Depends(get_settings)],
    user: Annotated[User | None, Depends(get_current_user)],
) -> Response:
    """Render the published page for *path*; ``/`` shows the sidebar only."""
    normalized = normalize_path(path)
    if normalized == "api" or normalized.startswith("api/"):
        raise HTTPException(status_code=404, detail="Not found")
    if user is None:
        return RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)

    document = documents.document
    sidebar = build_sidebar(document, user, normalized)
    if not normalized:
        return HTMLResponse(render_published_page(None, sidebar, path="/", username=user.username))

    rendered = await render_published(normalized, documents, client, board, settings, user)
    if rendered is None:
        return HTMLResponse(
            render_not_found(sidebar, normalized, user.username),
            status_code=status.HTTP_404_NOT_FOUND,
        )
    page_html = render_published_page(
        rendered, sidebar, path="/" + normalized, username=user.username
    )
    return HTMLResponse(page_html)


def _posted_row(raw: object) -> dict[str, Any]:
    try:
        row = json.loads(raw) if isinstance(raw, str) and raw else {}
    except ValueError as exc:
        raise ValueError("Row data is not valid JSON") from exc
    if not isinstance(row, dict):
        raise ValueError("Row data must be a JSON object")
    return row


@router.post("/{path:path}", response_model=None)
async def page_action(
    path: str,
    request: Request,
    documents: Annotated[DocumentService, Depends(get_documents)],
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    board: Annotated[ActionStatusBoard, Depends(get_status_board)],
    user: Annotated[User | None, Depends(get_current_user)],
) -> Response:
    """Run a button, row action or form submission posted from a published page.

    Navigations redirect to their target; everything else redirects back to
    the page, which then shows the action's status.
    """
    normalized = normalize_path(path)
    if normalized == "api" or normalized.startswith("api/"):
        raise HTTPException(status_code=404, detail="Not found")
    if user is None:
        return RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)

    form = await request.form()
    kind = form.get("_action")
    component_id = form.get("component_id")
    if not isinstance(component_id, str) or not component_id:
        raise ValueError("Page actions require 'component_id'")

    document = documents.document
    try:
        if kind == "button":
            result = await run_button(document, client, board, user.id, normalized, component_id)
        elif kind == "row-action":
            result = await run_row_action(
                document,
                client,
                board,
                user.id,
                normalized,
                component_id,
                str(form.get("_action_id") or ""),
                _posted_row(form.get("_row")),
            )
        elif kind == "submit":
            values = await form_values(form)
            result = await submit_form(
                document, client, board, user.id, normalized, component_id, values
            )
        else:
            raise ValueError(f"Unknown page action {kind!r}")
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    logger.debug("Page action %s on /%s finished: %s", kind, normalized, result.status)
    target = result.href if result.kind == "navigate" and result.href else "/" + normalized
    return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)
