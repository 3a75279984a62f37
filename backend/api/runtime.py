"""Runtime endpoints for published pages: rendering, sidebar, and actions."""

from __future__ import annotations

import logging
from typing import Annotated, Any

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from starlette.datastructures import FormData, UploadFile

from backend.api.deps import (
    get_documents,
    get_http_client,
    get_settings,
    get_status_board,
    require_user,
)
from backend.config import Settings
from backend.exceptions import NotFoundError
from backend.schemas.app import User
from backend.schemas.runtime import (
    ActionResult,
    ActionStatusResponse,
    ButtonActionRequest,
    PageRender,
    RowActionRequest,
    SidebarView,
)
from backend.services.action_service import (
    ActionStatusBoard,
    run_button,
    run_row_action,
    submit_form,
)
from backend.services.api_binding_service import FileValue
from backend.services.document_service import DocumentService
from backend.services.render_service import render_page
from backend.services.route_service import match_route
from backend.services.sidebar_service import build_sidebar

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/runtime", tags=["runtime"])

Documents = Annotated[DocumentService, Depends(get_documents)]
Client = Annotated[httpx.AsyncClient, Depends(get_http_client)]
Board = Annotated[ActionStatusBoard, Depends(get_status_board)]
Viewer = Annotated[User, Depends(require_user)]

_RESERVED_SUBMIT_FIELDS = {"path", "component_id", "componentId", "_action", "_action_id", "_row"}


async def render_published(
    path: str,
    documents: DocumentService,
    client: httpx.AsyncClient,
    board: ActionStatusBoard,
    settings: Settings,
    viewer: User,
) -> PageRender | None:
    """Render the page published at *path*, or None when no page matches."""
    document = documents.document
    route = match_route(document.pages, path)
    if route is None:
        return None
    return await render_page(
        route.page,
        document.apis,
        document.pages,
        params=route.params,
        client=client,
        mode="published",
        embed_mode=settings.iframe_embed_mode,
        status_lookup=board.lookup_for(viewer.id, route.page.id),
    )


@router.get("/page", response_model=PageRender)
async def get_page(
    path: Annotated[str, Query(max_length=2048)],
    documents: Documents,
    client: Client,
    board: Board,
    settings: Annotated[Settings, Depends(get_settings)],
    viewer: Viewer,
) -> PageRender:
    """Render the published page matching *path*."""
    rendered = await render_published(path, documents, client, board, settings, viewer)
    if rendered is None:
        raise HTTPException(status_code=404, detail=f"No page matches '{path}'")
    return rendered


@router.get("/sidebar", response_model=SidebarView)
async def get_sidebar(
    documents: Documents,
    viewer: Viewer,
    path: Annotated[str | None, Query(max_length=2048)] = None,
) -> SidebarView:
    """Sidebar sections and links visible to the signed-in user."""
    return build_sidebar(documents.document, viewer, path)


@router.post("/button", response_model=ActionResult)
async def press_button(
    body: ButtonActionRequest, documents: Documents, client: Client, board: Board, viewer: Viewer
) -> ActionResult:
    try:
        return await run_button(
            documents.document, client, board, viewer.id, body.path, body.component_id
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/row-action", response_model=ActionResult)
async def trigger_row_action(
    body: RowActionRequest, documents: Documents, client: Client, board: Board, viewer: Viewer
) -> ActionResult:
    try:
        return await run_row_action(
            documents.document,
            client,
            board,
            viewer.id,
            body.path,
            body.component_id,
            body.action_id,
            body.row,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


async def _read_submission(request: Request) -> tuple[str, str, dict[str, Any]]:
    """Parse a JSON or form-encoded submission into (path, component_id, values)."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError as exc:
            raise ValueError("Submission body is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise ValueError("Submission body must be a JSON object")
        values = payload.get("values") or {}
        if not isinstance(values, dict):
            raise ValueError("'values' must be an object")
        path = payload.get("path")
        component_id = payload.get("component_id") or payload.get("componentId")
    else:
        form = await request.form()
        values = await form_values(form)
        path = form.get("path")
        component_id = form.get("component_id") or form.get("componentId")

    if not isinstance(path, str) or not isinstance(component_id, str) or not component_id:
        raise ValueError("Submission requires 'path' and 'component_id'")
    return path, component_id, values


async def form_values(form: FormData) -> dict[str, Any]:
    """Submitted field values of a form post, leaving out the routing fields."""
    values: dict[str, Any] = {}
    for name in form:
        if name in _RESERVED_SUBMIT_FIELDS:
            continue
        converted = [await _form_value(entry) for entry in form.getlist(name)]
        values[name] = converted[0] if len(converted) == 1 else converted
    return values


async def _form_value(entry: UploadFile | str) -> Any:
    if isinstance(entry, UploadFile):
        content = await entry.read()
        return FileValue(
            filename=entry.filename or "upload",
            content=content,
            content_type=entry.content_type or "application/octet-stream",
        )
    return entry


@router.post("/submit", response_model=ActionResult)
async def submit(
    request: Request, documents: Documents, client: Client, board: Board, viewer: Viewer
) -> ActionResult:
    """Submit a form (JSON ``{path, component_id, values}`` or multipart fields)."""
    path, component_id, values = await _read_submission(request)
    try:
        return await submit_form(
            documents.document, client, board, viewer.id, path, component_id, values
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/status", response_model=ActionStatusResponse)
async def get_status(
    path: Annotated[str, Query(max_length=2048)],
    component_id: Annotated[str, Query(min_length=1, max_length=100)],
    documents: Documents,
    board: Board,
    viewer: Viewer,
    action_id: Annotated[str | None, Query(max_length=100)] = None,
) -> ActionStatusResponse:
    """Current display status of a button, form, or row action."""
    route = match_route(documents.document.pages, path)
    if route is None:
        raise HTTPException(status_code=404, detail=f"No page matches '{path}'")
    key = board.key(viewer.id, route.page.id, component_id, action_id)
    return ActionStatusResponse(key=key, status=board.status(key))
