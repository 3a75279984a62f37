"""Admin panel API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from backend.api.deps import get_documents, require_admin
from backend.exceptions import NotFoundError
from backend.schemas.admin import (
    ApiCreate,
    ApiUpdate,
    ComponentInsert,
    PageCreate,
    PageUpdate,
    SettingsUpdate,
    SidebarItemCreate,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from backend.schemas.app import (
    ApiDefinition,
    AppSettings,
    ComponentNode,
    ComponentPatch,
    PageDefinition,
    SidebarItem,
    User,
)
from backend.schemas.runtime import PageRender
from backend.services import admin_service
from backend.services.document_service import DocumentService
from backend.services.render_service import render_page
from backend.services.route_service import slug_params

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

Documents = Annotated[DocumentService, Depends(get_documents)]


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=str(user.email),
        scopes=user.scopes,
        created_at=user.created_at,
    )


# APIs


@router.get("/apis", response_model=list[ApiDefinition], response_model_by_alias=True)
async def list_apis(documents: Documents) -> list[ApiDefinition]:
    return documents.document.apis


@router.post(
    "/apis", response_model=ApiDefinition, response_model_by_alias=True, status_code=201
)
async def create_api_endpoint(body: ApiCreate, documents: Documents) -> ApiDefinition:
    """Register an external API."""
    return await documents.apply(lambda doc: admin_service.create_api(doc, body))


@router.put("/apis/{api_id}", response_model=ApiDefinition, response_model_by_alias=True)
async def update_api_endpoint(
    api_id: str, body: ApiUpdate, documents: Documents
) -> ApiDefinition:
    try:
        return await documents.apply(lambda doc: admin_service.update_api(doc, api_id, body))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/apis/{api_id}", status_code=204)
async def delete_api_endpoint(api_id: str, documents: Documents) -> None:
    try:
        await documents.apply(lambda doc: admin_service.delete_api(doc, api_id))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# Pages


@router.get("/pages", response_model=list[PageDefinition], response_model_by_alias=True)
async def list_pages(documents: Documents) -> list[PageDefinition]:
    return documents.document.pages


@router.post(
    "/pages", response_model=PageDefinition, response_model_by_alias=True, status_code=201
)
async def create_page_endpoint(body: PageCreate, documents: Documents) -> PageDefinition:
    """Create an empty page at a slug."""
    return await documents.apply(lambda doc: admin_service.create_page(doc, body))


@router.get("/pages/{page_id}", response_model=PageDefinition, response_model_by_alias=True)
async def get_page_endpoint(page_id: str, documents: Documents) -> PageDefinition:
    page = documents.document.find_page(page_id)
    if page is None:
        raise HTTPException(status_code=404, detail=f"Page '{page_id}' not found")
    return page


@router.put("/pages/{page_id}", response_model=PageDefinition, response_model_by_alias=True)
async def update_page_endpoint(
    page_id: str, body: PageUpdate, documents: Documents
) -> PageDefinition:
    """Rename a page, change its slug, or replace its whole component tree."""
    try:
        return await documents.apply(lambda doc: admin_service.update_page(doc, page_id, body))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/pages/{page_id}", status_code=204)
async def delete_page_endpoint(page_id: str, documents: Documents) -> None:
    try:
        await documents.apply(lambda doc: admin_service.delete_page(doc, page_id))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/slug-params", response_model=list[str])
async def get_slug_params(slug: Annotated[str, Query(max_length=500)]) -> list[str]:
    """Parameter names a navigation target expects (for ``navParams``)."""
    return slug_params(slug)


# Components


@router.post(
    "/pages/{page_id}/components",
    response_model=ComponentNode,
    response_model_by_alias=True,
    status_code=201,
)
async def insert_component_endpoint(
    page_id: str, body: ComponentInsert, documents: Documents
) -> ComponentNode:
    """Drop a component onto the canvas, into a container, or into a layout column."""
    try:
        return await documents.apply(
            lambda doc: admin_service.insert_component(doc, page_id, body)
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get(
    "/pages/{page_id}/components/{component_id}",
    response_model=ComponentNode,
    response_model_by_alias=True,
)
async def select_component_endpoint(
    page_id: str, component_id: str, documents: Documents
) -> ComponentNode:
    """Return a node's current properties for the properties editor."""
    try:
        return admin_service.select_component(documents.document, page_id, component_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.patch(
    "/pages/{page_id}/components/{component_id}",
    response_model=ComponentNode,
    response_model_by_alias=True,
)
async def patch_component_endpoint(
    page_id: str, component_id: str, body: ComponentPatch, documents: Documents
) -> ComponentNode:
    try:
        return await documents.apply(
            lambda doc: admin_service.patch_component(doc, page_id, component_id, body)
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/pages/{page_id}/components/{component_id}", status_code=204)
async def delete_component_endpoint(
    page_id: str, component_id: str, documents: Documents
) -> None:
    """Delete a node and everything under it."""
    try:
        await documents.apply(
            lambda doc: admin_service.delete_component(doc, page_id, component_id)
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/pages/{page_id}/preview", response_model=PageRender)
async def preview_page(
    page_id: str,
    documents: Documents,
    selected: Annotated[str | None, Query(max_length=100)] = None,
) -> PageRender:
    """Render a page in design mode; no outbound calls are made."""
    document = documents.document
    page = document.find_page(page_id)
    if page is None:
        raise HTTPException(status_code=404, detail=f"Page '{page_id}' not found")
    return await render_page(
        page, document.apis, document.pages, mode="design", selected_id=selected
    )


# Sidebar


@router.get("/sidebar", response_model=list[SidebarItem], response_model_by_alias=True)
async def get_sidebar(documents: Documents) -> list[SidebarItem]:
    return documents.document.sidebar


@router.put("/sidebar", response_model=list[SidebarItem], response_model_by_alias=True)
async def replace_sidebar_endpoint(
    body: list[SidebarItem], documents: Documents
) -> list[SidebarItem]:
    """Replace the whole sidebar (used for reordering)."""
    return await documents.apply(lambda doc: admin_service.replace_sidebar(doc, body))


@router.post(
    "/sidebar/items", response_model=SidebarItem, response_model_by_alias=True, status_code=201
)
async def add_sidebar_item_endpoint(body: SidebarItemCreate, documents: Documents) -> SidebarItem:
    try:
        return await documents.apply(lambda doc: admin_service.add_sidebar_item(doc, body))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/sidebar/items/{item_id}", status_code=204)
async def delete_sidebar_item_endpoint(item_id: str, documents: Documents) -> None:
    try:
        await documents.apply(lambda doc: admin_service.delete_sidebar_item(doc, item_id))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# Users


@router.get("/users", response_model=list[UserResponse], response_model_by_alias=True)
async def list_users(documents: Documents) -> list[UserResponse]:
    return [_user_response(u) for u in documents.document.users]


@router.post(
    "/users", response_model=UserResponse, response_model_by_alias=True, status_code=201
)
async def create_user_endpoint(body: UserCreate, documents: Documents) -> UserResponse:
    try:
        user = await documents.apply(lambda doc: admin_service.create_user(doc, body))
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _user_response(user)


@router.put("/users/{user_id}", response_model=UserResponse, response_model_by_alias=True)
async def update_user_endpoint(
    user_id: str, body: UserUpdate, documents: Documents
) -> UserResponse:
    try:
        user = await documents.apply(lambda doc: admin_service.update_user(doc, user_id, body))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _user_response(user)


@router.delete("/users/{user_id}", status_code=204)
async def delete_user_endpoint(user_id: str, documents: Documents) -> None:
    try:
        await documents.apply(lambda doc: admin_service.delete_user(doc, user_id))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# Settings


@router.get("/settings", response_model=AppSettings, response_model_by_alias=True)
async def get_app_settings(documents: Documents) -> AppSettings:
    return documents.document.settings


@router.put("/settings", response_model=AppSettings, response_model_by_alias=True)
async def update_app_settings(body: SettingsUpdate, documents: Documents) -> AppSettings:
    """Merge the given fields into the app settings."""
    return await documents.apply(lambda doc: admin_service.update_settings(doc, body))
