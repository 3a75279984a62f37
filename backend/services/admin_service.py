"""Admin panel business logic.

Every mutation is a command: a function taking the current document and
returning ``(new_document, result)``, run through
:meth:`backend.services.document_service.DocumentService.apply`. Commands never
mutate their input.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from typing import TYPE_CHECKING, Any

from backend.exceptions import NotFoundError
from backend.schemas.app import (
    CONTAINER_TYPES,
    ApiDefinition,
    AppSettings,
    ComponentNode,
    PageDefinition,
    SidebarItem,
    User,
)
from backend.services import component_tree
from backend.services.auth_service import hash_password, new_user
from backend.services.route_service import normalize_slug

if TYPE_CHECKING:
    from collections.abc import Sequence

    from backend.schemas.admin import (
        ApiCreate,
        ApiUpdate,
        ComponentInsert,
        PageCreate,
        PageUpdate,
        SettingsUpdate,
        SidebarItemCreate,
        UserCreate,
        UserUpdate,
    )
    from backend.schemas.app import AppDocument, ComponentPatch

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


def _require_api(document: AppDocument, api_id: str) -> ApiDefinition:
    api = document.find_api(api_id)
    if api is None:
        raise NotFoundError(f"API '{api_id}' not found")
    return api


def _require_page(document: AppDocument, page_id: str) -> PageDefinition:
    page = document.find_page(page_id)
    if page is None:
        raise NotFoundError(f"Page '{page_id}' not found")
    return page


def _require_user(document: AppDocument, user_id: str) -> User:
    user = document.find_user(user_id)
    if user is None:
        raise NotFoundError(f"User '{user_id}' not found")
    return user


def _replace_page(document: AppDocument, page: PageDefinition) -> AppDocument:
    pages = [page if p.id == page.id else p for p in document.pages]
    return document.model_copy(update={"pages": pages})


# APIs


def create_api(document: AppDocument, data: ApiCreate) -> tuple[AppDocument, ApiDefinition]:
    api = ApiDefinition(id=_new_id(), **data.model_dump())
    logger.info("Created API '%s' (%s %s)", api.name, api.method, api.url)
    return document.model_copy(update={"apis": [*document.apis, api]}), api


def update_api(
    document: AppDocument, api_id: str, data: ApiUpdate
) -> tuple[AppDocument, ApiDefinition]:
    current = _require_api(document, api_id)
    api = ApiDefinition.model_validate(
        {**current.model_dump(), **data.model_dump(exclude_unset=True)}
    )
    apis = [api if a.id == api_id else a for a in document.apis]
    return document.model_copy(update={"apis": apis}), api


def delete_api(document: AppDocument, api_id: str) -> tuple[AppDocument, None]:
    """Remove an API. Components bound to it render as not connected."""
    _require_api(document, api_id)
    apis = [a for a in document.apis if a.id != api_id]
    return document.model_copy(update={"apis": apis}), None


# Pages


def create_page(document: AppDocument, data: PageCreate) -> tuple[AppDocument, PageDefinition]:
    page = PageDefinition(id=_new_id(), name=data.name, slug=normalize_slug(data.slug))
    logger.info("Created page '%s' at /%s", page.name, page.slug)
    return document.model_copy(update={"pages": [*document.pages, page]}), page


def update_page(
    document: AppDocument, page_id: str, data: PageUpdate
) -> tuple[AppDocument, PageDefinition]:
    changes: dict[str, Any] = data.model_dump(exclude_unset=True)
    if "slug" in changes:
        changes["slug"] = normalize_slug(changes["slug"] or "")
    if "components" in changes:
        changes["components"] = _validated_tree(data.components or [])
    page = _require_page(document, page_id).model_copy(update=changes)
    return _replace_page(document, page), page


def delete_page(document: AppDocument, page_id: str) -> tuple[AppDocument, None]:
    """Remove a page. Sidebar links and navigation targets pointing at it dangle."""
    _require_page(document, page_id)
    pages = [p for p in document.pages if p.id != page_id]
    return document.model_copy(update={"pages": pages}), None


def _validated_tree(tree: Sequence[ComponentNode]) -> list[ComponentNode]:
    """Check a whole tree for duplicate ids and children on leaf types."""
    counts = Counter(node.id for node in component_tree.iter_nodes(tree))
    duplicates = sorted(node_id for node_id, count in counts.items() if count > 1)
    if duplicates:
        msg = f"Component id already in use: {', '.join(duplicates)}"
        raise component_tree.InvalidTreeOperationError(msg)
    for node in component_tree.iter_nodes(tree):
        if node.children and node.type not in CONTAINER_TYPES:
            msg = f"Component type '{node.type}' cannot hold children"
            raise component_tree.InvalidTreeOperationError(msg)
    return list(tree)


# Components


def insert_component(
    document: AppDocument, page_id: str, data: ComponentInsert
) -> tuple[AppDocument, ComponentNode]:
    """Drop a new or moved node into a page, optionally into a layout column."""
    page = _require_page(document, page_id)
    if data.component is not None:
        node = data.component
    elif data.type is not None:
        node = component_tree.new_component(data.type, data.label)
    else:
        raise ValueError("Either a component type or a component is required")

    components = component_tree.insert_child(
        page.components, data.parent_id, node, data.column_index
    )
    page = page.model_copy(update={"components": components})
    return _replace_page(document, page), node


def patch_component(
    document: AppDocument, page_id: str, component_id: str, patch: ComponentPatch
) -> tuple[AppDocument, ComponentNode]:
    page = _require_page(document, page_id)
    components = component_tree.update(page.components, component_id, patch)
    node = component_tree.find(components, component_id)
    if node is None:
        raise component_tree.ComponentNotFoundError(f"Component '{component_id}' not found")
    page = page.model_copy(update={"components": components})
    return _replace_page(document, page), node


def delete_component(
    document: AppDocument, page_id: str, component_id: str
) -> tuple[AppDocument, None]:
    page = _require_page(document, page_id)
    components = component_tree.delete(page.components, component_id)
    page = page.model_copy(update={"components": components})
    return _replace_page(document, page), None


def select_component(document: AppDocument, page_id: str, component_id: str) -> ComponentNode:
    """Return the current properties of a node for the properties editor."""
    page = _require_page(document, page_id)
    node = component_tree.find(page.components, component_id)
    if node is None:
        raise component_tree.ComponentNotFoundError(f"Component '{component_id}' not found")
    return node


# Sidebar


def validate_sidebar(items: Sequence[SidebarItem]) -> list[SidebarItem]:
    """Check the two-level shape: only top-level sections hold children."""
    seen: set[str] = set()
    for item in items:
        if item.children and item.type != "section":
            raise ValueError(f"Sidebar item '{item.label}' is a link and cannot hold children")
        for entry in [item, *(item.children or [])]:
            if entry.id in seen:
                raise ValueError(f"Duplicate sidebar item id '{entry.id}'")
            seen.add(entry.id)
        for child in item.children or []:
            if child.children:
                raise ValueError("Sidebar items can only be nested one level deep")
    return list(items)


def replace_sidebar(
    document: AppDocument, items: Sequence[SidebarItem]
) -> tuple[AppDocument, list[SidebarItem]]:
    sidebar = validate_sidebar(items)
    return document.model_copy(update={"sidebar": sidebar}), sidebar


def add_sidebar_item(
    document: AppDocument, data: SidebarItemCreate
) -> tuple[AppDocument, SidebarItem]:
    if data.type == "link" and data.page_id is not None:
        _require_page(document, data.page_id)
    item = SidebarItem(
        id=_new_id(),
        label=data.label,
        type=data.type,
        page_id=data.page_id,
        children=[] if data.type == "section" else None,
    )
    if data.parent_id is None:
        return document.model_copy(update={"sidebar": [*document.sidebar, item]}), item

    if data.type == "section":
        raise ValueError("Sections can only be added at the top level")
    parent = next((s for s in document.sidebar if s.id == data.parent_id), None)
    if parent is None:
        raise NotFoundError(f"Sidebar section '{data.parent_id}' not found")
    if parent.type != "section":
        raise ValueError(f"Sidebar item '{parent.label}' is not a section")
    updated = parent.model_copy(update={"children": [*(parent.children or []), item]})
    sidebar = [updated if s.id == parent.id else s for s in document.sidebar]
    return document.model_copy(update={"sidebar": sidebar}), item


def delete_sidebar_item(document: AppDocument, item_id: str) -> tuple[AppDocument, None]:
    """Remove a sidebar item; removing a section removes its links."""
    sidebar: list[SidebarItem] = []
    found = False
    for item in document.sidebar:
        if item.id == item_id:
            found = True
            continue
        children = item.children or []
        kept = [child for child in children if child.id != item_id]
        if len(kept) != len(children):
            found = True
            item = item.model_copy(update={"children": kept})
        sidebar.append(item)
    if not found:
        raise NotFoundError(f"Sidebar item '{item_id}' not found")
    return document.model_copy(update={"sidebar": sidebar}), None


# Users


def create_user(document: AppDocument, data: UserCreate) -> tuple[AppDocument, User]:
    if any(u.username == data.username for u in document.users):
        raise ValueError(f"Username '{data.username}' is already taken")
    user = new_user(data.username, str(data.email), data.password, data.scopes)
    logger.info("Created user '%s'", user.username)
    return document.model_copy(update={"users": [*document.users, user]}), user


def update_user(document: AppDocument, user_id: str, data: UserUpdate) -> tuple[AppDocument, User]:
    changes: dict[str, Any] = data.model_dump(exclude_unset=True, exclude={"password"})
    if data.password is not None:
        changes["password_hash"] = hash_password(data.password)
    current = _require_user(document, user_id)
    user = User.model_validate({**current.model_dump(), **changes})
    users = [user if u.id == user_id else u for u in document.users]
    return document.model_copy(update={"users": users}), user


def delete_user(document: AppDocument, user_id: str) -> tuple[AppDocument, None]:
    _require_user(document, user_id)
    users = [u for u in document.users if u.id != user_id]
    return document.model_copy(update={"users": users}), None


# Settings


def update_settings(
    document: AppDocument, data: SettingsUpdate
) -> tuple[AppDocument, AppSettings]:
    merged = {**document.settings.model_dump(), **data.model_dump(exclude_unset=True)}
    settings = AppSettings.model_validate(merged)
    return document.model_copy(update={"settings": settings}), settings
