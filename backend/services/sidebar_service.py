"""Published sidebar: scope filtering and link resolution."""

from __future__ import annotations

from typing import TYPE_CHECKING

from backend.schemas.runtime import NavLink, NavSection, SidebarView
from backend.services.route_service import normalize_path

if TYPE_CHECKING:
    from collections.abc import Sequence

    from backend.schemas.app import AppDocument, SidebarItem, User

DEFAULT_APP_TITLE = "App"


def filter_sidebar(items: Sequence[SidebarItem], user: User | None) -> list[SidebarItem]:
    """Items the user may see. Anonymous viewers see everything.

    A user's scopes are sidebar item ids; a section is visible when its id is
    in scope, and its children are filtered the same way. Input items are
    left unchanged.
    """
    if user is None:
        return list(items)
    scopes = set(user.scopes)
    visible: list[SidebarItem] = []
    for item in items:
        if item.id not in scopes:
            continue
        if item.children:
            children = [child for child in item.children if child.id in scopes]
            item = item.model_copy(update={"children": children})
        visible.append(item)
    return visible


def link_href(document: AppDocument, item: SidebarItem) -> str:
    page = document.find_page(item.page_id)
    if page is None:
        return "#"
    return "/" + normalize_path(page.slug)


def build_sidebar(
    document: AppDocument, user: User | None, current_path: str | None = None
) -> SidebarView:
    """Build the sidebar a viewer sees on a published page."""
    current = "/" + normalize_path(current_path) if current_path is not None else None
    sections: list[NavSection] = []
    for item in filter_sidebar(document.sidebar, user):
        if item.type == "link":
            href = link_href(document, item)
            sections.append(
                NavSection(id=item.id, label=item.label, href=href, active=href == current)
            )
            continue
        links = []
        for child in item.children or []:
            href = link_href(document, child)
            links.append(NavLink(id=child.id, label=child.label, href=href, active=href == current))
        sections.append(NavSection(id=item.id, label=item.label, links=links))

    settings = document.settings
    return SidebarView(
        app_title=settings.app_title or DEFAULT_APP_TITLE,
        app_icon=settings.app_icon,
        theme=settings.theme,
        sections=sections,
    )
