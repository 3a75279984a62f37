"""Runtime schemas: rendered pages, sidebar navigation, and action requests."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

RenderMode = Literal["design", "published"]

RendererState = Literal["initializing", "ready"]

NodeState = Literal["ok", "empty", "error", "not_connected", "unconfigured", "placeholder"]

ActionStatus = Literal["idle", "loading", "success", "error"]

ActionKind = Literal["back", "navigate", "api", "submit"]


class RenderedNode(BaseModel):
    """A component node after rendering, with its resolved data."""

    id: str
    type: str
    label: str | None = None
    state: NodeState = "ok"
    message: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    children: list[RenderedNode] = Field(default_factory=list)
    selectable: bool = False
    selected: bool = False


class PageRender(BaseModel):
    """A rendered page. ``components`` is empty while initializing."""

    page_id: str
    name: str
    slug: str
    mode: RenderMode
    state: RendererState
    params: dict[str, str] = Field(default_factory=dict)
    components: list[RenderedNode] = Field(default_factory=list)


class NavLink(BaseModel):
    """Sidebar link to a page."""

    id: str
    label: str
    href: str
    active: bool = False


class NavSection(BaseModel):
    """Sidebar section with the links visible to the viewer.

    A top-level link item is a section with its own ``href`` and no links.
    """

    id: str
    label: str
    href: str | None = None
    active: bool = False
    links: list[NavLink] = Field(default_factory=list)


class SidebarView(BaseModel):
    """Scope-filtered sidebar plus the app branding."""

    app_title: str | None = None
    app_icon: str | None = None
    theme: str = "light"
    sections: list[NavSection] = Field(default_factory=list)


class ButtonActionRequest(BaseModel):
    """Run the action of a button on a published page."""

    path: str = Field(max_length=2048)
    component_id: str = Field(min_length=1, max_length=100)


class RowActionRequest(BaseModel):
    """Run a row action of a table on a published page."""

    path: str = Field(max_length=2048)
    component_id: str = Field(min_length=1, max_length=100)
    action_id: str = Field(min_length=1, max_length=100)
    row: dict[str, Any] = Field(default_factory=dict)


class ActionResult(BaseModel):
    """Outcome of a runtime action."""

    kind: ActionKind
    status: ActionStatus
    href: str | None = None
    status_code: int | None = None
    error: str | None = None
    data: Any = None


class ActionStatusResponse(BaseModel):
    """Current display status of one action."""

    key: str
    status: ActionStatus
