"""Admin panel request/response schemas.

These mirror the persisted document, so they use the same camelCase aliases.
"""

from __future__ import annotations

from pydantic import EmailStr, Field

from backend.schemas.app import (
    ApiHeader,
    CamelModel,
    ComponentNode,
    ComponentType,
    HttpMethod,
    SidebarItemType,
    Theme,
)


class ApiCreate(CamelModel):
    """Request to register an external API."""

    name: str = Field(min_length=1, max_length=200)
    url: str = Field(min_length=1, max_length=2048)
    method: HttpMethod = "GET"
    headers: list[ApiHeader] = Field(default_factory=list)
    body: str | None = Field(default=None, max_length=100_000)
    is_auth: bool = False
    token_path: str | None = Field(default=None, max_length=500)


class ApiUpdate(CamelModel):
    """Partial update of an API definition."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    url: str | None = Field(default=None, min_length=1, max_length=2048)
    method: HttpMethod | None = None
    headers: list[ApiHeader] | None = None
    body: str | None = Field(default=None, max_length=100_000)
    is_auth: bool | None = None
    token_path: str | None = Field(default=None, max_length=500)


class PageCreate(CamelModel):
    """Request to create a page."""

    name: str = Field(min_length=1, max_length=200)
    slug: str = Field(max_length=500)


class PageUpdate(CamelModel):
    """Partial update of a page; ``components`` replaces the whole tree."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    slug: str | None = Field(default=None, max_length=500)
    components: list[ComponentNode] | None = None


class ComponentInsert(CamelModel):
    """Drop a component into a page.

    Either a palette ``type`` (a fresh node is created) or a complete
    ``component`` (e.g. a node moved from elsewhere) must be given.
    """

    type: ComponentType | None = None
    label: str | None = Field(default=None, max_length=200)
    component: ComponentNode | None = None
    parent_id: str | None = None
    column_index: int | None = Field(default=None, ge=0)


class SidebarItemCreate(CamelModel):
    """Request to add a sidebar item, optionally under a section."""

    label: str = Field(min_length=1, max_length=200)
    type: SidebarItemType = "section"
    page_id: str | None = None
    parent_id: str | None = None


class UserCreate(CamelModel):
    """Request to create an end user."""

    username: str = Field(min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(min_length=1, max_length=72)
    scopes: list[str] = Field(default_factory=list)


class UserUpdate(CamelModel):
    """Partial update of an end user; a new password is re-hashed."""

    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=1, max_length=72)
    scopes: list[str] | None = None


class UserResponse(CamelModel):
    """End user without the password hash."""

    id: str
    username: str
    email: str
    scopes: list[str]
    created_at: str


class SettingsUpdate(CamelModel):
    """Partial update of the app settings."""

    theme: Theme | None = None
    app_title: str | None = Field(default=None, max_length=200)
    app_icon: str | None = Field(default=None, max_length=2048)
