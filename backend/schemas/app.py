"""App document schemas: APIs, pages, component tree, sidebar, users, settings.

The persisted JSON keeps camelCase field names (``apiId``, ``isAuth``,
``tokenPath`` ...); Python code uses snake_case attributes and accepts both
spellings on input.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]

ComponentType = Literal[
    "table",
    "form",
    "detail",
    "text",
    "image",
    "container",
    "form_container",
    "form_text",
    "form_password",
    "form_checkbox",
    "form_multi_checkbox",
    "form_radio",
    "form_select",
    "form_file",
    "button",
    "pdf",
    "layout_2col",
    "layout_3col",
    "iframe",
]

SidebarItemType = Literal["section", "link"]

Theme = Literal["light", "dark"]

CONTAINER_TYPES: frozenset[str] = frozenset(
    {"container", "form_container", "layout_2col", "layout_3col"}
)
LAYOUT_COLUMNS: dict[str, int] = {"layout_2col": 2, "layout_3col": 3}
FORM_FIELD_TYPES: frozenset[str] = frozenset(
    {
        "form_text",
        "form_password",
        "form_checkbox",
        "form_multi_checkbox",
        "form_radio",
        "form_select",
        "form_file",
    }
)
MUTATING_METHODS: frozenset[str] = frozenset({"POST", "PUT", "PATCH"})


class CamelModel(BaseModel):
    """Base model serialised with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiHeader(CamelModel):
    """A single outbound header; the value is a placeholder template."""

    key: str
    value: str = ""


class ApiDefinition(CamelModel):
    """An operator-configured REST endpoint."""

    id: str
    name: str
    url: str
    method: HttpMethod = "GET"
    headers: list[ApiHeader] = Field(default_factory=list)
    body: str | None = None
    is_auth: bool = False
    token_path: str | None = None


class ComponentNode(CamelModel):
    """One node of a page's component tree."""

    id: str
    type: ComponentType
    label: str | None = None
    api_id: str | None = None
    props: dict[str, Any] = Field(default_factory=dict)
    children: list[ComponentNode] | None = None


class ComponentPatch(CamelModel):
    """Partial update for a component node. ``props`` replaces the whole map."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    type: ComponentType | None = None
    label: str | None = None
    api_id: str | None = None
    props: dict[str, Any] | None = None
    children: list[ComponentNode] | None = None


class PageDefinition(CamelModel):
    """A published page: a slug pattern plus its component tree."""

    id: str
    slug: str
    name: str
    components: list[ComponentNode] = Field(default_factory=list)


class SidebarItem(CamelModel):
    """Sidebar entry: a section holding links, or a link to a page."""

    id: str
    label: str
    type: SidebarItemType = "section"
    page_id: str | None = None
    children: list[SidebarItem] | None = None


class User(CamelModel):
    """An end user of the published application."""

    id: str
    username: str
    email: EmailStr
    password_hash: str
    scopes: list[str] = Field(default_factory=list)
    created_at: str


class AppSettings(CamelModel):
    """Global appearance settings."""

    theme: Theme = "light"
    app_title: str | None = None
    app_icon: str | None = None


class AppDocument(CamelModel):
    """The single persisted document holding the whole application."""

    apis: list[ApiDefinition] = Field(default_factory=list)
    pages: list[PageDefinition] = Field(default_factory=list)
    sidebar: list[SidebarItem] = Field(default_factory=list)
    users: list[User] = Field(default_factory=list)
    settings: AppSettings = Field(default_factory=AppSettings)

    def find_api(self, api_id: str | None) -> ApiDefinition | None:
        """Return the API with the given id, if any."""
        if not api_id:
            return None
        return next((a for a in self.apis if a.id == api_id), None)

    def find_page(self, page_id: str | None) -> PageDefinition | None:
        """Return the page with the given id, if any."""
        if not page_id:
            return None
        return next((p for p in self.pages if p.id == page_id), None)

    def find_user(self, user_id: str | None) -> User | None:
        """Return the user with the given id, if any."""
        if not user_id:
            return None
        return next((u for u in self.users if u.id == user_id), None)
