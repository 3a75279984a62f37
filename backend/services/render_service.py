"""Page renderer: turns a page's component tree into rendered nodes.

Published mode fetches bound APIs (siblings concurrently, after the page-level
auth token) and resolves navigation targets. Design mode never touches the
network: data-bearing nodes become placeholders and every node is selectable.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

from backend.rendering.sanitizer import sanitize_embed
from backend.schemas.app import FORM_FIELD_TYPES
from backend.schemas.runtime import PageRender, RenderedNode
from backend.services.api_binding_service import (
    acquire_auth_token,
    build_request,
    find_auth_api,
    get_path,
    send,
)
from backend.services.component_tree import split_columns
from backend.services.form_service import (
    FormAggregator,
    field_kind,
    field_name,
    form_fields,
    manual_default,
    split_options,
)
from backend.services.placeholder_service import stringify_row
from backend.services.route_service import build_page_path

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping, Sequence

    import httpx

    from backend.schemas.app import ApiDefinition, ComponentNode, PageDefinition
    from backend.schemas.runtime import RendererState, RenderMode
    from backend.services.api_binding_service import ApiCallResult

logger = logging.getLogger(__name__)

DEFAULT_EMBED_HEIGHT = "600px"

NOT_CONNECTED_MESSAGE = "No API connected"

_DESIGN_PLACEHOLDERS: dict[str, str] = {
    "table": "Table Placeholder",
    "detail": "Detail Placeholder",
    "pdf": "PDF Viewer Placeholder",
    "iframe": "Iframe Placeholder",
}


def cell_text(value: Any) -> str:
    """Display text for a table cell or detail value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def coerce_records(data: Any) -> list[dict[str, Any]]:
    """Extract table records: a top-level array, else a ``data`` array, else nothing."""
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        data = data["data"]
    if not isinstance(data, list):
        return []
    return [item if isinstance(item, dict) else {"value": item} for item in data]


def hidden_columns(raw: object) -> set[str]:
    if isinstance(raw, list):
        return {str(c).strip() for c in raw if str(c).strip()}
    if isinstance(raw, str):
        return {c.strip() for c in raw.split(",") if c.strip()}
    return set()


def button_action(node: ComponentNode) -> str:
    """Configured action of a button; ``navigate`` when unset."""
    action = node.props.get("action") or node.props.get("actionType") or "navigate"
    return str(action)


def nav_params(raw: object) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    return {str(k): str(v) for k, v in raw.items() if v is not None}


def row_actions(node: ComponentNode) -> list[dict[str, Any]]:
    actions = node.props.get("rowActions")
    if not isinstance(actions, list):
        return []
    return [a for a in actions if isinstance(a, dict) and a.get("id")]


class PageRenderer:
    """Render one page for one request.

    The renderer starts ``initializing`` when an auth API exists and the mode
    is published; :meth:`initialize` fetches the bearer token and moves it to
    ``ready``. :meth:`render` always initializes first, so no component request
    is issued before the token is known.
    """

    def __init__(
        self,
        page: PageDefinition,
        apis: Sequence[ApiDefinition],
        pages: Sequence[PageDefinition],
        *,
        params: Mapping[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
        mode: RenderMode = "published",
        selected_id: str | None = None,
        embed_mode: str = "sanitize",
        status_lookup: Callable[[str], str] | None = None,
    ) -> None:
        if mode == "published" and client is None:
            raise ValueError("Published rendering requires an HTTP client")
        self.page = page
        self.params: dict[str, str] = dict(params or {})
        self.mode: RenderMode = mode
        self.auth_token: str | None = None
        self._apis = list(apis)
        self._pages = {p.id: p for p in pages}
        self._client = client
        self._selected_id = selected_id
        self._embed_mode = embed_mode
        self._status_lookup = status_lookup
        needs_token = mode == "published" and find_auth_api(self._apis) is not None
        self.state: RendererState = "initializing" if needs_token else "ready"
        self._handlers: dict[str, Callable[..., Awaitable[RenderedNode]]] = {
            "table": self._render_table,
            "detail": self._render_detail,
            "form": self._render_form,
            "form_container": self._render_form_container,
            "container": self._render_container,
            "layout_2col": self._render_layout,
            "layout_3col": self._render_layout,
            "button": self._render_button,
            "text": self._render_text,
            "image": self._render_image,
            "pdf": self._render_pdf,
            "iframe": self._render_iframe,
        }

    @property
    def design(self) -> bool:
        return self.mode == "design"

    async def initialize(self) -> None:
        """Acquire the page-level auth token, once."""
        if self.state == "ready":
            return
        self.auth_token = await acquire_auth_token(self._http(), self._apis)
        self.state = "ready"

    def snapshot(self, components: list[RenderedNode] | None = None) -> PageRender:
        return PageRender(
            page_id=self.page.id,
            name=self.page.name,
            slug=self.page.slug,
            mode=self.mode,
            state=self.state,
            params=self.params,
            components=components if self.state == "ready" and components else [],
        )

    async def render(self) -> PageRender:
        await self.initialize()
        components = await self._render_nodes(self.page.components, None)
        return self.snapshot(components)

    async def _render_nodes(
        self, nodes: Sequence[ComponentNode] | None, form: FormAggregator | None
    ) -> list[RenderedNode]:
        if not nodes:
            return []
        return list(await asyncio.gather(*(self._render_node(n, form) for n in nodes)))

    async def _render_node(self, node: ComponentNode, form: FormAggregator | None) -> RenderedNode:
        if node.type in FORM_FIELD_TYPES:
            rendered = await self._render_field(node, form)
        else:
            rendered = await self._handlers[node.type](node, form)
        if self.design:
            rendered.selectable = True
            rendered.selected = node.id == self._selected_id
        return rendered

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Design rendering does not issue API requests")
        return self._client

    def _base(self, node: ComponentNode, **kwargs: Any) -> RenderedNode:
        return RenderedNode(id=node.id, type=node.type, label=node.label, **kwargs)

    def _api_for(self, node: ComponentNode | Mapping[str, Any]) -> ApiDefinition | None:
        api_id = node.get("apiId") if isinstance(node, dict) else getattr(node, "api_id", None)
        if not api_id:
            return None
        return next((a for a in self._apis if a.id == api_id), None)

    def _placeholder(self, node: ComponentNode, text: str, **data: Any) -> RenderedNode:
        return self._base(node, state="placeholder", message=text, data=data)

    def _not_connected(self, node: ComponentNode, **data: Any) -> RenderedNode:
        return self._base(node, state="not_connected", message=NOT_CONNECTED_MESSAGE, data=data)

    async def _fetch(self, api: ApiDefinition) -> ApiCallResult:
        return await send(self._http(), build_request(api, self.params, self.auth_token))

    def _status(self, node_id: str) -> str:
        if self._status_lookup is None:
            return "idle"
        return self._status_lookup(node_id)

    def _href(
        self, target_page_id: object, raw_nav: object, params: Mapping[str, str]
    ) -> str | None:
        target = self._pages.get(str(target_page_id)) if target_page_id else None
        if target is None:
            return None
        return build_page_path(target, nav_params(raw_nav), params)

    async def _render_table(self, node: ComponentNode, form: FormAggregator | None) -> RenderedNode:
        if self.design:
            return self._placeholder(node, _DESIGN_PLACEHOLDERS["table"])
        api = self._api_for(node)
        if api is None:
            return self._not_connected(node)

        result = await self._fetch(api)
        if not result.ok:
            return self._base(node, state="error", message=result.error or "Failed to load data")

        records = coerce_records(result.data)
        hidden = hidden_columns(node.props.get("hiddenColumns"))
        columns = [c for c in records[0] if c not in hidden] if records else []
        actions = row_actions(node)

        rows: list[dict[str, Any]] = []
        for index, record in enumerate(records):
            row_params = {**self.params, **stringify_row(record)}
            rows.append(
                {
                    "index": index,
                    "cells": {column: cell_text(record.get(column)) for column in columns},
                    "record": record,
                    "actions": [self._row_action_view(node, a, row_params) for a in actions],
                }
            )
        return self._base(
            node,
            state="ok" if records else "empty",
            message=None if records else "No records",
            data={"columns": columns, "rows": rows},
        )

    def _row_action_view(
        self, node: ComponentNode, action: dict[str, Any], row_params: Mapping[str, str]
    ) -> dict[str, Any]:
        kind = str(action.get("action") or "navigate")
        view: dict[str, Any] = {
            "id": str(action["id"]),
            "label": str(action.get("label") or "Action"),
            "action": kind,
            "variant": str(action.get("variant") or "primary"),
        }
        if kind == "navigate":
            view["href"] = self._href(
                action.get("targetPageId"), action.get("navParams"), row_params
            )
        elif kind == "api":
            view["connected"] = self._api_for(action) is not None
            view["status"] = self._status(f"{node.id}:{action['id']}")
        return view

    async def _render_detail(
        self, node: ComponentNode, form: FormAggregator | None
    ) -> RenderedNode:
        if self.design:
            return self._placeholder(node, _DESIGN_PLACEHOLDERS["detail"])
        api = self._api_for(node)
        if api is None:
            return self._not_connected(node)

        result = await self._fetch(api)
        if not result.ok:
            return self._base(node, state="error", message=result.error or "Failed to load data")
        data = result.data
        if data is None:
            return self._base(node, state="empty", message="No data")

        if node.props.get("displayMode") == "single":
            path = node.props.get("jsonPath") or ""
            value = get_path(data, path) if path else data
            payload: dict[str, Any] = {"mode": "single", "label": path or "Value"}
            if isinstance(value, list):
                item_path = node.props.get("listItemPath")
                payload["items"] = [
                    cell_text(get_path(item, item_path) if item_path else item) for item in value
                ]
            else:
                payload["value"] = cell_text(value)
            return self._base(node, data=payload)

        if isinstance(data, dict):
            fields = [{"key": str(k), "value": cell_text(v)} for k, v in data.items()]
        elif isinstance(data, list):
            fields = [{"key": str(i), "value": cell_text(v)} for i, v in enumerate(data)]
        else:
            fields = [{"key": "value", "value": cell_text(data)}]
        return self._base(node, data={"mode": "fields", "fields": fields})

    async def _render_form(self, node: ComponentNode, form: FormAggregator | None) -> RenderedNode:
        api = self._api_for(node)
        fields = form_fields(node, api)
        submit_text = node.props.get("submitText") or "Submit"
        if api is None:
            return self._not_connected(node, fields=fields, submit_text=submit_text)

        aggregator = FormAggregator()
        for field_def in fields:
            aggregator.register(field_def["name"], "")
        return self._base(
            node,
            data={
                "fields": fields,
                "values": aggregator.values(),
                "submit_text": submit_text,
                "submit_enabled": True,
                "status": self._status(node.id),
            },
        )

    async def _render_form_container(
        self, node: ComponentNode, form: FormAggregator | None
    ) -> RenderedNode:
        aggregator = FormAggregator()
        children = await self._render_nodes(node.children, aggregator)
        api = self._api_for(node)
        data = {
            "fields": aggregator.names(),
            "values": aggregator.values(),
            "submit_text": node.props.get("submitText") or "Submit",
            "submit_enabled": api is not None,
            "status": self._status(node.id),
        }
        if api is None:
            return self._base(
                node,
                state="not_connected",
                message="Connect an API to enable submission",
                data=data,
                children=children,
            )
        return self._base(node, data=data, children=children)

    async def _render_field(self, node: ComponentNode, form: FormAggregator | None) -> RenderedNode:
        aggregator = form if form is not None else FormAggregator()
        name = field_name(node)
        aggregator.register(name, manual_default(node))

        if not self.design and node.props.get("defaultValueSource") == "api":
            api = self._api_for(node)
            if api is not None:
                result = await self._fetch(api)
                path = node.props.get("defaultValueJsonPath")
                value = get_path(result.data, path) if result.ok else None
                if value is not None:
                    aggregator.set_value(name, value)

        return self._base(
            node,
            data={
                "name": name,
                "kind": field_kind(node),
                "required": bool(node.props.get("required")),
                "options": split_options(node.props.get("options")),
                "value": aggregator.values().get(name, ""),
                "in_form": form is not None,
            },
        )

    async def _render_container(
        self, node: ComponentNode, form: FormAggregator | None
    ) -> RenderedNode:
        return self._base(node, children=await self._render_nodes(node.children, form))

    async def _render_layout(
        self, node: ComponentNode, form: FormAggregator | None
    ) -> RenderedNode:
        children = await self._render_nodes(node.children, form)
        columns = [[child.id for child in group] for group in split_columns(node)]
        return self._base(node, data={"columns": columns}, children=children)

    async def _render_button(
        self, node: ComponentNode, form: FormAggregator | None
    ) -> RenderedNode:
        action = button_action(node)
        data: dict[str, Any] = {
            "action": action,
            "text": node.label or "Button",
            "variant": node.props.get("variant") or "primary",
        }
        if action == "navigate":
            data["href"] = self._href(
                node.props.get("targetPageId"), node.props.get("navParams"), self.params
            )
            if data["href"] is None:
                return self._base(node, state="unconfigured", message="No target page", data=data)
        elif action == "api":
            data["status"] = self._status(node.id)
            if self._api_for(node) is None:
                return self._not_connected(node, **data)
        return self._base(node, data=data)

    async def _render_text(self, node: ComponentNode, form: FormAggregator | None) -> RenderedNode:
        content = node.props.get("content")
        if not content and self.design:
            content = "Text content..."
        return self._base(node, data={"content": str(content or "")})

    async def _render_image(self, node: ComponentNode, form: FormAggregator | None) -> RenderedNode:
        src = node.props.get("src")
        alt = node.label or "Image"
        if not src:
            return self._base(
                node, state="unconfigured", message="No image source", data={"alt": alt}
            )
        return self._base(node, data={"src": str(src), "alt": alt})

    async def _render_pdf(self, node: ComponentNode, form: FormAggregator | None) -> RenderedNode:
        if self.design:
            return self._placeholder(node, _DESIGN_PLACEHOLDERS["pdf"])
        url = node.props.get("url")
        if not url:
            return self._base(node, state="unconfigured", message="No PDF URL configured")
        return self._base(
            node,
            data={
                "url": str(url),
                "height": str(node.props.get("height") or DEFAULT_EMBED_HEIGHT),
                "title": node.label or "PDF Viewer",
            },
        )

    async def _render_iframe(
        self, node: ComponentNode, form: FormAggregator | None
    ) -> RenderedNode:
        if self.design:
            return self._placeholder(node, _DESIGN_PLACEHOLDERS["iframe"])
        code = node.props.get("iframeCode")
        if code:
            trusted = self._embed_mode == "trusted"
            markup = str(code) if trusted else sanitize_embed(str(code))
            if not markup:
                return self._base(
                    node, state="unconfigured", message="Embed code has no allowed frame"
                )
            return self._base(
                node, data={"mode": "embed", "markup": markup, "sandboxed": not trusted}
            )
        url = node.props.get("url")
        if not url:
            return self._base(
                node,
                state="unconfigured",
                message="Configure iframe URL or code in properties panel",
            )
        return self._base(
            node,
            data={
                "mode": "url",
                "url": str(url),
                "height": str(node.props.get("height") or DEFAULT_EMBED_HEIGHT),
                "title": node.label or "Embedded content",
            },
        )


async def render_page(
    page: PageDefinition,
    apis: Sequence[ApiDefinition],
    pages: Sequence[PageDefinition],
    **kwargs: Any,
) -> PageRender:
    """Convenience wrapper: build a :class:`PageRenderer` and render it."""
    renderer = PageRenderer(page, apis, pages, **kwargs)
    return await renderer.render()
