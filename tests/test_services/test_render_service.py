"""Tests for the page renderer in published and design modes."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx
import pytest

from backend.schemas.app import ApiDefinition, PageDefinition
from backend.services.render_service import (
    PageRenderer,
    cell_text,
    coerce_records,
    hidden_columns,
    render_page,
)
from backend.services.route_service import match_route
from tests.conftest import node

if TYPE_CHECKING:
    from collections.abc import Callable

    from backend.schemas.app import AppDocument
    from backend.schemas.runtime import PageRender, RenderedNode


class _Recorder:
    """Mock transport handler that records every outbound request."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


def _by_id(render: PageRender) -> dict[str, RenderedNode]:
    found: dict[str, RenderedNode] = {}

    def walk(nodes: list[RenderedNode]) -> None:
        for n in nodes:
            found[n.id] = n
            walk(n.children)

    walk(render.components)
    return found


async def _render_path(
    document: AppDocument,
    path: str,
    handler: Callable[[httpx.Request], httpx.Response],
    **kwargs: object,
) -> PageRender:
    route = match_route(document.pages, path)
    assert route is not None
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        return await render_page(
            route.page,
            document.apis,
            document.pages,
            params=route.params,
            client=client,
            **kwargs,
        )


class TestHelpers:
    def test_cell_text(self) -> None:
        assert cell_text(None) == ""
        assert cell_text(True) == "true"
        assert cell_text({"a": 1}) == '{"a": 1}'
        assert cell_text(3.5) == "3.5"

    def test_coerce_records(self) -> None:
        assert coerce_records([{"a": 1}, 2]) == [{"a": 1}, {"value": 2}]
        assert coerce_records({"data": [{"a": 1}]}) == [{"a": 1}]
        assert coerce_records({"a": 1}) == []

    def test_hidden_columns(self) -> None:
        assert hidden_columns("id, secret") == {"id", "secret"}
        assert hidden_columns(["x"]) == {"x"}
        assert hidden_columns(None) == set()


class TestPublishedRendering:
    async def test_detail_page_uses_route_params_and_auth_token(
        self,
        sample_document: AppDocument,
        backend_handler: Callable[[httpx.Request], httpx.Response],
    ) -> None:
        recorder = _Recorder(backend_handler)
        render = await _render_path(sample_document, "/orders/42", recorder)

        assert render.state == "ready"
        assert render.params == {"id": "42"}
        detail = _by_id(render)["order-detail"]
        assert detail.state == "ok"
        assert {"key": "id", "value": "42"} in detail.data["fields"]

        # The token request goes out before any component request.
        assert recorder.requests[0].url.path == "/token"
        order_request = recorder.requests[1]
        assert order_request.url.path == "/orders/42"
        assert order_request.headers["Authorization"] == "Bearer abc"

    async def test_table_rows_and_row_action_links(
        self,
        sample_document: AppDocument,
        backend_handler: Callable[[httpx.Request], httpx.Response],
    ) -> None:
        render = await _render_path(sample_document, "orders", backend_handler)
        table = _by_id(render)["orders-table"]
        assert table.state == "ok"
        assert table.data["columns"] == ["id", "item"]
        first = table.data["rows"][0]
        assert first["cells"] == {"id": "42", "item": "Widget"}
        view, cancel = first["actions"]
        assert view["href"] == "/orders/42"
        assert cancel["connected"] is True
        assert cancel["status"] == "idle"

    async def test_form_fields_come_from_body_template(
        self,
        sample_document: AppDocument,
        backend_handler: Callable[[httpx.Request], httpx.Response],
    ) -> None:
        render = await _render_path(sample_document, "orders", backend_handler)
        form = _by_id(render)["new-order"]
        assert [f["name"] for f in form.data["fields"]] == ["item", "quantity"]
        assert form.data["submit_text"] == "Create"
        assert form.data["values"] == {"item": "", "quantity": ""}

    async def test_failed_fetch_renders_error_state(self) -> None:
        api = ApiDefinition(id="a", name="A", url="https://api.example.com/x")
        page = PageDefinition(
            id="p", name="P", slug="p", components=[node("t", "table", apiId="a")]
        )
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(500))
        ) as client:
            render = await render_page(page, [api], [page], client=client)
        table = render.components[0]
        assert table.state == "error"
        assert table.message == "HTTP 500"

    async def test_empty_table(self) -> None:
        api = ApiDefinition(id="a", name="A", url="https://api.example.com/x")
        page = PageDefinition(
            id="p", name="P", slug="p", components=[node("t", "table", apiId="a")]
        )
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[]))
        ) as client:
            render = await render_page(page, [api], [page], client=client)
        assert render.components[0].state == "empty"

    async def test_unbound_components_are_not_connected(self) -> None:
        page = PageDefinition(
            id="p",
            name="P",
            slug="p",
            components=[
                node("t", "table", apiId="deleted"),
                node("fc", "form_container", children=[node("f", "form_text")]),
                node("b", "button", props={"action": "api"}),
            ],
        )
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(500))
        ) as client:
            render = await render_page(page, [], [page], client=client)
        nodes = _by_id(render)
        assert nodes["t"].state == "not_connected"
        assert nodes["fc"].state == "not_connected"
        assert nodes["fc"].data["submit_enabled"] is False
        assert nodes["fc"].message == "Connect an API to enable submission"
        assert nodes["b"].state == "not_connected"

    async def test_form_container_collects_descendant_fields(self) -> None:
        api = ApiDefinition(
            id="save", name="Save", url="https://api.example.com/save", method="POST"
        )
        page = PageDefinition(
            id="p",
            name="P",
            slug="p",
            components=[
                node(
                    "fc",
                    "form_container",
                    apiId="save",
                    children=[
                        node("n1", "form_text", props={"name": "name", "defaultValue": "Bob"}),
                        node(
                            "cols",
                            "layout_2col",
                            children=[node("c1", "form_checkbox", props={"name": "vip"})],
                        ),
                    ],
                )
            ],
        )
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(500))
        ) as client:
            render = await render_page(page, [api], [page], client=client)
        container = _by_id(render)["fc"]
        assert container.state == "ok"
        assert container.data["fields"] == ["name", "vip"]
        assert container.data["values"] == {"name": "Bob", "vip": ""}
        assert _by_id(render)["n1"].data["in_form"] is True

    async def test_api_sourced_field_default(self) -> None:
        api = ApiDefinition(id="me", name="Me", url="https://api.example.com/me")
        page = PageDefinition(
            id="p",
            name="P",
            slug="p",
            components=[
                node(
                    "email",
                    "form_text",
                    apiId="me",
                    props={
                        "name": "email",
                        "defaultValueSource": "api",
                        "defaultValueJsonPath": "user.email",
                    },
                )
            ],
        )
        handler = httpx.MockTransport(
            lambda r: httpx.Response(200, json={"user": {"email": "a@example.com"}})
        )
        async with httpx.AsyncClient(transport=handler) as client:
            render = await render_page(page, [api], [page], client=client)
        assert render.components[0].data["value"] == "a@example.com"

    async def test_detail_single_value_list(self) -> None:
        api = ApiDefinition(id="a", name="A", url="https://api.example.com/x")
        page = PageDefinition(
            id="p",
            name="P",
            slug="p",
            components=[
                node(
                    "d",
                    "detail",
                    apiId="a",
                    props={
                        "displayMode": "single",
                        "jsonPath": "data.tags",
                        "listItemPath": "name",
                    },
                )
            ],
        )
        body = {"data": {"tags": [{"name": "new"}, {"name": "sale"}]}}
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json=body))
        ) as client:
            render = await render_page(page, [api], [page], client=client)
        assert render.components[0].data == {
            "mode": "single",
            "label": "data.tags",
            "items": ["new", "sale"],
        }

    async def test_siblings_render_in_tree_order(self) -> None:
        page = PageDefinition(
            id="p",
            name="P",
            slug="p",
            components=[node(f"t{i}", "text", props={"content": str(i)}) for i in range(5)],
        )
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(500))
        ) as client:
            render = await render_page(page, [], [page], client=client)
        assert [n.id for n in render.components] == ["t0", "t1", "t2", "t3", "t4"]

    async def test_data_bearing_siblings_fetch_concurrently(self) -> None:
        apis = [
            ApiDefinition(id=api_id, name=api_id, url=f"https://api.example.com/{api_id}")
            for api_id in ("orders", "users")
        ]
        page = PageDefinition(
            id="p",
            name="P",
            slug="p",
            components=[node(a.id, "table", apiId=a.id) for a in apis],
        )
        arrived: list[str] = []
        both_arrived = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            arrived.append(request.url.path)
            if len(arrived) == 2:
                both_arrived.set()
            await asyncio.wait_for(both_arrived.wait(), timeout=2)
            return httpx.Response(200, json=[{"id": 1}])

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            render = await render_page(page, apis, [page], client=client)
        assert sorted(arrived) == ["/orders", "/users"]
        assert [n.state for n in render.components] == ["ok", "ok"]

    async def test_status_lookup_feeds_button_status(self) -> None:
        api = ApiDefinition(id="a", name="A", url="https://api.example.com/x", method="POST")
        page = PageDefinition(
            id="p",
            name="P",
            slug="p",
            components=[node("b", "button", apiId="a", props={"action": "api"})],
        )
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(500))
        ) as client:
            render = await render_page(
                page, [api], [page], client=client, status_lookup=lambda key: "loading"
            )
        assert render.components[0].data["status"] == "loading"

    async def test_iframe_markup_is_sanitized(self) -> None:
        page = PageDefinition(
            id="p",
            name="P",
            slug="p",
            components=[
                node(
                    "f",
                    "iframe",
                    props={
                        "iframeCode": (
                            '<script>alert(1)</script><iframe src="https://maps.example.com"'
                            ' onload="x()"></iframe>'
                        )
                    },
                )
            ],
        )
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(500))
        ) as client:
            render = await render_page(page, [], [page], client=client)
        markup = render.components[0].data["markup"]
        assert "<script" not in markup
        assert "onload" not in markup
        assert 'src="https://maps.example.com"' in markup
        assert "sandbox=" in markup


class TestRendererState:
    async def test_initializing_only_with_auth_api_in_published_mode(
        self, sample_document: AppDocument
    ) -> None:
        page = sample_document.pages[0]
        apis, pages = sample_document.apis, sample_document.pages
        async with httpx.AsyncClient() as client:
            published = PageRenderer(page, apis, pages, client=client)
            no_auth = PageRenderer(page, [], pages, client=client)
        design = PageRenderer(page, apis, pages, mode="design")
        assert published.state == "initializing"
        assert published.snapshot().components == []
        assert design.state == "ready"
        assert no_auth.state == "ready"

    def test_published_mode_requires_client(self, sample_document: AppDocument) -> None:
        with pytest.raises(ValueError):
            PageRenderer(sample_document.pages[0], [], [])

    async def test_design_renderer_refuses_api_requests(
        self, sample_document: AppDocument
    ) -> None:
        page = sample_document.pages[0]
        design = PageRenderer(page, sample_document.apis, sample_document.pages, mode="design")
        with pytest.raises(RuntimeError, match="does not issue API requests"):
            await design._fetch(sample_document.apis[0])


class TestDesignRendering:
    async def test_no_network_and_placeholders(self, sample_document: AppDocument) -> None:
        page = sample_document.pages[0]
        render = await render_page(
            page, sample_document.apis, sample_document.pages, mode="design"
        )
        table = _by_id(render)["orders-table"]
        assert table.state == "placeholder"
        assert table.message == "Table Placeholder"
        assert all(n.selectable for n in _by_id(render).values())

    async def test_selected_node_is_flagged(self) -> None:
        page = PageDefinition(
            id="p",
            name="P",
            slug="p",
            components=[
                node("a", "text"),
                node("box", "container", children=[node("b", "image")]),
            ],
        )
        render = await render_page(page, [], [page], mode="design", selected_id="b")
        nodes = _by_id(render)
        assert nodes["b"].selected is True
        assert nodes["a"].selected is False
        assert nodes["a"].data["content"] == "Text content..."
        assert nodes["b"].state == "unconfigured"

    async def test_design_mode_skips_api_defaults(self) -> None:
        api = ApiDefinition(id="me", name="Me", url="https://api.example.com/me")
        page = PageDefinition(
            id="p",
            name="P",
            slug="p",
            components=[
                node(
                    "email",
                    "form_text",
                    apiId="me",
                    props={"defaultValueSource": "api", "defaultValueJsonPath": "email"},
                )
            ],
        )
        render = await render_page(page, [api], [page], mode="design")
        assert render.components[0].data["value"] == ""
