"""Shared test fixtures for Admini."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from backend.config import Settings
from backend.main import create_app, lifespan
from backend.schemas.app import (
    ApiDefinition,
    AppDocument,
    ComponentNode,
    PageDefinition,
    SidebarItem,
)
from backend.services.auth_service import new_user

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable
    from pathlib import Path

    from backend.schemas.app import User

TEST_SECRET_KEY = "test-secret-key-with-at-least-32-characters"
TEST_ADMIN_USERNAME = "admini"
TEST_ADMIN_PASSWORD = "admini-test-password"
TEST_USER_PASSWORD = "correcthorse"


def _unrouted(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404, json={"error": f"no route for {request.url}"})


@asynccontextmanager
async def create_test_client(
    settings: Settings,
    handler: Callable[[httpx.Request], httpx.Response] | None = None,
) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    Runs the application lifespan explicitly because ASGITransport does not
    trigger it. Outbound API calls go to *handler* through a mock transport.
    """
    app = create_app(settings)
    outbound = httpx.AsyncClient(transport=httpx.MockTransport(handler or _unrouted))
    app.state.http_client = outbound

    async with lifespan(app):
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac

    await outbound.aclose()


async def login_admin(client: AsyncClient) -> None:
    """Sign in to the admin panel; the cookie stays on *client*."""
    resp = await client.post(
        "/api/auth/admin",
        json={"username": TEST_ADMIN_USERNAME, "password": TEST_ADMIN_PASSWORD},
    )
    assert resp.status_code == 200, resp.text


async def login_user(client: AsyncClient, username: str = "alice") -> None:
    """Sign in as an end user; the cookie stays on *client*."""
    resp = await client.post(
        "/api/auth/login",
        json={"username": username, "password": TEST_USER_PASSWORD},
    )
    assert resp.status_code == 200, resp.text


def make_user(username: str = "alice", scopes: list[str] | None = None) -> User:
    return new_user(username, f"{username}@example.com", TEST_USER_PASSWORD, scopes)


def node(component_id: str, component_type: str, **fields: Any) -> ComponentNode:
    """Shorthand for building component nodes in tests."""
    return ComponentNode.model_validate({"id": component_id, "type": component_type, **fields})


@pytest.fixture
def data_file(tmp_path: Path) -> Path:
    return tmp_path / "data.json"


@pytest.fixture
def test_settings(data_file: Path) -> Settings:
    """Create test settings with a temporary data file."""
    return Settings(
        secret_key=TEST_SECRET_KEY,
        debug=True,
        data_file=data_file,
        admin_username=TEST_ADMIN_USERNAME,
        admin_password=TEST_ADMIN_PASSWORD,
        trusted_hosts=["test", "testserver", "localhost"],
    )


@pytest.fixture
def sample_document() -> AppDocument:
    """A small app: an auth API, an orders API, a list page and a detail page."""
    apis = [
        ApiDefinition(
            id="auth",
            name="Login",
            url="https://backend.example.com/token",
            method="POST",
            body='{"client": "admini"}',
            is_auth=True,
            token_path="data.token",
        ),
        ApiDefinition(id="orders", name="Orders", url="https://backend.example.com/orders"),
        ApiDefinition(
            id="order",
            name="Order",
            url="https://backend.example.com/orders/:id",
        ),
        ApiDefinition(
            id="create-order",
            name="Create order",
            url="https://backend.example.com/orders",
            method="POST",
            body='{"item": "", "quantity": ""}',
        ),
    ]
    pages = [
        PageDefinition(
            id="orders-page",
            name="Orders",
            slug="orders",
            components=[
                node(
                    "orders-table",
                    "table",
                    label="Orders",
                    apiId="orders",
                    props={
                        "rowActions": [
                            {
                                "id": "view",
                                "label": "View",
                                "action": "navigate",
                                "targetPageId": "order-page",
                                "navParams": {"id": "%id%"},
                            },
                            {
                                "id": "cancel",
                                "label": "Cancel",
                                "action": "api",
                                "apiId": "order",
                            },
                        ]
                    },
                ),
                node(
                    "new-order",
                    "form",
                    apiId="create-order",
                    props={"submitText": "Create"},
                ),
            ],
        ),
        PageDefinition(
            id="order-page",
            name="Order",
            slug="orders/:id",
            components=[
                node("order-detail", "detail", apiId="order"),
                node("back", "button", label="Back", props={"action": "back"}),
            ],
        ),
    ]
    sidebar = [
        SidebarItem(
            id="sales",
            label="Sales",
            type="section",
            children=[
                SidebarItem(id="orders-link", label="Orders", type="link", page_id="orders-page")
            ],
        )
    ]
    return AppDocument(
        apis=apis,
        pages=pages,
        sidebar=sidebar,
        users=[make_user("alice", ["sales", "orders-link"])],
    )


@pytest.fixture
def backend_handler() -> Callable[[httpx.Request], httpx.Response]:
    """Mock of the operator's REST backend used by ``sample_document``."""

    def handle(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/token":
            return httpx.Response(200, json={"data": {"token": "abc"}})
        if request.headers.get("Authorization") != "Bearer abc":
            return httpx.Response(401, json={"error": "unauthorized"})
        if path == "/orders" and request.method == "GET":
            return httpx.Response(
                200, json=[{"id": 42, "item": "Widget"}, {"id": 43, "item": "Gadget"}]
            )
        if path == "/orders" and request.method == "POST":
            return httpx.Response(201, json={"created": True})
        if path.startswith("/orders/"):
            order_id = path.rsplit("/", 1)[1]
            return httpx.Response(200, json={"id": order_id, "item": "Widget"})
        return httpx.Response(404, json={"error": "not found"})

    return handle
