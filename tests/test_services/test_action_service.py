"""Tests for runtime actions and their transient status."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import httpx
import pytest

from backend.exceptions import NotFoundError
from backend.services.action_service import (
    ActionStatusBoard,
    ActionStatusTracker,
    collect_form,
    locate_component,
    run_button,
    run_row_action,
    submit_form,
)
from backend.services.component_tree import new_component
from tests.conftest import node

if TYPE_CHECKING:
    from collections.abc import Callable

    from backend.schemas.app import AppDocument


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestActionStatusTracker:
    def test_lifecycle_reverts_to_idle(self) -> None:
        clock = _Clock()
        tracker = ActionStatusTracker(display_seconds=3, clock=clock)
        assert tracker.current() == "idle"
        generation = tracker.begin()
        assert tracker.current() == "loading"
        assert tracker.finish(generation, ok=True)
        assert tracker.current() == "success"
        clock.now += 2.9
        assert tracker.current() == "success"
        clock.now += 0.1
        assert tracker.current() == "idle"

    def test_error_status(self) -> None:
        clock = _Clock()
        tracker = ActionStatusTracker(display_seconds=3, clock=clock)
        tracker.finish(tracker.begin(), ok=False)
        assert tracker.current() == "error"

    def test_stale_result_is_ignored(self) -> None:
        tracker = ActionStatusTracker(clock=_Clock())
        first = tracker.begin()
        second = tracker.begin()
        assert not tracker.finish(first, ok=False)
        assert tracker.current() == "loading"
        assert tracker.finish(second, ok=True)
        assert tracker.current() == "success"


class TestActionStatusBoard:
    def test_keys(self) -> None:
        assert ActionStatusBoard.key("u", "p", "c") == "u:p:c"
        assert ActionStatusBoard.key("u", "p", "c", "a") == "u:p:c:a"

    def test_unknown_key_is_idle(self) -> None:
        assert ActionStatusBoard().status("nope") == "idle"

    def test_lookup_for_viewer_and_page(self) -> None:
        board = ActionStatusBoard(clock=_Clock())
        board.tracker("u:p:btn").begin()
        lookup = board.lookup_for("u", "p")
        assert lookup("btn") == "loading"
        assert board.lookup_for("other", "p")("btn") == "idle"

    def test_least_recently_used_trackers_are_dropped(self) -> None:
        board = ActionStatusBoard(clock=_Clock(), max_entries=2)
        board.tracker("a").begin()
        board.tracker("b").begin()
        board.tracker("a")
        board.tracker("c").begin()
        assert board.status("a") == "loading"
        assert board.status("b") == "idle"
        assert board.status("c") == "loading"


class TestLocateComponent:
    def test_unknown_path(self, sample_document: AppDocument) -> None:
        with pytest.raises(NotFoundError):
            locate_component(sample_document, "nowhere", "x", {"button"})

    def test_unknown_component(self, sample_document: AppDocument) -> None:
        with pytest.raises(NotFoundError):
            locate_component(sample_document, "orders", "x", {"button"})

    def test_wrong_type(self, sample_document: AppDocument) -> None:
        with pytest.raises(ValueError):
            locate_component(sample_document, "orders", "orders-table", {"button"})


def _with_components(document: AppDocument, *components: object) -> AppDocument:
    page = document.pages[1].model_copy(
        update={"components": [*document.pages[1].components, *components]}
    )
    return document.model_copy(update={"pages": [document.pages[0], page]})


class TestRunButton:
    async def test_back(
        self,
        sample_document: AppDocument,
        backend_handler: Callable[[httpx.Request], httpx.Response],
    ) -> None:
        async with httpx.AsyncClient(transport=httpx.MockTransport(backend_handler)) as client:
            result = await run_button(
                sample_document, client, ActionStatusBoard(), "u", "orders/1", "back"
            )
        assert result.kind == "back"
        assert result.status == "success"

    async def test_navigate_resolves_params(
        self,
        sample_document: AppDocument,
        backend_handler: Callable[[httpx.Request], httpx.Response],
    ) -> None:
        document = _with_components(
            sample_document,
            node(
                "self",
                "button",
                props={
                    "action": "navigate",
                    "targetPageId": "order-page",
                    "navParams": {"id": "%id%"},
                },
            ),
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(backend_handler)) as client:
            result = await run_button(
                document, client, ActionStatusBoard(), "u", "orders/7", "self"
            )
        assert result.href == "/orders/7"

    async def test_api_button_sends_with_token_and_tracks_status(
        self,
        sample_document: AppDocument,
        backend_handler: Callable[[httpx.Request], httpx.Response],
    ) -> None:
        document = _with_components(
            sample_document, node("refresh", "button", apiId="order", props={"action": "api"})
        )
        board = ActionStatusBoard(clock=_Clock())
        async with httpx.AsyncClient(transport=httpx.MockTransport(backend_handler)) as client:
            result = await run_button(document, client, board, "u", "orders/5", "refresh")
        assert result.kind == "api"
        assert result.status == "success"
        assert result.data == {"id": "5", "item": "Widget"}
        assert board.status("u:order-page:refresh") == "success"

    async def test_api_button_without_api(self, sample_document: AppDocument) -> None:
        document = _with_components(
            sample_document, node("orphan", "button", apiId="gone", props={"action": "api"})
        )
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(500))
        ) as client:
            result = await run_button(
                document, client, ActionStatusBoard(), "u", "orders/5", "orphan"
            )
        assert result.status == "error"
        assert result.error == "No API connected"


class TestRunRowAction:
    async def test_api_row_action_uses_row_fields(
        self,
        sample_document: AppDocument,
        backend_handler: Callable[[httpx.Request], httpx.Response],
    ) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return backend_handler(request)

        board = ActionStatusBoard(clock=_Clock())
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await run_row_action(
                sample_document,
                client,
                board,
                "u",
                "orders",
                "orders-table",
                "cancel",
                {"id": 43, "item": "Gadget"},
            )
        assert result.status == "success"
        assert seen == ["/token", "/orders/43"]
        assert board.status("u:orders-page:orders-table:cancel") == "success"

    async def test_navigate_row_action(
        self,
        sample_document: AppDocument,
        backend_handler: Callable[[httpx.Request], httpx.Response],
    ) -> None:
        async with httpx.AsyncClient(transport=httpx.MockTransport(backend_handler)) as client:
            result = await run_row_action(
                sample_document,
                client,
                ActionStatusBoard(),
                "u",
                "orders",
                "orders-table",
                "view",
                {"id": 42},
            )
        assert result.kind == "navigate"
        assert result.href == "/orders/42"

    async def test_unknown_row_action(self, sample_document: AppDocument) -> None:
        async with httpx.AsyncClient() as client:
            with pytest.raises(NotFoundError):
                await run_row_action(
                    sample_document,
                    client,
                    ActionStatusBoard(),
                    "u",
                    "orders",
                    "orders-table",
                    "nope",
                    {},
                )


class TestSubmitForm:
    async def test_form_submits_one_json_request(
        self,
        sample_document: AppDocument,
        backend_handler: Callable[[httpx.Request], httpx.Response],
    ) -> None:
        bodies: list[dict[str, object]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/orders" and request.method == "POST":
                bodies.append(json.loads(request.content))
            return backend_handler(request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await submit_form(
                sample_document,
                client,
                ActionStatusBoard(clock=_Clock()),
                "u",
                "orders",
                "new-order",
                {"item": "Widget", "quantity": "2", "rogue": "dropped"},
            )
        assert result.kind == "submit"
        assert result.status == "success"
        assert bodies == [{"item": "Widget", "quantity": "2"}]

    async def test_failed_submission(self, sample_document: AppDocument) -> None:
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(500))
        ) as client:
            result = await submit_form(
                sample_document,
                client,
                ActionStatusBoard(clock=_Clock()),
                "u",
                "orders",
                "new-order",
                {},
            )
        assert result.status == "error"
        assert result.status_code == 500

    def test_collect_form_container_coerces_kinds(self) -> None:
        container = node(
            "fc",
            "form_container",
            children=[
                node("a", "form_checkbox", props={"name": "vip"}),
                node("b", "form_multi_checkbox", props={"name": "tags"}),
                node("c", "form_text", props={"name": "note", "defaultValue": "hi"}),
            ],
        )
        aggregator = collect_form(container, None, {"vip": "on", "tags": "red"})
        assert aggregator.values() == {"vip": True, "tags": ["red"], "note": "hi"}

    def test_collect_form_container_keeps_unnamed_fields_apart(self) -> None:
        first = new_component("form_text")
        second = new_component("form_text")
        container = node("fc", "form_container", children=[first, second])
        first_name = f"field_{first.id.removeprefix('comp-')}"
        second_name = f"field_{second.id.removeprefix('comp-')}"

        aggregator = collect_form(container, None, {first_name: "x", second_name: "y"})
        assert aggregator.values() == {first_name: "x", second_name: "y"}
