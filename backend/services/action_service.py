"""Runtime actions on published pages: buttons, table row actions, form submissions."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import TYPE_CHECKING, Any

from backend.exceptions import NotFoundError
from backend.schemas.runtime import ActionResult
from backend.services.api_binding_service import acquire_auth_token, build_request, send
from backend.services.component_tree import find
from backend.services.form_service import (
    FormAggregator,
    coerce_submitted_value,
    container_fields,
    field_kind,
    field_name,
    form_fields,
    manual_default,
)
from backend.services.placeholder_service import stringify_row
from backend.services.render_service import button_action, nav_params, row_actions
from backend.services.route_service import build_page_path, match_route

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    import httpx

    from backend.schemas.app import ApiDefinition, AppDocument, ComponentNode
    from backend.schemas.runtime import ActionKind, ActionStatus
    from backend.services.api_binding_service import OutboundRequest
    from backend.services.route_service import RouteMatch

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_SECONDS = 3.0


class ActionStatusTracker:
    """Transient status of one action: idle -> loading -> success/error -> idle.

    Every :meth:`begin` starts a new generation. :meth:`finish` only applies to
    the latest generation, so a slow response from an earlier click never
    overwrites the state of a newer one. Success and error revert to idle once
    ``display_seconds`` have passed.
    """

    def __init__(
        self,
        display_seconds: float = DEFAULT_DISPLAY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._display_seconds = display_seconds
        self._clock = clock
        self._generation = 0
        self._status: ActionStatus = "idle"
        self._finished_at: float | None = None

    @property
    def generation(self) -> int:
        return self._generation

    def begin(self) -> int:
        self._generation += 1
        self._status = "loading"
        self._finished_at = None
        return self._generation

    def finish(self, generation: int, ok: bool) -> bool:
        """Record the outcome of *generation*; returns False if it was stale."""
        if generation != self._generation:
            logger.debug(
                "Ignoring stale action result (generation %d, latest %d)",
                generation,
                self._generation,
            )
            return False
        self._status = "success" if ok else "error"
        self._finished_at = self._clock()
        return True

    def current(self) -> ActionStatus:
        if (
            self._status in ("success", "error")
            and self._finished_at is not None
            and self._clock() - self._finished_at >= self._display_seconds
        ):
            self._status = "idle"
            self._finished_at = None
        return self._status


class ActionStatusBoard:
    """Action trackers keyed by viewer, page, component and action.

    Safe under asyncio's single-threaded model: lookups and inserts have no
    await points. The least recently used trackers are dropped past
    ``max_entries``.
    """

    def __init__(
        self,
        display_seconds: float = DEFAULT_DISPLAY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 4096,
    ) -> None:
        self._display_seconds = display_seconds
        self._clock = clock
        self._max_entries = max_entries
        self._trackers: OrderedDict[str, ActionStatusTracker] = OrderedDict()

    @staticmethod
    def key(viewer: str, page_id: str, component_id: str, action_id: str | None = None) -> str:
        parts = [viewer, page_id, component_id]
        if action_id:
            parts.append(action_id)
        return ":".join(parts)

    def tracker(self, key: str) -> ActionStatusTracker:
        tracker = self._trackers.get(key)
        if tracker is None:
            tracker = ActionStatusTracker(self._display_seconds, self._clock)
            self._trackers[key] = tracker
            while len(self._trackers) > self._max_entries:
                self._trackers.popitem(last=False)
        else:
            self._trackers.move_to_end(key)
        return tracker

    def status(self, key: str) -> ActionStatus:
        tracker = self._trackers.get(key)
        return tracker.current() if tracker is not None else "idle"

    def lookup_for(self, viewer: str, page_id: str) -> Callable[[str], str]:
        """Status lookup by ``component_id`` or ``component_id:action_id`` for a renderer."""
        prefix = f"{viewer}:{page_id}:"
        return lambda suffix: self.status(prefix + suffix)


def locate_component(
    document: AppDocument, path: str, component_id: str, expected: set[str]
) -> tuple[RouteMatch, ComponentNode]:
    """Find the published page for *path* and the component on it.

    Raises NotFoundError for an unknown path or component and ValueError when
    the component is not of an *expected* type.
    """
    route = match_route(document.pages, path)
    if route is None:
        raise NotFoundError(f"No page matches '{path}'")
    node = find(route.page.components, component_id)
    if node is None:
        raise NotFoundError(f"Component '{component_id}' not found on page '{route.page.name}'")
    if node.type not in expected:
        wanted = " or ".join(sorted(expected))
        msg = f"Component '{component_id}' is a {node.type}, expected {wanted}"
        raise ValueError(msg)
    return route, node


async def _run_request(
    client: httpx.AsyncClient,
    document: AppDocument,
    board: ActionStatusBoard,
    key: str,
    kind: ActionKind,
    build: Callable[[str | None], OutboundRequest],
) -> ActionResult:
    tracker = board.tracker(key)
    generation = tracker.begin()
    token = await acquire_auth_token(client, document.apis)
    result = await send(client, build(token))
    tracker.finish(generation, result.ok)
    return ActionResult(
        kind=kind,
        status="success" if result.ok else "error",
        status_code=result.status_code,
        error=result.error,
        data=result.data if result.is_json else None,
    )


def _navigate(
    document: AppDocument, target_page_id: object, raw_nav: object, params: Mapping[str, str]
) -> ActionResult:
    target = document.find_page(str(target_page_id)) if target_page_id else None
    if target is None:
        return ActionResult(kind="navigate", status="error", error="No target page")
    href = build_page_path(target, nav_params(raw_nav), params)
    return ActionResult(kind="navigate", status="success", href=href)


def _not_connected(kind: ActionKind) -> ActionResult:
    return ActionResult(kind=kind, status="error", error="No API connected")


async def run_button(
    document: AppDocument,
    client: httpx.AsyncClient,
    board: ActionStatusBoard,
    viewer: str,
    path: str,
    component_id: str,
) -> ActionResult:
    """Execute a button's configured action."""
    route, node = locate_component(document, path, component_id, {"button"})
    action = button_action(node)
    if action == "back":
        return ActionResult(kind="back", status="success")
    if action == "navigate":
        return _navigate(
            document, node.props.get("targetPageId"), node.props.get("navParams"), route.params
        )
    if action != "api":
        raise ValueError(f"Unknown button action '{action}'")

    api = document.find_api(node.api_id)
    if api is None:
        return _not_connected("api")
    key = board.key(viewer, route.page.id, node.id)
    logger.info("Button %s on page %s calls API %s", node.id, route.page.name, api.name)
    return await _run_request(
        client,
        document,
        board,
        key,
        "api",
        lambda token: build_request(api, route.params, token),
    )


async def run_row_action(
    document: AppDocument,
    client: httpx.AsyncClient,
    board: ActionStatusBoard,
    viewer: str,
    path: str,
    component_id: str,
    action_id: str,
    row: Mapping[str, Any],
) -> ActionResult:
    """Execute a table row action with the row's fields merged into the parameters."""
    route, node = locate_component(document, path, component_id, {"table"})
    action = next((a for a in row_actions(node) if str(a["id"]) == action_id), None)
    if action is None:
        raise NotFoundError(f"Row action '{action_id}' not found on table '{component_id}'")

    params = {**route.params, **stringify_row(row)}
    kind = str(action.get("action") or "navigate")
    if kind == "navigate":
        return _navigate(document, action.get("targetPageId"), action.get("navParams"), params)
    if kind != "api":
        raise ValueError(f"Unknown row action '{kind}'")

    api = document.find_api(action.get("apiId"))
    if api is None:
        return _not_connected("api")
    key = board.key(viewer, route.page.id, node.id, action_id)
    return await _run_request(
        client,
        document,
        board,
        key,
        "api",
        lambda token: build_request(api, params, token),
    )


def collect_form(
    node: ComponentNode, api: ApiDefinition | None, submitted: Mapping[str, Any]
) -> FormAggregator:
    """Rebuild the aggregator of a form and apply the submitted values."""
    aggregator = FormAggregator()
    kinds: dict[str, str] = {}
    if node.type == "form":
        for field_def in form_fields(node, api):
            aggregator.register(field_def["name"], "")
            kinds[field_def["name"]] = str(field_def["type"])
    else:
        for field_node in container_fields(node):
            name = field_name(field_node)
            aggregator.register(name, manual_default(field_node))
            kinds.setdefault(name, field_kind(field_node))

    aggregator.update(
        {name: coerce_submitted_value(kinds.get(name, "text"), v) for name, v in submitted.items()}
    )
    return aggregator


async def submit_form(
    document: AppDocument,
    client: httpx.AsyncClient,
    board: ActionStatusBoard,
    viewer: str,
    path: str,
    component_id: str,
    values: Mapping[str, Any],
) -> ActionResult:
    """Submit a ``form`` or ``form_container`` as one request to its API."""
    route, node = locate_component(document, path, component_id, {"form", "form_container"})
    api: ApiDefinition | None = document.find_api(node.api_id)
    if api is None:
        return _not_connected("submit")

    aggregator = collect_form(node, api, values)

    key = board.key(viewer, route.page.id, node.id)
    logger.info("Submitting %s on page %s to API %s", node.id, route.page.name, api.name)
    return await _run_request(
        client,
        document,
        board,
        key,
        "submit",
        lambda token: aggregator.build_submission(api, route.params, token),
    )

