"""Outbound API binding: build requests from API definitions and execute them."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from backend.schemas.app import MUTATING_METHODS
from backend.services.placeholder_service import resolve, stringify_value

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from backend.schemas.app import ApiDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileValue:
    """Uploaded file data held by a form field."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass
class OutboundRequest:
    """A fully resolved HTTP request ready to send.

    At most one of ``content`` (JSON text) or ``data``/``files`` (multipart)
    is set, and only for POST/PUT/PATCH.
    """

    url: str
    method: str
    headers: dict[str, str] = field(default_factory=dict)
    content: str | None = None
    data: dict[str, str] | None = None
    files: list[tuple[str, tuple[str, bytes, str]]] | None = None
    query: dict[str, str] | None = None

    @property
    def has_body(self) -> bool:
        return self.content is not None or bool(self.data) or bool(self.files)


@dataclass
class ApiCallResult:
    """Outcome of an outbound call. Failures are values, never exceptions."""

    ok: bool
    status_code: int | None = None
    data: Any = None
    is_json: bool = False
    error: str | None = None


def _set_header(headers: dict[str, str], name: str, value: str) -> None:
    for existing in [k for k in headers if k.lower() == name.lower()]:
        del headers[existing]
    headers[name] = value


def _drop_header(headers: dict[str, str], name: str) -> None:
    for existing in [k for k in headers if k.lower() == name.lower()]:
        del headers[existing]


def has_file_values(values: Mapping[str, Any]) -> bool:
    """Return True if any form value carries file data."""
    return any(isinstance(v, FileValue) for v in values.values())


def encode_multipart(
    values: Mapping[str, Any],
) -> tuple[dict[str, str], list[tuple[str, tuple[str, bytes, str]]]]:
    """Split form values into multipart text fields and file parts."""
    data: dict[str, str] = {}
    files: list[tuple[str, tuple[str, bytes, str]]] = []
    for name, value in values.items():
        if isinstance(value, FileValue):
            files.append((name, (value.filename, value.content, value.content_type)))
        elif value is None:
            data[name] = ""
        else:
            data[name] = stringify_value(value)
    return data, files


def build_request(
    api: ApiDefinition,
    params: Mapping[str, str] | None = None,
    auth_token: str | None = None,
    values: Mapping[str, Any] | None = None,
) -> OutboundRequest:
    """Resolve *api* against *params* into an :class:`OutboundRequest`.

    ``values`` carries collected form fields. For mutating methods they become
    a JSON body, or a multipart body (without an explicit ``Content-Type``)
    when any of them is a :class:`FileValue`. Without values, the API's body
    template is interpolated instead. GET and DELETE never carry a body; form
    values are sent as query parameters there.
    """
    headers = {h.key: resolve(h.value, params) for h in api.headers if h.key}
    request = OutboundRequest(url=resolve(api.url, params), method=api.method, headers=headers)

    if api.method in MUTATING_METHODS:
        if values is not None:
            if has_file_values(values):
                _drop_header(headers, "Content-Type")
                request.data, request.files = encode_multipart(values)
            else:
                _set_header(headers, "Content-Type", "application/json")
                request.content = json.dumps(dict(values))
        elif api.body:
            _set_header(headers, "Content-Type", "application/json")
            request.content = resolve(api.body, params)
    elif values:
        request.query = {
            name: stringify_value(value)
            for name, value in values.items()
            if value is not None and not isinstance(value, FileValue)
        }

    if auth_token:
        _set_header(headers, "Authorization", f"Bearer {auth_token}")
    return request


async def send(client: httpx.AsyncClient, request: OutboundRequest) -> ApiCallResult:
    """Execute *request*; transport errors and non-2xx statuses become failed results."""
    try:
        response = await client.request(
            request.method,
            request.url,
            headers=request.headers,
            content=request.content,
            data=request.data or None,
            files=request.files or None,
            params=request.query or None,
        )
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.warning("%s %s failed: %s", request.method, request.url, exc)
        return ApiCallResult(ok=False, error=f"Request failed: {exc}")

    try:
        data = response.json()
        is_json = True
    except ValueError:
        data = None
        is_json = False

    if not response.is_success:
        logger.warning(
            "%s %s returned HTTP %d", request.method, request.url, response.status_code
        )
        return ApiCallResult(
            ok=False,
            status_code=response.status_code,
            data=data,
            is_json=is_json,
            error=f"HTTP {response.status_code}",
        )
    return ApiCallResult(ok=True, status_code=response.status_code, data=data, is_json=is_json)


def get_path(data: Any, path: str | None) -> Any:
    """Walk a dot-separated path through dicts and lists; missing keys yield None."""
    if not path:
        return None
    current = data
    for key in path.split("."):
        if isinstance(current, dict):
            current = current.get(key)
        elif isinstance(current, list) and key.lstrip("-").isdigit():
            index = int(key)
            current = current[index] if -len(current) <= index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def find_auth_api(apis: Iterable[ApiDefinition]) -> ApiDefinition | None:
    """Return the API marked as the token source, if any."""
    return next((api for api in apis if api.is_auth), None)


async def acquire_auth_token(
    client: httpx.AsyncClient, apis: Iterable[ApiDefinition]
) -> str | None:
    """Fetch the page-level bearer token from the auth API.

    Any failure (no auth API, transport error, non-2xx, non-JSON, missing or
    non-string token) yields None; dependent calls then fail on their own.
    """
    auth_api = find_auth_api(apis)
    if auth_api is None:
        return None

    result = await send(client, build_request(auth_api))
    if not result.ok or not result.is_json:
        logger.warning("Auth API '%s' did not return a usable response", auth_api.name)
        return None
    if not auth_api.token_path:
        logger.warning("Auth API '%s' has no token path configured", auth_api.name)
        return None

    token = get_path(result.data, auth_api.token_path)
    if not isinstance(token, str) or not token:
        logger.warning(
            "Auth API '%s' response has no string at '%s'", auth_api.name, auth_api.token_path
        )
        return None
    return token
