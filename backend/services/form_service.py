"""Form state aggregation and field derivation."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from backend.schemas.app import FORM_FIELD_TYPES
from backend.services.api_binding_service import FileValue, build_request

if TYPE_CHECKING:
    from collections.abc import Mapping

    from backend.schemas.app import ApiDefinition, ComponentNode
    from backend.services.api_binding_service import OutboundRequest

logger = logging.getLogger(__name__)


class FormAggregator:
    """Field values collected by one ``form`` or ``form_container`` subtree.

    Each descendant field registers itself once with its default; later
    registrations of the same name keep the first value.
    """

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def register(self, name: str, default: Any = None) -> None:
        if name in self._values:
            return
        self._values[name] = default if default is not None else ""

    def set_value(self, name: str, value: Any) -> None:
        self._values[name] = value

    def values(self) -> dict[str, Any]:
        return dict(self._values)

    def names(self) -> list[str]:
        return list(self._values)

    def has_file(self) -> bool:
        return any(isinstance(v, FileValue) for v in self._values.values())

    def update(self, submitted: Mapping[str, Any]) -> None:
        """Apply submitted values for registered fields; unknown names are ignored."""
        for name, value in submitted.items():
            if name in self._values:
                self._values[name] = value

    def build_submission(
        self,
        api: ApiDefinition,
        params: Mapping[str, str] | None = None,
        auth_token: str | None = None,
    ) -> OutboundRequest:
        """Build the single request covering every collected value."""
        return build_request(api, params, auth_token, values=self.values())


def split_options(raw: object) -> list[str]:
    """Normalize field options given as a list or a comma-separated string."""
    if isinstance(raw, list):
        return [str(opt).strip() for opt in raw if str(opt).strip()]
    if isinstance(raw, str):
        return [opt.strip() for opt in raw.split(",") if opt.strip()]
    return []


def field_name(node: ComponentNode) -> str:
    """Name under which a ``form_*`` node submits its value."""
    name = node.props.get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return f"field_{node.id.removeprefix('comp-')}"


def field_kind(node: ComponentNode) -> str:
    """Input kind of a ``form_*`` node (``text``, ``checkbox``, ...)."""
    return node.type.removeprefix("form_")


def manual_default(node: ComponentNode) -> Any:
    """Default value of a field, ignoring API-sourced defaults."""
    if node.props.get("defaultValueSource", "manual") == "manual":
        return node.props.get("defaultValue")
    return None


def api_body_fields(api: ApiDefinition | None) -> list[str]:
    """Top-level keys of the API's JSON body template, in template order."""
    if api is None or not api.body:
        return []
    try:
        template = json.loads(api.body)
    except ValueError:
        logger.warning("Body template of API '%s' is not valid JSON", api.name)
        return []
    if not isinstance(template, dict):
        return []
    return [str(key) for key in template]


def form_fields(node: ComponentNode, api: ApiDefinition | None) -> list[dict[str, Any]]:
    """Field descriptors of a single ``form`` component.

    The names come from ``customFields`` when set, otherwise from the API
    body template. Per-field config lives in ``props.fields``.
    """
    custom = node.props.get("customFields")
    if isinstance(custom, str):
        names = split_options(custom)
    elif isinstance(custom, list) and custom:
        names = [str(name) for name in custom]
    else:
        names = api_body_fields(api)

    configs = node.props.get("fields") or {}
    fields: list[dict[str, Any]] = []
    for name in names:
        config = configs.get(name) if isinstance(configs, dict) else None
        config = config if isinstance(config, dict) else {}
        fields.append(
            {
                "name": name,
                "type": config.get("type", "text"),
                "options": split_options(config.get("options")),
            }
        )
    return fields


def coerce_submitted_value(kind: str, value: Any) -> Any:
    """Convert a submitted raw value to the shape the field kind holds."""
    if kind == "checkbox":
        if isinstance(value, str):
            return value.lower() in {"true", "on", "1", "yes"}
        return bool(value)
    if kind == "multi_checkbox":
        if isinstance(value, list):
            return [str(v) for v in value]
        if value in (None, ""):
            return []
        return [str(value)]
    return value


def container_fields(node: ComponentNode) -> list[ComponentNode]:
    """``form_*`` descendants that register with *node*'s aggregator.

    Fields inside a nested ``form_container`` belong to that container.
    """
    fields: list[ComponentNode] = []
    for child in node.children or []:
        if child.type in FORM_FIELD_TYPES:
            fields.append(child)
        elif child.type != "form_container":
            fields.extend(container_fields(child))
    return fields
