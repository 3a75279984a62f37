"""Placeholder substitution for request templates and navigation parameters."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping


def resolve(template: str, params: Mapping[str, str] | None) -> str:
    """Replace ``:key`` and ``%key%`` tokens in *template* with values from *params*.

    Keys are applied in insertion order. ``:key`` only matches when it is not
    followed by another word character, so ``:id`` leaves ``:idx`` alone.
    Unknown tokens are left untouched.
    """
    if not template or not params:
        return template

    result = template
    for key, value in params.items():
        if not key:
            continue
        replacement = str(value)
        escaped = re.escape(key)
        result = re.sub(rf":{escaped}(?!\w)", lambda _m, r=replacement: r, result)
        result = result.replace(f"%{key}%", replacement)
    return result


def stringify_row(row: Mapping[str, object]) -> dict[str, str]:
    """Convert a table record into a parameter map, dropping null values."""
    params: dict[str, str] = {}
    for key, value in row.items():
        if value is None:
            continue
        params[str(key)] = stringify_value(value)
    return params


def stringify_value(value: object) -> str:
    """Render a JSON value the way it is interpolated into templates."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict):
        return json.dumps(value)
    if isinstance(value, (list, tuple)):
        return ",".join(stringify_value(v) for v in value)
    return str(value)
