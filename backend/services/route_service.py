"""Slug patterns: compile, match request paths, and build navigation paths."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING
from urllib.parse import quote

from backend.services.placeholder_service import resolve

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from backend.schemas.app import PageDefinition

_SEGMENT_PATTERN = re.compile(r"^[^/\s?#]+$")


@dataclass(frozen=True)
class CompiledSlug:
    """An anchored slug pattern and the names of its capture segments."""

    pattern: re.Pattern[str]
    param_names: tuple[str, ...]


@dataclass
class RouteMatch:
    """A page selected for a request path, with its captured parameters."""

    page: PageDefinition
    params: dict[str, str] = field(default_factory=dict)


def normalize_path(path: str) -> str:
    """Strip surrounding slashes and whitespace from a path or slug."""
    return path.strip().strip("/")


def normalize_slug(slug: str) -> str:
    """Validate and normalize a page slug as entered by an operator.

    Raises ValueError for empty segments, whitespace, or query/fragment
    characters, and for a bare ``:`` capture segment.
    """
    normalized = normalize_path(slug)
    if not normalized:
        return ""
    for segment in normalized.split("/"):
        if not _SEGMENT_PATTERN.match(segment):
            msg = f"Invalid slug segment {segment!r} in {slug!r}"
            raise ValueError(msg)
        if segment == ":":
            msg = f"Capture segment without a name in {slug!r}"
            raise ValueError(msg)
    return normalized


def is_dynamic(slug: str) -> bool:
    """Return True if any segment of *slug* is a ``:name`` capture."""
    return any(segment.startswith(":") for segment in normalize_path(slug).split("/"))


def slug_params(slug: str) -> list[str]:
    """Return the capture names of *slug* in order of appearance."""
    return [
        segment[1:] for segment in normalize_path(slug).split("/") if segment.startswith(":")
    ]


@lru_cache(maxsize=512)
def compile_slug(slug: str) -> CompiledSlug:
    """Compile a slug into an anchored regex; ``:name`` matches one path segment."""
    parts: list[str] = []
    names: list[str] = []
    normalized = normalize_path(slug)
    for segment in normalized.split("/") if normalized else []:
        if segment.startswith(":") and len(segment) > 1:
            names.append(segment[1:])
            parts.append("([^/]+)")
        else:
            parts.append(re.escape(segment))
    return CompiledSlug(pattern=re.compile("^" + "/".join(parts) + "$"), param_names=tuple(names))


def order_pages(pages: Sequence[PageDefinition]) -> list[PageDefinition]:
    """Stable order: static slugs first, then dynamic ones, each in list order."""
    return sorted(pages, key=lambda p: is_dynamic(p.slug))


def match_route(pages: Sequence[PageDefinition], path: str) -> RouteMatch | None:
    """Find the page whose slug matches *path*.

    Returns None when nothing matches; the caller renders its not-found page.
    """
    target = normalize_path(path)
    for page in order_pages(pages):
        compiled = compile_slug(page.slug)
        match = compiled.pattern.match(target)
        if match is None:
            continue
        params = dict(zip(compiled.param_names, match.groups(), strict=True))
        return RouteMatch(page=page, params=params)
    return None


def build_page_path(
    page: PageDefinition,
    nav_params: Mapping[str, str] | None = None,
    params: Mapping[str, str] | None = None,
) -> str:
    """Build the URL path for navigating to *page*.

    Each ``:key`` segment named in *nav_params* is replaced by the nav value
    with *params* substituted into it (``%id%`` -> ``42``) and percent-encoded.
    Other segments are kept as written.
    """
    nav_params = nav_params or {}
    segments: list[str] = []
    for segment in normalize_path(page.slug).split("/"):
        name = segment[1:] if segment.startswith(":") else None
        if name is not None and name in nav_params:
            segments.append(quote(resolve(str(nav_params[name]), params), safe=""))
        else:
            segments.append(segment)
    return "/" + "/".join(s for s in segments if s)
