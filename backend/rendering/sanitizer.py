"""Allowlist sanitizer for operator-supplied iframe embed markup."""

from __future__ import annotations

import html
import logging
from html.parser import HTMLParser
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

EMBED_SANDBOX = "allow-scripts allow-forms allow-popups allow-presentation"

_ALLOWED_TAGS: frozenset[str] = frozenset({"iframe"})
_ALLOWED_ATTRS: frozenset[str] = frozenset(
    {
        "src",
        "width",
        "height",
        "title",
        "allow",
        "allowfullscreen",
        "frameborder",
        "loading",
        "referrerpolicy",
        "name",
        "style",
    }
)
_BOOLEAN_ATTRS: frozenset[str] = frozenset({"allowfullscreen"})


def is_http_url(url_value: str) -> bool:
    """Return True for absolute http(s) URLs."""
    value = url_value.strip()
    if not value or value.startswith("//"):
        return False
    parsed = urlparse(value)
    return parsed.scheme.lower() in {"http", "https"} and bool(parsed.netloc)


class _EmbedSanitizer(HTMLParser):
    """Keep ``<iframe>`` elements with safe attributes; drop everything else."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._parts: list[str] = []
        self._open_iframes = 0
        self.dropped: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        tag_name = tag.lower()
        if tag_name not in _ALLOWED_TAGS:
            self.dropped.append(tag_name)
            return
        rendered = self._sanitize_attrs(attrs)
        if rendered is None:
            self.dropped.append(tag_name)
            return
        self._parts.append(f"<iframe{rendered}>")
        self._open_iframes += 1

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        opened = self._open_iframes
        self.handle_starttag(tag, attrs)
        if self._open_iframes > opened:
            self.handle_endtag(tag)

    def handle_endtag(self, tag: str) -> None:
        if tag.lower() in _ALLOWED_TAGS and self._open_iframes:
            self._open_iframes -= 1
            self._parts.append("</iframe>")

    def close(self) -> None:
        super().close()
        while self._open_iframes:
            self._open_iframes -= 1
            self._parts.append("</iframe>")

    def get_sanitized_html(self) -> str:
        return "".join(self._parts)

    def _sanitize_attrs(self, attrs: list[tuple[str, str | None]]) -> str | None:
        """Render allowed attributes; None when the frame has no usable ``src``."""
        parts: list[str] = []
        has_src = False
        for raw_name, raw_value in attrs:
            name = raw_name.lower()
            if name not in _ALLOWED_ATTRS:
                continue
            if name in _BOOLEAN_ATTRS:
                parts.append(f" {name}")
                continue
            if raw_value is None:
                continue
            value = raw_value.strip()
            if name == "src":
                if has_src or not is_http_url(value):
                    continue
                has_src = True
            if name == "style" and ("url(" in value.lower() or "expression" in value.lower()):
                continue
            parts.append(f' {name}="{html.escape(value, quote=True)}"')
        if not has_src:
            return None
        parts.append(f' sandbox="{EMBED_SANDBOX}"')
        return "".join(parts)


def sanitize_embed(markup: str) -> str:
    """Reduce embed markup to sandboxed iframes with http(s) sources.

    Returns an empty string when nothing embeddable survives.
    """
    sanitizer = _EmbedSanitizer()
    sanitizer.feed(markup)
    sanitizer.close()
    if sanitizer.dropped:
        logger.debug("Dropped embed elements: %s", ", ".join(sorted(set(sanitizer.dropped))))
    return sanitizer.get_sanitized_html()
