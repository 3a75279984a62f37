"""HTML serialisation of rendered pages, the design preview and login forms."""

from __future__ import annotations

import html
import json
from typing import TYPE_CHECKING, Any

from backend.rendering.sanitizer import is_http_url
from backend.schemas.app import CONTAINER_TYPES

if TYPE_CHECKING:
    from collections.abc import Sequence

    from backend.schemas.runtime import PageRender, RenderedNode, SidebarView

_STYLE = """
body { margin: 0; font-family: -apple-system, BlinkMacSystemFont, sans-serif; }
body.dark { background: #111827; color: #f3f4f6; }
.shell { display: flex; min-height: 100vh; }
aside { width: 16rem; border-right: 1px solid #e5e7eb; padding: 1rem; }
main { flex: 1; padding: 1.5rem; }
.columns { display: grid; gap: 1rem; }
.columns-2 { grid-template-columns: repeat(2, 1fr); }
.columns-3 { grid-template-columns: repeat(3, 1fr); }
.notice { padding: .5rem; border: 1px dashed #9ca3af; color: #6b7280; }
.notice-error { border-color: #ef4444; color: #b91c1c; }
.selectable { outline: 1px dashed #d1d5db; }
.selected { outline: 2px solid #3b82f6; }
a.active { font-weight: 600; }
form.action { display: inline; }
.status-success { color: #15803d; }
.status-error { color: #b91c1c; }
"""

_STATUS_LABELS = {"success": "Done", "error": "Failed"}


def _e(value: object) -> str:
    return html.escape(str(value), quote=True)


def _safe_src(value: object) -> str | None:
    text = str(value).strip()
    if text.startswith("/") and not text.startswith("//"):
        return text
    return text if is_http_url(text) else None


def _attrs(**attrs: Any) -> str:
    parts: list[str] = []
    for name, value in attrs.items():
        if value is None or value is False:
            continue
        attr = name.rstrip("_").replace("_", "-")
        parts.append(f" {attr}" if value is True else f' {attr}="{_e(value)}"')
    return "".join(parts)


def _notice(node: RenderedNode) -> str:
    if node.state in ("ok", "empty") and not node.message:
        return ""
    return f'<div class="notice notice-{_e(node.state)}">{_e(node.message or "")}</div>'


def _status_badge(status: object) -> str:
    label = _STATUS_LABELS.get(str(status))
    return f'<span class="status status-{_e(status)}">{label}</span>' if label else ""


def _action_form(page_path: str, fields: dict[str, str], control: str) -> str:
    """POST form running an action on the page at *page_path*; the page redirects back."""
    hidden = "".join(
        f"<input{_attrs(type='hidden', name=name, value=value)}>" for name, value in fields.items()
    )
    attrs = _attrs(method="post", action=page_path, class_="action")
    return f"<form{attrs}>{hidden}{control}</form>"


def _children(node: RenderedNode, design: bool, page_path: str | None) -> str:
    return "".join(
        render_node(child, design=design, page_path=page_path) for child in node.children
    )


def _render_table(node: RenderedNode, page_path: str | None) -> str:
    columns: list[str] = node.data.get("columns", [])
    rows: list[dict[str, Any]] = node.data.get("rows", [])
    has_actions = any(row["actions"] for row in rows)
    head = "".join(f"<th>{_e(c)}</th>" for c in columns)
    if has_actions:
        head += "<th>Actions</th>"
    body: list[str] = []
    for row in rows:
        cells = "".join(f"<td>{_e(row['cells'].get(c, ''))}</td>" for c in columns)
        if has_actions:
            actions = "".join(_row_action(node, row, a, page_path) for a in row["actions"])
            cells += f"<td>{actions}</td>"
        body.append(f"<tr>{cells}</tr>")
    return f"<table><thead><tr>{head}</tr></thead><tbody>{''.join(body)}</tbody></table>"


def _row_action(
    node: RenderedNode, row: dict[str, Any], action: dict[str, Any], page_path: str | None
) -> str:
    css = f"btn btn-{action['variant']}"
    if action["action"] == "navigate":
        href = action.get("href") or "#"
        return f"<a{_attrs(class_=css, href=href)}>{_e(action['label'])}</a>"
    attrs = _attrs(
        type="button" if page_path is None else "submit",
        class_=css,
        data_component_id=node.id,
        data_action_id=action["id"],
        data_row_index=row["index"],
        data_status=action.get("status"),
        disabled=not action.get("connected", False),
    )
    control = f"<button{attrs}>{_e(action['label'])}</button>{_status_badge(action.get('status'))}"
    if page_path is None:
        return control
    fields = {
        "_action": "row-action",
        "component_id": node.id,
        "_action_id": str(action["id"]),
        "_row": json.dumps(row.get("record", {}), default=str),
    }
    return _action_form(page_path, fields, control)


def _render_detail(node: RenderedNode) -> str:
    data = node.data
    if data.get("mode") == "single":
        if "items" in data:
            items = "".join(f"<li>{_e(item)}</li>" for item in data["items"])
            return f"<h4>{_e(data['label'])}</h4><ul>{items}</ul>"
        return f"<dl><dt>{_e(data['label'])}</dt><dd>{_e(data.get('value', ''))}</dd></dl>"
    fields = "".join(
        f"<dt>{_e(f['key'])}</dt><dd>{_e(f['value'])}</dd>" for f in data.get("fields", [])
    )
    return f"<dl>{fields}</dl>"


def _field_input(name: str, kind: str, value: Any, options: Sequence[str], required: bool) -> str:
    if kind in ("text", "password"):
        return f"<input{_attrs(type=kind, name=name, value=value or '', required=required)}>"
    if kind == "checkbox":
        checked = value is True or str(value).lower() == "true"
        return f"<input{_attrs(type='checkbox', name=name, value='true', checked=checked)}>"
    if kind == "file":
        return f"<input{_attrs(type='file', name=name, required=required)}>"
    if kind == "select":
        opts = "".join(
            f"<option{_attrs(value=o, selected=o == value)}>{_e(o)}</option>" for o in options
        )
        return f"<select{_attrs(name=name, required=required)}>{opts}</select>"
    selected = set(value) if isinstance(value, list) else {str(value)}
    input_type = "radio" if kind == "radio" else "checkbox"
    return "".join(
        f"<label><input{_attrs(type=input_type, name=name, value=o, checked=o in selected)}>"
        f" {_e(o)}</label>"
        for o in options
    )


def _render_field(node: RenderedNode) -> str:
    data = node.data
    label = node.label or data["name"]
    control = _field_input(
        data["name"], data["kind"], data.get("value"), data.get("options", []), data["required"]
    )
    return f'<div class="field"><label>{_e(label)}</label>{control}</div>'


def _submit_form(node: RenderedNode, page_path: str | None, inner: str) -> str:
    disabled = not node.data.get("submit_enabled", False)
    hidden = (
        f"<input{_attrs(type='hidden', name='_action', value='submit')}>"
        f"<input{_attrs(type='hidden', name='component_id', value=node.id)}>"
        if page_path is not None
        else ""
    )
    button = f"<button{_attrs(type='submit', disabled=disabled)}>"
    button += f"{_e(node.data.get('submit_text', 'Submit'))}</button>"
    button += _status_badge(node.data.get("status"))
    attrs = _attrs(
        method="post",
        action=page_path,
        enctype="multipart/form-data",
        data_status=node.data.get("status"),
    )
    return f"<form{attrs}>{hidden}{inner}{button}</form>"


def _render_form(node: RenderedNode, page_path: str | None) -> str:
    values = node.data.get("values", {})
    inner = "".join(
        '<div class="field">'
        f"<label>{_e(f['name'])}</label>"
        f"{_field_input(f['name'], f['type'], values.get(f['name'], ''), f['options'], False)}"
        "</div>"
        for f in node.data.get("fields", [])
    )
    return _submit_form(node, page_path, inner)


def _render_layout(node: RenderedNode, design: bool, page_path: str | None) -> str:
    by_id = {child.id: child for child in node.children}
    columns: list[list[str]] = node.data.get("columns", [])
    cols = "".join(
        '<div class="column">'
        + "".join(render_node(by_id[cid], design=design, page_path=page_path) for cid in column)
        + "</div>"
        for column in columns
    )
    return f'<div class="columns columns-{len(columns)}">{cols}</div>'


def _render_button(node: RenderedNode, page_path: str | None) -> str:
    data = node.data
    action = data["action"]
    css = f"btn btn-{data.get('variant', 'primary')}"
    if action == "navigate" and data.get("href"):
        return f"<a{_attrs(class_=css, href=data['href'])}>{_e(data['text'])}</a>"
    live = page_path is not None
    attrs = _attrs(
        type="submit" if live and action == "api" else "button",
        class_=css,
        data_action=action,
        data_component_id=node.id,
        data_status=data.get("status"),
        onclick="history.back()" if live and action == "back" else None,
        disabled=node.state != "ok",
    )
    control = f"<button{attrs}>{_e(data['text'])}</button>{_status_badge(data.get('status'))}"
    if page_path is None or action != "api":
        return control
    return _action_form(page_path, {"_action": "button", "component_id": node.id}, control)


def _render_frame(url: str, height: str, title: str) -> str:
    src = _safe_src(url)
    if src is None:
        return '<div class="notice notice-error">Unsupported URL</div>'
    attrs = _attrs(src=src, title=title, width="100%", height=height, style="border: 0")
    return f"<iframe{attrs}></iframe>"


def _render_body(node: RenderedNode, design: bool, page_path: str | None) -> str:
    data = node.data
    kind = node.type
    if node.state not in ("ok", "not_connected") and kind not in CONTAINER_TYPES:
        return ""
    if node.state == "not_connected" and kind in ("table", "detail"):
        return ""
    if kind == "table":
        return _render_table(node, page_path)
    if kind == "detail":
        return _render_detail(node)
    if kind == "form":
        return _render_form(node, page_path)
    if kind == "form_container":
        return _submit_form(node, page_path, _children(node, design, page_path))
    if kind == "container":
        return f'<div class="container">{_children(node, design, page_path)}</div>'
    if kind in ("layout_2col", "layout_3col"):
        return _render_layout(node, design, page_path)
    if kind == "button":
        return _render_button(node, page_path)
    if kind == "text":
        return f'<div class="text">{_e(data.get("content", ""))}</div>'
    if kind == "image":
        src = _safe_src(data.get("src", ""))
        return f"<img{_attrs(src=src, alt=data.get('alt'))}>" if src else ""
    if kind == "pdf":
        return _render_frame(data["url"], data["height"], data["title"])
    if kind == "iframe":
        if data.get("mode") == "embed":
            return f'<div class="embed">{data["markup"]}</div>'
        return _render_frame(data["url"], data["height"], data["title"])
    if kind.startswith("form_"):
        return _render_field(node)
    return ""


def render_node(node: RenderedNode, *, design: bool = False, page_path: str | None = None) -> str:
    """Serialise one rendered node (and its children) to HTML."""
    body = _render_body(node, design, page_path)
    classes = ["component", f"component-{node.type}"]
    if node.selectable:
        classes.append("selectable")
    if node.selected:
        classes.append("selected")
    attrs = _attrs(
        class_=" ".join(classes),
        data_component_id=node.id if design or node.type in ("button", "table") else None,
    )
    return f"<div{attrs}>{_notice(node)}{body}</div>"


def _sidebar(sidebar: SidebarView, username: str | None) -> str:
    icon = ""
    if sidebar.app_icon and _safe_src(sidebar.app_icon):
        icon = f"<img{_attrs(src=_safe_src(sidebar.app_icon), alt='App icon', width=28)}>"
    parts = [f"<header>{icon}<h1>{_e(sidebar.app_title or '')}</h1></header><nav>"]
    if not sidebar.sections:
        parts.append("<p>No accessible sections</p>")
    for section in sidebar.sections:
        if section.href is not None:
            link_attrs = _attrs(href=section.href, class_="active" if section.active else None)
            parts.append(f"<a{link_attrs}>{_e(section.label)}</a>")
            continue
        links = "".join(
            f"<li><a{_attrs(href=link.href, class_='active' if link.active else None)}>"
            f"{_e(link.label)}</a></li>"
            for link in section.links
        )
        parts.append(f"<section><h2>{_e(section.label)}</h2><ul>{links}</ul></section>")
    parts.append("</nav>")
    if username:
        parts.append(
            f'<footer><span>{_e(username)}</span><form method="post" action="/logout">'
            '<button type="submit">Logout</button></form></footer>'
        )
    return "<aside>" + "".join(parts) + "</aside>"


def _document(title: str, body: str, theme: str = "light") -> str:
    return (
        "<!DOCTYPE html>"
        '<html lang="en"><head><meta charset="utf-8">'
        '<meta name="viewport" content="width=device-width, initial-scale=1">'
        f"<title>{_e(title)}</title><style>{_STYLE}</style></head>"
        f"<body{_attrs(class_=theme)}>{body}</body></html>"
    )


def render_published_page(
    render: PageRender | None,
    sidebar: SidebarView,
    *,
    path: str,
    username: str | None = None,
) -> str:
    """Full HTML document for a published route; ``None`` renders the home page."""
    if render is None:
        content = f"<h2>{_e(sidebar.app_title or '')}</h2><p>Select a page from the sidebar.</p>"
        title = sidebar.app_title or ""
    else:
        nodes = "".join(render_node(n, page_path=path) for n in render.components)
        content = f"<h2>{_e(render.name)}</h2>{nodes}"
        title = f"{render.name} | {sidebar.app_title}"
    body = f'<div class="shell">{_sidebar(sidebar, username)}<main>{content}</main></div>'
    return _document(title, body, sidebar.theme)


def render_design_preview(render: PageRender) -> str:
    """HTML document for the editor canvas: design mode, every node marked."""
    nodes = "".join(render_node(n, design=True) for n in render.components)
    if not nodes:
        nodes = '<div class="notice">Drag components here</div>'
    body = f'<main class="canvas" data-page-id="{_e(render.page_id)}">{nodes}</main>'
    return _document(f"Design: {render.name}", body)


def render_not_found(sidebar: SidebarView, path: str, username: str | None = None) -> str:
    content = f"<h2>Page not found</h2><p>No page is published at {_e('/' + path)}.</p>"
    body = f'<div class="shell">{_sidebar(sidebar, username)}<main>{content}</main></div>'
    return _document("Page not found", body, sidebar.theme)


def render_login_page(action: str, heading: str, error: str | None = None) -> str:
    """Login form posting ``username`` and ``password`` to *action*."""
    message = f'<p class="notice notice-error">{_e(error)}</p>' if error else ""
    form = (
        f'<form method="post"{_attrs(action=action)}>'
        '<label>Username <input name="username" autocomplete="username" required></label>'
        '<label>Password <input type="password" name="password"'
        ' autocomplete="current-password" required></label>'
        '<button type="submit">Sign in</button></form>'
    )
    return _document(heading, f"<main><h2>{_e(heading)}</h2>{message}{form}</main>")
