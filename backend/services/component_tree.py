"""Persistent operations over a page's component tree.

Every operation returns a new list of nodes and leaves its input untouched.
Untouched subtrees are shared between the old and the new tree, so callers
must treat nodes as immutable values.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from backend.exceptions import NotFoundError
from backend.schemas.app import CONTAINER_TYPES, LAYOUT_COLUMNS, ComponentNode, ComponentPatch

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence


class ComponentNotFoundError(NotFoundError):
    """Raised when a component id is not present in the tree."""


class InvalidTreeOperationError(ValueError):
    """Raised for edits that would break the tree's structural rules."""


def new_component(component_type: str, label: str | None = None) -> ComponentNode:
    """Create a fresh node as dropped from the palette."""
    return ComponentNode(
        id=f"comp-{uuid.uuid4().hex[:12]}",
        type=component_type,  # type: ignore[arg-type]
        label=label if label is not None else f"New {component_type}",
        props={},
        children=[],
    )


def iter_nodes(tree: Sequence[ComponentNode]) -> Iterator[ComponentNode]:
    """Yield every node depth-first, parents before children."""
    for node in tree:
        yield node
        if node.children:
            yield from iter_nodes(node.children)


def find(tree: Sequence[ComponentNode], component_id: str) -> ComponentNode | None:
    """Return the node with *component_id*, or None."""
    for node in tree:
        if node.id == component_id:
            return node
        if node.children:
            found = find(node.children, component_id)
            if found is not None:
                return found
    return None


def find_parent(tree: Sequence[ComponentNode], component_id: str) -> ComponentNode | None:
    """Return the direct parent of *component_id*; None for root-level or missing nodes."""
    for node in tree:
        if node.children:
            if any(child.id == component_id for child in node.children):
                return node
            found = find_parent(node.children, component_id)
            if found is not None:
                return found
    return None


def update(
    tree: Sequence[ComponentNode],
    component_id: str,
    patch: ComponentPatch | Mapping[str, Any],
) -> list[ComponentNode]:
    """Return a tree where the node *component_id* has *patch* merged in."""
    if not isinstance(patch, ComponentPatch):
        patch = ComponentPatch.model_validate(patch)
    changes = patch.model_dump(exclude_unset=True)
    if "children" in changes:
        changes["children"] = patch.children

    target = find(tree, component_id)
    if target is None:
        raise ComponentNotFoundError(f"Component '{component_id}' not found")
    new_type = changes.get("type", target.type)
    new_children = changes.get("children", target.children)
    if new_children and new_type not in CONTAINER_TYPES:
        msg = f"Component type '{new_type}' cannot hold children"
        raise InvalidTreeOperationError(msg)

    def _apply(nodes: Sequence[ComponentNode]) -> list[ComponentNode]:
        result: list[ComponentNode] = []
        for node in nodes:
            if node.id == component_id:
                result.append(node.model_copy(update=changes))
            elif node.children:
                result.append(node.model_copy(update={"children": _apply(node.children)}))
            else:
                result.append(node)
        return result

    return _apply(tree)


def delete(tree: Sequence[ComponentNode], component_id: str) -> list[ComponentNode]:
    """Return a tree without *component_id* and all of its descendants."""
    if find(tree, component_id) is None:
        raise ComponentNotFoundError(f"Component '{component_id}' not found")

    def _prune(nodes: Sequence[ComponentNode]) -> list[ComponentNode]:
        result: list[ComponentNode] = []
        for node in nodes:
            if node.id == component_id:
                continue
            if node.children:
                result.append(node.model_copy(update={"children": _prune(node.children)}))
            else:
                result.append(node)
        return result

    return _prune(tree)


def column_count(parent: ComponentNode) -> int | None:
    """Number of columns for a layout node, None for other types."""
    return LAYOUT_COLUMNS.get(parent.type)


def column_of(parent: ComponentNode, index: int) -> int:
    """Column occupied by the child at flat *index* of a layout parent."""
    columns = column_count(parent)
    if columns is None:
        return 0
    return index % columns


def split_columns(parent: ComponentNode) -> list[list[ComponentNode]]:
    """Group a layout's children by column; non-layouts yield one column."""
    columns = column_count(parent) or 1
    groups: list[list[ComponentNode]] = [[] for _ in range(columns)]
    for index, child in enumerate(parent.children or []):
        groups[index % columns].append(child)
    return groups


def column_insert_index(parent: ComponentNode, column_index: int) -> int:
    """Splice index for dropping a node into *column_index* of a layout.

    The new node goes right after the last existing child whose column is
    lower than *column_index*, or at the front when there is none.
    """
    columns = column_count(parent)
    if columns is None:
        msg = f"Component type '{parent.type}' has no columns"
        raise InvalidTreeOperationError(msg)
    if not 0 <= column_index < columns:
        msg = f"Column index {column_index} out of range for '{parent.type}'"
        raise InvalidTreeOperationError(msg)

    insert_index = 0
    for index, _child in enumerate(parent.children or []):
        if index % columns < column_index:
            insert_index = index + 1
    return insert_index


def insert_child(
    tree: Sequence[ComponentNode],
    parent_id: str | None,
    new_node: ComponentNode,
    column_index: int | None = None,
) -> list[ComponentNode]:
    """Return a tree with *new_node* inserted under *parent_id*.

    Without a parent the node is appended at the root. With a layout parent
    and a *column_index*, the position is computed by
    :func:`column_insert_index`; otherwise the node is appended.
    """
    existing_ids = {node.id for node in iter_nodes(tree)}
    duplicates = {node.id for node in iter_nodes([new_node])} & existing_ids
    if duplicates:
        msg = f"Component id already in use: {', '.join(sorted(duplicates))}"
        raise InvalidTreeOperationError(msg)

    if parent_id is None:
        if column_index is not None:
            raise InvalidTreeOperationError("Column index requires a layout parent")
        return [*tree, new_node]

    parent = find(tree, parent_id)
    if parent is None:
        raise ComponentNotFoundError(f"Component '{parent_id}' not found")
    if parent.type not in CONTAINER_TYPES:
        msg = f"Component type '{parent.type}' cannot hold children"
        raise InvalidTreeOperationError(msg)

    children = list(parent.children or [])
    if column_index is not None:
        children.insert(column_insert_index(parent, column_index), new_node)
    else:
        children.append(new_node)
    return update(tree, parent_id, ComponentPatch(children=children))
