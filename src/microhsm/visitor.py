"""Tree walking helpers in the style of the standard library ``ast`` module."""

import copy
from collections import deque
from dataclasses import fields
from typing import Dict, Iterator, Tuple

from .ast_nodes import Node


def iter_fields(node: Node) -> Iterator[Tuple[str, object]]:
    """Yield (name, value) for every syntactic field of node."""
    for f in fields(node):
        if f.name != "line":
            yield f.name, getattr(node, f.name)


def iter_child_nodes(node: Node) -> Iterator[Node]:
    """Yield all direct child nodes of node."""
    for _, value in iter_fields(node):
        if isinstance(value, Node):
            yield value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, Node):
                    yield item


def walk(node: Node) -> Iterator[Node]:
    """Yield node and all of its descendants, in no particular order."""
    todo = deque([node])
    while todo:
        node = todo.popleft()
        todo.extend(iter_child_nodes(node))
        yield node


def parent_map(root: Node) -> Dict[int, Node]:
    """Map id(child) to its parent for every node under root."""
    parents: Dict[int, Node] = {}
    for node in walk(root):
        for child in iter_child_nodes(node):
            parents[id(child)] = node
    return parents


def clone(node: Node) -> Node:
    """Deep copy a subtree so it can be inserted at a second location."""
    return copy.deepcopy(node)


class NodeVisitor:
    """Walks the tree calling visit_<ClassName> for each node."""

    def visit(self, node: Node):
        method = "visit_" + node.__class__.__name__
        visitor = getattr(self, method, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node: Node) -> None:
        for child in iter_child_nodes(node):
            self.visit(child)


class NodeTransformer(NodeVisitor):
    """A NodeVisitor that replaces each node with the value its visitor returns.

    Returning None removes the node from a list (or clears an optional
    field); returning a list splices several nodes into a list field.
    """

    def generic_visit(self, node: Node) -> Node:
        for name, old_value in iter_fields(node):
            if isinstance(old_value, list):
                new_values = []
                for value in old_value:
                    if isinstance(value, Node):
                        value = self.visit(value)
                        if value is None:
                            continue
                        if isinstance(value, list):
                            new_values.extend(value)
                            continue
                    new_values.append(value)
                old_value[:] = new_values
            elif isinstance(old_value, Node):
                setattr(node, name, self.visit(old_value))
        return node


def replace_child(parent: Node, old: Node, new: Node) -> None:
    """Swap the child old of parent for new, matching by identity."""
    for name, value in iter_fields(parent):
        if value is old:
            setattr(parent, name, new)
            return
        if isinstance(value, list):
            for index, item in enumerate(value):
                if item is old:
                    value[index] = new
                    return
    raise ValueError(f"{type(old).__name__} is not a child of {type(parent).__name__}")
