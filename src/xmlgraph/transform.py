"""Markup document to tree/graph model transformer."""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional

from .models import (
    ElementNode,
    GraphLink,
    GraphModel,
    GraphNode,
    ParsedDocument,
    TreeNode,
    build_label,
    classify,
)

logger = logging.getLogger(__name__)


class MalformedDocument(ValueError):
    """Raised when the input is not well-formed markup or has no root element."""

    code = "E_PARSE_XML"

    def __init__(
        self, message: str, *, line: Optional[int] = None, column: Optional[int] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column

    def __str__(self) -> str:
        return self.message


def parse(document: str) -> ParsedDocument:
    """Parse ``document`` into a nested tree model and a flat graph model.

    One depth-first pre-order walk produces both models, so graph node ids
    (``node-0``, ``node-1``, ...) follow document order and line up with the
    tree model entries assembled from that walk.
    """
    if document is None or not document.strip():
        raise MalformedDocument("Failed to parse markup input: document is empty")
    # comments and processing instructions stay in the tree so text on either
    # side of them remains separate pieces
    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True, insert_pis=True))
    try:
        parser.feed(document)
        root = parser.close()
    except ET.ParseError as exc:
        line, column = getattr(exc, "position", (None, None))
        location = (
            f" at line {line}, column {column}" if line is not None and column is not None else ""
        )
        raise MalformedDocument(
            f"Failed to parse markup input{location}: {exc}", line=line, column=column
        ) from exc
    if root is None or not isinstance(root.tag, str):
        raise MalformedDocument("Failed to parse markup input: no root element")

    walker = _Walker()
    tree = walker.walk(root)
    logger.debug(
        "parsed document: %d elements, %d links", len(walker.nodes), len(walker.links)
    )
    return ParsedDocument(
        tree=tree,
        graph=GraphModel(nodes=walker.nodes, links=walker.links),
        elements=walker.elements,
    )


class _Walker:
    def __init__(self) -> None:
        self._counter = 0
        self.elements: List[ElementNode] = []
        self.nodes: List[GraphNode] = []
        self.links: List[GraphLink] = []

    def walk(self, root: ET.Element) -> TreeNode:
        # explicit stack: documents may nest deeper than the interpreter's
        # recursion limit
        order: List[tuple] = []
        child_slots: Dict[str, List[str]] = {}
        stack: List[tuple] = [(root, None, 0)]
        while stack:
            element, parent_id, depth = stack.pop()
            node_id = f"node-{self._counter}"
            self._counter += 1

            tag = _local_name(element.tag)
            attributes = _attributes(element)
            children = [child for child in element if isinstance(child.tag, str)]
            text = _direct_text(element)

            info = ElementNode(
                id=node_id,
                tag_name=tag,
                attributes=attributes,
                depth=depth,
                classification=classify(depth, len(children)),
                label=build_label(tag, attributes, text, len(children)),
            )
            self.elements.append(info)
            self.nodes.append(GraphNode.from_element(info))
            if parent_id is not None:
                self.links.append(GraphLink(source=parent_id, target=node_id))
                child_slots[parent_id].append(node_id)
            child_slots[node_id] = []
            order.append((node_id, tag, attributes, text if not children else ""))
            stack.extend((child, node_id, depth + 1) for child in reversed(children))

        built: Dict[str, TreeNode] = {}
        for node_id, tag, attributes, text in reversed(order):
            tree_children = [built.pop(child_id) for child_id in child_slots.pop(node_id)]
            if text:
                tree_children.append(TreeNode(name=f'"{text}"', is_text=True))
            built[node_id] = TreeNode(
                name=tag, attributes=dict(attributes), children=tuple(tree_children)
            )
        return built[order[0][0]]


def _attributes(element: ET.Element) -> Dict[str, str]:
    locals_seen: Dict[str, int] = {}
    for key in element.attrib:
        local = _local_name(key)
        locals_seen[local] = locals_seen.get(local, 0) + 1
    # a local name shared by two namespaces keeps its qualified {uri}name form
    return {
        (_local_name(key) if locals_seen[_local_name(key)] == 1 else key): value
        for key, value in element.attrib.items()
    }


def _direct_text(element: ET.Element) -> str:
    pieces = [element.text] + [child.tail for child in element]
    trimmed = [piece.strip() for piece in pieces if piece]
    return " ".join(piece for piece in trimmed if piece)


def _local_name(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


__all__ = ["MalformedDocument", "parse"]
