"""Data models shared by the transformer and both layout engines."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional

TEXT_LIMIT = 50
TEXT_KEEP = 47
ELLIPSIS = "..."
CONTAINER_THRESHOLD = 3


class Classification(str, Enum):
    ROOT = "root"
    CONTAINER = "container"
    ELEMENT = "element"
    LEAF = "leaf"


def classify(depth: int, child_count: int) -> Classification:
    if depth == 0:
        return Classification.ROOT
    if child_count == 0:
        return Classification.LEAF
    if child_count > CONTAINER_THRESHOLD:
        return Classification.CONTAINER
    return Classification.ELEMENT


def truncate_text(text: str) -> str:
    if len(text) > TEXT_LIMIT:
        return text[:TEXT_KEEP] + ELLIPSIS
    return text


def build_label(tag: str, attributes: Dict[str, str], text: str, child_count: int) -> str:
    """Multi-line display label: tag, bracketed attributes, quoted text."""
    label = tag
    if attributes:
        pairs = ", ".join(f'{key}="{value}"' for key, value in attributes.items())
        label += f"\n[{pairs}]"
    if text and child_count == 0:
        label += f'\n"{truncate_text(text)}"'
    return label


@dataclass(frozen=True)
class ElementNode:
    id: str
    tag_name: str
    attributes: Dict[str, str]
    depth: int
    classification: Classification
    label: str


@dataclass
class GraphNode:
    """Element node plus the mutable simulation fields."""

    id: str
    tag_name: str
    attributes: Dict[str, str]
    depth: int
    classification: Classification
    label: str
    x: float = 0.0
    y: float = 0.0
    vx: float = 0.0
    vy: float = 0.0
    fx: Optional[float] = None
    fy: Optional[float] = None

    @classmethod
    def from_element(cls, element: ElementNode) -> "GraphNode":
        return cls(
            id=element.id,
            tag_name=element.tag_name,
            attributes=dict(element.attributes),
            depth=element.depth,
            classification=element.classification,
            label=element.label,
        )

    @property
    def pinned(self) -> bool:
        return self.fx is not None and self.fy is not None


@dataclass(frozen=True)
class GraphLink:
    source: str
    target: str


@dataclass
class GraphModel:
    nodes: List[GraphNode] = field(default_factory=list)
    links: List[GraphLink] = field(default_factory=list)

    def node(self, node_id: str) -> GraphNode:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(node_id)

    def children_of(self, node_id: str) -> List[str]:
        return [link.target for link in self.links if link.source == node_id]


@dataclass(frozen=True)
class TreeNode:
    """Nested tree model node. Synthetic text leaves carry a quoted name."""

    name: str
    attributes: Dict[str, str] = field(default_factory=dict)
    children: tuple = ()
    is_text: bool = False

    def walk(self) -> Iterator["TreeNode"]:
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def count(self) -> int:
        return sum(1 for _ in self.walk())


@dataclass
class ParsedDocument:
    tree: TreeNode
    graph: GraphModel
    elements: List[ElementNode] = field(default_factory=list)

    def node(self, node_id: str) -> ElementNode:
        for element in self.elements:
            if element.id == node_id:
                return element
        raise KeyError(node_id)

    def children_of(self, node_id: str) -> List[str]:
        return self.graph.children_of(node_id)

    def to_dict(self) -> dict:
        return {
            "tree": _tree_to_dict(self.tree),
            "graph": {
                "nodes": [
                    {
                        "id": n.id,
                        "tagName": n.tag_name,
                        "attributes": dict(n.attributes),
                        "level": n.depth,
                        "type": n.classification.value,
                        "label": n.label,
                    }
                    for n in self.graph.nodes
                ],
                "links": [{"source": l.source, "target": l.target} for l in self.graph.links],
            },
        }


def _tree_to_dict(node: TreeNode) -> dict:
    root: dict = {}
    stack = [(node, root)]
    while stack:
        current, out = stack.pop()
        out["name"] = current.name
        out["attributes"] = dict(current.attributes)
        out["children"] = [{} for _ in current.children]
        stack.extend(zip(current.children, out["children"]))
    return root
