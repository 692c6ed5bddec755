"""Collapsible node-link tree layout.

Every tree model node gets a :class:`ViewNode` whose ``visibility`` is one of
three variants: :class:`Expanded`, :class:`Collapsed` (children hidden but
kept) or :class:`Leaf`. Toggling swaps the variant, recomputes a tidy layout
over the visible nodes only and returns a :class:`Transition` describing how
every affected node and link moves from its old to its new position.

Coordinates: ``x`` grows with depth (horizontal), ``y`` follows sibling
order (vertical). The layout is the linear-time Reingold-Tilford variant by
Buchheim, Juenger and Leipert with fixed node spacing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple, Union

from .config import TreeConfig, ViewConfig
from .events import NODE_TOGGLED, TRANSITION_FRAME, Dispatcher
from .models import TreeNode
from .scheduler import Handle, Scheduler

logger = logging.getLogger(__name__)

PARENT_RADIUS = 8.0
LEAF_RADIUS = 6.0

Point = Tuple[float, float]


@dataclass(frozen=True)
class Expanded:
    children: Tuple["ViewNode", ...]


@dataclass(frozen=True)
class Collapsed:
    hidden_children: Tuple["ViewNode", ...]


@dataclass(frozen=True)
class Leaf:
    pass


Visibility = Union[Expanded, Collapsed, Leaf]


@dataclass(eq=False)
class ViewNode:
    id: int
    data: TreeNode
    depth: int
    parent: Optional["ViewNode"] = None
    visibility: Visibility = field(default_factory=Leaf)
    x: float = 0.0
    y: float = 0.0
    x0: float = 0.0
    y0: float = 0.0

    @property
    def name(self) -> str:
        return self.data.name

    @property
    def children(self) -> Tuple["ViewNode", ...]:
        """Currently visible children."""
        if isinstance(self.visibility, Expanded):
            return self.visibility.children
        return ()

    @property
    def all_children(self) -> Tuple["ViewNode", ...]:
        if isinstance(self.visibility, Expanded):
            return self.visibility.children
        if isinstance(self.visibility, Collapsed):
            return self.visibility.hidden_children
        return ()

    @property
    def has_children(self) -> bool:
        return not isinstance(self.visibility, Leaf)

    @property
    def state(self) -> str:
        if isinstance(self.visibility, Expanded):
            return "expanded"
        if isinstance(self.visibility, Collapsed):
            return "collapsed"
        return "leaf"

    @property
    def radius(self) -> float:
        return PARENT_RADIUS if self.has_children else LEAF_RADIUS

    def visible(self) -> Iterator["ViewNode"]:
        """Pre-order walk over visible nodes."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def descendants(self) -> Iterator["ViewNode"]:
        """Pre-order walk over all nodes, hidden ones included."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.all_children))


@dataclass(frozen=True)
class Viewport:
    x: float
    y: float
    width: float
    height: float

    def lerp(self, other: "Viewport", t: float) -> "Viewport":
        return Viewport(
            _lerp(self.x, other.x, t),
            _lerp(self.y, other.y, t),
            _lerp(self.width, other.width, t),
            _lerp(self.height, other.height, t),
        )


@dataclass(frozen=True)
class NodeMotion:
    node_id: int
    kind: str  # "enter", "update" or "exit"
    start: Point
    end: Point


@dataclass(frozen=True)
class LinkMotion:
    source_id: int
    target_id: int
    kind: str
    start: Tuple[Point, Point]
    end: Tuple[Point, Point]


@dataclass(frozen=True)
class FrameNode:
    node_id: int
    x: float
    y: float
    opacity: float


@dataclass(frozen=True)
class FrameLink:
    source_id: int
    target_id: int
    source: Point
    target: Point


@dataclass(frozen=True)
class Frame:
    t: float
    nodes: Tuple[FrameNode, ...]
    links: Tuple[FrameLink, ...]
    viewport: Viewport


@dataclass(frozen=True)
class Transition:
    source_id: int
    duration_ms: float
    nodes: Tuple[NodeMotion, ...]
    links: Tuple[LinkMotion, ...]
    viewport_start: Viewport
    viewport_end: Viewport

    def entering(self) -> List[int]:
        return [m.node_id for m in self.nodes if m.kind == "enter"]

    def exiting(self) -> List[int]:
        return [m.node_id for m in self.nodes if m.kind == "exit"]

    def at(self, t: float) -> Frame:
        """Interpolated frame for linear progress ``t`` in [0, 1]."""
        t = min(max(t, 0.0), 1.0)
        e = ease_cubic_in_out(t)
        nodes = []
        for motion in self.nodes:
            x = _lerp(motion.start[0], motion.end[0], e)
            y = _lerp(motion.start[1], motion.end[1], e)
            if motion.kind == "enter":
                opacity = e
            elif motion.kind == "exit":
                opacity = 1.0 - e
            else:
                opacity = 1.0
            if motion.kind == "exit" and t >= 1.0:
                continue
            nodes.append(FrameNode(motion.node_id, x, y, opacity))
        links = []
        for motion in self.links:
            if motion.kind == "exit" and t >= 1.0:
                continue
            (s0, t0), (s1, t1) = motion.start, motion.end
            links.append(
                FrameLink(
                    motion.source_id,
                    motion.target_id,
                    (_lerp(s0[0], s1[0], e), _lerp(s0[1], s1[1], e)),
                    (_lerp(t0[0], t1[0], e), _lerp(t0[1], t1[1], e)),
                )
            )
        return Frame(t, tuple(nodes), tuple(links), self.viewport_start.lerp(self.viewport_end, e))


def ease_cubic_in_out(t: float) -> float:
    t *= 2.0
    if t <= 1.0:
        return t * t * t / 2.0
    t -= 2.0
    return (t * t * t + 2.0) / 2.0


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def build_view_tree(tree: TreeNode) -> ViewNode:
    """Wrap a tree model; ids are assigned breadth-first starting at 1.

    Initial visibility: the root is expanded, every other node with children
    starts collapsed.
    """
    root = ViewNode(id=1, data=tree, depth=0)
    queue: List[ViewNode] = [root]
    next_id = 2
    cursor = 0
    pending: Dict[int, List[ViewNode]] = {}
    while cursor < len(queue):
        node = queue[cursor]
        cursor += 1
        kids = []
        for child in node.data.children:
            view = ViewNode(id=next_id, data=child, depth=node.depth + 1, parent=node)
            next_id += 1
            kids.append(view)
            queue.append(view)
        pending[node.id] = kids
    for node in queue:
        kids = tuple(pending[node.id])
        if not kids:
            node.visibility = Leaf()
        elif node.depth == 0:
            node.visibility = Expanded(kids)
        else:
            node.visibility = Collapsed(kids)
    return root


class _Walker:
    """Scratch record for one visible node during the tidy layout."""

    __slots__ = ("node", "parent", "children", "A", "a", "z", "m", "c", "s", "t", "i")

    def __init__(self, node: Optional[ViewNode], i: int) -> None:
        self.node = node
        self.parent: Optional[_Walker] = None
        self.children: Optional[List[_Walker]] = None
        self.A: Optional[_Walker] = None
        self.a: _Walker = self
        self.z = 0.0
        self.m = 0.0
        self.c = 0.0
        self.s = 0.0
        self.t: Optional[_Walker] = None
        self.i = i


def _separation(a: ViewNode, b: ViewNode) -> float:
    return 1.0 if a.parent is b.parent else 2.0


def _next_left(v: _Walker) -> Optional[_Walker]:
    return v.children[0] if v.children else v.t


def _next_right(v: _Walker) -> Optional[_Walker]:
    return v.children[-1] if v.children else v.t


def _move_subtree(wm: _Walker, wp: _Walker, shift: float) -> None:
    change = shift / (wp.i - wm.i)
    wp.c -= change
    wp.s += shift
    wm.c += change
    wp.z += shift
    wp.m += shift


def _execute_shifts(v: _Walker) -> None:
    shift = 0.0
    change = 0.0
    for w in reversed(v.children or []):
        w.z += shift
        w.m += shift
        change += w.c
        shift += w.s + change


def _next_ancestor(vim: _Walker, v: _Walker, ancestor: _Walker) -> _Walker:
    return vim.a if vim.a.parent is v.parent else ancestor


def _apportion(v: _Walker, w: Optional[_Walker], ancestor: _Walker) -> _Walker:
    if w is None:
        return ancestor
    vip = vop = v
    vim = w
    vom = vip.parent.children[0]
    sip, sop, sim, som = vip.m, vop.m, vim.m, vom.m
    vim = _next_right(vim)
    vip = _next_left(vip)
    while vim is not None and vip is not None:
        vom = _next_left(vom)
        vop = _next_right(vop)
        vop.a = v
        shift = vim.z + sim - vip.z - sip + _separation(vim.node, vip.node)
        if shift > 0:
            _move_subtree(_next_ancestor(vim, v, ancestor), v, shift)
            sip += shift
            sop += shift
        sim += vim.m
        sip += vip.m
        som += vom.m
        sop += vop.m
        vim = _next_right(vim)
        vip = _next_left(vip)
    if vim is not None and _next_right(vop) is None:
        vop.t = vim
        vop.m += sim - sop
    if vip is not None and _next_left(vom) is None:
        vom.t = vip
        vom.m += sip - som
        ancestor = v
    return ancestor


def _first_walk(v: _Walker) -> None:
    siblings = v.parent.children
    w = siblings[v.i - 1] if v.i else None
    if v.children:
        _execute_shifts(v)
        midpoint = (v.children[0].z + v.children[-1].z) / 2.0
        if w is not None:
            v.z = w.z + _separation(v.node, w.node)
            v.m = v.z - midpoint
        else:
            v.z = midpoint
    elif w is not None:
        v.z = w.z + _separation(v.node, w.node)
    v.parent.A = _apportion(v, w, v.parent.A or siblings[0])


def tidy_layout(root: ViewNode, dx: float, dy: float) -> None:
    """Assign ``x`` (depth * dy) and ``y`` (breadth * dx) to visible nodes."""
    top = _Walker(root, 0)
    stack = [top]
    while stack:
        walker = stack.pop()
        kids = walker.node.children
        if kids:
            walker.children = [_Walker(child, i) for i, child in enumerate(kids)]
            for child in reversed(walker.children):
                child.parent = walker
                stack.append(child)
    virtual = _Walker(None, 0)
    virtual.children = [top]
    top.parent = virtual

    # post-order, earlier siblings first
    order: List[_Walker] = []
    stack = [top]
    while stack:
        walker = stack.pop()
        order.append(walker)
        stack.extend(walker.children or [])
    for walker in reversed(order):
        _first_walk(walker)

    virtual.m = -top.z
    stack = [top]
    while stack:
        walker = stack.pop()
        walker.node.y = (walker.z + walker.parent.m) * dx
        walker.node.x = walker.node.depth * dy
        walker.m += walker.parent.m
        stack.extend(reversed(walker.children or []))


class CollapsibleTreeEngine:
    """Owns the view state of one tree model and lays it out on demand."""

    def __init__(
        self,
        tree: TreeNode,
        scheduler: Optional[Scheduler] = None,
        config: Optional[TreeConfig] = None,
        view: Optional[ViewConfig] = None,
        events: Optional[Dispatcher] = None,
    ) -> None:
        self.config = config or TreeConfig()
        self.view = view or ViewConfig()
        self.scheduler = scheduler
        self.events = events or Dispatcher()
        self.dx = self.config.dx
        self.dy = self.config.dy if self.config.dy is not None else self.view.width / 4.0
        self.root = build_view_tree(tree)
        self._by_id: Dict[int, ViewNode] = {n.id: n for n in self.root.descendants()}
        self._shown: Dict[int, ViewNode] = {}
        self._shown_links: Dict[int, Tuple[ViewNode, ViewNode]] = {}
        self.viewport = Viewport(-self.dy / 3.0, -self.view.height / 2.0 + self.dx,
                                 self.view.width, self.view.height)
        self.transition: Optional[Transition] = None
        self._animation: Optional[Handle] = None
        self.update(self.root)

    @property
    def initial_translate(self) -> Point:
        """Initial zoom translation placing the root near the top-left."""
        return (self.dy / 3.0, self.dx)

    def node(self, node_id: int) -> ViewNode:
        return self._by_id[node_id]

    def state_of(self, node_id: int) -> str:
        return self._by_id[node_id].state

    def visible_nodes(self) -> List[ViewNode]:
        return list(self.root.visible())

    def visible_links(self) -> List[Tuple[ViewNode, ViewNode]]:
        return [(node.parent, node) for node in self.root.visible() if node.parent is not None]

    def find(self, name: str) -> List[ViewNode]:
        return [node for node in self.root.descendants() if node.name == name]

    def toggle(self, node_id: int, *, slow: bool = False) -> Optional[Transition]:
        node = self._by_id[node_id]
        if isinstance(node.visibility, Expanded):
            node.visibility = Collapsed(node.visibility.children)
        elif isinstance(node.visibility, Collapsed):
            node.visibility = Expanded(node.visibility.hidden_children)
        else:
            return None
        logger.debug("toggled node %d (%s) -> %s", node.id, node.name, node.state)
        self.events.emit(NODE_TOGGLED, node.id, node.state)
        return self.update(node, slow=slow)

    def expand(self, node_id: int, *, slow: bool = False) -> Optional[Transition]:
        if isinstance(self._by_id[node_id].visibility, Collapsed):
            return self.toggle(node_id, slow=slow)
        return None

    def collapse(self, node_id: int, *, slow: bool = False) -> Optional[Transition]:
        if isinstance(self._by_id[node_id].visibility, Expanded):
            return self.toggle(node_id, slow=slow)
        return None

    def expand_all(self) -> Transition:
        for node in self.root.descendants():
            if isinstance(node.visibility, Collapsed):
                node.visibility = Expanded(node.visibility.hidden_children)
        return self.update(self.root)

    def collapse_all(self) -> Transition:
        """Return to the initial policy: only the root stays expanded."""
        for node in self.root.descendants():
            if node is self.root:
                if isinstance(node.visibility, Collapsed):
                    node.visibility = Expanded(node.visibility.hidden_children)
            elif isinstance(node.visibility, Expanded):
                node.visibility = Collapsed(node.visibility.children)
        return self.update(self.root)

    def hit_test(self, x: float, y: float) -> Optional[ViewNode]:
        """Visible node whose circle contains the content point, if any."""
        hit = None
        for node in self.root.visible():
            if (node.x - x) ** 2 + (node.y - y) ** 2 <= node.radius * node.radius:
                hit = node
        return hit

    def click(self, x: float, y: float, *, slow: bool = False) -> Optional[Transition]:
        node = self.hit_test(x, y)
        if node is None or not node.has_children:
            return None
        return self.toggle(node.id, slow=slow)

    def update(self, source: ViewNode, *, slow: bool = False) -> Transition:
        """Re-layout the visible nodes and describe the move from old to new."""
        previous_viewport = self.viewport
        tidy_layout(self.root, self.dx, self.dy)
        visible = {node.id: node for node in self.root.visible()}

        top = min(node.y for node in visible.values())
        self.viewport = Viewport(-self.dy / 3.0, top - self.dx, self.view.width, self.view.height)

        source_old = (source.x0, source.y0)
        source_new = (source.x, source.y)
        motions: List[NodeMotion] = []
        for node_id, node in visible.items():
            if node_id in self._shown:
                motions.append(NodeMotion(node_id, "update", (node.x0, node.y0), (node.x, node.y)))
            else:
                motions.append(NodeMotion(node_id, "enter", source_old, (node.x, node.y)))
        for node_id, node in self._shown.items():
            if node_id not in visible:
                motions.append(NodeMotion(node_id, "exit", (node.x0, node.y0), source_new))

        links = {node.id: (node.parent, node) for node in visible.values() if node.parent is not None}
        link_motions: List[LinkMotion] = []
        for target_id, (parent, child) in links.items():
            end = ((parent.x, parent.y), (child.x, child.y))
            if target_id in self._shown_links:
                start = ((parent.x0, parent.y0), (child.x0, child.y0))
                link_motions.append(LinkMotion(parent.id, target_id, "update", start, end))
            else:
                link_motions.append(
                    LinkMotion(parent.id, target_id, "enter", (source_old, source_old), end)
                )
        for target_id, (parent, child) in self._shown_links.items():
            if target_id not in links:
                start = ((parent.x0, parent.y0), (child.x0, child.y0))
                link_motions.append(
                    LinkMotion(parent.id, target_id, "exit", start, (source_new, source_new))
                )

        for node in visible.values():
            node.x0, node.y0 = node.x, node.y
        self._shown = visible
        self._shown_links = links

        duration = self.config.slow_duration_ms if slow else self.config.duration_ms
        self.transition = Transition(
            source_id=source.id,
            duration_ms=duration,
            nodes=tuple(motions),
            links=tuple(link_motions),
            viewport_start=previous_viewport,
            viewport_end=self.viewport,
        )
        self._animate(self.transition)
        return self.transition

    def cancel_animation(self) -> None:
        if self._animation is not None and self.scheduler is not None:
            self.scheduler.cancel(self._animation)
        self._animation = None

    def teardown(self) -> None:
        self.cancel_animation()
        self.events.clear()

    def _animate(self, transition: Transition) -> None:
        self.cancel_animation()
        if self.scheduler is None:
            return

        def _frame(elapsed: float) -> bool:
            progress = elapsed / transition.duration_ms if transition.duration_ms > 0 else 1.0
            self.events.emit(TRANSITION_FRAME, transition.at(progress))
            if progress >= 1.0:
                self._animation = None
                return False
            return True

        self._animation = self.scheduler.every_frame(_frame)


__all__ = [
    "Collapsed",
    "CollapsibleTreeEngine",
    "Expanded",
    "Frame",
    "Leaf",
    "Transition",
    "ViewNode",
    "Viewport",
    "build_view_tree",
    "ease_cubic_in_out",
    "tidy_layout",
]
