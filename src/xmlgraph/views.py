"""Per-view bundles of engine, zoom and pointer controllers."""
from __future__ import annotations

from typing import Optional

from .config import Config
from .events import Dispatcher
from .force import ForceLayoutEngine
from .interaction import (
    ClickController,
    DragController,
    HoverController,
    PanController,
    Tooltip,
    TooltipContent,
    ZoomBehavior,
    ZoomTransform,
    attribute_pairs,
)
from .models import GraphModel, TreeNode
from .scheduler import Scheduler
from .tree import CollapsibleTreeEngine, ViewNode


class GraphView:
    """Force-directed view: drag to pin, wheel to zoom, hover for details."""

    def __init__(self, graph: GraphModel, scheduler: Scheduler, config: Optional[Config] = None):
        config = config or Config()
        self.events = Dispatcher()
        self.engine = ForceLayoutEngine(graph, scheduler, config.force, config.view, self.events)
        self.zoom = ZoomBehavior(config.force.zoom_min, config.force.zoom_max)
        self.tooltip = Tooltip(scheduler)
        self.drag = DragController(self.engine, self.zoom)
        by_id = {node.id: node for node in graph.nodes}
        self.hover = HoverController(
            hit_test=self.engine.node_at,
            describe=lambda node_id: TooltipContent(
                by_id[node_id].tag_name, attribute_pairs(by_id[node_id].attributes)
            ),
            key=lambda node_id: node_id,
            tooltip=self.tooltip,
            zoom=self.zoom,
            events=self.events,
        )

    def start(self) -> None:
        self.engine.start()

    def teardown(self) -> None:
        self.engine.teardown()
        self.tooltip.destroy()


class TreeView:
    """Collapsible tree view: click to toggle, drag to pan, wheel to zoom, hover for details."""

    def __init__(self, tree: TreeNode, scheduler: Scheduler, config: Optional[Config] = None):
        config = config or Config()
        self.events = Dispatcher()
        self.engine = CollapsibleTreeEngine(tree, scheduler, config.tree, config.view, self.events)
        tx, ty = self.engine.initial_translate
        self.zoom = ZoomBehavior(
            config.tree.zoom_min, config.tree.zoom_max, ZoomTransform(1.0, tx, ty)
        )
        self.tooltip = Tooltip(scheduler)
        self.clicks = ClickController(self.engine, self.zoom)
        self.pan = PanController(self.zoom)
        self.hover = HoverController(
            hit_test=self.engine.hit_test,
            describe=_describe_view_node,
            key=lambda node: node.id,
            tooltip=self.tooltip,
            zoom=self.zoom,
            events=self.events,
        )

    def teardown(self) -> None:
        self.engine.teardown()
        self.tooltip.destroy()


def _describe_view_node(node: ViewNode) -> TooltipContent:
    return TooltipContent(node.name, attribute_pairs(node.data.attributes))
