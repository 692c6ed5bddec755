"""Public API for xmlgraph."""
from .force import ForceLayoutEngine, SimulationState, step
from .models import Classification, GraphLink, GraphModel, GraphNode, ParsedDocument, TreeNode
from .scheduler import ManualScheduler, Scheduler
from .transform import MalformedDocument, parse
from .tree import CollapsibleTreeEngine
from .views import GraphView, TreeView

__all__ = [
    "Classification",
    "CollapsibleTreeEngine",
    "ForceLayoutEngine",
    "GraphLink",
    "GraphModel",
    "GraphNode",
    "GraphView",
    "MalformedDocument",
    "ManualScheduler",
    "ParsedDocument",
    "Scheduler",
    "SimulationState",
    "TreeNode",
    "TreeView",
    "parse",
    "step",
]
