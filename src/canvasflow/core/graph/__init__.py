"""Graph kernel - objects, dependencies, hydration.

Modules:
    dependency  Single / AnyOf dependency terms
    objects     GraphObject status and event engine, loop cloning
    vertex      Geometry and group gating
    edge        Typed data channels
    group       Basic, Repeat and ForEach groups
    nodes       Computational node variants
    document    Canvas document format
    graph       Hydration and validation
"""

from canvasflow.core.graph.dependency import AnyOf, Dependency, Single, dependency_from
from canvasflow.core.graph.document import CanvasDocument, EdgeData, NodeData
from canvasflow.core.graph.edge import (
    EDGE_TYPES,
    ChatEdge,
    ChoiceEdge,
    ConfigEdge,
    Edge,
    ListEdge,
    LoggingEdge,
    NodeInputs,
    SystemMessageEdge,
    as_text,
    split_items,
)
from canvasflow.core.graph.graph import Graph
from canvasflow.core.graph.group import GROUP_TYPES, ForEachGroup, Group, RepeatGroup
from canvasflow.core.graph.nodes import (
    NODE_TYPES,
    CallNode,
    ChooseNode,
    DisplayNode,
    DistributeNode,
    FormatterNode,
    InputNode,
    Node,
    NodeResponseError,
    ReferenceNode,
    render,
)
from canvasflow.core.graph.objects import ClonePlan, GraphObject, clone_id
from canvasflow.core.graph.vertex import Vertex

__all__ = [
    # Dependencies
    "AnyOf",
    "Dependency",
    "Single",
    "dependency_from",
    # Objects
    "ClonePlan",
    "GraphObject",
    "Vertex",
    "clone_id",
    # Edges
    "EDGE_TYPES",
    "ChatEdge",
    "ChoiceEdge",
    "ConfigEdge",
    "Edge",
    "ListEdge",
    "LoggingEdge",
    "NodeInputs",
    "SystemMessageEdge",
    "as_text",
    "split_items",
    # Groups
    "GROUP_TYPES",
    "ForEachGroup",
    "Group",
    "RepeatGroup",
    # Nodes
    "NODE_TYPES",
    "CallNode",
    "ChooseNode",
    "DisplayNode",
    "DistributeNode",
    "FormatterNode",
    "InputNode",
    "Node",
    "NodeResponseError",
    "ReferenceNode",
    "render",
    # Documents
    "CanvasDocument",
    "EdgeData",
    "Graph",
    "NodeData",
]
