"""Core - the graph execution kernel.

Architecture:
    graph/      Graph objects, dependencies, groups, hydration
    run         Run orchestrator and Stoppage reporting
    usage       Usage ledger, pricing and budgets
    config      Settings from the environment
    types       Pure data types

Key Concepts:
    GraphObject:  Node, edge or group with a status and dependency terms
    Group:        Encloses vertices; Repeat/ForEach groups loop over clones
    Run:          Launches ready objects and reports how the run stopped

Example:
    >>> from canvasflow.core import Graph, Run
    >>>
    >>> async def main(document):
    ...     graph = Graph.from_document(document)
    ...     stoppage = await Run(graph, is_mock=True).start()
    ...     print(stoppage.reason)
"""

# errors must load before anything that reaches the providers package
from canvasflow.core.errors import (
    CanvasflowError,
    ConflictingAlternativesError,
    DependencyError,
    DuplicateAlternativeError,
    GraphValidationError,
    InvalidTransitionError,
    UpstreamFailedError,
)
from canvasflow.core.types import (
    EdgeRef,
    EdgeType,
    GroupType,
    ModelUsage,
    NodeType,
    ObjectKind,
    ObjectStatus,
    Rectangle,
    Stoppage,
    StopReason,
)
from canvasflow.core.cancellation import CancellationToken, RunStoppedError
from canvasflow.core.usage import (
    DEFAULT_PRICING,
    Budget,
    BudgetExceededError,
    ModelPricing,
    UsageLedger,
)
from canvasflow.core.graph import AnyOf, CanvasDocument, Graph, GraphObject, Single
from canvasflow.core.run import Run, validate
from canvasflow.core.config import ConfigurationError, Settings

__all__ = [
    # Errors
    "CanvasflowError",
    "ConfigurationError",
    "ConflictingAlternativesError",
    "DependencyError",
    "DuplicateAlternativeError",
    "GraphValidationError",
    "InvalidTransitionError",
    "UpstreamFailedError",
    # Types
    "EdgeRef",
    "EdgeType",
    "GroupType",
    "ModelUsage",
    "NodeType",
    "ObjectKind",
    "ObjectStatus",
    "Rectangle",
    "StopReason",
    "Stoppage",
    # Cancellation
    "CancellationToken",
    "RunStoppedError",
    # Usage
    "DEFAULT_PRICING",
    "Budget",
    "BudgetExceededError",
    "ModelPricing",
    "UsageLedger",
    # Graph
    "AnyOf",
    "CanvasDocument",
    "Graph",
    "GraphObject",
    "Single",
    # Run
    "Run",
    "Settings",
    "validate",
]
