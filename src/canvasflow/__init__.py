"""canvasflow - execution kernel for canvas-drawn LLM workflows.

A canvas is a directed graph of nodes (LLM calls, formatters, inputs,
displays, note references), typed edges between them, and groups that
enclose nodes to fire them once or in a loop.

Layers:
    core/       Graph kernel, run orchestrator, usage accounting
    providers/  Completion providers and content stores
    frontends/  User interfaces (CLI)

Quick Start:
    >>> from canvasflow import CanvasDocument, Graph, Run
    >>> from canvasflow.providers import MemoryContentStore, OpenAICompatibleProvider
    >>>
    >>> graph = Graph.from_document(CanvasDocument.load("story.canvas"))
    >>> run = Run(
    ...     graph,
    ...     provider=OpenAICompatibleProvider(api_key="sk-..."),
    ...     content_store=MemoryContentStore(),
    ... )
    >>> stoppage = await run.start()
    >>> print(stoppage.reason, stoppage.total_cost)
"""

from canvasflow.__version__ import __version__

# Core first: it loads the error types the providers package builds on
from canvasflow.core import (
    Budget,
    CanvasDocument,
    CanvasflowError,
    Graph,
    GraphValidationError,
    ObjectStatus,
    Run,
    Settings,
    Stoppage,
    validate,
)
from canvasflow.providers import (
    CompletionRequest,
    CompletionResult,
    MemoryContentStore,
    OpenAICompatibleProvider,
    ProviderError,
)

__all__ = [
    "__version__",
    # Graph
    "CanvasDocument",
    "Graph",
    "ObjectStatus",
    # Run
    "Budget",
    "Run",
    "Settings",
    "Stoppage",
    "validate",
    # Providers
    "CompletionRequest",
    "CompletionResult",
    "MemoryContentStore",
    "OpenAICompatibleProvider",
    "ProviderError",
    # Errors
    "CanvasflowError",
    "GraphValidationError",
]
