"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from canvasflow.core.graph import Graph
from canvasflow.providers import CompletionRequest, CompletionResult, MemoryContentStore

# Far right of the canvas, outside any group the tests draw
_FREE_X = 10_000


@dataclass
class FakeProvider:
    """In-memory completion provider.

    Replies come from a list (consumed in order), a callable, or default
    to "reply <n>".
    """

    replies: list[str] | Callable[[CompletionRequest], str] = field(default_factory=list)
    model: str = "fake-model"
    prompt_tokens: int = 10
    completion_tokens: int = 5
    delay: float = 0.0
    error: Exception | None = None
    requests: list[CompletionRequest] = field(default_factory=list)

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return CompletionResult(
            content=self._reply(request),
            model=request.model or self.model,
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
        )

    def _reply(self, request: CompletionRequest) -> str:
        if callable(self.replies):
            return self.replies(request)
        if self.replies:
            return self.replies.pop(0)
        return f"reply {len(self.requests)}"


class CanvasBuilder:
    """Builds canvas documents for tests.

    Nodes without coordinates are laid out in a row far from any group.
    """

    def __init__(self) -> None:
        self.nodes: list[dict[str, Any]] = []
        self.edges: list[dict[str, Any]] = []

    def node(
        self,
        node_id: str,
        type: str = "call",
        text: str = "",
        x: float | None = None,
        y: float = 0,
        width: float = 100,
        height: float = 50,
        **data: Any,
    ) -> str:
        if x is None:
            x = _FREE_X + 200 * len(self.nodes)
        node: dict[str, Any] = {
            "id": node_id,
            "type": type,
            "text": text,
            "x": x,
            "y": y,
            "width": width,
            "height": height,
        }
        if data:
            node["data"] = data
        self.nodes.append(node)
        return node_id

    def group(
        self,
        group_id: str,
        type: str = "basic",
        x: float = 0,
        y: float = 0,
        width: float = 1000,
        height: float = 1000,
        max_loops: int | None = None,
    ) -> str:
        data = {"maxLoops": max_loops} if max_loops is not None else {}
        return self.node(group_id, type=type, x=x, y=y, width=width, height=height, **data)

    def edge(
        self,
        source: str,
        target: str,
        type: str = "variable",
        label: str | None = None,
        reflexive: bool = False,
        content: Any = None,
        edge_id: str | None = None,
    ) -> str:
        edge_id = edge_id or f"{source}->{target}"
        edge: dict[str, Any] = {"id": edge_id, "fromNode": source, "toNode": target, "type": type}
        if label is not None:
            edge["label"] = label
        if reflexive:
            edge["reflexive"] = True
        if content is not None:
            edge["content"] = content
        self.edges.append(edge)
        return edge_id

    def document(self) -> dict[str, Any]:
        return {"nodes": list(self.nodes), "edges": list(self.edges)}

    def graph(self) -> Graph:
        return Graph.from_document(self.document())


@pytest.fixture
def builder():
    """Empty canvas builder."""
    return CanvasBuilder()


@pytest.fixture
def provider():
    """Fake completion provider with default replies."""
    return FakeProvider()


@pytest.fixture
def store():
    """Empty in-memory content store."""
    return MemoryContentStore()


@pytest.fixture
def make_provider():
    """Factory for fake providers with custom replies, delays or errors."""
    return FakeProvider
