"""Canvas document format.

A document is JSON with two arrays:

    {
      "nodes": [
        {"id": "a", "type": "call", "x": 0, "y": 0, "width": 200,
         "height": 80, "text": "Write a haiku about {{topic}}"},
        {"id": "loop", "type": "repeat", "x": -50, "y": -50, "width": 600,
         "height": 400, "data": {"maxLoops": 3}}
      ],
      "edges": [
        {"id": "e1", "fromNode": "t", "toNode": "a", "type": "variable",
         "label": "topic"}
      ]
    }

Groups are nodes whose type is a group type. Parsing only checks shape;
Graph.from_document checks meaning.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from canvasflow.core.errors import GraphValidationError
from canvasflow.core.types import Content, GroupType, Rectangle


@dataclass
class NodeData:
    """One vertex of the document."""

    id: str
    type: str
    rect: Rectangle
    text: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_group(self) -> bool:
        return self.type in {t.value for t in GroupType}

    @property
    def max_loops(self) -> int:
        value = self.data.get("maxLoops", 1)
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise GraphValidationError(f"Group {self.id} has invalid maxLoops {value!r}") from e

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeData:
        try:
            node_id = str(data["id"])
            rect = Rectangle(
                float(data.get("x", 0)),
                float(data.get("y", 0)),
                float(data.get("width", 0)),
                float(data.get("height", 0)),
            )
        except KeyError as e:
            raise GraphValidationError(f"Node is missing field {e}") from e
        except (TypeError, ValueError) as e:
            raise GraphValidationError(f"Node {data.get('id')} has invalid geometry: {e}") from e

        node_type = data.get("type")
        if not isinstance(node_type, str):
            raise GraphValidationError(f"Node {node_id} has no type")

        extra = data.get("data") or {}
        # maxLoops may sit on the node itself
        if "maxLoops" in data and "maxLoops" not in extra:
            extra = {**extra, "maxLoops": data["maxLoops"]}
        return cls(id=node_id, type=node_type, rect=rect, text=data.get("text", ""), data=extra)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "x": self.rect.x,
            "y": self.rect.y,
            "width": self.rect.width,
            "height": self.rect.height,
            "text": self.text,
        }
        if self.data:
            result["data"] = dict(self.data)
        return result


@dataclass
class EdgeData:
    """One edge of the document."""

    id: str
    source: str
    target: str
    type: str = "variable"
    label: str | None = None
    reflexive: bool = False
    content: Content | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EdgeData:
        try:
            return cls(
                id=str(data["id"]),
                source=str(data["fromNode"]),
                target=str(data["toNode"]),
                type=data.get("type") or "variable",
                label=data.get("label") or None,
                reflexive=bool(data.get("reflexive", False)),
                content=data.get("content"),
            )
        except KeyError as e:
            raise GraphValidationError(f"Edge {data.get('id')} is missing field {e}") from e

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "fromNode": self.source,
            "toNode": self.target,
            "type": self.type,
        }
        if self.label is not None:
            result["label"] = self.label
        if self.reflexive:
            result["reflexive"] = True
        if self.content is not None:
            result["content"] = self.content
        return result


@dataclass
class CanvasDocument:
    """Parsed canvas document."""

    nodes: list[NodeData] = field(default_factory=list)
    edges: list[EdgeData] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CanvasDocument:
        """Parse a document dict.

        Raises:
            GraphValidationError: If the document is not shaped like a canvas.
        """
        if not isinstance(data, dict):
            raise GraphValidationError("Document must be a JSON object")
        nodes = data.get("nodes", [])
        edges = data.get("edges", [])
        if not isinstance(nodes, list) or not isinstance(edges, list):
            raise GraphValidationError("Document 'nodes' and 'edges' must be arrays")
        return cls(
            nodes=[NodeData.from_dict(n) for n in nodes],
            edges=[EdgeData.from_dict(e) for e in edges],
        )

    @classmethod
    def from_json(cls, text: str) -> CanvasDocument:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise GraphValidationError(f"Invalid JSON: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: str | Path) -> CanvasDocument:
        """Read a document from a file."""
        return cls.from_json(Path(path).read_text(encoding="utf-8"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }
