"""Graph - hydration of a canvas document into live graph objects.

Hydration:
1. Build one vertex per document node (node or group type)
2. Assign enclosing groups from geometry and check that groups nest
3. Build edges, recording which groups they cross
4. Declare dependencies

Example:
    >>> graph = Graph.from_document(CanvasDocument.load("story.canvas"))
    >>> run = Run(graph, is_mock=True)
    >>> stoppage = await run.start()
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from itertools import combinations
from typing import Any

from canvasflow.core.errors import GraphValidationError
from canvasflow.core.graph.dependency import AnyOf, Single
from canvasflow.core.graph.document import CanvasDocument, EdgeData, NodeData
from canvasflow.core.graph.edge import EDGE_TYPES, Edge
from canvasflow.core.graph.group import GROUP_TYPES, Group
from canvasflow.core.graph.nodes import NODE_TYPES, Node, ReferenceNode
from canvasflow.core.graph.objects import GraphObject
from canvasflow.core.graph.vertex import Vertex
from canvasflow.core.types import EdgeType, GroupType, NodeType, ObjectStatus

logger = logging.getLogger(__name__)


class Graph(Mapping[str, GraphObject]):
    """Id->object mapping of a hydrated canvas.

    The mapping is shared by every object; loop groups add clones to it
    while a run is in progress.
    """

    def __init__(self, document: CanvasDocument | None = None) -> None:
        self.document = document or CanvasDocument()
        self.objects: dict[str, GraphObject] = {}

    @classmethod
    def from_document(cls, document: CanvasDocument | dict[str, Any]) -> Graph:
        """Hydrate a document.

        Raises:
            GraphValidationError: If the document is malformed.
        """
        if isinstance(document, dict):
            document = CanvasDocument.from_dict(document)
        graph = cls(document)
        graph.hydrate()
        return graph

    def __getitem__(self, object_id: str) -> GraphObject:
        return self.objects[object_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self.objects)

    def __len__(self) -> int:
        return len(self.objects)

    # -------------------------------------------------------------------------
    # Hydration
    # -------------------------------------------------------------------------

    def hydrate(self) -> None:
        self.objects.clear()
        for node in self.document.nodes:
            self.add(self._build_vertex(node))

        vertices = self.vertices()
        for vertex in vertices:
            vertex.set_groups(self.objects)
        self._check_group_nesting()
        for group in self.groups():
            group.members = [v.id for v in vertices if group.id in v.groups]

        for edge_data in self.document.edges:
            self.add(self._build_edge(edge_data))

        for edge in self.edges():
            self._declare_edge_dependencies(edge)
        for vertex in vertices:
            self._declare_vertex_dependencies(vertex)

        logger.debug(
            "graph_hydrated: vertices=%d, edges=%d, groups=%d",
            len(vertices),
            len(self.edges()),
            len(self.groups()),
        )

    def add(self, obj: GraphObject) -> None:
        if obj.id in self.objects:
            raise GraphValidationError(f"Duplicate object id: {obj.id}")
        obj.attach(self.objects)
        self.objects[obj.id] = obj

    def _build_vertex(self, node: NodeData) -> Vertex:
        if node.is_group:
            group_cls = GROUP_TYPES[GroupType(node.type)]
            max_loops = node.max_loops
            if group_cls.group_type is GroupType.REPEAT and max_loops < 1:
                raise GraphValidationError(f"Group {node.id} needs maxLoops >= 1")
            return group_cls(id=node.id, text=node.text, rect=node.rect, max_loops=max_loops)

        try:
            node_type = NodeType(node.type)
        except ValueError as e:
            raise GraphValidationError(f"Unknown type '{node.type}' on node {node.id}") from e
        node_cls = NODE_TYPES[node_type]
        if node_cls is ReferenceNode:
            return ReferenceNode(
                id=node.id, text=node.text, rect=node.rect, reference=node.data.get("reference")
            )
        return node_cls(id=node.id, text=node.text, rect=node.rect)

    def _is_loop(self, group_id: str) -> bool:
        group = self.objects[group_id]
        return isinstance(group, Group) and group.is_loop

    def _check_group_nesting(self) -> None:
        for a, b in combinations(self.groups(), 2):
            if a.rect == b.rect or Vertex.overlaps(a.rect, b.rect):
                raise GraphValidationError(f"Groups {a.id} and {b.id} overlap without nesting")

    def _build_edge(self, data: EdgeData) -> Edge:
        try:
            edge_cls = EDGE_TYPES[EdgeType(data.type)]
        except ValueError as e:
            raise GraphValidationError(f"Unknown type '{data.type}' on edge {data.id}") from e

        for endpoint in (data.source, data.target):
            if not isinstance(self.objects.get(endpoint), Vertex):
                raise GraphValidationError(f"Edge {data.id} references missing vertex {endpoint}")
        source: Vertex = self.objects[data.source]  # type: ignore[assignment]
        target: Vertex = self.objects[data.target]  # type: ignore[assignment]

        if source.id == target.id:
            raise GraphValidationError(f"Edge {data.id} connects {source.id} to itself")
        if target.id in source.groups or source.id in target.groups:
            raise GraphValidationError(
                f"Edge {data.id} connects a vertex with its own enclosing group"
            )

        crossing_out = [g for g in source.groups if g not in target.groups]
        crossing_in = [g for g in target.groups if g not in source.groups]

        reflexive_group = None
        if data.reflexive:
            if crossing_in or crossing_out:
                raise GraphValidationError(f"Reflexive edge {data.id} crosses a group boundary")
            loops = [g for g in source.groups if self._is_loop(g)]
            if not loops:
                raise GraphValidationError(f"Reflexive edge {data.id} is not inside a loop group")
            reflexive_group = loops[0]

        edge = edge_cls(
            id=data.id,
            text=data.label or "",
            source=source.id,
            target=target.id,
            name=data.label,
            crossing_in_groups=crossing_in,
            crossing_out_groups=crossing_out,
            reflexive=data.reflexive,
            reflexive_group=reflexive_group,
            content=data.content,
        )
        source.add_outgoing_edge(edge.id, data.reflexive)
        target.add_incoming_edge(edge.id, data.reflexive)
        return edge

    def _declare_edge_dependencies(self, edge: Edge) -> None:
        loops = [g for g in edge.crossing_out_groups if self._is_loop(g)]
        if loops:
            # Delivered once every crossed loop finished all its iterations
            for group_id in loops:
                edge.add_dependency(Single(group_id))
        else:
            edge.add_dependency(Single(edge.source))

    def _declare_vertex_dependencies(self, vertex: Vertex) -> None:
        # Same-named edges are alternatives: branches of which only one fires
        by_name: dict[str, list[str]] = {}
        order: list[str | tuple[str]] = []
        for ref in vertex.incoming_edges:
            if ref.reflexive:
                continue
            name = self.objects[ref.id].name  # type: ignore[attr-defined]
            if name is None:
                order.append((ref.id,))
                continue
            if name not in by_name:
                by_name[name] = []
                order.append(name)
            by_name[name].append(ref.id)

        for key in order:
            if isinstance(key, tuple):
                vertex.add_dependency(Single(key[0]))
            else:
                ids = by_name[key]
                vertex.add_dependency(AnyOf(tuple(ids)) if len(ids) > 1 else Single(ids[0]))

        if isinstance(vertex, Group):
            for edge in self.edges():
                if vertex.id in edge.crossing_in_groups and not vertex.depends_on(edge.id):
                    vertex.add_dependency(Single(edge.id))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def vertices(self) -> list[Vertex]:
        return [o for o in self.objects.values() if isinstance(o, Vertex)]

    def nodes(self) -> list[Node]:
        return [o for o in self.objects.values() if isinstance(o, Node)]

    def edges(self) -> list[Edge]:
        return [o for o in self.objects.values() if isinstance(o, Edge)]

    def groups(self) -> list[Group]:
        return [o for o in self.objects.values() if isinstance(o, Group)]

    def clones(self) -> list[GraphObject]:
        return [o for o in self.objects.values() if o.is_clone]

    def unresolved(self) -> list[GraphObject]:
        """Objects still Pending or Executing."""
        return [o for o in self.objects.values() if not o.status.is_terminal]

    def status_counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in ObjectStatus}
        for obj in self.objects.values():
            counts[obj.status.value] += 1
        return counts

    def discard_clones(self) -> int:
        """Remove every clone and forget subscriptions to them.

        Returns:
            Number of clones removed.
        """
        clone_ids = [o.id for o in self.clones()]
        for object_id in clone_ids:
            del self.objects[object_id]
        for obj in self.objects.values():
            obj.prune_subscribers()
        return len(clone_ids)
