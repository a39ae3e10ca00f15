"""Vertex - a graph object with a position on the canvas.

Nodes and groups are vertices. A vertex knows its incoming and outgoing
edges by id, and the groups that geometrically enclose it (nearest first).
Membership in a group gates execution: a member waits until its immediate
group is running.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from canvasflow.core.errors import DependencyError
from canvasflow.core.graph.dependency import Single
from canvasflow.core.graph.objects import ClonePlan, GraphObject
from canvasflow.core.types import EdgeRef, ObjectKind, ObjectStatus, Rectangle

if TYPE_CHECKING:
    from canvasflow.core.graph.edge import Edge
    from canvasflow.core.run import Run
    from canvasflow.core.types import Content

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Vertex(GraphObject):
    """Graph object with a bounding box, edges and enclosing groups.

    Attributes:
        rect: Bounding box on the canvas.
        incoming_edges: Edges pointing at this vertex, in document order.
        outgoing_edges: Edges leaving this vertex, in document order.
        groups: Enclosing group ids, nearest first.
        loop_indices: Iteration index per loop group; a missing group means 0.
    """

    rect: Rectangle = field(default_factory=lambda: Rectangle(0, 0, 0, 0))
    incoming_edges: list[EdgeRef] = field(default_factory=list)
    outgoing_edges: list[EdgeRef] = field(default_factory=list)
    groups: list[str] = field(default_factory=list)
    loop_indices: dict[str, int] = field(default_factory=dict)

    def add_incoming_edge(self, edge_id: str, reflexive: bool = False) -> None:
        self.incoming_edges.append(EdgeRef(edge_id, reflexive))

    def add_outgoing_edge(self, edge_id: str, reflexive: bool = False) -> None:
        self.outgoing_edges.append(EdgeRef(edge_id, reflexive))

    def get_incoming_edges(self) -> list[Edge]:
        return [self.graph[ref.id] for ref in self.incoming_edges]  # type: ignore[misc]

    def get_outgoing_edges(self) -> list[Edge]:
        return [self.graph[ref.id] for ref in self.outgoing_edges]  # type: ignore[misc]

    # -------------------------------------------------------------------------
    # Geometry
    # -------------------------------------------------------------------------

    @staticmethod
    def encloses(outer: Rectangle, inner: Rectangle) -> bool:
        """Whether outer contains inner, edges inclusive."""
        return (
            outer.x <= inner.x
            and outer.y <= inner.y
            and outer.right >= inner.right
            and outer.bottom >= inner.bottom
        )

    @staticmethod
    def overlaps(a: Rectangle, b: Rectangle) -> bool:
        """Whether two rectangles intersect without one enclosing the other."""
        intersects = a.x < b.right and b.x < a.right and a.y < b.bottom and b.y < a.bottom
        return intersects and not Vertex.encloses(a, b) and not Vertex.encloses(b, a)

    def set_groups(self, graph: Mapping[str, GraphObject] | None = None) -> list[str]:
        """Assign the groups enclosing this vertex, smallest area first.

        Args:
            graph: Objects to search. Defaults to the attached graph.

        Returns:
            The assigned group ids.
        """
        graph = self.graph if graph is None else graph
        enclosing = [
            obj
            for obj in graph.values()
            if obj.kind is ObjectKind.GROUP
            and obj.id != self.id
            and self.encloses(obj.rect, self.rect)  # type: ignore[attr-defined]
        ]
        # sorted() is stable, so equal areas keep document order
        enclosing = sorted(enclosing, key=lambda g: g.rect.area)  # type: ignore[attr-defined]
        self.groups = [g.id for g in enclosing]
        return self.groups

    @property
    def enclosing_group(self) -> str | None:
        """Id of the nearest enclosing group."""
        return self.groups[0] if self.groups else None

    def loop_index(self, group_id: str) -> int:
        return self.loop_indices.get(group_id, 0)

    # -------------------------------------------------------------------------
    # Group gating
    # -------------------------------------------------------------------------

    def setup_listeners(self) -> None:
        super().setup_listeners()
        if self.enclosing_group is not None:
            self.graph[self.enclosing_group].subscribe(self.id)

    def group_started(self) -> bool:
        if self.enclosing_group is None:
            return True
        return self.graph[self.enclosing_group].status in (
            ObjectStatus.EXECUTING,
            ObjectStatus.COMPLETE,
        )

    def is_ready(self) -> bool:
        return self.group_started() and super().is_ready()

    def on_update(self, obj: GraphObject, status: ObjectStatus, run: Run) -> None:
        if obj.id == self.enclosing_group:
            self.group_updated(obj, status, run)
        super().on_update(obj, status, run)

    def group_updated(self, group: GraphObject, status: ObjectStatus, run: Run) -> None:
        if status is ObjectStatus.EXECUTING:
            if not run.is_stopped:
                self.evaluate(run)
        elif status is ObjectStatus.REJECTED:
            if not run.is_stopped:
                self.reject(run)
        elif status is ObjectStatus.ERROR and self.status is ObjectStatus.PENDING:
            self.fail(run, DependencyError(self.id, f"enclosing group '{group.id}' failed"))

    # -------------------------------------------------------------------------
    # Data flow
    # -------------------------------------------------------------------------

    def active_incoming_edges(self) -> list[Edge]:
        """Complete incoming edges whose payload this vertex reads.

        A reflexive edge only counts once the vertex depends on it, which
        is never the case for the first iteration.
        """
        edges = []
        for ref in self.incoming_edges:
            if ref.reflexive and not self.depends_on(ref.id):
                continue
            edge = self.graph[ref.id]
            if edge.status is ObjectStatus.COMPLETE:
                edges.append(edge)
        return edges  # type: ignore[return-value]

    def allows(self, edge: Edge) -> bool:
        """Whether an outgoing edge is on the branch this vertex took."""
        return True

    def load_outgoing(
        self,
        content: Content | None,
        messages: list[dict[str, str]] | None = None,
    ) -> None:
        """Hand a payload to every outgoing edge."""
        for edge in self.get_outgoing_edges():
            edge.load(content, messages, self)

    # -------------------------------------------------------------------------
    # Cloning
    # -------------------------------------------------------------------------

    def remapped_fields(self, plan: ClonePlan) -> dict[str, Any]:
        fields = super().remapped_fields(plan)
        dependencies = [term.remap(plan.current) for term in self.dependencies]
        incoming = []
        for ref in self.incoming_edges:
            if ref.reflexive and ref.id in plan.chained:
                # Read the edge as produced by the previous iteration
                previous = plan.previous(ref.id)
                incoming.append(EdgeRef(previous, True))
                dependencies.append(Single(previous))
            else:
                incoming.append(EdgeRef(plan.current(ref.id), ref.reflexive))

        loop_indices = {plan.current(g): i for g, i in self.loop_indices.items()}
        loop_indices[plan.group_id] = plan.iteration
        fields.update(
            dependencies=dependencies,
            incoming_edges=incoming,
            outgoing_edges=[EdgeRef(plan.current(r.id), r.reflexive) for r in self.outgoing_edges],
            groups=[plan.current(g) for g in self.groups],
            loop_indices=loop_indices,
        )
        return fields

    def describe(self) -> dict[str, Any]:
        info = super().describe()
        info["groups"] = list(self.groups)
        if self.loop_indices:
            info["loop_indices"] = dict(self.loop_indices)
        return info
