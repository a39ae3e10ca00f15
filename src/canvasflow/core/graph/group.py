"""Groups - vertices that enclose other vertices and fire them.

A group becomes ready like any other object, then:
- Basic fires its members once
- Repeat fires its member subgraph max_loops times
- ForEach fires it once per element of its list input

Iterations after the first run on clones of the member subgraph; all
iterations run concurrently, chained only through reflexive edges.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from canvasflow.core.errors import DependencyError, GraphValidationError
from canvasflow.core.graph.edge import ListEdge
from canvasflow.core.graph.objects import ClonePlan, GraphObject
from canvasflow.core.graph.vertex import Vertex
from canvasflow.core.types import GroupType, ObjectKind, ObjectStatus

if TYPE_CHECKING:
    from canvasflow.core.run import Run

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Group(Vertex):
    """Basic group: fires its members once.

    Attributes:
        members: Ids of every enclosed vertex, nested ones included.
        max_loops: Number of iterations.
        current_loop: Number of finished iterations.
    """

    kind: ClassVar[ObjectKind] = ObjectKind.GROUP
    group_type: ClassVar[GroupType] = GroupType.BASIC

    members: list[str] = field(default_factory=list)
    max_loops: int = 1

    current_loop: int = field(default=0, init=False)
    _iterations: list[list[str]] = field(default_factory=list, init=False, repr=False)

    @property
    def is_loop(self) -> bool:
        return False

    def immediate_members(self) -> list[str]:
        """Members whose nearest enclosing group is this one."""
        members = [self.graph[m] for m in self.members]
        return [m.id for m in members if m.enclosing_group == self.id]  # type: ignore[attr-defined]

    @property
    def iterations(self) -> list[list[str]]:
        """Immediate member ids of each fired iteration."""
        return [list(ids) for ids in self._iterations]

    def iteration_count(self) -> int:
        return 1

    def setup_listeners(self) -> None:
        super().setup_listeners()
        for member_id in self.immediate_members():
            self.graph[member_id].subscribe(self.id)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def execute(self, run: Run) -> None:
        """Fire every iteration.

        The group stays Executing until each immediate member of each
        iteration is terminal; member events complete it.
        """
        if self.status is not ObjectStatus.PENDING:
            return
        run.check_cancelled()

        count = self.iteration_count()
        if count < 1:
            logger.debug("group_empty_collection: id=%s", self.id)
            self.reject(run)
            return

        self._iterations = [self.immediate_members()]
        for iteration in range(1, count):
            self._iterations.append(self.clone_iteration(iteration, run))
        logger.debug("group_fired: id=%s, iterations=%d", self.id, count)

        # Members waiting on the group launch from this notification
        self.set_status(ObjectStatus.EXECUTING, run)
        self.check_members(run)

    def subgraph_ids(self) -> list[str]:
        """Member vertices plus every edge whose target is a member."""
        ids = list(self.members)
        members = set(self.members)
        for member_id in self.members:
            for ref in self.graph[member_id].incoming_edges:  # type: ignore[attr-defined]
                edge = self.graph[ref.id]
                if edge.target in members and ref.id not in ids:  # type: ignore[attr-defined]
                    ids.append(ref.id)
        return ids

    def chained_edges(self) -> frozenset[str]:
        """Reflexive edges local to this group."""
        return frozenset(
            object_id
            for object_id in self.subgraph_ids()
            if getattr(self.graph[object_id], "reflexive_group", None) == self.id
        )

    def clone_iteration(self, iteration: int, run: Run) -> list[str]:
        """Copy the member subgraph for one iteration and register it.

        Returns:
            Ids of the iteration's immediate members.
        """
        source_ids = self.subgraph_ids()
        plan = ClonePlan(self.id, iteration, frozenset(source_ids), self.chained_edges())
        clones = [self.graph[object_id].clone(plan) for object_id in source_ids]
        for clone in clones:
            run.register(clone)
        for clone in clones:
            clone.setup_listeners()

        immediate = [plan.current(m) for m in self.immediate_members()]
        for member_id in immediate:
            self.graph[member_id].subscribe(self.id)

        # Edges crossing in already have a complete source
        for clone in clones:
            if clone.kind is ObjectKind.EDGE:
                clone.evaluate(run)
        return immediate

    def on_update(self, obj: GraphObject, status: ObjectStatus, run: Run) -> None:
        if any(obj.id in ids for ids in self._iterations):
            self.member_updated(obj, status, run)
        super().on_update(obj, status, run)

    def member_updated(self, member: GraphObject, status: ObjectStatus, run: Run) -> None:
        if self.status is not ObjectStatus.EXECUTING:
            return
        if status is ObjectStatus.ERROR:
            self.fail(run, DependencyError(self.id, f"member '{member.id}' failed"))
        elif status.is_terminal:
            self.check_members(run)

    def check_members(self, run: Run) -> None:
        """Complete the group once every iteration has finished."""
        finished = sum(
            1
            for ids in self._iterations
            if all(self.graph[m].status.is_terminal for m in ids)
        )
        self.current_loop = finished
        if finished == len(self._iterations) and self.status is ObjectStatus.EXECUTING:
            self.set_status(ObjectStatus.COMPLETE, run)

    def reset(self, run: Run) -> None:
        self.current_loop = 0
        self._iterations = []
        super().reset(run)

    def remapped_fields(self, plan: ClonePlan) -> dict[str, Any]:
        fields = super().remapped_fields(plan)
        fields["members"] = [plan.current(m) for m in self.members]
        return fields

    def describe(self) -> dict[str, Any]:
        info = super().describe()
        info.update(
            type=self.group_type.value,
            members=len(self.members),
            current_loop=self.current_loop,
        )
        return info


@dataclass(eq=False)
class RepeatGroup(Group):
    """Fires its members max_loops times."""

    group_type: ClassVar[GroupType] = GroupType.REPEAT

    @property
    def is_loop(self) -> bool:
        return True

    def iteration_count(self) -> int:
        return self.max_loops


@dataclass(eq=False)
class ForEachGroup(Group):
    """Fires its members once per element of its list input."""

    group_type: ClassVar[GroupType] = GroupType.FOR_EACH

    @property
    def is_loop(self) -> bool:
        return True

    def list_input(self) -> ListEdge:
        """The list edge that feeds this group.

        Raises:
            GraphValidationError: If no list edge enters the group.
        """
        for object_id in self.dependency_ids():
            edge = self.graph[object_id]
            if isinstance(edge, ListEdge) and (
                edge.target == self.id or self.id in edge.crossing_in_groups
            ):
                return edge
        raise GraphValidationError(f"For-each group {self.id} has no list input")

    def iteration_count(self) -> int:
        count = len(self.list_input().items())
        self.max_loops = count
        return count


GROUP_TYPES: dict[GroupType, type[Group]] = {
    cls.group_type: cls for cls in (Group, RepeatGroup, ForEachGroup)
}
