"""GraphObject - the status and event engine shared by every graph object.

Each object owns a status and an ordered list of dependency terms. Status
changes are written and broadcast in one synchronous step: the Run hears
about it first, then every subscriber, in subscription order.

Dependents never hold references to their dependencies, only ids; the
shared id->object mapping (the graph) resolves them.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from canvasflow.core.errors import (
    ConflictingAlternativesError,
    DuplicateAlternativeError,
    InvalidTransitionError,
    UpstreamFailedError,
)
from canvasflow.core.graph.dependency import AnyOf, Dependency, dependency_from
from canvasflow.core.types import ObjectKind, ObjectStatus

if TYPE_CHECKING:
    from canvasflow.core.run import Run

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[ObjectStatus, frozenset[ObjectStatus]] = {
    ObjectStatus.PENDING: frozenset(
        {ObjectStatus.EXECUTING, ObjectStatus.REJECTED, ObjectStatus.ERROR}
    ),
    ObjectStatus.EXECUTING: frozenset({ObjectStatus.COMPLETE, ObjectStatus.ERROR}),
    ObjectStatus.COMPLETE: frozenset(),
    ObjectStatus.REJECTED: frozenset(),
    ObjectStatus.ERROR: frozenset(),
}


def clone_id(object_id: str, group_id: str, iteration: int) -> str:
    """Deterministic id of an object's copy for one loop iteration."""
    return f"{object_id}@{group_id}:{iteration}"


@dataclass(frozen=True)
class ClonePlan:
    """Id mapping used while a loop group copies its member subgraph.

    Attributes:
        group_id: The cloning group.
        iteration: Iteration the copies belong to (>= 1).
        ids: Ids of every object being copied.
        chained: Ids of reflexive edges local to the cloning group.
    """

    group_id: str
    iteration: int
    ids: frozenset[str]
    chained: frozenset[str] = frozenset()

    def current(self, object_id: str) -> str:
        """Id of the object within this iteration."""
        if object_id not in self.ids:
            return object_id
        return clone_id(object_id, self.group_id, self.iteration)

    def previous(self, object_id: str) -> str:
        """Id of the object within the preceding iteration."""
        if object_id not in self.ids or self.iteration == 1:
            return object_id
        return clone_id(object_id, self.group_id, self.iteration - 1)


@dataclass(eq=False)
class GraphObject:
    """Base class of nodes, edges and groups.

    Structural fields are constructor arguments so a clone can be built
    with dataclasses.replace; runtime state is not.

    Attributes:
        id: Unique id within the graph instance.
        text: Content text from the document.
        dependencies: Ordered dependency terms.
        is_clone: Whether this object was created for a loop iteration.
        status: Current lifecycle status.
        error: The fault that put the object in Error, if any.
    """

    kind: ClassVar[ObjectKind]

    id: str
    text: str = ""
    dependencies: list[Dependency] = field(default_factory=list)
    is_clone: bool = False

    status: ObjectStatus = field(default=ObjectStatus.PENDING, init=False)
    error: BaseException | None = field(default=None, init=False, repr=False)
    graph: dict[str, GraphObject] = field(default_factory=dict, init=False, repr=False)
    _subscribers: list[str] = field(default_factory=list, init=False, repr=False)

    def attach(self, graph: dict[str, GraphObject]) -> None:
        """Bind the object to the shared id->object mapping."""
        self.graph = graph

    # -------------------------------------------------------------------------
    # Dependency declaration
    # -------------------------------------------------------------------------

    def add_dependency(self, term: Dependency | str | list[str] | tuple[str, ...]) -> None:
        """Append a dependency term.

        Args:
            term: A term, a single id, or a sequence of alternative ids.

        Raises:
            DuplicateAlternativeError: If an id is already part of another term.
        """
        term = dependency_from(term)
        for object_id in term.ids:
            if self.depends_on(object_id):
                raise DuplicateAlternativeError(self.id, object_id)
        self.dependencies.append(term)

    def depends_on(self, object_id: str) -> bool:
        return self.term_for(object_id) is not None

    def term_for(self, object_id: str) -> Dependency | None:
        """The term referencing object_id, if any."""
        for term in self.dependencies:
            if object_id in term.ids:
                return term
        return None

    def dependency_ids(self) -> list[str]:
        return [object_id for term in self.dependencies for object_id in term.ids]

    # -------------------------------------------------------------------------
    # Subscriptions and notification
    # -------------------------------------------------------------------------

    def subscribe(self, subscriber_id: str) -> None:
        """Register an object to be told about this object's status changes."""
        if subscriber_id not in self._subscribers:
            self._subscribers.append(subscriber_id)

    @property
    def subscribers(self) -> list[str]:
        return list(self._subscribers)

    def prune_subscribers(self) -> None:
        """Forget subscribers that are no longer part of the graph."""
        self._subscribers = [s for s in self._subscribers if s in self.graph]

    def setup_listeners(self) -> None:
        """Subscribe to every object referenced by a dependency term."""
        for object_id in self.dependency_ids():
            self.graph[object_id].subscribe(self.id)

    def set_status(self, status: ObjectStatus, run: Run) -> None:
        """Write a new status and broadcast it.

        Raises:
            InvalidTransitionError: If the state machine forbids the change.
        """
        if status is not ObjectStatus.PENDING and status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"{self.kind.value} {self.id}: {self.status.value} -> {status.value}"
            )
        self.status = status
        logger.debug("object_status: id=%s, status=%s", self.id, status.value)
        run.object_updated(self, status)
        for subscriber_id in list(self._subscribers):
            self.graph[subscriber_id].on_update(self, status, run)

    def on_update(self, obj: GraphObject, status: ObjectStatus, run: Run) -> None:
        """Receive a status change from an object this one subscribed to."""
        term = self.term_for(obj.id)
        if term is None:
            return
        if isinstance(term, AnyOf) and status is ObjectStatus.COMPLETE:
            completed = term.completed(self.graph)
            if len(completed) > 1:
                self.fail(run, ConflictingAlternativesError(self.id, completed))
                return
        self.dependency_updated(obj, status, run)

    def dependency_updated(self, dependency: GraphObject, status: ObjectStatus, run: Run) -> None:
        # Errors still cascade after the run stopped on them
        if run.is_stopped and status is not ObjectStatus.ERROR:
            return
        if status is ObjectStatus.COMPLETE:
            self.dependency_completed(dependency, run)
        elif status is ObjectStatus.REJECTED:
            self.dependency_rejected(dependency, run)
        elif status is ObjectStatus.ERROR:
            self.dependency_errored(dependency, run)

    def dependency_completed(self, dependency: GraphObject, run: Run) -> None:
        self.evaluate(run)

    def dependency_rejected(self, dependency: GraphObject, run: Run) -> None:
        self.try_reject(run)

    def dependency_errored(self, dependency: GraphObject, run: Run) -> None:
        if self.status is ObjectStatus.PENDING:
            self.fail(run, UpstreamFailedError(self.id, dependency.id))

    # -------------------------------------------------------------------------
    # Readiness
    # -------------------------------------------------------------------------

    def all_dependencies_complete(self) -> bool:
        """Whether every term is satisfied.

        A Single term needs its object Complete; an AnyOf term needs exactly
        one of its alternatives Complete.
        """
        return all(term.is_satisfied(self.graph) for term in self.dependencies)

    def is_ready(self) -> bool:
        return self.all_dependencies_complete()

    def try_reject(self, run: Run) -> bool:
        """Reject the object if any term can no longer be satisfied.

        Returns:
            True if the object was rejected.
        """
        if self.status is not ObjectStatus.PENDING:
            return False
        if any(term.is_foreclosed(self.graph) for term in self.dependencies):
            self.set_status(ObjectStatus.REJECTED, run)
            return True
        return False

    def reject(self, run: Run) -> None:
        """Reject unconditionally if still Pending."""
        if self.status is ObjectStatus.PENDING:
            self.set_status(ObjectStatus.REJECTED, run)

    def evaluate(self, run: Run) -> None:
        """Launch the object if it is ready, reject it if it never can be."""
        if self.status is not ObjectStatus.PENDING or run.is_stopped:
            return
        if self.try_reject(run):
            return
        if self.is_ready():
            run.launch(self)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def execute(self, run: Run) -> None:
        """Run the object's unit of work.

        Faults propagate to the run's task wrapper, which turns them into
        Error on this object.
        """
        if self.status is not ObjectStatus.PENDING:
            return
        run.check_cancelled()
        self.set_status(ObjectStatus.EXECUTING, run)

        if run.is_mock:
            await self.mock_run(run)
        else:
            await self.run(run)

        run.check_cancelled()
        # A conflict may have failed the object while it was working
        if self.status is ObjectStatus.EXECUTING:
            self.set_status(ObjectStatus.COMPLETE, run)

    async def run(self, run: Run) -> None:
        """Unit of work. No-op by default."""

    async def mock_run(self, run: Run) -> None:
        """No-cost substitute for run(). No-op by default."""

    def fail(self, run: Run, exc: BaseException) -> None:
        """Put the object in Error, or report the fault if it already finished."""
        if self.status in (ObjectStatus.PENDING, ObjectStatus.EXECUTING):
            self.error = exc
            self.set_status(ObjectStatus.ERROR, run)
        else:
            run.report_fault(self, exc)

    def reset(self, run: Run) -> None:
        """Return to Pending and drop runtime state."""
        self.error = None
        self.set_status(ObjectStatus.PENDING, run)

    # -------------------------------------------------------------------------
    # Cloning
    # -------------------------------------------------------------------------

    def clone(self, plan: ClonePlan) -> GraphObject:
        """Copy of the object for one loop iteration.

        Built from the structural fields only; the copy starts Pending,
        with no subscribers, and is not attached to any graph.
        """
        changes: dict[str, Any] = {
            "id": plan.current(self.id),
            "is_clone": True,
            "dependencies": [term.remap(plan.current) for term in self.dependencies],
        }
        changes.update(self.remapped_fields(plan))
        return dataclasses.replace(self, **changes)

    def remapped_fields(self, plan: ClonePlan) -> dict[str, Any]:
        """Structural fields that reference other objects, remapped for a clone."""
        return {}

    def describe(self) -> dict[str, Any]:
        """Summary for logs and CLI output."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "status": self.status.value,
            "is_clone": self.is_clone,
        }


__all__ = [
    "ClonePlan",
    "GraphObject",
    "clone_id",
]
