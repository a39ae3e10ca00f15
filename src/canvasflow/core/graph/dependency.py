"""Dependency terms.

A graph object waits on an ordered list of terms. Each term is either:
- Single: one upstream object that must complete
- AnyOf: mutually exclusive upstream objects (parallel choice branches),
  exactly one of which is expected to complete

Terms only hold ids; statuses are looked up in the shared id->object
mapping at evaluation time.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from canvasflow.core.types import ObjectStatus

if TYPE_CHECKING:
    from canvasflow.core.graph.objects import GraphObject


@dataclass(frozen=True)
class Single:
    """Dependency on exactly one upstream object."""

    id: str

    @property
    def ids(self) -> tuple[str, ...]:
        return (self.id,)

    def is_satisfied(self, graph: Mapping[str, GraphObject]) -> bool:
        return graph[self.id].status is ObjectStatus.COMPLETE

    def is_foreclosed(self, graph: Mapping[str, GraphObject]) -> bool:
        """Whether the term can no longer be satisfied by a branch being taken."""
        return graph[self.id].status is ObjectStatus.REJECTED

    def remap(self, mapper: Callable[[str], str]) -> Single:
        return Single(mapper(self.id))


@dataclass(frozen=True)
class AnyOf:
    """Dependency on one of several mutually exclusive upstream objects."""

    ids: tuple[str, ...]

    def __post_init__(self) -> None:
        if len(self.ids) < 2:
            raise ValueError("AnyOf needs at least two alternatives")

    def completed(self, graph: Mapping[str, GraphObject]) -> list[str]:
        """Ids of the alternatives that are currently complete."""
        return [i for i in self.ids if graph[i].status is ObjectStatus.COMPLETE]

    def is_satisfied(self, graph: Mapping[str, GraphObject]) -> bool:
        # More than one complete is a conflict, reported by the event path
        return len(self.completed(graph)) == 1

    def is_foreclosed(self, graph: Mapping[str, GraphObject]) -> bool:
        return all(graph[i].status is ObjectStatus.REJECTED for i in self.ids)

    def remap(self, mapper: Callable[[str], str]) -> AnyOf:
        return AnyOf(tuple(mapper(i) for i in self.ids))


Dependency = Single | AnyOf


def dependency_from(value: str | Single | AnyOf | list[str] | tuple[str, ...]) -> Dependency:
    """Build a term from an id, a sequence of alternative ids, or a term.

    A one-element sequence is a Single term.
    """
    if isinstance(value, (Single, AnyOf)):
        return value
    if isinstance(value, str):
        return Single(value)
    ids = tuple(value)
    if len(ids) == 1:
        return Single(ids[0])
    return AnyOf(ids)
