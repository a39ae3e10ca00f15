"""canvasflow error types.

Validation faults, dependency invariant violations and transition errors
raised by the graph kernel. Provider, content store, budget and cancellation
errors live beside the code that raises them and share the same base class.
"""

from __future__ import annotations


class CanvasflowError(Exception):
    """Base error for canvasflow."""


class GraphValidationError(CanvasflowError):
    """Malformed graph document.

    Raised during hydration when:
    - An object has an unknown type tag
    - An edge references a missing vertex
    - Two groups partially overlap instead of nesting
    - An edge connects a vertex with its own enclosing group
    - A reflexive edge does not sit inside a loop group
    """


class DependencyError(CanvasflowError):
    """Base error for dependency declaration and resolution faults."""

    def __init__(self, object_id: str, message: str) -> None:
        self.object_id = object_id
        super().__init__(f"Error on object {object_id}: {message}")


class DuplicateAlternativeError(DependencyError):
    """A dependency id appears in more than one dependency term."""

    def __init__(self, object_id: str, duplicate: str) -> None:
        self.duplicate = duplicate
        super().__init__(
            object_id,
            f"duplicate dependency '{duplicate}'. Duplicate variables must come from "
            "different choice branches, so only one of them can be activated at once.",
        )


class ConflictingAlternativesError(DependencyError):
    """More than one member of an alternative set completed."""

    def __init__(self, object_id: str, completed: list[str]) -> None:
        self.completed = completed
        super().__init__(
            object_id,
            f"alternatives {', '.join(completed)} completed together. Only one branch "
            "of a choice may fire.",
        )


class InvalidTransitionError(CanvasflowError):
    """A status change that the state machine does not allow."""


class UpstreamFailedError(DependencyError):
    """An object this one waits on ended in Error."""

    def __init__(self, object_id: str, upstream: str) -> None:
        self.upstream = upstream
        super().__init__(object_id, f"upstream object '{upstream}' failed")
