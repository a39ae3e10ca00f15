"""Pure data types for canvasflow.core.

Enums and small value objects shared by the graph kernel, the run
orchestrator and the front ends. No behavior coupling.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal


class ObjectStatus(Enum):
    """Graph object lifecycle states.

    State transitions:
        PENDING -> EXECUTING -> COMPLETE | ERROR
        PENDING -> REJECTED | ERROR
        any -> PENDING (reset)
    """

    PENDING = "pending"  # Waiting on dependencies
    EXECUTING = "executing"  # Unit of work in progress (groups: iterations running)
    COMPLETE = "complete"  # Finished successfully
    REJECTED = "rejected"  # Upstream branch not taken
    ERROR = "error"  # Execution fault

    @property
    def is_terminal(self) -> bool:
        """Whether the status can only change through a reset."""
        return self in (ObjectStatus.COMPLETE, ObjectStatus.REJECTED, ObjectStatus.ERROR)


class ObjectKind(Enum):
    """Kind tag of a graph object."""

    NODE = "node"
    EDGE = "edge"
    GROUP = "group"


class NodeType(Enum):
    """Computational node variants, keyed by their document type tag."""

    CALL = "call"  # Invoke the completion provider
    CHOOSE = "choose"  # Let the provider pick one outgoing branch
    DISTRIBUTE = "distribute"  # Let the provider fill each outgoing edge
    FORMATTER = "formatter"  # Substitute {{variables}} into text
    INPUT = "input"  # Static content
    DISPLAY = "display"  # Show incoming content
    REFERENCE = "reference"  # Read/write a note in the content store


class GroupType(Enum):
    """Group variants, keyed by their document type tag."""

    BASIC = "basic"
    REPEAT = "repeat"
    FOR_EACH = "for-each"


class EdgeType(Enum):
    """Edge variants, keyed by their document type tag."""

    VARIABLE = "variable"  # Plain value, named or not
    CHAT = "chat"  # Value plus conversation transcript
    SYSTEM_MESSAGE = "system-message"  # Leading instruction for a conversation
    CONFIG = "config"  # Provider setting such as model or temperature
    LIST = "list"  # Collection driving a for-each group
    CHOICE = "choice"  # Branch of a choose node
    LOGGING = "logging"  # Transcript appended to the target's log


StopReason = Literal["complete", "error", "stopped"]

# Edge payload: plain text, named values, or the per-iteration values
# collected by an edge leaving a for-each group.
Content = str | dict[str, str] | list[str]


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned bounding box of a vertex on the canvas."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height


@dataclass(frozen=True)
class EdgeRef:
    """Reference from a vertex to one of its edges."""

    id: str
    reflexive: bool = False


@dataclass
class ModelUsage:
    """Token and cost totals for one model within a run."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_cost: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_cost": self.total_cost,
        }


@dataclass
class Stoppage:
    """Terminal report of a run.

    Attributes:
        reason: Why the run ended.
        message: Error message when reason is "error".
        usage: Usage per model name.
        total_cost: Sum of all model costs in dollars.
    """

    reason: StopReason
    message: str | None = None
    usage: dict[str, ModelUsage] = field(default_factory=dict)
    total_cost: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "reason": self.reason,
            "message": self.message,
            "usage": {model: usage.to_dict() for model, usage in self.usage.items()},
            "total_cost": self.total_cost,
        }
