"""Edges - typed data channels between vertices.

The source vertex loads a payload into each outgoing edge before it
completes; the edge completes right after; the target folds the payload
of every complete incoming edge into its NodeInputs.

Edges leaving a loop group do not wait on their source but on the loop
group(s) they cross, collecting one value per iteration along the way.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from canvasflow.core.graph.objects import ClonePlan, GraphObject
from canvasflow.core.types import Content, EdgeType, GroupType, ObjectKind, ObjectStatus

if TYPE_CHECKING:
    from canvasflow.core.graph.group import Group
    from canvasflow.core.graph.vertex import Vertex
    from canvasflow.core.run import Run

logger = logging.getLogger(__name__)

# "- item", "* item", "+ item", "1. item", "1) item"
_LIST_MARKER = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+")

Messages = list[dict[str, str]]


def as_text(content: Content | None) -> str:
    """Render any payload as plain text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        return "\n".join(f"{key}: {value}" for key, value in content.items())
    return "\n".join(as_text(item) for item in content)


def split_items(content: Content | None) -> list[str]:
    """Split a payload into collection elements.

    Lists are taken as-is, mappings contribute their values, JSON arrays
    are decoded, and any other text yields one element per non-blank line
    with list markers stripped.
    """
    if content is None:
        return []
    if isinstance(content, list):
        return [as_text(item) for item in content]
    if isinstance(content, dict):
        return list(content.values())

    text = content.strip()
    if text.startswith("["):
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            decoded = None
        if isinstance(decoded, list):
            return [item if isinstance(item, str) else json.dumps(item) for item in decoded]

    items = []
    for line in text.splitlines():
        item = _LIST_MARKER.sub("", line).strip()
        if item:
            items.append(item)
    return items


def render_transcript(messages: Messages) -> str:
    """Markdown rendering of a conversation, one block per message."""
    blocks = [f"### {m.get('role', 'user').title()}\n{m.get('content', '')}" for m in messages]
    return "\n\n".join(blocks)


@dataclass
class NodeInputs:
    """Working inputs a node assembles from its incoming edges.

    Attributes:
        content: Unnamed value, if any.
        variables: Named values for {{name}} substitution.
        messages: Conversation transcript to continue.
        system: Leading system instruction.
        config: Provider settings such as model or temperature.
        log: Rendered transcripts from logging edges.
    """

    content: str | None = None
    variables: dict[str, str] = field(default_factory=dict)
    messages: Messages | None = None
    system: str | None = None
    config: dict[str, str] = field(default_factory=dict)
    log: list[str] = field(default_factory=list)


@dataclass(eq=False)
class Edge(GraphObject):
    """Plain variable edge and base class of every edge type.

    Attributes:
        source: Source vertex id.
        target: Target vertex id.
        name: Variable or branch label.
        crossing_in_groups: Groups entered on the way to the target.
        crossing_out_groups: Groups left on the way from the source.
        reflexive: Whether the edge feeds the next loop iteration.
        reflexive_group: Loop group a reflexive edge is local to.
        content: Payload.
        messages: Conversation transcript carried with the payload.
    """

    kind: ClassVar[ObjectKind] = ObjectKind.EDGE
    edge_type: ClassVar[EdgeType] = EdgeType.VARIABLE

    source: str = ""
    target: str = ""
    name: str | None = None
    crossing_in_groups: list[str] = field(default_factory=list)
    crossing_out_groups: list[str] = field(default_factory=list)
    reflexive: bool = False
    reflexive_group: str | None = None
    content: Content | None = None
    messages: Messages | None = None

    _initial: tuple[Content | None, Messages | None] = field(
        default=(None, None), init=False, repr=False
    )
    _loop_values: dict[tuple[int, ...], tuple[Content | None, Messages | None]] = field(
        default_factory=dict, init=False, repr=False
    )

    def __post_init__(self) -> None:
        self._initial = (self.content, self.messages)

    # -------------------------------------------------------------------------
    # Loop exits
    # -------------------------------------------------------------------------

    def exited_loops(self) -> list[Group]:
        """Loop groups this edge leaves, innermost first."""
        groups = [self.graph[g] for g in self.crossing_out_groups]
        return [g for g in groups if g.is_loop]  # type: ignore[attr-defined]

    def loop_key(self, source: Vertex) -> tuple[int, ...]:
        """Iteration of each exited loop that produced a value, outermost first.

        crossing_out_groups is a prefix of the source's groups. A source
        cloned by a cloned inner group knows that group by the clone's id,
        so indices are read under the source's own group ids.
        """
        crossed = zip(source.groups, self.crossing_out_groups)
        return tuple(
            source.loop_index(own)
            for own, exited in reversed(list(crossed))
            if self.graph[exited].is_loop  # type: ignore[attr-defined]
        )

    def entered_for_each(self) -> Group | None:
        """Innermost for-each group this edge enters, if any."""
        for group_id in self.crossing_in_groups:
            group = self.graph[group_id]
            if group.group_type is GroupType.FOR_EACH:  # type: ignore[attr-defined]
                return group  # type: ignore[return-value]
        return None

    # -------------------------------------------------------------------------
    # Payload
    # -------------------------------------------------------------------------

    def load(
        self,
        content: Content | None,
        messages: Messages | None = None,
        source: Vertex | None = None,
    ) -> None:
        """Store a payload handed over by the source vertex.

        Inside a loop the value is kept per iteration of the exited loops
        and delivered once they all finished. A branch the source did not
        take stores nothing.
        """
        if source is not None and not source.allows(self):
            return
        if self.exited_loops() and source is not None:
            self._loop_values[self.loop_key(source)] = (content, messages)
            return
        self.content = content
        self.messages = messages

    def content_for(self, target: Vertex) -> str:
        """Payload as text, as seen by the given target."""
        return as_text(self.content)

    def fold(self, inputs: NodeInputs, target: Vertex) -> None:
        """Merge the payload into the target's working inputs."""
        value = self.content_for(target)
        if self.name:
            inputs.variables[self.name] = value
        else:
            inputs.content = value

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def dependency_completed(self, dependency: GraphObject, run: Run) -> None:
        source = dependency if dependency.id == self.source else None
        if source is not None and not source.allows(self):  # type: ignore[attr-defined]
            self.reject(run)
            return
        super().dependency_completed(dependency, run)

    def evaluate(self, run: Run) -> None:
        # A loop that never produced a value leaves nothing to deliver
        if (
            self.status is ObjectStatus.PENDING
            and not run.is_stopped
            and self.exited_loops()
            and self.all_dependencies_complete()
            and not self._loop_values
        ):
            self.reject(run)
            return
        super().evaluate(run)

    async def run(self, run: Run) -> None:
        exits = self.exited_loops()
        if not exits or not self._loop_values:
            return
        ordered = [self._loop_values[key] for key in sorted(self._loop_values)]
        if any(g.group_type is GroupType.FOR_EACH for g in exits):  # type: ignore[attr-defined]
            self.content = [as_text(content) for content, _ in ordered]
            self.messages = None
        else:
            self.content, self.messages = ordered[-1]

    async def mock_run(self, run: Run) -> None:
        await self.run(run)

    def reset(self, run: Run) -> None:
        self.content, self.messages = self._initial
        self._loop_values.clear()
        super().reset(run)

    def remapped_fields(self, plan: ClonePlan) -> dict[str, Any]:
        fields = super().remapped_fields(plan)
        fields.update(
            source=plan.current(self.source),
            target=plan.current(self.target),
            crossing_in_groups=[plan.current(g) for g in self.crossing_in_groups],
            crossing_out_groups=[plan.current(g) for g in self.crossing_out_groups],
            reflexive_group=(
                plan.current(self.reflexive_group) if self.reflexive_group else None
            ),
        )
        return fields

    def describe(self) -> dict[str, Any]:
        info = super().describe()
        info.update(type=self.edge_type.value, source=self.source, target=self.target)
        if self.name:
            info["name"] = self.name
        return info


@dataclass(eq=False)
class ChatEdge(Edge):
    """Carries the conversation so the target continues it."""

    edge_type: ClassVar[EdgeType] = EdgeType.CHAT

    def fold(self, inputs: NodeInputs, target: Vertex) -> None:
        super().fold(inputs, target)
        if self.messages is not None:
            inputs.messages = [dict(m) for m in self.messages]


@dataclass(eq=False)
class SystemMessageEdge(Edge):
    """Sets the leading system instruction of the target's conversation."""

    edge_type: ClassVar[EdgeType] = EdgeType.SYSTEM_MESSAGE

    def fold(self, inputs: NodeInputs, target: Vertex) -> None:
        inputs.system = self.content_for(target)


@dataclass(eq=False)
class ConfigEdge(Edge):
    """Provider setting named by the edge label."""

    edge_type: ClassVar[EdgeType] = EdgeType.CONFIG

    def fold(self, inputs: NodeInputs, target: Vertex) -> None:
        if not self.name:
            logger.warning("config_edge_unnamed: id=%s", self.id)
            return
        inputs.config[self.name] = self.content_for(target).strip()


@dataclass(eq=False)
class ListEdge(Edge):
    """Collection edge; inside a for-each group each iteration sees one element."""

    edge_type: ClassVar[EdgeType] = EdgeType.LIST

    def items(self) -> list[str]:
        return split_items(self.content)

    def content_for(self, target: Vertex) -> str:
        group = self.entered_for_each()
        if group is None:
            return super().content_for(target)
        items = self.items()
        index = target.loop_index(group.id)
        return items[index] if index < len(items) else ""


@dataclass(eq=False)
class ChoiceEdge(Edge):
    """Branch of a choose node, rejected when another branch was chosen."""

    edge_type: ClassVar[EdgeType] = EdgeType.CHOICE


@dataclass(eq=False)
class LoggingEdge(Edge):
    """Appends a rendered transcript to the target's log."""

    edge_type: ClassVar[EdgeType] = EdgeType.LOGGING

    def fold(self, inputs: NodeInputs, target: Vertex) -> None:
        if self.messages:
            inputs.log.append(render_transcript(self.messages))
        else:
            inputs.log.append(self.content_for(target))


EDGE_TYPES: dict[EdgeType, type[Edge]] = {
    cls.edge_type: cls
    for cls in (Edge, ChatEdge, SystemMessageEdge, ConfigEdge, ListEdge, ChoiceEdge, LoggingEdge)
}
