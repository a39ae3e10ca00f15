"""Computational nodes.

Every node folds its complete incoming edges into NodeInputs, does its
unit of work, then loads the result into its outgoing edges. In mock
mode the unit of work is replaced by a no-cost substitute that never
touches the completion provider or the content store.

Node types:
- call: send the conversation to the completion provider
- choose: let the provider pick one outgoing choice branch
- distribute: let the provider fill each named outgoing edge
- formatter: substitute {{variables}} into the node text
- input: static content
- display: show incoming content
- reference: read or write a note in the content store
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from canvasflow.core.errors import CanvasflowError
from canvasflow.core.graph.edge import Messages, NodeInputs, as_text
from canvasflow.core.graph.vertex import Vertex
from canvasflow.core.types import Content, EdgeType, NodeType, ObjectKind
from canvasflow.providers.completion import CompletionRequest

if TYPE_CHECKING:
    from canvasflow.core.graph.edge import Edge
    from canvasflow.core.run import Run

logger = logging.getLogger(__name__)

_VARIABLE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
_NOTE_LINK = re.compile(r"\[\[([^\[\]]+)\]\]")
_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


class NodeResponseError(CanvasflowError):
    """The provider's reply could not be used by the node."""

    def __init__(self, node_id: str, message: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node {node_id}: {message}")


def render(template: str, variables: dict[str, str]) -> str:
    """Substitute {{name}} placeholders; unknown names are left as-is."""

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in variables:
            return variables[name]
        logger.warning("template_variable_missing: name=%s", name)
        return match.group(0)

    return _VARIABLE.sub(replace, template)


def _coerce(value: str) -> Any:
    for convert in (int, float):
        try:
            return convert(value)
        except ValueError:
            continue
    return value


@dataclass(eq=False)
class Node(Vertex):
    """Base class of computational nodes.

    Attributes:
        output: Result of the last unit of work.
    """

    kind: ClassVar[ObjectKind] = ObjectKind.NODE
    node_type: ClassVar[NodeType]

    output: Content | None = field(default=None, init=False)

    def collect_inputs(self) -> NodeInputs:
        inputs = NodeInputs()
        for edge in self.active_incoming_edges():
            edge.fold(inputs, self)
        return inputs

    def reset(self, run: Run) -> None:
        self.output = None
        super().reset(run)

    def describe(self) -> dict[str, Any]:
        info = super().describe()
        info["type"] = self.node_type.value
        if self.output is not None:
            info["output"] = self.output
        return info


# -----------------------------------------------------------------------------
# Content nodes
# -----------------------------------------------------------------------------


@dataclass(eq=False)
class InputNode(Node):
    """Static content, replaced by incoming unnamed content when present."""

    node_type: ClassVar[NodeType] = NodeType.INPUT

    async def run(self, run: Run) -> None:
        inputs = self.collect_inputs()
        content = inputs.content
        if content is None:
            content = render(self.text, inputs.variables)
        self.output = content
        self.load_outgoing(content)

    async def mock_run(self, run: Run) -> None:
        await self.run(run)


@dataclass(eq=False)
class FormatterNode(Node):
    """Fills {{variables}} in its text from named incoming edges."""

    node_type: ClassVar[NodeType] = NodeType.FORMATTER

    async def run(self, run: Run) -> None:
        inputs = self.collect_inputs()
        variables = dict(inputs.variables)
        if inputs.content is not None:
            variables.setdefault("content", inputs.content)
        content = render(self.text, variables)
        self.output = content
        self.load_outgoing(content)

    async def mock_run(self, run: Run) -> None:
        await self.run(run)


@dataclass(eq=False)
class DisplayNode(Node):
    """Shows incoming content followed by any logged transcripts."""

    node_type: ClassVar[NodeType] = NodeType.DISPLAY

    async def run(self, run: Run) -> None:
        inputs = self.collect_inputs()
        if inputs.content is not None:
            parts = [inputs.content]
        elif inputs.variables:
            parts = [as_text(inputs.variables)]
        else:
            parts = [self.text] if self.text else []
        parts.extend(inputs.log)
        content = "\n\n".join(parts)
        self.output = content
        self.load_outgoing(content)

    async def mock_run(self, run: Run) -> None:
        await self.run(run)


@dataclass(eq=False)
class ReferenceNode(Node):
    """Reads a note, or writes incoming content to it.

    Attributes:
        reference: Note name. Defaults to the [[link]] in the node text.
    """

    node_type: ClassVar[NodeType] = NodeType.REFERENCE

    reference: str | None = None

    @property
    def note_name(self) -> str:
        if self.reference:
            return self.reference
        match = _NOTE_LINK.search(self.text)
        return (match.group(1) if match else self.text).strip()

    async def run(self, run: Run) -> None:
        inputs = self.collect_inputs()
        if inputs.content is not None:
            await run.write_note(self.note_name, inputs.content)
            content = inputs.content
        else:
            content = await run.read_note(self.note_name)
        self.output = content
        self.load_outgoing(content)

    async def mock_run(self, run: Run) -> None:
        inputs = self.collect_inputs()
        content = inputs.content if inputs.content is not None else f"[[{self.note_name}]]"
        self.output = content
        self.load_outgoing(content)


# -----------------------------------------------------------------------------
# Provider nodes
# -----------------------------------------------------------------------------


@dataclass(eq=False)
class CallNode(Node):
    """Sends a conversation to the completion provider.

    The conversation is the incoming chat transcript (if any), led by the
    system instruction (if any), followed by the node text as a user
    message with {{variables}} filled in.
    """

    node_type: ClassVar[NodeType] = NodeType.CALL

    def build_messages(self, inputs: NodeInputs) -> Messages:
        """Assemble the conversation to send.

        Raises:
            NodeResponseError: If there is nothing to send.
        """
        messages = [dict(m) for m in inputs.messages or []]
        if inputs.system is not None:
            system = {"role": "system", "content": inputs.system}
            if messages and messages[0].get("role") == "system":
                messages[0] = system
            else:
                messages.insert(0, system)

        prompt = render(self.text, inputs.variables).strip()
        # A chat edge's content is the reply already closing its transcript
        carried = bool(messages) and messages[-1].get("content") == inputs.content
        if inputs.content and not carried:
            prompt = f"{inputs.content}\n\n{prompt}" if prompt else inputs.content
        if prompt:
            messages.append({"role": "user", "content": prompt})

        if not messages:
            raise NodeResponseError(self.id, "nothing to send to the provider")
        return messages

    def build_request(self, inputs: NodeInputs, messages: Messages) -> CompletionRequest:
        params = {k: _coerce(v) for k, v in inputs.config.items() if k != "model"}
        return CompletionRequest(messages=messages, model=inputs.config.get("model"), params=params)

    async def run(self, run: Run) -> None:
        inputs = self.collect_inputs()
        messages = self.build_messages(inputs)
        result = await run.complete(self.build_request(inputs, messages))
        self.finish(result.content, messages)

    async def mock_run(self, run: Run) -> None:
        messages = self.build_messages(self.collect_inputs())
        self.finish(f"Mock response from {self.id}", messages)

    def finish(self, reply: str, messages: Messages) -> None:
        transcript = [*messages, {"role": "assistant", "content": reply}]
        self.output = reply
        self.load_outgoing(reply, transcript)


@dataclass(eq=False)
class ChooseNode(CallNode):
    """Asks the provider to pick one of its outgoing choice branches.

    Choice edges whose label differs from the pick reject, and everything
    downstream of them with it.

    Attributes:
        choice: The picked branch label.
    """

    node_type: ClassVar[NodeType] = NodeType.CHOOSE

    choice: str | None = field(default=None, init=False)

    def branches(self) -> list[str]:
        names: list[str] = []
        for edge in self.get_outgoing_edges():
            if edge.edge_type is EdgeType.CHOICE and edge.name and edge.name not in names:
                names.append(edge.name)
        return names

    def allows(self, edge: Edge) -> bool:
        return edge.edge_type is not EdgeType.CHOICE or edge.name == self.choice

    def match_choice(self, reply: str) -> str | None:
        """Branch named by the reply: exact match first, then first mention."""
        normalized = reply.strip().strip(".!\"'`*").casefold()
        branches = self.branches()
        for name in branches:
            if name.casefold() == normalized:
                return name
        mentions = [(normalized.find(name.casefold()), name) for name in branches]
        mentions = [m for m in mentions if m[0] >= 0]
        return min(mentions)[1] if mentions else None

    async def run(self, run: Run) -> None:
        inputs = self.collect_inputs()
        messages = self.build_messages(inputs)
        branches = self.branches()
        prompt = messages + [
            {
                "role": "user",
                "content": "Answer with exactly one of the following options and nothing else: "
                + ", ".join(branches),
            }
        ]
        result = await run.complete(self.build_request(inputs, prompt))

        choice = self.match_choice(result.content)
        if choice is None:
            raise NodeResponseError(
                self.id, f"reply {result.content!r} names none of {', '.join(branches)}"
            )
        logger.debug("choice_made: id=%s, choice=%s", self.id, choice)
        self.choice = choice
        self.finish(result.content, messages)

    async def mock_run(self, run: Run) -> None:
        messages = self.build_messages(self.collect_inputs())
        branches = self.branches()
        self.choice = branches[0] if branches else None
        self.finish(self.choice or "", messages)

    def reset(self, run: Run) -> None:
        self.choice = None
        super().reset(run)


@dataclass(eq=False)
class DistributeNode(CallNode):
    """Asks the provider for a JSON object with one value per named outgoing edge."""

    node_type: ClassVar[NodeType] = NodeType.DISTRIBUTE

    def keys(self) -> list[str]:
        names: list[str] = []
        for edge in self.get_outgoing_edges():
            if edge.name and edge.name not in names:
                names.append(edge.name)
        return names

    def parse(self, reply: str) -> dict[str, str]:
        """Decode the reply into one string per key; missing keys map to ""."""
        try:
            decoded = json.loads(_CODE_FENCE.sub("", reply.strip()))
        except json.JSONDecodeError as e:
            raise NodeResponseError(self.id, f"reply is not valid JSON: {e}") from e
        if not isinstance(decoded, dict):
            raise NodeResponseError(self.id, "reply is not a JSON object")
        values = {}
        for key in self.keys():
            value = decoded.get(key, "")
            values[key] = value if isinstance(value, str) else json.dumps(value)
        return values

    async def run(self, run: Run) -> None:
        inputs = self.collect_inputs()
        messages = self.build_messages(inputs)
        prompt = messages + [
            {
                "role": "user",
                "content": "Respond with a JSON object with exactly these keys: "
                + ", ".join(self.keys()),
            }
        ]
        result = await run.complete(self.build_request(inputs, prompt))
        self.distribute(result.content, self.parse(result.content), messages)

    async def mock_run(self, run: Run) -> None:
        messages = self.build_messages(self.collect_inputs())
        values = {key: "" for key in self.keys()}
        self.distribute(json.dumps(values), values, messages)

    def distribute(self, reply: str, values: dict[str, str], messages: Messages) -> None:
        transcript = [*messages, {"role": "assistant", "content": reply}]
        self.output = values
        for edge in self.get_outgoing_edges():
            if edge.name in values:
                edge.load(values[edge.name], transcript, self)
            else:
                edge.load(reply, transcript, self)


NODE_TYPES: dict[NodeType, type[Node]] = {
    cls.node_type: cls
    for cls in (
        CallNode,
        ChooseNode,
        DistributeNode,
        FormatterNode,
        InputNode,
        DisplayNode,
        ReferenceNode,
    )
}
