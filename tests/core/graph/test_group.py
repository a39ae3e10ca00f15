"""Tests for canvasflow.core.graph.group module."""

import pytest

from canvasflow.core.errors import DependencyError
from canvasflow.core.run import Run
from canvasflow.core.types import ObjectStatus


class TestBasicGroup:
    """Tests for basic groups."""

    @pytest.mark.asyncio
    async def test_members_wait_for_group(self, builder):
        """Test a member only runs once its group is executing."""
        builder.node("in", type="input", text="world")
        builder.group("g")
        builder.node("f", type="formatter", text="Hello {{content}}", x=100, y=100)
        builder.node("out", type="display")
        builder.edge("in", "f")
        builder.edge("f", "out")
        graph = builder.graph()

        stoppage = await Run(graph).start()

        assert stoppage.reason == "complete"
        assert graph["g"].status is ObjectStatus.COMPLETE
        assert graph["g"].current_loop == 1
        assert graph["out"].output == "Hello world"

    def test_group_depends_on_crossing_edges(self, builder):
        builder.node("in", type="input")
        builder.group("g")
        builder.node("f", type="formatter", x=100, y=100)
        builder.edge("in", "f")
        graph = builder.graph()

        assert graph["g"].dependency_ids() == ["in->f"]
        assert graph["in->f"].crossing_in_groups == ["g"]

    @pytest.mark.asyncio
    async def test_group_without_inputs_fires_at_start(self, builder):
        builder.group("g")
        builder.node("a", type="input", text="static", x=100, y=100)
        graph = builder.graph()

        stoppage = await Run(graph).start()

        assert stoppage.reason == "complete"
        assert graph["a"].output == "static"

    @pytest.mark.asyncio
    async def test_rejected_group_rejects_members(self, builder):
        """Test a branch not taken rejects the whole group."""
        builder.node("c", type="choose", text="Pick one")
        builder.node("x", type="display")
        builder.group("g")
        builder.node("f", type="formatter", text="inside", x=100, y=100)
        builder.node("static", type="input", text="also inside", x=300, y=100)
        builder.edge("c", "x", type="choice", label="skip")
        builder.edge("c", "f", type="choice", label="enter")
        graph = builder.graph()

        stoppage = await Run(graph, is_mock=True).start()

        assert stoppage.reason == "complete"
        assert graph["c"].choice == "skip"
        assert graph["x"].status is ObjectStatus.COMPLETE
        assert graph["g"].status is ObjectStatus.REJECTED
        assert graph["f"].status is ObjectStatus.REJECTED
        assert graph["static"].status is ObjectStatus.REJECTED

    @pytest.mark.asyncio
    async def test_member_error_fails_group(self, builder, make_provider):
        builder.group("g")
        builder.node("call", text="Hi", x=100, y=100)
        graph = builder.graph()
        provider = make_provider(error=RuntimeError("boom"))

        stoppage = await Run(graph, provider=provider).start()

        assert stoppage.reason == "error"
        assert stoppage.message == "boom"
        assert graph["call"].status is ObjectStatus.ERROR
        assert graph["g"].status is ObjectStatus.ERROR
        assert isinstance(graph["g"].error, DependencyError)


class TestRepeatGroup:
    """Tests for repeat groups."""

    @pytest.fixture
    def graph(self, builder):
        """Repeat group of three where B feeds A of the next iteration."""
        builder.node("seed", type="input", text="start")
        builder.group("loop", type="repeat", max_loops=3)
        builder.node("A", type="formatter", text="{{content}}", x=100, y=100)
        builder.node("B", type="formatter", text="{{content}}!", x=300, y=100)
        builder.node("out", type="display")
        builder.edge("seed", "A")
        builder.edge("A", "B")
        builder.edge("B", "A", reflexive=True)
        builder.edge("B", "out")
        return builder.graph()

    def test_exit_edge_waits_on_loop(self, graph):
        assert graph["B->out"].dependency_ids() == ["loop"]
        assert graph["B->A"].reflexive_group == "loop"

    def test_first_iteration_ignores_reflexive_edge(self, graph):
        assert graph["A"].dependency_ids() == ["seed->A"]

    @pytest.mark.asyncio
    async def test_iterations_chain_through_reflexive_edge(self, graph):
        """Test each iteration continues from the previous one."""
        stoppage = await Run(graph).start()

        assert stoppage.reason == "complete"
        assert graph["B"].output == "start!"
        assert graph["B@loop:1"].output == "start!!"
        assert graph["B@loop:2"].output == "start!!!"
        assert graph["out"].output == "start!!!"

    @pytest.mark.asyncio
    async def test_clones(self, graph):
        """Test members and edges into them are copied per extra iteration."""
        await Run(graph).start()

        loop = graph["loop"]
        assert loop.current_loop == 3
        assert loop.iterations == [["A", "B"], ["A@loop:1", "B@loop:1"], ["A@loop:2", "B@loop:2"]]
        # A, B, seed->A, A->B, B->A for two extra iterations
        assert len(graph.clones()) == 10

        clone = graph["A@loop:2"]
        assert clone.loop_indices == {"loop": 2}
        assert clone.dependency_ids() == ["seed->A@loop:2", "B->A@loop:1"]

    @pytest.mark.asyncio
    async def test_single_loop_makes_no_clones(self, builder):
        builder.group("loop", type="repeat", max_loops=1)
        builder.node("a", type="input", text="once", x=100, y=100)
        builder.node("out", type="display")
        builder.edge("a", "out")
        graph = builder.graph()

        stoppage = await Run(graph).start()

        assert stoppage.reason == "complete"
        assert graph.clones() == []
        assert graph["out"].output == "once"

    @pytest.mark.asyncio
    async def test_branch_not_taken_inside_loop_rejects(self, builder, make_provider):
        """Test a choice edge leaving the loop delivers only the picked branch."""
        builder.group("loop", type="repeat", max_loops=2)
        builder.node("C", type="choose", text="Continue?", x=100, y=100)
        builder.node("yes", type="display")
        builder.node("no", type="display")
        builder.edge("C", "yes", type="choice", label="yes")
        builder.edge("C", "no", type="choice", label="no")
        graph = builder.graph()
        provider = make_provider(replies=lambda request: "yes")

        stoppage = await Run(graph, provider=provider).start()

        assert stoppage.reason == "complete"
        assert graph["C"].choice == "yes"
        assert graph["C@loop:1"].choice == "yes"
        assert graph["C->yes"].content == "yes"
        assert graph["yes"].status is ObjectStatus.COMPLETE
        assert graph["C->no"].status is ObjectStatus.REJECTED
        assert graph["no"].status is ObjectStatus.REJECTED
        assert graph["no"].output is None


class TestNestedRepeatGroups:
    """Tests for a repeat group inside another repeat group."""

    @pytest.fixture
    def graph(self, builder):
        builder.node("seed", type="input", text="x")
        builder.group("outer", type="repeat", max_loops=2)
        builder.group("inner", type="repeat", x=100, y=100, width=500, height=500, max_loops=2)
        builder.node("a", text="Go", x=200, y=200)
        builder.node("out", type="display")
        builder.edge("seed", "a")
        builder.edge("a", "out")
        return builder.graph()

    def test_exit_edge_waits_on_both_loops(self, graph):
        assert graph["a->out"].crossing_out_groups == ["inner", "outer"]
        assert graph["a->out"].dependency_ids() == ["inner", "outer"]

    @pytest.mark.asyncio
    async def test_clones_of_clones(self, graph, provider):
        stoppage = await Run(graph, provider=provider).start()

        assert stoppage.reason == "complete"
        assert sorted(obj.id for obj in graph.clones()) == [
            "a@inner:1",
            "a@outer:1",
            "a@outer:1@inner@outer:1:1",
            "inner@outer:1",
            "seed->a@inner:1",
            "seed->a@outer:1",
            "seed->a@outer:1@inner@outer:1:1",
        ]
        assert graph["outer"].current_loop == 2
        assert graph["inner"].current_loop == 2
        assert graph["inner@outer:1"].current_loop == 2
        assert graph["a@outer:1@inner@outer:1:1"].loop_indices == {"outer": 1, "inner@outer:1": 1}
        assert len(provider.requests) == 4

    @pytest.mark.asyncio
    async def test_exit_keys_and_last_value(self, graph, provider):
        """Test each of the four runs is keyed apart and the last one is delivered."""
        await Run(graph, provider=provider).start()

        edge = graph["a->out"]
        keys = {
            object_id: edge.loop_key(graph[object_id])
            for object_id in ("a", "a@inner:1", "a@outer:1", "a@outer:1@inner@outer:1:1")
        }
        assert keys == {
            "a": (0, 0),
            "a@inner:1": (0, 1),
            "a@outer:1": (1, 0),
            "a@outer:1@inner@outer:1:1": (1, 1),
        }
        assert graph["out"].output == graph["a@outer:1@inner@outer:1:1"].output
        assert graph["out"].output.startswith("reply ")


class TestForEachGroup:
    """Tests for for-each groups."""

    def build(self, builder, items):
        builder.node("src", type="input", text=items)
        builder.group("each", type="for-each")
        builder.node("item", type="formatter", text="Item: {{x}}", x=100, y=100)
        builder.node("out", type="display")
        builder.edge("src", "item", type="list", label="x")
        builder.edge("item", "out")
        return builder.graph()

    @pytest.mark.asyncio
    async def test_one_iteration_per_element(self, builder):
        graph = self.build(builder, "- a\n- b\n- c")

        stoppage = await Run(graph).start()

        assert stoppage.reason == "complete"
        assert graph["each"].max_loops == 3
        assert graph["item->out"].content == ["Item: a", "Item: b", "Item: c"]
        assert graph["out"].output == "Item: a\nItem: b\nItem: c"

    @pytest.mark.asyncio
    async def test_empty_collection_rejects(self, builder):
        """Test an empty list rejects the group and everything it feeds."""
        graph = self.build(builder, "")

        stoppage = await Run(graph).start()

        assert stoppage.reason == "complete"
        assert graph["each"].status is ObjectStatus.REJECTED
        assert graph["item"].status is ObjectStatus.REJECTED
        assert graph["item->out"].status is ObjectStatus.REJECTED
        assert graph["out"].status is ObjectStatus.REJECTED

    @pytest.mark.asyncio
    async def test_missing_list_input_errors(self, builder):
        builder.node("src", type="input", text="a")
        builder.group("each", type="for-each")
        builder.node("item", type="formatter", text="{{x}}", x=100, y=100)
        builder.edge("src", "item", label="x")
        graph = builder.graph()

        stoppage = await Run(graph).start()

        assert stoppage.reason == "error"
        assert stoppage.message == "For-each group each has no list input"
        assert graph["each"].status is ObjectStatus.ERROR
