"""Tests for canvasflow.core.graph.objects module."""

import pytest

from canvasflow.core.errors import (
    ConflictingAlternativesError,
    DuplicateAlternativeError,
    InvalidTransitionError,
)
from canvasflow.core.graph import (
    AnyOf,
    ClonePlan,
    FormatterNode,
    Graph,
    InputNode,
    Single,
    clone_id,
)
from canvasflow.core.run import Run
from canvasflow.core.types import ObjectStatus


@pytest.fixture
def graph():
    """Graph with two inputs and a formatter waiting on both."""
    graph = Graph()
    graph.add(InputNode(id="a", text="A"))
    graph.add(InputNode(id="b", text="B"))
    graph.add(FormatterNode(id="f", text="done"))
    return graph


class TestAddDependency:
    """Tests for dependency declaration."""

    def test_appends_terms_in_order(self, graph):
        """Test terms keep declaration order."""
        node = graph["f"]
        node.add_dependency("a")
        node.add_dependency(["b", "c"])
        assert node.dependencies == [Single("a"), AnyOf(("b", "c"))]

    def test_duplicate_id_raises(self, graph):
        """Test an id already used by another term is refused."""
        node = graph["f"]
        node.add_dependency("a")

        with pytest.raises(DuplicateAlternativeError) as exc_info:
            node.add_dependency(["a", "b"])

        assert exc_info.value.object_id == "f"
        assert exc_info.value.duplicate == "a"
        assert "Error on object f" in str(exc_info.value)
        assert "duplicate dependency 'a'" in str(exc_info.value)

    def test_depends_on(self, graph):
        node = graph["f"]
        node.add_dependency(["a", "b"])
        assert node.depends_on("b") is True
        assert node.depends_on("f") is False


class TestListeners:
    """Tests for subscriptions."""

    def test_setup_listeners_subscribes_to_every_term(self, graph):
        """Test each referenced object gets this object as subscriber."""
        graph["f"].add_dependency(["a", "b"])
        graph["f"].setup_listeners()

        assert graph["a"].subscribers == ["f"]
        assert graph["b"].subscribers == ["f"]

    def test_setup_listeners_idempotent(self, graph):
        """Test repeated setup does not duplicate subscriptions."""
        graph["f"].add_dependency("a")
        graph["f"].setup_listeners()
        graph["f"].setup_listeners()

        assert graph["a"].subscribers == ["f"]


class TestStatusTransitions:
    """Tests for the status state machine."""

    def test_invalid_transition_raises(self, graph):
        """Test Pending cannot jump straight to Complete."""
        run = Run(graph)
        with pytest.raises(InvalidTransitionError):
            graph["a"].set_status(ObjectStatus.COMPLETE, run)

    def test_terminal_status_is_final(self, graph):
        """Test Rejected cannot become Executing."""
        run = Run(graph)
        graph["a"].set_status(ObjectStatus.REJECTED, run)
        with pytest.raises(InvalidTransitionError):
            graph["a"].set_status(ObjectStatus.EXECUTING, run)

    def test_reset_from_any_status(self, graph):
        """Test reset returns a terminal object to Pending."""
        run = Run(graph)
        node = graph["a"]
        node.set_status(ObjectStatus.EXECUTING, run)
        node.set_status(ObjectStatus.COMPLETE, run)

        node.reset(run)
        assert node.status is ObjectStatus.PENDING


class TestRejection:
    """Tests for try_reject()."""

    def test_rejected_single_rejects(self, graph):
        """Test a rejected Single dependency rejects the dependent."""
        run = Run(graph)
        node = graph["f"]
        node.add_dependency("a")
        node.setup_listeners()

        graph["a"].set_status(ObjectStatus.REJECTED, run)
        assert node.status is ObjectStatus.REJECTED

    def test_rejection_is_transitive(self, graph):
        """Test a rejected head rejects the whole chain without running it."""
        run = Run(graph)
        graph["b"].add_dependency("a")
        graph["f"].add_dependency("b")
        for obj in graph.values():
            obj.setup_listeners()

        graph["a"].set_status(ObjectStatus.REJECTED, run)

        assert graph["b"].status is ObjectStatus.REJECTED
        assert graph["f"].status is ObjectStatus.REJECTED
        assert graph["f"].output is None

    def test_partially_rejected_alternatives_wait(self, graph):
        """Test one rejected alternative leaves the dependent pending."""
        run = Run(graph)
        node = graph["f"]
        node.add_dependency(["a", "b"])
        node.setup_listeners()

        graph["a"].set_status(ObjectStatus.REJECTED, run)
        assert node.status is ObjectStatus.PENDING

        graph["b"].set_status(ObjectStatus.REJECTED, run)
        assert node.status is ObjectStatus.REJECTED

    def test_all_dependencies_complete(self, graph):
        """Test readiness uses exactly-one semantics for alternatives."""
        node = graph["f"]
        node.add_dependency("a")
        node.add_dependency(AnyOf(("b", "f2")))
        graph.add(InputNode(id="f2"))

        graph["a"].status = ObjectStatus.COMPLETE
        assert node.all_dependencies_complete() is False

        graph["b"].status = ObjectStatus.COMPLETE
        assert node.all_dependencies_complete() is True


class TestConflicts:
    """Tests for conflicting alternatives."""

    @pytest.mark.asyncio
    async def test_two_completed_alternatives_error_the_run(self, graph):
        """Test a second completed alternative turns the dependent to Error."""
        graph["f"].add_dependency(["a", "b"])
        run = Run(graph)

        stoppage = await run.start()

        assert stoppage.reason == "error"
        assert "completed together" in stoppage.message
        assert graph["f"].status is ObjectStatus.ERROR
        assert isinstance(graph["f"].error, ConflictingAlternativesError)
        assert graph["f"].error.completed == ["a", "b"]


class TestCloning:
    """Tests for clone ids and ClonePlan."""

    def test_clone_id_format(self):
        assert clone_id("node", "loop", 2) == "node@loop:2"

    def test_plan_maps_only_cloned_ids(self):
        """Test ids outside the subgraph are kept."""
        plan = ClonePlan("g", 2, frozenset({"a", "e"}))
        assert plan.current("a") == "a@g:2"
        assert plan.current("outside") == "outside"

    def test_plan_previous_iteration(self):
        """Test the first clone iteration points back at the originals."""
        assert ClonePlan("g", 1, frozenset({"e"})).previous("e") == "e"
        assert ClonePlan("g", 3, frozenset({"e"})).previous("e") == "e@g:2"

    def test_clone_is_independent(self, graph):
        """Test a clone copies structure but not status or subscribers."""
        run = Run(graph)
        original = graph["f"]
        original.add_dependency("a")
        original.subscribe("b")
        original.set_status(ObjectStatus.REJECTED, run)

        clone = original.clone(ClonePlan("g", 1, frozenset({"f", "a"})))

        assert clone.id == "f@g:1"
        assert clone.is_clone is True
        assert clone.text == "done"
        assert clone.status is ObjectStatus.PENDING
        assert clone.subscribers == []
        assert clone.dependencies == [Single("a@g:1")]
        assert original.dependencies == [Single("a")]
