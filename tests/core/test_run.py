"""Tests for canvasflow.core.run module."""

import asyncio

import pytest

from canvasflow.core.errors import GraphValidationError, UpstreamFailedError
from canvasflow.core.graph import Graph, InputNode
from canvasflow.core.run import Run, validate
from canvasflow.core.types import ObjectStatus
from canvasflow.core.usage import Budget, BudgetExceededError, ModelPricing
from canvasflow.providers import ProviderError


@pytest.fixture
def chain(builder):
    """input -> call -> display."""
    builder.node("in", type="input", text="owls")
    builder.node("c", text="Write about {{topic}}")
    builder.node("out", type="display")
    builder.edge("in", "c", label="topic")
    builder.edge("c", "out")
    return builder.graph()


async def wait_for_status(obj, status):
    for _ in range(100):
        if obj.status is status:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"{obj.id} never reached {status.value}")


class TestCompletion:
    """Tests for runs that finish normally."""

    @pytest.mark.asyncio
    async def test_linear_chain(self, chain, provider):
        run = Run(chain, provider=provider)

        stoppage = await run.start()

        assert stoppage.reason == "complete"
        assert stoppage.message is None
        assert chain["out"].output == "reply 1"
        assert all(obj.status is ObjectStatus.COMPLETE for obj in chain.values())

    @pytest.mark.asyncio
    async def test_usage_recorded(self, chain, provider):
        pricing = {"fake-model": ModelPricing("fake-model", 0.01, 0.02)}

        stoppage = await Run(chain, provider=provider, pricing=pricing).start()

        usage = stoppage.usage["fake-model"]
        assert (usage.prompt_tokens, usage.completion_tokens) == (10, 5)
        assert stoppage.total_cost == pytest.approx(0.2)

    @pytest.mark.asyncio
    async def test_default_model(self, chain, provider):
        """Test the run's default model fills requests without one."""
        stoppage = await Run(chain, provider=provider, default_model="gpt-4o-mini").start()

        assert provider.requests[0].model == "gpt-4o-mini"
        assert list(stoppage.usage) == ["gpt-4o-mini"]
        assert stoppage.total_cost > 0

    @pytest.mark.asyncio
    async def test_empty_graph(self):
        stoppage = await Run(Graph()).start()
        assert stoppage.reason == "complete"

    @pytest.mark.asyncio
    async def test_on_finish_sync(self, chain, provider):
        seen = []
        stoppage = await Run(chain, provider=provider, on_finish=seen.append).start()
        assert seen == [stoppage]

    @pytest.mark.asyncio
    async def test_on_finish_async(self, chain, provider):
        seen = []

        async def on_finish(stoppage):
            seen.append(stoppage.reason)

        await Run(chain, provider=provider, on_finish=on_finish).start()
        assert seen == ["complete"]

    @pytest.mark.asyncio
    async def test_summary(self, chain, provider):
        run = Run(chain, provider=provider, run_id="abc")
        await run.start()

        summary = run.summary()

        assert summary["run_id"] == "abc"
        assert summary["statuses"]["complete"] == len(chain)
        assert summary["stoppage"]["reason"] == "complete"


class TestErrors:
    """Tests for runs that end in error."""

    @pytest.mark.asyncio
    async def test_error_cascades_downstream(self, chain, make_provider):
        """Test dependents of a failed object also end in Error."""
        provider = make_provider(error=ProviderError("rate limited", 429, "rate_limit_error"))

        stoppage = await Run(chain, provider=provider).start()

        assert stoppage.reason == "error"
        assert stoppage.message == "rate limited"
        assert chain["c"].status is ObjectStatus.ERROR
        assert chain["c->out"].status is ObjectStatus.ERROR
        assert chain["out"].status is ObjectStatus.ERROR
        assert isinstance(chain["out"].error, UpstreamFailedError)
        assert chain["out"].error.upstream == "c->out"

    @pytest.mark.asyncio
    async def test_no_provider(self, chain):
        stoppage = await Run(chain).start()

        assert stoppage.reason == "error"
        assert stoppage.message == "No completion provider configured"

    @pytest.mark.asyncio
    async def test_no_content_store(self, builder):
        builder.node("ref", type="reference", text="[[x]]")

        stoppage = await Run(builder.graph()).start()

        assert stoppage.message == "No content store configured"

    @pytest.mark.asyncio
    async def test_budget_exceeded(self, chain, provider):
        stoppage = await Run(chain, provider=provider, budget=Budget(max_tokens=10)).start()

        assert stoppage.reason == "error"
        assert stoppage.message == "Token limit exceeded: 15/10"
        assert isinstance(chain["c"].error, BudgetExceededError)
        assert stoppage.usage["fake-model"].prompt_tokens == 10

    @pytest.mark.asyncio
    async def test_stall(self):
        """Test a run with nothing launchable ends in error."""
        graph = Graph()
        graph.add(InputNode(id="a"))
        graph.add(InputNode(id="b"))
        graph["a"].add_dependency("b")
        graph["b"].add_dependency("a")

        stoppage = await Run(graph).start()

        assert stoppage.reason == "error"
        assert stoppage.message == "Run stalled with unresolved objects: a, b"


class TestStop:
    """Tests for stop()."""

    @pytest.mark.asyncio
    async def test_stop_leaves_statuses(self, chain, make_provider):
        """Test in-flight work is abandoned and nothing else starts."""
        provider = make_provider(delay=0.05)
        run = Run(chain, provider=provider)
        task = asyncio.create_task(run.start())
        await wait_for_status(chain["c"], ObjectStatus.EXECUTING)

        run.stop()
        stoppage = await task
        await run.drain()

        assert stoppage.reason == "stopped"
        assert run.is_stopped is True
        assert run.in_flight == 0
        assert chain["c"].status is ObjectStatus.EXECUTING
        assert chain["c->out"].status is ObjectStatus.PENDING
        assert chain["out"].status is ObjectStatus.PENDING

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, chain, make_provider):
        run = Run(chain, provider=make_provider(delay=0.05))
        task = asyncio.create_task(run.start())
        await wait_for_status(chain["c"], ObjectStatus.EXECUTING)

        run.stop()
        run.stop()

        assert (await task).reason == "stopped"
        await run.drain()

    @pytest.mark.asyncio
    async def test_stop_before_start(self, chain, provider):
        """Test a run stopped up front returns at once and launches nothing."""
        run = Run(chain, provider=provider)
        run.stop()

        stoppage = await asyncio.wait_for(run.start(), timeout=1)

        assert stoppage.reason == "stopped"
        assert run.in_flight == 0
        assert provider.requests == []
        assert all(obj.status is ObjectStatus.PENDING for obj in chain.values())


class TestRestart:
    """Tests for start() guards and reset()."""

    @pytest.mark.asyncio
    async def test_start_twice(self, chain, provider):
        run = Run(chain, provider=provider)
        await run.start()

        with pytest.raises(RuntimeError, match="already started"):
            await run.start()

    @pytest.mark.asyncio
    async def test_reset_while_running(self, chain, make_provider):
        run = Run(chain, provider=make_provider(delay=0.05))
        task = asyncio.create_task(run.start())
        await wait_for_status(chain["c"], ObjectStatus.EXECUTING)

        with pytest.raises(RuntimeError, match="still in progress"):
            run.reset()

        run.stop()
        await task
        await run.drain()

    @pytest.mark.asyncio
    async def test_reset_and_run_again(self, builder):
        """Test a reset graph runs to the same result."""
        builder.node("seed", type="input", text="go")
        builder.group("loop", type="repeat", max_loops=2)
        builder.node("a", type="formatter", text="{{content}}+", x=100, y=100)
        builder.node("out", type="display")
        builder.edge("seed", "a")
        builder.edge("a", "out")
        graph = builder.graph()
        run = Run(graph)
        await run.start()
        assert graph["out"].output == "go+"

        run.reset()

        assert graph.clones() == []
        assert all(obj.status is ObjectStatus.PENDING for obj in graph.values())
        assert graph["out"].output is None
        assert graph["a->out"].content is None

        stoppage = await run.start()
        assert stoppage.reason == "complete"
        assert graph["out"].output == "go+"
        assert len(graph.clones()) == 2


class TestValidate:
    """Tests for validate()."""

    @pytest.mark.asyncio
    async def test_mock_dry_run(self, builder):
        builder.node("c", text="Hi")
        builder.node("out", type="display")
        builder.edge("c", "out")

        stoppage = await validate(builder.document())

        assert stoppage.reason == "complete"
        assert stoppage.total_cost == 0

    @pytest.mark.asyncio
    async def test_invalid_document(self, builder):
        builder.node("a", type="input")
        builder.edge("a", "missing")

        with pytest.raises(GraphValidationError):
            await validate(builder.document())
