"""Run - orchestrates one execution of a hydrated graph.

The run launches every dependency-free object, then lets status events
drive the rest: each launch is an asyncio task executing one object's
unit of work. The run finishes when:
- no object is Pending or Executing (reason "complete")
- any object reaches Error (reason "error", with its message)
- stop() is called (reason "stopped")
- nothing is in flight but unresolved objects remain (reason "error")

Example:
    >>> graph = Graph.from_document(document)
    >>> run = Run(graph, provider=provider, content_store=store)
    >>> stoppage = await run.start()
    >>> stoppage.reason
    'complete'
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from canvasflow.core.cancellation import CancellationToken, RunStoppedError
from canvasflow.core.graph.document import CanvasDocument
from canvasflow.core.graph.graph import Graph
from canvasflow.core.types import ObjectStatus, StopReason, Stoppage
from canvasflow.core.usage import Budget, BudgetExceededError, ModelPricing, UsageLedger
from canvasflow.providers.completion import (
    CompletionProvider,
    CompletionRequest,
    CompletionResult,
    ProviderError,
)
from canvasflow.providers.content import ContentStore, ContentStoreError

if TYPE_CHECKING:
    from canvasflow.core.graph.objects import GraphObject

logger = logging.getLogger(__name__)

OnFinish = Callable[[Stoppage], Awaitable[None] | None]


class Run:
    """One execution of a graph.

    Attributes:
        graph: The graph being executed.
        run_id: Identifier used in logs.
        is_mock: Whether units of work are replaced by no-cost substitutes.
        usage: Usage ledger keyed by model name.
        budget: Optional spending limits.
        default_model: Model used when no config edge names one.
    """

    def __init__(
        self,
        graph: Graph,
        *,
        provider: CompletionProvider | None = None,
        content_store: ContentStore | None = None,
        is_mock: bool = False,
        on_finish: OnFinish | None = None,
        budget: Budget | None = None,
        pricing: dict[str, ModelPricing] | None = None,
        default_model: str | None = None,
        run_id: str | None = None,
    ) -> None:
        self.graph = graph
        self.run_id = run_id or uuid.uuid4().hex[:8]
        self.is_mock = is_mock
        self.budget = budget
        self.default_model = default_model
        self.usage = UsageLedger(pricing=pricing) if pricing is not None else UsageLedger()
        self._provider = provider
        self._content_store = content_store
        self._on_finish = on_finish

        self._token = CancellationToken()
        self._tasks: set[asyncio.Task[None]] = set()
        self._stoppage: Stoppage | None = None
        self._started = False

    @property
    def is_stopped(self) -> bool:
        """Whether the run has finished or was asked to stop."""
        return self._token.is_cancelled

    @property
    def stoppage(self) -> Stoppage | None:
        return self._stoppage

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def check_cancelled(self) -> None:
        """Raise RunStoppedError if the run was stopped."""
        self._token.check()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> Stoppage:
        """Execute the graph until it finishes.

        Returns:
            The Stoppage, also passed to on_finish.

        Raises:
            RuntimeError: If the run was already started and not reset.
        """
        if self._started:
            raise RuntimeError(f"Run {self.run_id} already started; reset() it first")
        self._started = True
        logger.debug(
            "run_started: run_id=%s, objects=%d, mock=%s",
            self.run_id,
            len(self.graph),
            self.is_mock,
        )

        objects = list(self.graph.objects.values())
        for obj in objects:
            obj.setup_listeners()
        for obj in objects:
            if not obj.dependencies:
                obj.evaluate(self)
        self._check_stalled()

        # Every finish, stop included, cancels the token
        await self._token.wait()
        stoppage = self._stoppage
        assert stoppage is not None

        if self._on_finish is not None:
            result = self._on_finish(stoppage)
            if inspect.isawaitable(result):
                await result
        return stoppage

    def stop(self) -> None:
        """Stop the run.

        In-flight units of work finish in the background and their results
        are discarded; nothing else leaves Pending.
        """
        logger.debug("run_stop_requested: run_id=%s", self.run_id)
        self._finish("stopped")

    async def drain(self) -> None:
        """Wait for abandoned in-flight tasks to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def reset(self) -> None:
        """Return the graph to its hydrated state so the run can start again.

        Raises:
            RuntimeError: If the run is still in progress.
        """
        if self._started and self._stoppage is None:
            raise RuntimeError(f"Run {self.run_id} is still in progress")
        removed = self.graph.discard_clones()
        self._token.reset()
        self._stoppage = None
        self._started = False
        self.usage.clear()
        for obj in list(self.graph.objects.values()):
            obj.reset(self)
        logger.debug("run_reset: run_id=%s, clones_removed=%d", self.run_id, removed)

    # -------------------------------------------------------------------------
    # Kernel callbacks
    # -------------------------------------------------------------------------

    def launch(self, obj: GraphObject) -> None:
        """Schedule an object's execution as a task."""
        if self.is_stopped:
            return
        task = asyncio.create_task(self._execute(obj), name=f"canvasflow:{obj.id}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    async def _execute(self, obj: GraphObject) -> None:
        try:
            await obj.execute(self)
        except RunStoppedError:
            logger.debug("object_abandoned: run_id=%s, id=%s", self.run_id, obj.id)
        except Exception as e:
            if self.is_stopped:
                logger.debug(
                    "object_fault_discarded: run_id=%s, id=%s, error=%s", self.run_id, obj.id, e
                )
                return
            logger.exception("object_failed: run_id=%s, id=%s", self.run_id, obj.id)
            obj.fail(self, e)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        self._check_stalled()

    def register(self, obj: GraphObject) -> None:
        """Add an object created during the run (a loop clone) to the graph."""
        self.graph.add(obj)

    def object_updated(self, obj: GraphObject, status: ObjectStatus) -> None:
        """Hear about every status change, before the object's subscribers."""
        if self._stoppage is not None or not self._started:
            return
        if status is ObjectStatus.ERROR:
            message = str(obj.error) if obj.error is not None else f"Object {obj.id} failed"
            self._finish("error", message)
        elif status.is_terminal and not self.graph.unresolved():
            self._finish("complete")

    def report_fault(self, obj: GraphObject, exc: BaseException) -> None:
        """Fault on an object that already finished; fatal to the run."""
        logger.error("object_fault: run_id=%s, id=%s, error=%s", self.run_id, obj.id, exc)
        self._finish("error", str(exc))

    def _check_stalled(self) -> None:
        if self._stoppage is not None or self._tasks:
            return
        unresolved = self.graph.unresolved()
        if not unresolved:
            self._finish("complete")
            return
        ids = ", ".join(o.id for o in unresolved[:5])
        more = f" and {len(unresolved) - 5} more" if len(unresolved) > 5 else ""
        self._finish("error", f"Run stalled with unresolved objects: {ids}{more}")

    def _finish(self, reason: StopReason, message: str | None = None) -> None:
        if self._stoppage is not None:
            return
        self._token.cancel()
        self._stoppage = Stoppage(
            reason=reason,
            message=message,
            usage=self.usage.snapshot(),
            total_cost=self.usage.total_cost,
        )
        logger.debug(
            "run_finished: run_id=%s, reason=%s, cost=%.6f, in_flight=%d",
            self.run_id,
            reason,
            self.usage.total_cost,
            len(self._tasks),
        )

    # -------------------------------------------------------------------------
    # Services for units of work
    # -------------------------------------------------------------------------

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Send a request to the provider and record its usage.

        Raises:
            ProviderError: If no provider is configured or the call fails.
            BudgetExceededError: If the call pushed usage over the budget.
            RunStoppedError: If the run stopped while the call was in flight.
        """
        if self._provider is None:
            raise ProviderError(
                "No completion provider configured", error_type="configuration_error"
            )
        self.check_cancelled()
        if request.model is None and self.default_model is not None:
            request = replace(request, model=self.default_model)

        result = await self._provider.complete(request)
        self.check_cancelled()

        self.usage.record(
            result.model or request.model or "unknown",
            result.prompt_tokens,
            result.completion_tokens,
        )
        if self.budget is not None:
            exceeded, reason = self.usage.exceeds(self.budget)
            if exceeded:
                raise BudgetExceededError(reason or "Budget exceeded")
        return result

    def _store(self) -> ContentStore:
        if self._content_store is None:
            raise ContentStoreError("No content store configured")
        return self._content_store

    async def read_note(self, name: str) -> str:
        self.check_cancelled()
        content = await self._store().read(name)
        self.check_cancelled()
        return content

    async def write_note(self, name: str, content: str) -> None:
        self.check_cancelled()
        await self._store().write(name, content)
        self.check_cancelled()

    def summary(self) -> dict[str, Any]:
        """Status counts and stoppage, for CLI output."""
        return {
            "run_id": self.run_id,
            "statuses": self.graph.status_counts(),
            "stoppage": self._stoppage.to_dict() if self._stoppage else None,
        }


async def validate(document: CanvasDocument | dict[str, Any]) -> Stoppage:
    """Dry-run a document in mock mode on a fresh hydration.

    Raises:
        GraphValidationError: If the document cannot be hydrated.
    """
    run = Run(Graph.from_document(document), is_mock=True)
    return await run.start()
