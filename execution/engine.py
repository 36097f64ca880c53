"""Graph Executor.

Drives a task graph to completion for one session:
- prerequisites first (recursively), missing ones skipped
- identical (capability, arguments) tasks run once; duplicates adopt the
  result, waiting for an identical task that is still running
- parameters resolved and sensitive tasks confirmed before invocation
- invocation under the retry / fallback policy
- after every terminal result the planner may append one follow-up task,
  ordered after it but run even when it failed

Task failures are recorded on the task, never raised.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from capabilities.registry import CapabilityRegistry
from execution.graph import TaskGraph
from execution.retry import RetryFallbackResolver
from interaction.channel import UserChannel
from interaction.confirmation import ConfirmationGate
from interaction.resolver import ParameterResolver
from observability.logger import Observability
from planner.graph_builder import TaskGraphBuilder
from shared.errors import CapabilityValidationError, PromptTimeoutError
from shared.models import ActionRequest, StructuredError, Task, utc_now
from shared.response_formatter import format_result_for_display

logger = logging.getLogger(__name__)

FollowUpAdvisor = Callable[[Task], Awaitable[ActionRequest | None]]
NOTICE_CHAR_LIMIT = 2000


@dataclass
class _GraphRun:
    """Mutable state of one execute() call."""
    graph: TaskGraph
    session_id: str
    advisor: FollowUpAdvisor | None
    obs: Observability
    inflight: dict[str, asyncio.Future] = field(default_factory=dict)
    # identity -> task_id of the task that will produce its result
    claims: dict[tuple[str, str], str] = field(default_factory=dict)
    # task_id -> task_id it is waiting on as a duplicate
    waiting: dict[str, str] = field(default_factory=dict)
    followups: int = 0


class GraphExecutor:
    """Executes task graphs."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        resolver: ParameterResolver,
        confirmation_gate: ConfirmationGate,
        retry_resolver: RetryFallbackResolver,
        builder: TaskGraphBuilder,
        channel: UserChannel | None = None,
        max_followups: int = 5,
        parallel_siblings: bool = False,
    ):
        self.registry = registry
        self.resolver = resolver
        self.confirmation_gate = confirmation_gate
        self.retry_resolver = retry_resolver
        self.builder = builder
        self.channel = channel
        self.max_followups = max_followups
        self.parallel_siblings = parallel_siblings

    async def execute(
        self,
        graph: TaskGraph,
        session_id: str,
        advisor: FollowUpAdvisor | None = None,
    ) -> TaskGraph:
        run = _GraphRun(graph=graph, session_id=session_id, advisor=advisor, obs=Observability(session_id))
        run.obs.log_event("graph_started", {"tasks": [t.task_id for t in graph]})

        while graph.has_frontier:
            if self.parallel_siblings:
                batch = graph.pop_ready()
                if batch:
                    await asyncio.gather(*(self._ensure_terminal(run, task) for task in batch))
            else:
                task = graph.pop_frontier()
                if task is not None:
                    await self._ensure_terminal(run, task)

        run.obs.log_event(
            "graph_finished",
            {
                "tasks": {t.task_id: t.status for t in graph},
                "followups": run.followups,
            },
        )
        return graph

    async def _ensure_terminal(self, run: _GraphRun, task: Task) -> None:
        """Run ``task`` once, however many callers wait on it."""
        if task.is_terminal:
            return
        future = run.inflight.get(task.task_id)
        if future is None:
            future = asyncio.ensure_future(self._run_task(run, task))
            run.inflight[task.task_id] = future
        await future

    async def _run_task(self, run: _GraphRun, task: Task) -> None:
        graph = run.graph

        # 1. Prerequisites; only declared dependencies propagate failure
        for ref in list(task.prerequisites):
            dep = graph.resolve_dependency(ref, exclude=task.task_id)
            if dep is None:
                logger.warning("Task '%s': dependency '%s' not found; skipped", task.task_id, ref)
                continue
            await self._ensure_terminal(run, dep)
            if dep.status == "failed" and ref in task.dependencies:
                self._fail(
                    run,
                    task,
                    StructuredError(
                        kind="dependency_failed",
                        message=f"Prerequisite '{dep.task_id}' failed.",
                        capability=task.name,
                    ),
                )
                return

        # 2. Memoized or in-flight duplicate
        if await self._join_twin(run, task):
            return

        task.status = "running"
        task.started_at = utc_now()
        run.obs.task_event("task_started", task)
        await self._notify(run, f"🔄 Starting {task.name}...")

        # 3. Parameters and confirmation
        try:
            arguments = await self.resolver.resolve(task, run.session_id)
            task.arguments = arguments
            if await self._join_twin(run, task):
                return
            if self.registry.is_sensitive(task.name):
                request = await self.confirmation_gate.confirm(task, run.session_id, arguments)
                if not request.accepted:
                    self._fail(
                        run,
                        task,
                        StructuredError(
                            kind="declined",
                            message=f"'{task.name}' was not confirmed ({request.resolution}).",
                            capability=task.name,
                        ),
                    )
                    await self._notify(run, f"❌ Error in {task.name}.\n{task.error.message}")
                    await self._consult(run, task)
                    return
        except PromptTimeoutError as e:
            self._fail(run, task, StructuredError(kind="prompt_timeout", message=str(e), capability=task.name))
            await self._notify(run, f"❌ Error in {task.name}.\n{e}")
            return
        except CapabilityValidationError as e:
            self._fail(run, task, StructuredError(kind="validation", message=str(e), capability=task.name))
            await self._notify(run, f"❌ Error in {task.name}.\n{e}")
            await self._consult(run, task)
            return

        # 4. Invocation
        outcome = await self.retry_resolver.run(task, arguments, run.session_id)
        task.attempts = outcome.attempts
        task.executed_by = outcome.executed_by
        task.fallbacks_tried = list(outcome.fallbacks_tried)
        task.result = outcome.result
        task.finished_at = utc_now()
        if outcome.succeeded:
            task.status = "succeeded"
            run.obs.task_event("task_succeeded", task, executed_by=outcome.executed_by, attempts=outcome.attempts)
            display = format_result_for_display(outcome.result)[:NOTICE_CHAR_LIMIT]
            await self._notify(run, f"✅ {task.name} completed.\n{display}")
        else:
            task.status = "failed"
            task.error = outcome.error
            run.obs.task_event("task_failed", task, level="WARNING", error=outcome.error.model_dump())
            await self._notify(run, f"❌ Error in {task.name}.\n{outcome.error.message[:NOTICE_CHAR_LIMIT]}")

        # 5. Follow-up
        await self._consult(run, task)

    async def _join_twin(self, run: _GraphRun, task: Task) -> bool:
        """Adopt the outcome of an identical task, waiting for it while it runs."""
        identity = task.identity
        owner_id = run.claims.get(identity)
        if owner_id is not None and owner_id != task.task_id and run.waiting.get(owner_id) != task.task_id:
            run.waiting[task.task_id] = owner_id
            try:
                await run.inflight[owner_id]
            finally:
                del run.waiting[task.task_id]
        if self._adopt_duplicate(run, task):
            return True
        owner = run.graph.get(owner_id) if owner_id else None
        if owner is None or owner.is_terminal:
            run.claims[identity] = task.task_id
        return False

    def _adopt_duplicate(self, run: _GraphRun, task: Task) -> bool:
        twin = run.graph.find_identical(task)
        if twin is None:
            return False
        task.status = twin.status
        task.result = twin.result
        task.error = twin.error
        task.arguments = dict(twin.arguments)
        task.executed_by = twin.executed_by
        task.duplicate_of = twin.task_id
        task.attempts = 0
        task.finished_at = utc_now()
        run.obs.task_event("task_deduplicated", task, duplicate_of=twin.task_id)
        return True

    def _fail(self, run: _GraphRun, task: Task, error: StructuredError) -> None:
        task.status = "failed"
        task.error = error
        task.finished_at = utc_now()
        run.obs.task_event("task_failed", task, level="WARNING", error=error.model_dump())

    async def _consult(self, run: _GraphRun, task: Task) -> None:
        if run.advisor is None:
            return
        if run.followups >= self.max_followups:
            logger.info("Follow-up limit (%d) reached; not consulting planner after '%s'", self.max_followups, task.task_id)
            return
        action = await run.advisor(task)
        if action is None:
            return
        if action.name not in self.registry:
            logger.warning("Planner proposed unknown capability '%s' as follow-up; ignored", action.name)
            return
        run.followups += 1
        added = self.builder.append(run.graph, action, after=[task.task_id])
        run.obs.task_event("followup_appended", task, followup=[t.task_id for t in added])
        for followup in added:
            await self._notify(run, f"🔄 Proceeding with {followup.name}...")

    async def _notify(self, run: _GraphRun, text: str) -> None:
        if self.channel is None:
            return
        try:
            await self.channel.notify(run.session_id, text)
        except Exception:
            logger.exception("Failed to deliver notice to session %s", run.session_id)

    @staticmethod
    def describe(graph: TaskGraph) -> list[dict[str, Any]]:
        """Compact per-task view for turn results and APIs."""
        return [
            {
                "task_id": t.task_id,
                "name": t.name,
                "status": t.status,
                "attempts": t.attempts,
                "executed_by": t.executed_by,
                "duplicate_of": t.duplicate_of,
                "fallbacks_tried": list(t.fallbacks_tried),
                "error": t.error.model_dump() if t.error else None,
            }
            for t in graph
        ]
