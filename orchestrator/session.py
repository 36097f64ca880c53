"""
Session — one end user's conversation and the re-planning loop of a turn.

A turn: consult the planner with the utterance; a text reply ends the turn,
an action becomes a task graph that is executed, summarized and shown back
to the planner, which may act again (bounded by max_replans).
"""

from __future__ import annotations

import asyncio
import logging

from conversation.context import ConversationContext
from execution.engine import GraphExecutor
from execution.graph import TaskGraph
from observability.logger import Observability
from planner.gateway import PlannerGateway
from planner.graph_builder import TaskGraphBuilder
from planner.summarizer import ResultSummarizer
from shared.models import ActionRequest, PlannerReply, Task, TurnResult

logger = logging.getLogger(__name__)


class Session:
    """Owns one ConversationContext; runs one turn at a time."""

    def __init__(
        self,
        session_id: str,
        planner: PlannerGateway,
        builder: TaskGraphBuilder,
        executor: GraphExecutor,
        summarizer: ResultSummarizer,
        max_replans: int = 3,
        followups_enabled: bool = True,
    ):
        self.session_id = session_id
        self.context = ConversationContext(session_id)
        self.planner = planner
        self.builder = builder
        self.executor = executor
        self.summarizer = summarizer
        self.max_replans = max_replans
        self.followups_enabled = followups_enabled
        self.turn_lock = asyncio.Lock()
        self.last_graph: TaskGraph | None = None

    async def run_turn(self, text: str) -> TurnResult:
        obs = Observability(self.session_id)
        self.context.add_user(text)
        reply = await self.planner.consult(self.context)

        if reply.kind == "text":
            self.context.add_assistant(reply.content)
            return TurnResult(session_id=self.session_id, status="text", text=reply.content)

        tasks: list[dict] = []
        report = ""
        status = "failure"
        replans = 0
        while reply.kind == "action" and reply.action is not None:
            if replans >= self.max_replans:
                logger.warning("Session %s: replan limit (%d) reached; dropping '%s'", self.session_id, self.max_replans, reply.action.name)
                reply = PlannerReply(kind="text", content="")
                break
            if reply.action.name not in self.planner.registry and reply.action.template not in self.builder.runnable():
                logger.warning("Session %s: planner proposed unknown capability '%s'", self.session_id, reply.action.name)
                if replans == 0:
                    report = f"The capability '{reply.action.name}' is not available."
                reply = PlannerReply(kind="text", content="")
                break

            replans += 1
            obs.log_event("plan_started", {"action": reply.action.name, "template": reply.action.template, "round": replans})
            graph = self.builder.build(reply.action)
            recorded: set[str] = set()
            await self.executor.execute(graph, self.session_id, advisor=self._advisor(recorded))
            self._record_results(graph, recorded)
            self.last_graph = graph

            tasks.extend(GraphExecutor.describe(graph))
            report = self.summarizer.summarize(graph)
            status = ResultSummarizer.status_of(graph)
            reply = await self.planner.review(self.context, report)

        commentary = reply.content if reply.kind == "text" else ""
        text = commentary or report
        self.context.add_assistant(text)
        return TurnResult(
            session_id=self.session_id,
            status=status if tasks else "failure",
            text=text,
            report=report,
            tasks=tasks,
            replans=replans,
        )

    def _advisor(self, recorded: set[str]):
        async def advise(task: Task) -> ActionRequest | None:
            self._record_result(task, recorded)
            if not self.followups_enabled:
                return None
            return await self.planner.propose_followup(self.context, task)

        return advise

    def _record_result(self, task: Task, recorded: set[str]) -> None:
        if task.task_id in recorded:
            return
        recorded.add(task.task_id)
        self.context.add_function_result(task.name, task.outcome())

    def _record_results(self, graph: TaskGraph, recorded: set[str]) -> None:
        for task in graph:
            if task.is_terminal:
                self._record_result(task, recorded)
