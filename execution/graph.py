"""
Task Graph — tasks, dependency edges and the execution frontier.

The graph grows while it executes (planner follow-ups are appended) but is
kept acyclic: an edge that would close a cycle is dropped when the task is
added. Dependencies may name a task id, an alias or a capability name; a
reference that matches nothing is skipped at execution time.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Iterable, Iterator

from shared.models import Task

logger = logging.getLogger(__name__)


class TaskGraph:
    """Ordered tasks plus a FIFO frontier of tasks still to visit."""

    def __init__(self, tasks: Iterable[Task] = ()):
        self._tasks: dict[str, Task] = {}
        self._frontier: deque[str] = deque()
        for task in tasks:
            self.add(task)

    # ─── Construction ─────────────────────────────────────────

    def next_alias(self, name: str) -> str:
        """``name`` for the first task of a capability, ``name#n`` afterwards."""
        if name not in self._tasks:
            return name
        n = 2
        while f"{name}#{n}" in self._tasks:
            n += 1
        return f"{name}#{n}"

    def add(self, task: Task) -> Task:
        if task.task_id in self._tasks:
            raise ValueError(f"Task id '{task.task_id}' already exists in graph")

        task.dependencies = self._clean_edges(task, task.dependencies, seen=[])
        task.after = self._clean_edges(task, task.after, seen=list(task.dependencies))
        self._tasks[task.task_id] = task

        # Incoming edges may already point at the new task (forward references).
        for edges in (task.dependencies, task.after):
            for ref in list(edges):
                target = self.resolve_dependency(ref, exclude=task.task_id)
                if target is not None and task.task_id in self._reachable(target.task_id):
                    logger.warning("Dependency %s → %s would create a cycle; edge dropped", task.task_id, ref)
                    edges.remove(ref)

        self._frontier.append(task.task_id)
        return task

    @staticmethod
    def _clean_edges(task: Task, refs: list[str], seen: list[str]) -> list[str]:
        kept: list[str] = []
        for ref in refs:
            if ref in kept or ref in seen:
                continue
            if ref == task.task_id:
                logger.warning("Task '%s' depends on itself; edge dropped", task.task_id)
                continue
            kept.append(ref)
        return kept

    def _reachable(self, start_id: str) -> set[str]:
        """Every task id reachable from ``start_id`` through dependency edges."""
        seen: set[str] = set()
        stack = [start_id]
        while stack:
            current = self._tasks.get(stack.pop())
            if current is None or current.task_id in seen:
                continue
            seen.add(current.task_id)
            for ref in current.prerequisites:
                dep = self.resolve_dependency(ref, exclude=current.task_id)
                if dep is not None and dep.task_id not in seen:
                    stack.append(dep.task_id)
        return seen

    # ─── Lookup ───────────────────────────────────────────────

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def resolve_dependency(self, ref: str, exclude: str | None = None) -> Task | None:
        """Task for an id/alias first, else the first task running that capability."""
        task = self._tasks.get(ref)
        if task is not None and task.task_id != exclude:
            return task
        for candidate in self._tasks.values():
            if candidate.name == ref and candidate.task_id != exclude:
                return candidate
        return None

    def find_identical(self, task: Task) -> Task | None:
        """An earlier terminal task with the same capability and arguments."""
        identity = task.identity
        for candidate in self._tasks.values():
            if candidate.task_id == task.task_id or not candidate.is_terminal:
                continue
            if candidate.identity == identity:
                return candidate
        return None

    def dependents_of(self, task_id: str) -> list[Task]:
        dependents = []
        for candidate in self._tasks.values():
            for ref in candidate.dependencies:
                dep = self.resolve_dependency(ref, exclude=candidate.task_id)
                if dep is not None and dep.task_id == task_id:
                    dependents.append(candidate)
                    break
        return dependents

    # ─── Frontier ─────────────────────────────────────────────

    def pop_frontier(self) -> Task | None:
        while self._frontier:
            task = self._tasks[self._frontier.popleft()]
            if not task.is_terminal:
                return task
        return None

    def pop_ready(self) -> list[Task]:
        """Drain frontier tasks whose prerequisites are already terminal."""
        ready: list[Task] = []
        blocked: deque[str] = deque()
        while self._frontier:
            task = self._tasks[self._frontier.popleft()]
            if task.is_terminal:
                continue
            deps = [self.resolve_dependency(ref, exclude=task.task_id) for ref in task.prerequisites]
            if all(dep is None or dep.is_terminal for dep in deps):
                ready.append(task)
            else:
                blocked.append(task.task_id)
        self._frontier = blocked
        if not ready and blocked:
            # Prerequisites outside the frontier are executed recursively.
            ready.append(self._tasks[self._frontier.popleft()])
        return ready

    @property
    def has_frontier(self) -> bool:
        return any(not self._tasks[task_id].is_terminal for task_id in self._frontier)

    def all_terminal(self) -> bool:
        return all(task.is_terminal for task in self._tasks.values())

    # ─── Introspection ────────────────────────────────────────

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks.values())

    def __iter__(self) -> Iterator[Task]:
        return iter(list(self._tasks.values()))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks
