"""
Task Graph Builder — turns one planner action into a task graph.

Three shapes, tried in order:
- template: the named template's steps with their dependency edges
- batch fan-out: one independent task per element of a batch field
- single: one task, no dependencies
"""

from __future__ import annotations

import json
import logging
from typing import Any

from capabilities.registry import CapabilityRegistry
from execution.graph import TaskGraph
from planner.templates import DEFAULT_TEMPLATES, TaskTemplate, runnable_templates
from shared.models import ActionRequest, CapabilityDescriptor, Task

logger = logging.getLogger(__name__)


def _coerce_arguments(raw: Any) -> dict[str, Any] | None:
    """Dict view of raw arguments, or None when they are not an object."""
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def _collect_items(value: Any) -> list[Any]:
    """Unique non-empty items of a batch value, first occurrence wins."""
    if not isinstance(value, (list, tuple)):
        return []
    items: list[Any] = []
    seen: set[str] = set()
    for entry in value:
        if entry is None or (isinstance(entry, str) and not entry.strip()):
            continue
        if isinstance(entry, str):
            entry = entry.strip()
        key = json.dumps(entry, sort_keys=True, default=str).upper()
        if key not in seen:
            seen.add(key)
            items.append(entry)
    return items


class TaskGraphBuilder:
    """Builds task graphs from planner actions."""

    def __init__(self, registry: CapabilityRegistry, templates: dict[str, TaskTemplate] | None = None):
        self.registry = registry
        self.templates = DEFAULT_TEMPLATES if templates is None else templates

    def runnable(self) -> dict[str, TaskTemplate]:
        """Templates the registry can actually execute end to end."""
        return runnable_templates(self.templates, self.registry)

    def build(self, action: ActionRequest) -> TaskGraph:
        graph = TaskGraph()
        template = self.runnable().get(action.template) if action.template else None
        if action.template and template is None:
            logger.warning("Template '%s' unknown or not runnable; building '%s' as a single action", action.template, action.name)
        if template is not None:
            self._instantiate_template(graph, template, action)
        else:
            self.append(graph, action)
        return graph

    def append(
        self,
        graph: TaskGraph,
        action: ActionRequest,
        depends_on: list[str] | None = None,
        after: list[str] | None = None,
    ) -> list[Task]:
        """Add the tasks for ``action`` to an existing graph.

        ``depends_on`` edges propagate failure; ``after`` edges only order.
        """
        dependencies = list(depends_on or [])
        descriptor = self.registry.resolve(action.name)
        arguments = _coerce_arguments(action.raw_arguments)

        fan_out = self._fan_out(descriptor, arguments) if descriptor and arguments is not None else None
        if fan_out:
            logger.info("Fanning out '%s' into %d tasks", action.name, len(fan_out))
            raw_items: list[dict[str, Any] | str] = list(fan_out)
        else:
            raw_items = [action.raw_arguments if arguments is None else arguments]

        tasks = []
        for raw in raw_items:
            task = Task(
                task_id=graph.next_alias(action.name),
                name=action.name,
                raw_arguments=raw,
                dependencies=list(dependencies),
                after=list(after or []),
            )
            tasks.append(graph.add(task))
        return tasks

    # ─── Templates ────────────────────────────────────────────

    def _instantiate_template(self, graph: TaskGraph, template: TaskTemplate, action: ActionRequest) -> None:
        seed = _coerce_arguments(action.raw_arguments) or {}
        latest_alias: dict[str, str] = {}
        occurrences: dict[str, int] = {}
        for step in template.steps:
            dependencies: list[str] = []
            for dep in step.dependencies:
                alias = latest_alias.get(dep)
                if alias is None:
                    logger.warning("Template '%s': step '%s' depends on unknown step '%s'", template.name, step.name, dep)
                    dependencies.append(dep)
                else:
                    dependencies.append(alias)

            task = Task(
                task_id=graph.next_alias(step.name),
                name=step.name,
                raw_arguments=self._seed_arguments(step.name, action.name, seed, occurrences.get(step.name, 0)),
                dependencies=dependencies,
            )
            graph.add(task)
            latest_alias[step.name] = task.task_id
            occurrences[step.name] = occurrences.get(step.name, 0) + 1

    def _seed_arguments(
        self, step_name: str, action_name: str, seed: dict[str, Any], occurrence: int
    ) -> dict[str, Any]:
        """Arguments for the ``occurrence``-th step (0-based) running ``step_name``.

        Batch items are handed out one per repeated step; without them only
        the first occurrence receives the singular value, so later repeats
        ask the user instead of duplicating the first step.
        """
        descriptor = self.registry.resolve(step_name)
        if descriptor is None:
            return dict(seed) if step_name == action_name else {}
        if step_name == action_name:
            arguments = dict(seed)
        else:
            arguments = {key: value for key, value in seed.items() if key in descriptor.parameters}

        for list_param, single_param in descriptor.batch_params.items():
            single = arguments.pop(single_param, None)
            items = _collect_items([single, *(arguments.pop(list_param, None) or [])])
            if occurrence < len(items):
                arguments[single_param] = items[occurrence]
            return arguments

        if occurrence:
            for field in descriptor.required_params:
                arguments.pop(field, None)
        return arguments

    # ─── Batch fan-out ────────────────────────────────────────

    def _fan_out(self, descriptor: CapabilityDescriptor, arguments: dict[str, Any]) -> list[dict[str, Any]] | None:
        """One argument dict per batch element, or None when nothing fans out."""
        for list_param, single_param in descriptor.batch_params.items():
            items = _collect_items(arguments.get(list_param))
            if not items:
                continue
            shared = {k: v for k, v in arguments.items() if k not in (list_param, single_param)}
            single = arguments.get(single_param)
            if single not in (None, "") and not isinstance(single, list):
                items = _collect_items([single, *items])
            return [{**shared, single_param: item} for item in items]

        # A list passed straight into a singular required field.
        for field in descriptor.required_params:
            value = arguments.get(field)
            schema = descriptor.parameters.get(field) or {}
            if isinstance(value, list) and schema.get("type") != "array":
                items = _collect_items(value)
                if not items:
                    continue
                shared = {k: v for k, v in arguments.items() if k != field}
                return [{**shared, field: item} for item in items]
        return None
