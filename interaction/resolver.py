"""
Parameter Resolver — completes a task's arguments before invocation.

Responsibility:
- Parse raw planner arguments (dict or JSON text)
- Detect required fields that are missing
- Ask the user for them with a ``key=value`` prompt and merge the reply

Prohibitions:
- No capability invocation
- No guessing of values the user did not give
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from capabilities.registry import CapabilityRegistry
from interaction.channel import UserChannel
from interaction.pending import PendingRequests
from observability.logger import Observability
from shared.errors import CapabilityValidationError, PromptTimeoutError
from shared.models import CapabilityDescriptor, Task, UserPrompt

logger = logging.getLogger(__name__)

PROMPT_TIMEOUT_MESSAGE = "User did not respond in time for missing parameters."


def parse_arguments(name: str, raw: Any) -> dict[str, Any]:
    """Planner arguments as a dict. Malformed JSON is a validation error."""
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return {}
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise CapabilityValidationError(
                f"Invalid JSON arguments for '{name}': {e}",
                capability=name,
            ) from e
        if not isinstance(parsed, dict):
            raise CapabilityValidationError(
                f"Arguments for '{name}' must be a JSON object",
                capability=name,
            )
        return parsed
    raise CapabilityValidationError(
        f"Arguments for '{name}' must be an object, got {type(raw).__name__}",
        capability=name,
    )


def missing_parameters(descriptor: CapabilityDescriptor, arguments: dict[str, Any]) -> list[str]:
    return [field for field in descriptor.required_params if arguments.get(field) in (None, "")]


def parse_key_values(text: str, fields: list[str]) -> dict[str, str]:
    """Pull ``field=value`` pairs for the requested fields out of free text."""
    values: dict[str, str] = {}
    for field in fields:
        match = re.search(rf"(?<![\w]){re.escape(field)}\s*=\s*(\S+)", text, re.IGNORECASE)
        if match:
            values[field] = match.group(1)
    return values


def build_prompt(name: str, missing: list[str]) -> str:
    return (
        f"⚠️ Missing parameters for '{name}': {', '.join(missing)}.\n"
        'Provide the values in the format "key1=val1 key2=val2".'
    )


class ParameterResolver:
    """Turns a task's raw arguments into a complete argument dict."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        channel: UserChannel,
        pending: PendingRequests,
        timeout_seconds: float = 30.0,
        max_rounds: int = 3,
    ):
        self.registry = registry
        self.channel = channel
        self.pending = pending
        self.timeout_seconds = timeout_seconds
        self.max_rounds = max_rounds

    async def resolve(self, task: Task, session_id: str) -> dict[str, Any]:
        descriptor = self.registry.require(task.name)
        arguments = parse_arguments(task.name, task.raw_arguments)
        missing = missing_parameters(descriptor, arguments)
        obs = Observability(session_id)

        rounds = 0
        while missing:
            if rounds >= self.max_rounds:
                raise CapabilityValidationError(
                    f"Missing required parameters for '{task.name}': {', '.join(missing)}",
                    capability=task.name,
                )
            rounds += 1
            obs.task_event("parameters_requested", task, missing=missing, round=rounds)

            prompt = UserPrompt(
                session_id=session_id,
                kind="parameters",
                text=build_prompt(task.name, missing),
                fields=list(missing),
            )
            reply = await self.pending.ask(self.channel, prompt, self.timeout_seconds)
            if reply is None:
                raise PromptTimeoutError(PROMPT_TIMEOUT_MESSAGE)

            supplied = parse_key_values(reply, missing)
            if not supplied:
                logger.info("Reply for '%s' carried none of %s", task.name, missing)
            arguments.update(supplied)
            missing = missing_parameters(descriptor, arguments)

        return arguments
