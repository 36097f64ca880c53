"""
Retry / Fallback Resolver.

Responsibility:
- Invoke a capability up to its attempt budget, classifying every attempt
- Re-confirm sensitive capabilities before each retry
- Walk the fallback chain when the primary is exhausted
- Surface the original failure (annotated with the alternates tried) when
  everything fails

Prohibitions:
- Never raises for capability failures; the outcome carries them
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any

from capabilities.fallbacks import FallbackTable, adapt_arguments
from capabilities.gateway import CapabilityGateway
from capabilities.registry import CapabilityRegistry
from execution.classification import insufficiency_policy, is_recoverable_error
from interaction.confirmation import ConfirmationGate
from observability.logger import Observability
from shared.errors import CapabilityValidationError, UserCancelledError
from shared.models import StructuredError, Task

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    fallback_attempts: int = 2
    backoff_seconds: float = 0.0
    jitter_seconds: float = 0.0

    def delay_for(self, attempt: int) -> float:
        delay = 0.0
        if self.backoff_seconds > 0:
            delay += self.backoff_seconds * (2 ** (attempt - 1))
        if self.jitter_seconds > 0:
            delay += random.uniform(0.0, self.jitter_seconds)
        return delay


@dataclass
class AttemptOutcome:
    # success|insufficient|recoverable|non_recoverable|validation|declined
    status: str
    capability: str
    result: Any = None
    message: str = ""
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    @property
    def terminal(self) -> bool:
        """Failures that must not reach the fallback chain."""
        return self.status in ("validation", "declined")


@dataclass
class ResolutionOutcome:
    succeeded: bool
    executed_by: str
    attempts: int
    result: Any = None
    error: StructuredError | None = None
    fallbacks_tried: list[str] = field(default_factory=list)


_ERROR_KINDS = {
    "insufficient": "insufficient_data",
    "recoverable": "recoverable",
    "non_recoverable": "non_recoverable",
    "validation": "validation",
    "declined": "declined",
}


class RetryFallbackResolver:
    """Runs one task's invocation under the retry and fallback policy."""

    def __init__(
        self,
        gateway: CapabilityGateway,
        registry: CapabilityRegistry,
        fallbacks: FallbackTable,
        confirmation_gate: ConfirmationGate | None = None,
        policy: RetryPolicy | None = None,
    ):
        self.gateway = gateway
        self.registry = registry
        self.fallbacks = fallbacks
        self.confirmation_gate = confirmation_gate
        self.policy = policy or RetryPolicy()

    async def run(self, task: Task, arguments: dict[str, Any], session_id: str) -> ResolutionOutcome:
        obs = Observability(session_id)
        primary = await self._attempt_with_retries(
            task, task.name, arguments, session_id, self.policy.max_attempts, confirmed=True
        )
        total_attempts = primary.attempts
        if primary.succeeded:
            return ResolutionOutcome(True, task.name, total_attempts, result=primary.result)
        if primary.terminal:
            return ResolutionOutcome(
                False,
                task.name,
                total_attempts,
                result=primary.result,
                error=self._error(primary, total_attempts, []),
            )

        tried: list[str] = []
        for alternate in self.fallbacks.chain_for(task.name):
            descriptor = self.registry.resolve(alternate)
            if descriptor is None:
                logger.debug("Fallback '%s' for '%s' not registered; skipped", alternate, task.name)
                continue
            tried.append(alternate)
            obs.task_event("fallback_started", task, alternate=alternate, after=primary.message)
            outcome = await self._attempt_with_retries(
                task,
                alternate,
                adapt_arguments(descriptor, arguments),
                session_id,
                self.policy.fallback_attempts,
                confirmed=not descriptor.sensitive,
            )
            total_attempts += outcome.attempts
            if outcome.succeeded:
                obs.task_event("fallback_succeeded", task, alternate=alternate)
                return ResolutionOutcome(
                    True, alternate, total_attempts, result=outcome.result, fallbacks_tried=tried
                )
            if outcome.status == "declined":
                break

        obs.task_event("task_exhausted", task, level="WARNING", fallbacks=tried, error=primary.message)
        return ResolutionOutcome(
            False,
            task.name,
            total_attempts,
            result=primary.result,
            error=self._error(primary, total_attempts, tried),
            fallbacks_tried=tried,
        )

    async def _attempt_with_retries(
        self,
        task: Task,
        capability: str,
        arguments: dict[str, Any],
        session_id: str,
        max_attempts: int,
        confirmed: bool,
    ) -> AttemptOutcome:
        descriptor = self.registry.require(capability)
        insufficient = insufficiency_policy(descriptor.insufficiency_check)
        obs = Observability(session_id)
        outcome = AttemptOutcome(status="non_recoverable", capability=capability)

        for attempt in range(1, max_attempts + 1):
            if descriptor.sensitive and self.confirmation_gate is not None and (attempt > 1 or not confirmed):
                request = await self.confirmation_gate.confirm(task, session_id, arguments, attempt=attempt)
                if not request.accepted:
                    return AttemptOutcome(
                        status="declined",
                        capability=capability,
                        message=f"User declined '{capability}' ({request.resolution}).",
                        attempts=attempt - 1,
                        result=outcome.result,
                    )

            try:
                result = await self.gateway.invoke(capability, arguments, session_id)
            except UserCancelledError as e:
                return AttemptOutcome("declined", capability, message=str(e), attempts=attempt)
            except CapabilityValidationError as e:
                return AttemptOutcome("validation", capability, message=str(e), attempts=attempt)
            except Exception as e:
                recoverable = is_recoverable_error(e)
                outcome = AttemptOutcome(
                    "recoverable" if recoverable else "non_recoverable",
                    capability,
                    message=str(e) or type(e).__name__,
                    attempts=attempt,
                )
                obs.task_event(
                    "attempt_failed",
                    task,
                    level="WARNING",
                    capability_used=capability,
                    attempt=attempt,
                    recoverable=recoverable,
                    error=outcome.message,
                )
                if not recoverable:
                    return outcome
            else:
                if not insufficient(result):
                    return AttemptOutcome("success", capability, result=result, attempts=attempt)
                outcome = AttemptOutcome(
                    "insufficient",
                    capability,
                    result=result,
                    message=f"Insufficient data returned by '{capability}'.",
                    attempts=attempt,
                )
                obs.task_event("attempt_insufficient", task, capability_used=capability, attempt=attempt)

            if attempt < max_attempts:
                delay = self.policy.delay_for(attempt)
                if delay > 0:
                    await asyncio.sleep(delay)

        return outcome

    def _error(self, primary: AttemptOutcome, attempts: int, tried: list[str]) -> StructuredError:
        message = primary.message
        if tried:
            message = f"{message} (fallbacks tried: {', '.join(tried)})"
        return StructuredError(
            kind=_ERROR_KINDS.get(primary.status, "non_recoverable"),
            message=message,
            capability=primary.capability,
            attempts=attempts,
            fallbacks_tried=list(tried),
            original_message=primary.message,
        )
