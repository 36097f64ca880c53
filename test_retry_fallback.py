from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from capabilities.fallbacks import FallbackTable
from capabilities.gateway import CapabilityGateway
from capabilities.registry import CapabilityRegistry
from execution.retry import RetryFallbackResolver, RetryPolicy
from shared.errors import CapabilityError, CapabilityValidationError
from shared.models import CapabilityDescriptor, ConfirmationRequest, Task


class FlakyHandler:
    """Fails with the scripted errors first, then returns ``result``."""

    def __init__(self, failures=(), result=None):
        self.failures = list(failures)
        self.result = {"price": 1.0} if result is None else result
        self.calls = 0

    async def __call__(self, arguments, session_id):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class ScriptedGate:
    """Confirmation gate stand-in resolving each request from a script."""

    def __init__(self, resolutions):
        self.resolutions = list(resolutions)
        self.calls = []

    async def confirm(self, task, session_id, arguments=None, attempt=1):
        self.calls.append(attempt)
        return ConfirmationRequest(
            task_id=task.task_id,
            capability=task.name,
            prompt="",
            accept_token="confirm:x",
            decline_token="decline:x",
            expiry=datetime.now(timezone.utc),
            resolution=self.resolutions.pop(0),
        )


def _resolver(handlers, sensitive=(), chains=None, policy=None, gate=None):
    registry = CapabilityRegistry()
    for name, handler in handlers.items():
        registry.register(
            CapabilityDescriptor(name=name, required_params=("query",), sensitive=name in sensitive),
            handler,
        )
    return RetryFallbackResolver(
        CapabilityGateway(registry),
        registry,
        FallbackTable(chains or {}),
        confirmation_gate=gate,
        policy=policy or RetryPolicy(max_attempts=3, fallback_attempts=2),
    )


def _run(resolver, name="primary", arguments=None):
    task = Task(task_id=name, name=name, arguments=arguments or {"query": "pepe"})
    return asyncio.run(resolver.run(task, task.arguments, "s1"))


def test_success_on_first_attempt():
    handler = FlakyHandler()
    outcome = _run(_resolver({"primary": handler}))
    assert outcome.succeeded
    assert outcome.executed_by == "primary"
    assert outcome.attempts == 1
    assert handler.calls == 1


def test_recoverable_errors_are_retried_up_to_max_attempts():
    handler = FlakyHandler(failures=[CapabilityError("reset", code="ECONNRESET")] * 5)
    outcome = _run(_resolver({"primary": handler}))
    assert not outcome.succeeded
    assert handler.calls == 3
    assert outcome.attempts == 3
    assert outcome.error.kind == "recoverable"
    assert outcome.error.message == "reset"


def test_recoverable_error_then_success():
    handler = FlakyHandler(failures=[CapabilityError("HTTP 503", status_code=503)])
    outcome = _run(_resolver({"primary": handler}))
    assert outcome.succeeded
    assert outcome.attempts == 2


def test_non_recoverable_error_short_circuits_retries():
    handler = FlakyHandler(failures=[CapabilityError("invalid signature")])
    outcome = _run(_resolver({"primary": handler}))
    assert handler.calls == 1
    assert outcome.error.kind == "non_recoverable"


def test_validation_error_skips_fallbacks():
    primary = FlakyHandler(failures=[CapabilityValidationError("bad address")])
    alternate = FlakyHandler()
    outcome = _run(_resolver({"primary": primary, "alt": alternate}, chains={"primary": ["alt"]}))
    assert outcome.error.kind == "validation"
    assert alternate.calls == 0


def test_insufficient_results_count_as_attempts():
    handler = FlakyHandler(result={"error": "No pairs found"})
    outcome = _run(_resolver({"primary": handler}))
    assert handler.calls == 3
    assert outcome.error.kind == "insufficient_data"
    assert outcome.result == {"error": "No pairs found"}


def test_fallback_used_after_primary_exhausted():
    primary = FlakyHandler(failures=[CapabilityError("timeout")] * 3)
    alternate = FlakyHandler(result={"price": 2.0})
    outcome = _run(_resolver({"primary": primary, "alt": alternate}, chains={"primary": ["missing", "alt"]}))

    assert outcome.succeeded
    assert outcome.executed_by == "alt"
    assert outcome.result == {"price": 2.0}
    assert outcome.fallbacks_tried == ["alt"]
    assert outcome.attempts == 4


def test_exhausted_chain_reports_original_error():
    primary = FlakyHandler(failures=[CapabilityError("ETIMEDOUT upstream")] * 3)
    alternate = FlakyHandler(failures=[CapabilityError("alt 502", status_code=502)] * 2)
    outcome = _run(_resolver({"primary": primary, "alt": alternate}, chains={"primary": ["alt"]}))

    assert not outcome.succeeded
    assert outcome.executed_by == "primary"
    assert alternate.calls == 2
    assert outcome.error.original_message == "ETIMEDOUT upstream"
    assert outcome.error.message == "ETIMEDOUT upstream (fallbacks tried: alt)"
    assert outcome.error.fallbacks_tried == ["alt"]
    assert outcome.error.attempts == 5


def test_fallback_arguments_adapted_to_alternate():
    seen = {}

    async def alternate(arguments, session_id):
        seen.update(arguments)
        return {"ok": True}

    registry = CapabilityRegistry()
    registry.register(
        CapabilityDescriptor(name="primary", required_params=("tokenSymbol",)),
        FlakyHandler(failures=[CapabilityError("timeout")] * 3),
    )
    registry.register(CapabilityDescriptor(name="alt", required_params=("query",)), alternate)
    resolver = RetryFallbackResolver(
        CapabilityGateway(registry), registry, FallbackTable({"primary": ["alt"]}), policy=RetryPolicy()
    )
    task = Task(task_id="primary", name="primary", arguments={"tokenSymbol": "PEPE"})
    outcome = asyncio.run(resolver.run(task, task.arguments, "s1"))

    assert outcome.succeeded
    assert seen["query"] == "PEPE"


def _gate(resolutions):
    gate = ScriptedGate(resolutions)
    return gate, gate.calls


def test_sensitive_retry_is_reconfirmed():
    handler = FlakyHandler(failures=[CapabilityError("timeout")])
    gate, calls = _gate(["accepted"])
    outcome = _run(_resolver({"primary": handler}, sensitive={"primary"}, gate=gate))

    assert outcome.succeeded
    # First attempt was confirmed by the executor; only the retry asks again.
    assert calls == [2]


def test_declined_retry_stops_without_fallback():
    handler = FlakyHandler(failures=[CapabilityError("timeout")] * 3)
    alternate = FlakyHandler()
    gate, calls = _gate(["declined"])
    outcome = _run(
        _resolver({"primary": handler, "alt": alternate}, sensitive={"primary"}, chains={"primary": ["alt"]}, gate=gate)
    )

    assert not outcome.succeeded
    assert outcome.error.kind == "declined"
    assert handler.calls == 1
    assert alternate.calls == 0


def test_sensitive_alternate_confirmed_before_first_attempt():
    primary = FlakyHandler(failures=[CapabilityError("timeout")] * 3)
    alternate = FlakyHandler()
    gate, calls = _gate(["declined"])
    outcome = _run(
        _resolver({"primary": primary, "alt": alternate}, sensitive={"alt"}, chains={"primary": ["alt"]}, gate=gate)
    )

    assert calls == [1]
    assert alternate.calls == 0
    assert not outcome.succeeded
    assert outcome.error.kind == "recoverable"
    assert outcome.fallbacks_tried == ["alt"]


def test_backoff_delay_grows_exponentially():
    policy = RetryPolicy(backoff_seconds=0.5)
    assert policy.delay_for(1) == 0.5
    assert policy.delay_for(3) == 2.0
    assert RetryPolicy().delay_for(2) == 0.0
