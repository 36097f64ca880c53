from __future__ import annotations

import asyncio

import pytest

from capabilities.registry import CapabilityRegistry
from interaction.pending import PendingRequests
from interaction.resolver import (
    PROMPT_TIMEOUT_MESSAGE,
    ParameterResolver,
    build_prompt,
    parse_arguments,
    parse_key_values,
)
from shared.errors import CapabilityValidationError, PromptTimeoutError
from shared.models import CapabilityDescriptor, Task


class ScriptedChannel:
    """Answers each prompt with the next scripted reply (None = stay silent)."""

    def __init__(self, pending: PendingRequests, replies=()):
        self.pending = pending
        self.replies = list(replies)
        self.prompts = []

    async def send_prompt(self, prompt):
        self.prompts.append(prompt)
        if self.replies:
            reply = self.replies.pop(0)
            if reply is not None:
                self.pending.deliver(prompt.session_id, reply)

    async def notify(self, session_id, text):
        return None


def _resolver(replies=(), timeout_seconds=1.0, max_rounds=3):
    registry = CapabilityRegistry()
    registry.register(
        CapabilityDescriptor(name="f", required_params=("a", "b")),
        lambda arguments, session_id: arguments,
    )
    pending = PendingRequests()
    channel = ScriptedChannel(pending, replies)
    resolver = ParameterResolver(registry, channel, pending, timeout_seconds=timeout_seconds, max_rounds=max_rounds)
    return resolver, channel


def test_missing_parameter_prompted_and_merged():
    async def _run() -> None:
        resolver, channel = _resolver(replies=["b=5"])
        task = Task(task_id="f", name="f", raw_arguments='{"a": 1}')

        arguments = await resolver.resolve(task, "s1")

        assert arguments == {"a": 1, "b": "5"}
        assert len(channel.prompts) == 1
        prompt = channel.prompts[0]
        assert prompt.kind == "parameters"
        assert prompt.fields == ["b"]
        assert "'f'" in prompt.text and "key1=val1" in prompt.text

    asyncio.run(_run())


def test_complete_arguments_do_not_prompt():
    async def _run() -> None:
        resolver, channel = _resolver()
        task = Task(task_id="f", name="f", raw_arguments={"a": 1, "b": 2})
        assert await resolver.resolve(task, "s1") == {"a": 1, "b": 2}
        assert channel.prompts == []

    asyncio.run(_run())


def test_empty_string_counts_as_missing():
    async def _run() -> None:
        resolver, channel = _resolver(replies=["a=x b=y"])
        task = Task(task_id="f", name="f", raw_arguments={"a": "", "b": None})
        assert await resolver.resolve(task, "s1") == {"a": "x", "b": "y"}
        assert channel.prompts[0].fields == ["a", "b"]

    asyncio.run(_run())


def test_prompt_timeout_raises_with_fixed_message():
    async def _run() -> None:
        resolver, _ = _resolver(replies=[None], timeout_seconds=0.01)
        task = Task(task_id="f", name="f", raw_arguments={"a": 1})
        with pytest.raises(PromptTimeoutError) as excinfo:
            await resolver.resolve(task, "s1")
        assert str(excinfo.value) == PROMPT_TIMEOUT_MESSAGE

    asyncio.run(_run())


def test_unhelpful_replies_exhaust_prompt_rounds():
    async def _run() -> None:
        resolver, channel = _resolver(replies=["what?", "no idea"], max_rounds=2)
        task = Task(task_id="f", name="f", raw_arguments={"a": 1})
        with pytest.raises(CapabilityValidationError):
            await resolver.resolve(task, "s1")
        assert len(channel.prompts) == 2

    asyncio.run(_run())


def test_malformed_json_is_validation_error():
    async def _run() -> None:
        resolver, channel = _resolver()
        task = Task(task_id="f", name="f", raw_arguments='{"a": 1')
        with pytest.raises(CapabilityValidationError):
            await resolver.resolve(task, "s1")
        assert channel.prompts == []

    asyncio.run(_run())


def test_parse_arguments_rejects_non_objects():
    assert parse_arguments("f", None) == {}
    assert parse_arguments("f", "  ") == {}
    with pytest.raises(CapabilityValidationError):
        parse_arguments("f", "[1, 2]")
    with pytest.raises(CapabilityValidationError):
        parse_arguments("f", 42)


def test_parse_key_values_only_takes_requested_fields():
    values = parse_key_values("tokenAddress=0xabc targetPrice = 1.5 other=1", ["tokenAddress", "targetPrice"])
    assert values == {"tokenAddress": "0xabc", "targetPrice": "1.5"}
    assert parse_key_values("xa=1", ["a"]) == {}


def test_build_prompt_lists_fields():
    text = build_prompt("price_alert", ["targetPrice", "condition"])
    assert text.startswith("⚠️ Missing parameters for 'price_alert': targetPrice, condition.")
