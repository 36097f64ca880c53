from __future__ import annotations

import asyncio

import pytest

from interaction.channel import OutboxChannel
from interaction.pending import PendingRequests
from shared.models import UserPrompt


def test_deliver_resolves_outstanding_request():
    async def _run() -> None:
        pending = PendingRequests()
        request = pending.open("s1", "parameters")
        assert pending.has_pending("s1")
        assert pending.pending_kind("s1") == "parameters"

        assert pending.deliver("s1", "a=1") is True
        assert await pending.wait(request, 1.0) == "a=1"
        assert not pending.has_pending("s1")
        assert pending.deliver("s1", "late") is False

    asyncio.run(_run())


def test_wait_returns_none_on_timeout_and_clears_request():
    async def _run() -> None:
        pending = PendingRequests()
        request = pending.open("s1", "confirmation", tokens=("confirm:x", "decline:x"))
        assert await pending.wait(request, 0.01) is None
        assert not pending.has_pending("s1")

    asyncio.run(_run())


def test_only_one_outstanding_request_per_session():
    async def _run() -> None:
        pending = PendingRequests()
        pending.open("s1", "parameters")
        with pytest.raises(RuntimeError):
            pending.open("s1", "confirmation")
        # Another session is unaffected.
        pending.open("s2", "parameters")

    asyncio.run(_run())


def test_deliver_token_requires_matching_token():
    async def _run() -> None:
        pending = PendingRequests()
        request = pending.open("s1", "confirmation", tokens=("confirm:abc", "decline:abc"))
        assert pending.deliver_token("s1", "confirm:zzz") is False
        assert pending.deliver_token("s1", "confirm:abc") is True
        assert await pending.wait(request, 1.0) == "confirm:abc"

    asyncio.run(_run())


def test_ask_sends_prompt_and_serializes_askers():
    async def _run() -> None:
        pending = PendingRequests()
        outbox = OutboxChannel()

        first = asyncio.create_task(
            pending.ask(outbox, UserPrompt(session_id="s1", kind="parameters", text="first?"), 1.0)
        )
        second = asyncio.create_task(
            pending.ask(outbox, UserPrompt(session_id="s1", kind="parameters", text="second?"), 1.0)
        )
        await asyncio.sleep(0.01)
        assert [p.text for p in outbox.peek("s1")] == ["first?"]

        assert pending.deliver("s1", "one")
        assert await first == "one"
        await asyncio.sleep(0.01)
        assert [p.text for p in outbox.peek("s1")] == ["first?", "second?"]
        assert pending.deliver("s1", "two")
        assert await second == "two"
        assert pending.tracked_sessions() == set()

    asyncio.run(_run())


def test_ask_discards_request_when_prompt_cannot_be_sent():
    async def _run() -> None:
        class BrokenChannel:
            async def send_prompt(self, prompt):
                raise ConnectionError("front end gone")

            async def notify(self, session_id, text):
                return None

        pending = PendingRequests()
        with pytest.raises(ConnectionError):
            await pending.ask(BrokenChannel(), UserPrompt(session_id="s1", kind="parameters", text="?"), 1.0)
        assert not pending.has_pending("s1")

    asyncio.run(_run())


def test_outbox_channel_drains_prompts_and_notices():
    async def _run() -> None:
        outbox = OutboxChannel()
        await outbox.notify("s1", "🔄 Starting search_internet...")
        await outbox.send_prompt(UserPrompt(session_id="s1", kind="parameters", text="need query"))

        items = outbox.drain("s1")
        assert [item.kind for item in items] == ["notice", "parameters"]
        assert outbox.drain("s1") == []

    asyncio.run(_run())


def test_session_lock_dropped_after_timeout():
    async def _run() -> None:
        pending = PendingRequests()
        outbox = OutboxChannel()

        for sid in ("s1", "s2", "s3"):
            assert await pending.ask(outbox, UserPrompt(session_id=sid, kind="parameters", text="?"), 0.01) is None

        assert pending.tracked_sessions() == set()

    asyncio.run(_run())
