from __future__ import annotations

import asyncio

from interaction.confirmation import ConfirmationGate
from interaction.pending import PendingRequests
from shared.models import Task


class TokenChannel:
    """Replies to confirmations with a scripted answer: 'accept', 'decline', text, or None."""

    def __init__(self, pending: PendingRequests, answer):
        self.pending = pending
        self.answer = answer
        self.prompts = []

    async def send_prompt(self, prompt):
        self.prompts.append(prompt)
        if self.answer in ("accept", "decline"):
            self.pending.deliver_token(prompt.session_id, prompt.tokens[self.answer])
        elif self.answer is not None:
            self.pending.deliver(prompt.session_id, self.answer)

    async def notify(self, session_id, text):
        return None


def _confirm(answer, timeout_seconds=1.0, attempt=1):
    async def _run():
        pending = PendingRequests()
        channel = TokenChannel(pending, answer)
        gate = ConfirmationGate(channel, pending, timeout_seconds=timeout_seconds)
        task = Task(task_id="execute_trade", name="execute_trade", arguments={"amount": "1"})
        request = await gate.confirm(task, "s1", attempt=attempt)
        return request, channel, pending

    return asyncio.run(_run())


def test_accept_token_accepts():
    request, channel, _ = _confirm("accept")
    assert request.resolution == "accepted"
    assert request.accepted
    prompt = channel.prompts[0]
    assert prompt.kind == "confirmation"
    assert prompt.tokens["accept"] == request.accept_token
    assert "- amount: 1" in prompt.text


def test_decline_token_declines():
    request, _, _ = _confirm("decline")
    assert request.resolution == "declined"
    assert not request.accepted


def test_affirmative_text_accepts_and_other_text_declines():
    assert _confirm("yes")[0].accepted
    assert _confirm(" Sim ")[0].accepted
    assert _confirm("maybe later")[0].resolution == "declined"


def test_silence_times_out_and_is_not_accepted():
    request, _, pending = _confirm(None, timeout_seconds=0.01)
    assert request.resolution == "timed_out"
    assert not request.accepted
    assert not pending.has_pending("s1")


def test_each_request_gets_fresh_tokens_and_retry_header():
    first, _, _ = _confirm("accept")
    second, channel, _ = _confirm("accept", attempt=2)
    assert first.accept_token != second.accept_token
    assert second.accept_token.startswith("confirm:")
    assert second.decline_token.startswith("decline:")
    assert "(retry 2)" in channel.prompts[0].text
