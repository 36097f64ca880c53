"""
Confirmation Gate — explicit user consent before sensitive capabilities.

A confirmation resolves to accepted only when the user activates the accept
token (or answers with an affirmative word on text-only front ends).
Anything else, including silence until expiry, is a decline.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from interaction.channel import UserChannel
from interaction.pending import PendingRequests
from observability.logger import Observability
from shared.models import ConfirmationRequest, Task, UserPrompt
from shared.response_formatter import format_arguments

logger = logging.getLogger(__name__)

AFFIRMATIVE = {"yes", "y", "confirm", "ok", "sim", "s"}


class ConfirmationGate:
    """Asks the user to accept or decline a sensitive task."""

    def __init__(self, channel: UserChannel, pending: PendingRequests, timeout_seconds: float = 60.0):
        self.channel = channel
        self.pending = pending
        self.timeout_seconds = timeout_seconds

    def build_request(self, task: Task, arguments: dict[str, Any], attempt: int = 1) -> ConfirmationRequest:
        nonce = uuid.uuid4().hex[:12]
        header = f"🔐 Confirm '{task.name}'"
        if attempt > 1:
            header += f" (retry {attempt})"
        return ConfirmationRequest(
            task_id=task.task_id,
            capability=task.name,
            arguments=dict(arguments),
            prompt=f"{header}\n{format_arguments(arguments)}",
            accept_token=f"confirm:{nonce}",
            decline_token=f"decline:{nonce}",
            expiry=datetime.now(timezone.utc) + timedelta(seconds=self.timeout_seconds),
        )

    async def confirm(
        self,
        task: Task,
        session_id: str,
        arguments: dict[str, Any] | None = None,
        attempt: int = 1,
    ) -> ConfirmationRequest:
        request = self.build_request(task, task.arguments if arguments is None else arguments, attempt)
        obs = Observability(session_id)

        prompt = UserPrompt(
            session_id=session_id,
            kind="confirmation",
            text=request.prompt,
            tokens={"accept": request.accept_token, "decline": request.decline_token},
        )
        reply = await self.pending.ask(
            self.channel,
            prompt,
            self.timeout_seconds,
            tokens=(request.accept_token, request.decline_token),
        )

        if reply is None:
            request.resolution = "timed_out"
        elif reply == request.accept_token or reply.strip().lower() in AFFIRMATIVE:
            request.resolution = "accepted"
        else:
            request.resolution = "declined"

        obs.task_event("confirmation_resolved", task, resolution=request.resolution, attempt=attempt)
        return request
