"""
User channel — the boundary to whatever front end talks to the user.

The orchestrator only ever pushes prompts and progress notices; replies come
back through PendingRequests.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Protocol

from shared.models import UserPrompt

logger = logging.getLogger(__name__)


class UserChannel(Protocol):
    """Protocol that every front end adapter implements."""

    async def send_prompt(self, prompt: UserPrompt) -> None:
        """Show a prompt that expects a reply (parameters or confirmation)."""
        ...

    async def notify(self, session_id: str, text: str) -> None:
        """Show a progress notice. No reply expected."""
        ...


class OutboxChannel:
    """Buffers prompts and notices per session until the front end drains them."""

    def __init__(self, max_items: int = 200) -> None:
        self._outbox: dict[str, deque[UserPrompt]] = defaultdict(lambda: deque(maxlen=max_items))

    async def send_prompt(self, prompt: UserPrompt) -> None:
        self._outbox[prompt.session_id].append(prompt)

    async def notify(self, session_id: str, text: str) -> None:
        self._outbox[session_id].append(UserPrompt(session_id=session_id, kind="notice", text=text))

    def drain(self, session_id: str) -> list[UserPrompt]:
        queue = self._outbox.pop(session_id, None)
        return list(queue) if queue else []

    def peek(self, session_id: str) -> list[UserPrompt]:
        return list(self._outbox.get(session_id, ()))
