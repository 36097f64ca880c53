"""
Pending user replies.

Every prompt the orchestrator sends (missing parameters, confirmation) opens
one PendingRequest for its session. The front end answers by delivering the
next free-text message or a confirmation token. At most one request is
outstanding per session; concurrent askers queue on a per-session lock,
which is dropped again once nobody holds or waits for it.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, AsyncIterator

from shared.models import UserPrompt

if TYPE_CHECKING:
    from interaction.channel import UserChannel

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    session_id: str
    kind: str
    future: asyncio.Future
    tokens: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def done(self) -> bool:
        return self.future.done()


@dataclass
class _SessionLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class PendingRequests:
    """Registry of awaitable user replies keyed by session id."""

    def __init__(self) -> None:
        self._pending: dict[str, PendingRequest] = {}
        self._locks: dict[str, _SessionLock] = {}

    @asynccontextmanager
    async def _exclusive(self, session_id: str) -> AsyncIterator[None]:
        entry = self._locks.get(session_id)
        if entry is None:
            entry = self._locks[session_id] = _SessionLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[session_id]

    async def ask(
        self,
        channel: "UserChannel",
        prompt: UserPrompt,
        timeout_seconds: float,
        tokens: tuple[str, ...] = (),
    ) -> str | None:
        """Send ``prompt`` and wait for its reply; None when it expires."""
        async with self._exclusive(prompt.session_id):
            request = self.open(prompt.session_id, prompt.kind, tokens)
            try:
                await channel.send_prompt(prompt)
            except Exception:
                self.discard(request)
                raise
            return await self.wait(request, timeout_seconds)

    def open(self, session_id: str, kind: str, tokens: tuple[str, ...] = ()) -> PendingRequest:
        existing = self._pending.get(session_id)
        if existing is not None and not existing.done:
            raise RuntimeError(f"Session {session_id} already has an outstanding {existing.kind} prompt")
        request = PendingRequest(
            session_id=session_id,
            kind=kind,
            future=asyncio.get_running_loop().create_future(),
            tokens=tuple(tokens),
        )
        self._pending[session_id] = request
        return request

    async def wait(self, request: PendingRequest, timeout_seconds: float) -> str | None:
        try:
            return await asyncio.wait_for(request.future, timeout=timeout_seconds)
        except asyncio.TimeoutError:
            logger.info("%s prompt for session %s expired after %.1fs", request.kind, request.session_id, timeout_seconds)
            return None
        finally:
            if self._pending.get(request.session_id) is request:
                del self._pending[request.session_id]

    def discard(self, request: PendingRequest) -> None:
        """Drop a request whose prompt never reached the user."""
        if self._pending.get(request.session_id) is request:
            del self._pending[request.session_id]
        if not request.done:
            request.future.cancel()

    def tracked_sessions(self) -> set[str]:
        """Sessions holding an outstanding request or a prompt lock."""
        return set(self._pending) | set(self._locks)

    def has_pending(self, session_id: str) -> bool:
        request = self._pending.get(session_id)
        return request is not None and not request.done

    def pending_kind(self, session_id: str) -> str | None:
        request = self._pending.get(session_id)
        if request is None or request.done:
            return None
        return request.kind

    def deliver(self, session_id: str, text: str) -> bool:
        """Hand a free-text message to the session's outstanding prompt."""
        request = self._pending.get(session_id)
        if request is None or request.done:
            return False
        request.future.set_result(text)
        return True

    def deliver_token(self, session_id: str, token: str) -> bool:
        """Resolve a confirmation prompt with one of its own tokens."""
        request = self._pending.get(session_id)
        if request is None or request.done or token not in request.tokens:
            return False
        request.future.set_result(token)
        return True
