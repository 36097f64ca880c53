"""
Orchestrator — session router and failure boundary.

Responsibility:
- Route a message to the session's outstanding prompt, or start a new turn
- Keep one Session per end user; the least recently used idle sessions
  are forgotten beyond max_sessions
- Turn anything that escapes a turn into one generic failure message

Prohibitions:
- No planning or capability calls of its own
- No state shared between sessions beyond the read-only registry
"""

import logging
from collections import OrderedDict
from typing import Callable

from interaction.pending import PendingRequests
from orchestrator.session import Session
from shared.models import EntryRequest, TurnResult

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Something went wrong while processing your request. Please try again."


class Orchestrator:
    """Routes entry requests to sessions. Never raises for turn failures."""

    def __init__(
        self,
        session_factory: Callable[[str], Session],
        pending: PendingRequests,
        max_sessions: int = 1000,
    ):
        self.session_factory = session_factory
        self.pending = pending
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, Session] = OrderedDict()

    def session(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._sessions[session_id] = self.session_factory(session_id)
            self._evict_idle(keep=session_id)
        else:
            self._sessions.move_to_end(session_id)
        return session

    def _evict_idle(self, keep: str) -> None:
        overflow = len(self._sessions) - self.max_sessions
        if overflow <= 0:
            return
        active = self.pending.tracked_sessions()
        for session_id in list(self._sessions):
            if overflow <= 0:
                break
            if session_id == keep or session_id in active or self._sessions[session_id].turn_lock.locked():
                continue
            del self._sessions[session_id]
            overflow -= 1
            logger.info("Session %s evicted (more than %d sessions)", session_id, self.max_sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def deliver(self, session_id: str, text: str) -> bool:
        """Answer the session's outstanding prompt, if any."""
        return self.pending.deliver(session_id, text)

    def deliver_token(self, session_id: str, token: str) -> bool:
        return self.pending.deliver_token(session_id, token)

    def is_busy(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        return session is not None and session.turn_lock.locked()

    async def handle(self, request: EntryRequest) -> TurnResult:
        """
        Process one message.
        Returns a TurnResult — never raises for business errors.
        """
        session_id = request.session_id
        if self.deliver(session_id, request.input_text):
            logger.info("Session %s: message delivered to pending prompt", session_id)
            return TurnResult(session_id=session_id, status="delivered")

        session = self.session(session_id)
        async with session.turn_lock:
            try:
                return await session.run_turn(request.input_text)
            except Exception:
                logger.exception("Session %s: turn failed", session_id)
                session.context.add_assistant(GENERIC_FAILURE_MESSAGE)
                return TurnResult(session_id=session_id, status="error", text=GENERIC_FAILURE_MESSAGE)
