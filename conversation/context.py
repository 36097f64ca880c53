"""
Conversation Context — in-memory, per session.

Responsibility:
- Hold the ordered role-tagged history of one session
- Append turns (user, assistant, function results)

Prohibitions:
- Never trims or rewrites history (the window manager derives views)
- Never persists anything
"""

from __future__ import annotations

from typing import Any

from shared.models import ConversationMessage, Role
from shared.response_formatter import render_json


class ConversationContext:
    """Canonical conversation history of one session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self._messages: list[ConversationMessage] = []

    def append(self, role: Role, content: str, name: str | None = None) -> ConversationMessage:
        message = ConversationMessage(role=role, content=content, name=name)
        self._messages.append(message)
        return message

    def add_user(self, content: str) -> ConversationMessage:
        return self.append("user", content)

    def add_assistant(self, content: str) -> ConversationMessage:
        return self.append("assistant", content)

    def add_function_result(self, name: str, result: Any) -> ConversationMessage:
        """Record a capability outcome in full; truncation happens on replay."""
        return self.append("function", render_json(result), name=name)

    @property
    def messages(self) -> tuple[ConversationMessage, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)
