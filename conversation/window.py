"""
Context Window Manager.

Derives the view of a conversation that is sent to the planner: the last N
user and M assistant turns, every function-result turn, and function
results cut to a character budget. The canonical context is never touched.
"""

from __future__ import annotations

from typing import Any

from conversation.context import ConversationContext
from shared.response_formatter import render_json, truncate_text


class ContextWindowManager:
    def __init__(self, user_turns: int = 6, assistant_turns: int = 6, result_char_budget: int = 2000):
        self.user_turns = user_turns
        self.assistant_turns = assistant_turns
        self.result_char_budget = result_char_budget

    def view(self, context: ConversationContext) -> list[dict[str, str]]:
        """Trimmed, chronologically ordered messages in LLM format."""
        users = assistants = 0
        selected = []
        for message in reversed(context.messages):
            if message.role == "user":
                users += 1
                if users > self.user_turns:
                    continue
            elif message.role == "assistant":
                assistants += 1
                if assistants > self.assistant_turns:
                    continue
            selected.append(message)
        selected.reverse()

        out = []
        for message in selected:
            if message.role == "function":
                out.append(message.to_llm(self.truncate(message.content)))
            else:
                out.append(message.to_llm())
        return out

    def truncate(self, text: str) -> str:
        return truncate_text(text, self.result_char_budget)

    def render_result(self, result: Any) -> str:
        """A task outcome as replayed to the planner."""
        return self.truncate(render_json(result))
