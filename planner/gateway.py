"""
Planner Gateway — the protocol by which the language-model planner is consulted.

Each consultation sends: system framing (reply schema, capability catalogue,
templates), the trimmed conversation view, and optionally one extra message
describing what just happened. The reply is one JSON object:

    {"kind": "text", "content": "..."}
    {"kind": "action", "name": "...", "arguments": {...}, "template": "..."}

Anything else raises PlannerError.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from capabilities.registry import CapabilityRegistry
from conversation.context import ConversationContext
from conversation.window import ContextWindowManager
from observability.logger import Observability
from planner.templates import DEFAULT_TEMPLATES, TaskTemplate, runnable_templates
from shared.errors import PlannerError
from shared.models import ActionRequest, ModelPolicy, PlannerReply, Task

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are the planning engine of a crypto trading assistant.\n"
    "Return ONLY JSON with one of these shapes:\n"
    '  {"kind": "text", "content": "message for the user"}\n'
    '  {"kind": "action", "name": "capability", "arguments": {}, "template": null}\n'
    "Rules:\n"
    "1. Propose an action ONLY when a capability from the catalogue is needed.\n"
    "2. Use exactly the parameter names of the capability schema.\n"
    "3. For several tokens or queries at once, use the capability's list parameter.\n"
    "4. Set template only for one of the listed multi-step templates.\n"
    "5. Results of capabilities appear as '[result of <name>]' messages.\n"
    "6. Never include text outside JSON.\n"
)


class TextGenerator(Protocol):
    async def generate(self, messages: list[dict], policy: ModelPolicy, session_id: str | None = None) -> Any:
        ...


class PlannerGateway:
    """Consults the planner and validates its replies."""

    def __init__(
        self,
        model_selector: TextGenerator,
        registry: CapabilityRegistry,
        window: ContextWindowManager,
        model_name: str = "llama3.1:8b",
        timeout_seconds: float = 30.0,
        templates: dict[str, TaskTemplate] | None = None,
    ):
        self.model_selector = model_selector
        self.registry = registry
        self.window = window
        self.templates = DEFAULT_TEMPLATES if templates is None else templates
        self.policy = ModelPolicy(
            model_name=model_name,
            temperature=0.0,
            timeout_seconds=timeout_seconds,
            max_retries=2,
            json_mode=True,
        )

    # ─── Consultation ─────────────────────────────────────────

    async def consult(self, context: ConversationContext, current: str | None = None) -> PlannerReply:
        messages = self.build_messages(context, current)
        obs = Observability(context.session_id)
        try:
            with obs.measure("planner_call", {"messages": len(messages)}):
                raw = await self.model_selector.generate(messages, self.policy, session_id=context.session_id)
        except PlannerError:
            raise
        except Exception as e:
            raise PlannerError(f"Planner consultation failed: {e}") from e

        reply = self.parse_reply(raw)
        obs.log_event(
            "planner_consulted",
            {"kind": reply.kind, "action": reply.action.name if reply.action else None},
        )
        return reply

    async def propose_followup(self, context: ConversationContext, task: Task) -> ActionRequest | None:
        """Ask whether ``task``'s outcome calls for one more capability."""
        outcome = "succeeded" if task.status == "succeeded" else f"failed ({task.error.kind if task.error else 'error'})"
        current = (
            f"Task '{task.task_id}' ({task.name}) {outcome}. Its result is the latest function message. "
            "If another capability is clearly needed now, reply with an action; otherwise reply with kind=text."
        )
        reply = await self.consult(context, current)
        if reply.kind != "action" or reply.action is None:
            return None
        if reply.action.name not in self.registry:
            logger.warning("Planner follow-up names unknown capability '%s'; ignored", reply.action.name)
            return None
        return reply.action

    async def review(self, context: ConversationContext, report: str) -> PlannerReply:
        """Show the planner the turn's report; it may answer in text or act again."""
        current = (
            "All tasks of the current plan are finished. Report:\n"
            f"{report}\n"
            "Reply with kind=text summarizing the outcome for the user, "
            "or with an action if something essential is still missing."
        )
        return await self.consult(context, current)

    # ─── Messages ─────────────────────────────────────────────

    def build_messages(self, context: ConversationContext, current: str | None = None) -> list[dict[str, str]]:
        catalog = {
            "capabilities": self.registry.catalog(),
            "templates": [
                {"name": t.name, "description": t.description, "steps": [s.name for s in t.steps]}
                for t in runnable_templates(self.templates, self.registry).values()
            ],
        }
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "system", "content": json.dumps(catalog, ensure_ascii=False)},
            *self.window.view(context),
        ]
        if current:
            messages.append({"role": "user", "content": current})
        return messages

    # ─── Reply parsing ────────────────────────────────────────

    def parse_reply(self, raw: Any) -> PlannerReply:
        if not isinstance(raw, dict):
            raise PlannerError(f"Planner reply must be a JSON object, got {type(raw).__name__}")

        call = raw.get("function_call")
        if isinstance(call, dict):
            raw = {"kind": "action", **call}

        kind = str(raw.get("kind") or "").strip().lower()
        if not kind:
            kind = "action" if raw.get("name") else "text" if "content" in raw else ""

        if kind == "text":
            content = raw.get("content")
            if not isinstance(content, str):
                raise PlannerError("Planner text reply has no string 'content'")
            return PlannerReply(kind="text", content=content.strip())

        if kind == "action":
            name = str(raw.get("name") or "").strip()
            if not name:
                raise PlannerError("Planner action reply has no 'name'")
            arguments = raw.get("arguments", raw.get("raw_arguments", {}))
            if arguments is None:
                arguments = {}
            if not isinstance(arguments, (dict, str)):
                raise PlannerError(f"Planner action '{name}' has non-object arguments")
            template = raw.get("template")
            template = str(template).strip() if template else None
            runnable = runnable_templates(self.templates, self.registry)
            if name in runnable and name not in self.registry:
                # The planner named a template in place of a capability.
                template = name
                name = runnable[name].steps[0].name
            return PlannerReply(
                kind="action",
                action=ActionRequest(name=name, raw_arguments=arguments, template=template),
            )

        raise PlannerError(f"Planner reply has unknown kind '{raw.get('kind')}'")
