"""
Shared Pydantic models for all layers.
Contracts that cross layer boundaries are immutable (frozen) after creation;
Task and ConfirmationRequest are the two records the executor mutates in place.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field


Role = Literal["system", "user", "assistant", "function"]
TaskStatus = Literal["pending", "running", "succeeded", "failed"]
ErrorKind = Literal[
    "validation",
    "recoverable",
    "non_recoverable",
    "insufficient_data",
    "declined",
    "prompt_timeout",
    "dependency_failed",
]
Resolution = Literal["pending", "accepted", "declined", "timed_out"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def canonical_arguments(arguments: Any) -> str:
    """Stable text form of an argument payload, used as the dedup key."""
    if isinstance(arguments, str):
        text = arguments.strip()
        if not text:
            return "{}"
        try:
            arguments = json.loads(text)
        except json.JSONDecodeError:
            return text
    if arguments is None:
        return "{}"
    return json.dumps(arguments, sort_keys=True, default=str)


# ─── Entry Layer ───────────────────────────────────────────────

class EntryRequest(BaseModel):
    """Normalized input from any entry adapter."""
    model_config = {"frozen": True}

    session_id: str
    input_text: str
    metadata: dict[str, Any] = Field(default_factory=dict)


# ─── Capability Layer ─────────────────────────────────────────

class CapabilityDescriptor(BaseModel):
    """A named, invocable operation exposed to the planner."""
    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    name: str = Field(..., description="Unique capability key, e.g. 'analyze_token_by_symbol'")
    description: str = Field(default="", description="Planner-facing description")
    required_params: tuple[str, ...] = Field(default_factory=tuple, description="Fields that must be present before invocation")
    parameters: dict[str, Any] = Field(
        default_factory=dict,
        description="JSON schema 'properties' object advertised in the planner catalogue",
    )
    sensitive: bool = Field(default=False, description="Moves funds or mutates persistent state; needs confirmation")
    batch_params: dict[str, str] = Field(
        default_factory=dict,
        description="Batch field → singular field, e.g. {'tokenSymbols': 'tokenSymbol'}",
    )
    insufficiency_check: str = Field(default="keyword", description="Insufficient-data policy name")
    handler: Callable[..., Any] | None = Field(default=None, exclude=True)

    def catalog_entry(self) -> dict[str, Any]:
        """Function-calling schema entry for the planner."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": dict(self.parameters),
                "required": list(self.required_params),
            },
            "sensitive": self.sensitive,
        }


# ─── Planner Layer ────────────────────────────────────────────

class ActionRequest(BaseModel):
    """A single action proposed by the planner."""
    model_config = {"frozen": True}

    name: str
    raw_arguments: dict[str, Any] | str = Field(default_factory=dict)
    template: str | None = Field(default=None, description="Optional multi-step template name")


class PlannerReply(BaseModel):
    """Either terminal text for the user or one structured action."""
    model_config = {"frozen": True}

    kind: Literal["text", "action"]
    content: str = ""
    action: ActionRequest | None = None


class ModelPolicy(BaseModel):
    """Configuration for Model Layer execution."""
    model_config = {"frozen": True}
    model_name: str
    temperature: float = 0.0
    timeout_seconds: float = 30.0
    max_retries: int = 3
    json_mode: bool = True


# ─── Execution Layer ──────────────────────────────────────────

class StructuredError(BaseModel):
    """Terminal failure of a task, as recorded in the graph and shown to the planner."""
    model_config = {"frozen": True}

    kind: ErrorKind
    message: str
    capability: str = ""
    attempts: int = 0
    fallbacks_tried: list[str] = Field(default_factory=list)
    original_message: str = ""

    def describe(self) -> str:
        text = f"Error: {self.message}"
        if self.attempts:
            text += f" (attempts: {self.attempts})"
        return text


class Task(BaseModel):
    """One node of a task graph. Mutated by the executor as it progresses."""

    task_id: str = Field(..., description="Alias unique within the graph, e.g. 'search_internet#2'")
    name: str = Field(..., description="Capability name")
    raw_arguments: dict[str, Any] | str | None = None
    arguments: dict[str, Any] = Field(default_factory=dict, description="Resolved arguments")
    dependencies: list[str] = Field(default_factory=list, description="Task ids, aliases or capability names")
    after: list[str] = Field(
        default_factory=list,
        description="Ordering-only prerequisites (planner follow-ups); their failure does not propagate",
    )
    status: TaskStatus = "pending"
    result: Any = None
    error: StructuredError | None = None
    attempts: int = 0
    executed_by: str | None = None
    fallbacks_tried: list[str] = Field(default_factory=list)
    duplicate_of: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("succeeded", "failed")

    @property
    def prerequisites(self) -> list[str]:
        return [*self.dependencies, *self.after]

    @property
    def identity(self) -> tuple[str, str]:
        if self.arguments:
            return self.name, canonical_arguments(self.arguments)
        return self.name, canonical_arguments(self.raw_arguments)

    def outcome(self) -> Any:
        """The success payload, or the structured error for failed tasks."""
        if self.status == "failed" and self.error is not None:
            return self.error
        return self.result


class ConfirmationRequest(BaseModel):
    """An outstanding (or resolved) confirmation for a sensitive task."""

    task_id: str
    capability: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    prompt: str
    accept_token: str
    decline_token: str
    expiry: datetime
    resolution: Resolution = "pending"

    @property
    def accepted(self) -> bool:
        return self.resolution == "accepted"


class UserPrompt(BaseModel):
    """Something the orchestrator needs the front end to show the user."""
    model_config = {"frozen": True}

    session_id: str
    kind: Literal["parameters", "confirmation", "notice"]
    text: str
    fields: list[str] = Field(default_factory=list)
    tokens: dict[str, str] = Field(default_factory=dict, description="{'accept': token, 'decline': token}")
    created_at: datetime = Field(default_factory=utc_now)


# ─── Conversation Layer ───────────────────────────────────────

class ConversationMessage(BaseModel):
    """One role-tagged turn of a session's conversation."""
    model_config = {"frozen": True}

    role: Role
    content: str
    name: str | None = Field(default=None, description="Capability name for function turns")
    created_at: datetime = Field(default_factory=utc_now)

    def to_llm(self, content: str | None = None) -> dict[str, str]:
        text = self.content if content is None else content
        if self.role == "function":
            # Providers without a function role still see the capability name.
            return {"role": "user", "content": f"[result of {self.name}]\n{text}"}
        return {"role": self.role, "content": text}


# ─── Orchestrator Output ──────────────────────────────────────

class TurnResult(BaseModel):
    """What a user turn produced."""
    model_config = {"frozen": True}

    session_id: str
    status: Literal["text", "success", "partial", "failure", "delivered", "error"]
    text: str = ""
    report: str = ""
    tasks: list[dict[str, Any]] = Field(default_factory=list)
    replans: int = 0
