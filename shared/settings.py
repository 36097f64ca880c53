"""
Runtime configuration.

All knobs come from environment variables (``.env`` is loaded by main.py
before this module is consulted). Settings are frozen once built.
"""

from __future__ import annotations

import logging
import os

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() in (
        "1",
        "true",
        "yes",
        "on",
    )


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        logger.warning("Invalid integer for %s=%r; using default %s", name, raw, default)
        return default


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return max(minimum, float(raw))
    except ValueError:
        logger.warning("Invalid number for %s=%r; using default %s", name, raw, default)
        return default


class OrchestratorSettings(BaseModel):
    """Every tunable bound of the orchestration core."""
    model_config = {"frozen": True}

    # Model layer
    model_provider: str = "auto"
    model_base_url: str = "http://localhost:11434"
    planner_model: str = "llama3.1:8b"
    planner_timeout_seconds: float = 30.0

    # Retry / fallback
    max_attempts: int = Field(default=3, ge=1)
    fallback_attempts: int = Field(default=2, ge=1)
    retry_backoff_seconds: float = 0.0

    # User interaction
    param_timeout_seconds: float = 30.0
    confirm_timeout_seconds: float = 60.0
    max_prompt_rounds: int = Field(default=3, ge=1)

    # Planning loops
    max_followups: int = Field(default=5, ge=0)
    max_replans: int = Field(default=3, ge=1)
    parallel_siblings: bool = False
    max_sessions: int = Field(default=1000, ge=1)

    # Context window
    context_user_turns: int = Field(default=6, ge=0)
    context_assistant_turns: int = Field(default=6, ge=0)
    result_char_budget: int = Field(default=2000, ge=1)
    summary_char_budget: int = Field(default=3500, ge=1)

    # Built-in capabilities
    brave_api_key: str = ""
    dexscreener_base_url: str = "https://api.dexscreener.com"

    @classmethod
    def from_env(cls) -> "OrchestratorSettings":
        return cls(
            model_provider=_env_str("MODEL_PROVIDER", "auto").lower() or "auto",
            model_base_url=_env_str("MODEL_BASE_URL", "") or _env_str("OLLAMA_URL", "http://localhost:11434"),
            planner_model=_env_str("PLANNER_MODEL", "llama3.1:8b"),
            planner_timeout_seconds=_env_float("PLANNER_TIMEOUT_SECONDS", 30.0, minimum=1.0),
            max_attempts=_env_int("ORCH_MAX_ATTEMPTS", 3, minimum=1),
            fallback_attempts=_env_int("ORCH_FALLBACK_ATTEMPTS", 2, minimum=1),
            retry_backoff_seconds=_env_float("ORCH_RETRY_BACKOFF_SECONDS", 0.0),
            param_timeout_seconds=_env_float("ORCH_PARAM_TIMEOUT_SECONDS", 30.0, minimum=0.01),
            confirm_timeout_seconds=_env_float("ORCH_CONFIRM_TIMEOUT_SECONDS", 60.0, minimum=0.01),
            max_prompt_rounds=_env_int("ORCH_MAX_PROMPT_ROUNDS", 3, minimum=1),
            max_followups=_env_int("ORCH_MAX_FOLLOWUPS", 5),
            max_replans=_env_int("ORCH_MAX_REPLANS", 3, minimum=1),
            parallel_siblings=_env_bool("ORCH_PARALLEL_SIBLINGS", False),
            max_sessions=_env_int("ORCH_MAX_SESSIONS", 1000, minimum=1),
            context_user_turns=_env_int("CONTEXT_USER_TURNS", 6),
            context_assistant_turns=_env_int("CONTEXT_ASSISTANT_TURNS", 6),
            result_char_budget=_env_int("CONTEXT_RESULT_CHAR_BUDGET", 2000, minimum=1),
            summary_char_budget=_env_int("SUMMARY_CHAR_BUDGET", 3500, minimum=1),
            brave_api_key=_env_str("BRAVE_API_KEY", ""),
            dexscreener_base_url=_env_str("DEXSCREENER_BASE_URL", "https://api.dexscreener.com").rstrip("/"),
        )
