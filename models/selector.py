"""
Model Selector — the async LLM client behind the planner gateway.

Three wire dialects are spoken:
- ollama             POST /api/chat (falls back to the OpenAI route on 404)
- openai_compatible  POST /v1/chat/completions
- anthropic          POST /v1/messages

Each dialect is a pair of pure functions: one builds a ProviderRequest from
chat messages and a ModelPolicy, the other pulls the reply text out of the
decoded body. ModelSelector owns the pooled httpx client and the retry loop.
"""

import json
import logging
import os
from typing import Any, NamedTuple

import httpx

from observability.logger import Observability
from shared.models import ModelPolicy

logger = logging.getLogger(__name__)

PROVIDERS = {"auto", "ollama", "openai_compatible", "anthropic"}

JSON_GUARD = "Return ONLY a valid JSON object."
MAX_OUTPUT_TOKENS = 1024


class ProviderRequest(NamedTuple):
    path: str
    payload: dict[str, Any]
    headers: dict[str, str]


def detect_provider(base_url: str) -> str:
    """Guess the dialect from the endpoint when MODEL_PROVIDER is ``auto``."""
    url = (base_url or "").strip().lower()
    if "anthropic.com" in url:
        return "anthropic"
    if "openai.com" in url or url.endswith("/v1"):
        return "openai_compatible"
    return "ollama"


def strip_code_fence(text: str) -> str:
    body = text.strip()
    if not body.startswith("```"):
        return body
    lines = body.split("\n")[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines)


def parse_json_reply(text: str) -> dict[str, Any]:
    try:
        return json.loads(strip_code_fence(text))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON from model: {exc}") from exc


def split_system(messages: list[dict]) -> tuple[str, list[dict[str, str]]]:
    """Separate system text from the turns; adjacent same-role turns are joined."""
    system: list[str] = []
    turns: list[dict[str, str]] = []
    for message in messages:
        content = str(message.get("content", "")).strip()
        if not content:
            continue
        role = str(message.get("role", "user")).strip().lower()
        if role == "system":
            system.append(content)
        elif turns and turns[-1]["role"] == (role if role == "assistant" else "user"):
            turns[-1]["content"] = f"{turns[-1]['content']}\n\n{content}"
        else:
            turns.append({"role": role if role == "assistant" else "user", "content": content})
    return "\n\n".join(system), turns


# ─── Request builders ───────────────────────────────────────────────


def anthropic_request(messages: list[dict], policy: ModelPolicy, api_key: str) -> ProviderRequest:
    system, turns = split_system(messages)
    if policy.json_mode:
        system = f"{system}\n\n{JSON_GUARD}" if system else JSON_GUARD
    payload: dict[str, Any] = {
        "model": policy.model_name,
        "messages": turns or [{"role": "user", "content": "Hello"}],
        "temperature": policy.temperature,
        "max_tokens": MAX_OUTPUT_TOKENS,
    }
    if system:
        payload["system"] = system
    headers = {
        "x-api-key": api_key,
        "anthropic-version": os.getenv("ANTHROPIC_VERSION", "2023-06-01"),
    }
    return ProviderRequest("/v1/messages", payload, headers)


def ollama_request(messages: list[dict], policy: ModelPolicy) -> ProviderRequest:
    payload: dict[str, Any] = {
        "model": policy.model_name,
        "messages": messages,
        "stream": False,
        "keep_alive": "10m",
        "options": {"temperature": policy.temperature, "num_ctx": 8192, "num_predict": MAX_OUTPUT_TOKENS},
    }
    if policy.json_mode:
        payload["format"] = "json"
    return ProviderRequest("/api/chat", payload, {})


def openai_request(messages: list[dict], policy: ModelPolicy, base_url: str) -> ProviderRequest:
    payload: dict[str, Any] = {
        "model": policy.model_name,
        "messages": messages,
        "temperature": policy.temperature,
        "stream": False,
    }
    if policy.json_mode:
        payload["response_format"] = {"type": "json_object"}
    # base_url may already carry the /v1 prefix
    path = "/chat/completions" if base_url.endswith("/v1") else "/v1/chat/completions"
    return ProviderRequest(path, payload, {})


# ─── Reply extractors ───────────────────────────────────────────────


def anthropic_text(body: dict[str, Any]) -> str:
    blocks = [
        str(block.get("text", "")).strip()
        for block in body.get("content") or []
        if isinstance(block, dict) and block.get("type") == "text"
    ]
    text = "\n".join(part for part in blocks if part)
    if not text:
        raise ValueError("Anthropic response missing text content")
    return text


def ollama_text(body: dict[str, Any]) -> str:
    return str((body.get("message") or {}).get("content", ""))


def openai_text(body: dict[str, Any]) -> str:
    choices = body.get("choices") or []
    if not choices:
        raise ValueError("OpenAI-compatible response missing choices")
    return str((choices[0].get("message") or {}).get("content", ""))


class ModelSelector:
    """Pooled async client for one model endpoint."""

    def __init__(self, base_url: str = "http://localhost:11434", provider: str | None = None):
        self.base_url = (os.getenv("MODEL_BASE_URL", "").strip() or base_url).rstrip("/")
        requested = (provider or os.getenv("MODEL_PROVIDER", "auto")).strip().lower()
        if requested not in PROVIDERS or requested == "auto":
            requested = detect_provider(self.base_url)
        self.provider = requested
        self.api_key = self._api_key_for(self.provider)

        headers: dict[str, str] = {}
        if self.provider == "openai_compatible" and self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        # per-request timeouts come from the policy
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=60.0,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            headers=headers,
        )

    @staticmethod
    def _api_key_for(provider: str) -> str:
        fallback_env = {"anthropic": "ANTHROPIC_API_KEY", "openai_compatible": "OPENAI_API_KEY"}.get(provider)
        key = os.getenv("MODEL_API_KEY", "").strip()
        if not key and fallback_env:
            key = os.getenv(fallback_env, "").strip()
        return key

    async def generate(
        self,
        messages: list[dict],
        policy: ModelPolicy,
        session_id: str | None = None,
    ) -> dict[str, Any] | str:
        """Run one completion under ``policy``.

        Returns the decoded JSON object in json_mode, the raw text otherwise.
        Transport errors, bad JSON and provider errors are retried up to
        ``policy.max_retries`` times; the last one is re-raised.
        """
        obs = Observability(session_id)
        failure: Exception | None = None
        for attempt in range(1, policy.max_retries + 1):
            labels = {"model": policy.model_name, "attempt": attempt, "provider": self.provider}
            try:
                with obs.measure("model_call", labels):
                    text = await self._complete(messages, policy)
                return parse_json_reply(text) if policy.json_mode else text
            except (httpx.HTTPError, ValueError, RuntimeError) as exc:
                failure = exc
                logger.warning("Model call %d/%d failed: %s", attempt, policy.max_retries, exc)

        obs.log_event("model_failure", {"error": str(failure), "policy": policy.model_dump()}, level="ERROR")
        raise failure or RuntimeError("Model call failed without an error")

    async def _complete(self, messages: list[dict], policy: ModelPolicy) -> str:
        if self.provider == "anthropic":
            if not self.api_key:
                raise RuntimeError("ANTHROPIC_API_KEY (or MODEL_API_KEY) is required when MODEL_PROVIDER=anthropic.")
            body = await self._post(anthropic_request(messages, policy, self.api_key), policy)
            return anthropic_text(body)

        if self.provider == "ollama":
            try:
                body = await self._post(ollama_request(messages, policy), policy)
                return ollama_text(body)
            except httpx.HTTPStatusError as exc:
                if exc.response is None or exc.response.status_code != 404:
                    raise
                logger.info("No /api/chat at %s; using the OpenAI-compatible route", self.base_url)

        body = await self._post(openai_request(messages, policy, self.base_url), policy)
        return openai_text(body)

    async def _post(self, request: ProviderRequest, policy: ModelPolicy) -> dict[str, Any]:
        response = await self._client.post(
            request.path,
            json=request.payload,
            headers=request.headers or None,
            timeout=policy.timeout_seconds,
        )
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        await self._client.aclose()
