from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel

from shared.models import StructuredError

TRUNCATION_MARKER = "... [truncated from {size} chars]"


def _round_value(value: Any, decimals: int = 6) -> Any:
    if isinstance(value, float):
        return round(value, decimals)
    if isinstance(value, dict):
        return {k: _round_value(v, decimals=decimals) for k, v in value.items()}
    if isinstance(value, list):
        return [_round_value(item, decimals=decimals) for item in value]
    return value


def _round_numbers_in_text(text: str) -> str:
    if not text:
        return ""

    def repl(match: re.Match[str]) -> str:
        try:
            return f"{float(match.group(0)):.6g}"
        except ValueError:
            return match.group(0)

    return re.sub(r"-?\d+\.\d{9,}", repl, text)


def truncate_text(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, appending a marker with the original size."""
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER.format(size=len(text))


def to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def render_json(value: Any) -> str:
    """Compact JSON text for replay to the planner."""
    value = to_jsonable(value)
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def format_result_for_display(result: Any, limit: int = 100) -> str:
    """Human-readable rendering of a capability payload.

    Dicts become ``key: value`` lines, lists are inlined, and collections
    larger than ``limit`` are cut with a ``... truncated`` suffix.
    """
    if result is None:
        return "No data."
    if isinstance(result, StructuredError):
        return result.describe()
    result = to_jsonable(_round_value(to_jsonable(result)))

    def process(value: Any) -> str:
        if value is None:
            return "null"
        if isinstance(value, list):
            inner = ", ".join(process(item) for item in value[:limit])
            suffix = " ... truncated" if len(value) > limit else ""
            return f"[{inner}]{suffix}"
        if isinstance(value, dict):
            entries = list(value.items())
            if len(entries) > limit:
                partial = {str(k): process(v) for k, v in entries[:limit]}
                return json.dumps(partial, indent=2, ensure_ascii=False) + " ... truncated"
            return "\n".join(f"{k}: {process(v)}" for k, v in entries)
        if isinstance(value, bool):
            return "true" if value else "false"
        return _round_numbers_in_text(str(value))

    return process(result)


def format_arguments(arguments: dict[str, Any]) -> str:
    """Bullet list of arguments for confirmation prompts."""
    if not arguments:
        return "(no arguments)"
    lines = []
    for key, value in arguments.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value, ensure_ascii=False, default=str)
        lines.append(f"- {key}: {value}")
    return "\n".join(lines)
