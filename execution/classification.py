"""
Outcome classification for capability attempts.

- Thrown failures are recoverable (worth retrying / falling back) when they
  look transient: network error codes, timeouts, a fixed set of HTTP statuses.
- Returned payloads may still be "insufficient": empty, or carrying an error.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Callable

import httpx

from shared.errors import CapabilityValidationError, UserCancelledError

logger = logging.getLogger(__name__)

RECOVERABLE_KEYWORDS = ("econnreset", "etimedout", "networkerror", "enotfound", "aggregateerror", "timed out", "timeout")
RECOVERABLE_HTTP_CODES = frozenset({"402", "404", "408", "429", "500", "502", "503", "504"})
_HTTP_CODE_IN_TEXT = re.compile(r"(?<!\d)(402|404|408|429|500|502|503|504)(?!\d)")


def _status_of(error: BaseException) -> str | None:
    if isinstance(error, httpx.HTTPStatusError) and error.response is not None:
        return str(error.response.status_code)
    status = getattr(error, "status_code", None)
    return str(status) if status is not None else None


def is_recoverable_error(error: BaseException) -> bool:
    """True when a failed attempt is worth another try."""
    if isinstance(error, (UserCancelledError, CapabilityValidationError)):
        return False
    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException, httpx.TransportError)):
        return True

    code = getattr(error, "code", None)
    if code is not None and str(code) in RECOVERABLE_HTTP_CODES:
        return True
    if code is not None and str(code).lower() in RECOVERABLE_KEYWORDS:
        return True
    if _status_of(error) in RECOVERABLE_HTTP_CODES:
        return True

    message = str(error).lower()
    if any(keyword in message for keyword in RECOVERABLE_KEYWORDS):
        return True
    return bool(_HTTP_CODE_IN_TEXT.search(message))


# ─── Insufficient data ────────────────────────────────────────

def _has_error_signal(item: Any) -> bool:
    if isinstance(item, str):
        return "error" in item.lower()
    if not isinstance(item, dict):
        return False
    for key, value in item.items():
        if "error" in str(key).lower():
            return True
        if isinstance(value, str) and "error" in value.lower():
            return True
        if isinstance(value, dict) and any("error" in str(k).lower() for k in value):
            return True
    return False


def is_empty_result(result: Any) -> bool:
    if result is None:
        return True
    if isinstance(result, (str, list, tuple, dict)):
        return len(result) == 0
    return False


def is_data_insufficient(result: Any) -> bool:
    """Default heuristic: empty payloads and payloads that describe an error."""
    if is_empty_result(result):
        return True
    if isinstance(result, str):
        return "error" in result.lower()
    if isinstance(result, (list, tuple)):
        return any(_has_error_signal(item) for item in result)
    if isinstance(result, dict):
        return _has_error_signal(result)
    return False


def never_insufficient(result: Any) -> bool:
    return False


INSUFFICIENCY_POLICIES: dict[str, Callable[[Any], bool]] = {
    "keyword": is_data_insufficient,
    "empty": is_empty_result,
    "none": never_insufficient,
}


def insufficiency_policy(name: str) -> Callable[[Any], bool]:
    policy = INSUFFICIENCY_POLICIES.get(name)
    if policy is None:
        logger.warning("Unknown insufficiency policy '%s'; using 'keyword'", name)
        return is_data_insufficient
    return policy
