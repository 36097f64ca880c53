from __future__ import annotations

import asyncio

import httpx

from execution.classification import (
    insufficiency_policy,
    is_data_insufficient,
    is_empty_result,
    is_recoverable_error,
    never_insufficient,
)
from shared.errors import CapabilityError, CapabilityValidationError, ConfirmationDeclinedError


def test_network_codes_and_timeouts_are_recoverable():
    assert is_recoverable_error(CapabilityError("socket hang up", code="ECONNRESET"))
    assert is_recoverable_error(CapabilityError("upstream timed out"))
    assert is_recoverable_error(asyncio.TimeoutError())
    assert is_recoverable_error(httpx.ConnectError("refused"))


def test_http_status_codes():
    assert is_recoverable_error(CapabilityError("bad gateway", status_code=502))
    assert is_recoverable_error(CapabilityError("Request failed with status code 429"))
    assert not is_recoverable_error(CapabilityError("forbidden", status_code=403))
    assert not is_recoverable_error(CapabilityError("order 15000 rejected"))


def test_validation_and_cancellation_are_never_recoverable():
    assert not is_recoverable_error(CapabilityValidationError("timeout field missing"))
    assert not is_recoverable_error(ConfirmationDeclinedError("declined"))


def test_empty_results():
    assert is_empty_result(None)
    assert is_empty_result("")
    assert is_empty_result([])
    assert is_empty_result({})
    assert not is_empty_result(0)
    assert not is_empty_result(False)


def test_keyword_insufficiency():
    assert is_data_insufficient("Error: rate limited")
    assert is_data_insufficient({"error": "No pairs found"})
    assert is_data_insufficient({"status": "error while fetching"})
    assert is_data_insufficient([{"ok": 1}, {"errorCode": 7}])
    assert not is_data_insufficient({"price": 1.2})
    assert not is_data_insufficient(0)
    assert not is_data_insufficient(False)


def test_policies_by_name():
    assert insufficiency_policy("none") is never_insufficient
    assert insufficiency_policy("empty")({"error": "x"}) is False
    assert insufficiency_policy("unknown-policy") is is_data_insufficient
