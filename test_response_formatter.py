from __future__ import annotations

from shared.models import StructuredError
from shared.response_formatter import (
    format_arguments,
    format_result_for_display,
    render_json,
    truncate_text,
)


def test_format_dict_as_key_value_lines():
    text = format_result_for_display({"symbol": "PEPE", "priceUsd": 1.23456789, "verified": True})
    assert text == "symbol: PEPE\npriceUsd: 1.234568\nverified: true"


def test_format_list_is_inlined_and_truncated():
    assert format_result_for_display(["a", None, 3]) == "[a, null, 3]"
    text = format_result_for_display(list(range(5)), limit=2)
    assert text == "[0, 1] ... truncated"


def test_format_large_dict_truncated_as_json():
    text = format_result_for_display({f"k{i}": i for i in range(4)}, limit=2)
    assert text.endswith(" ... truncated")
    assert '"k0": "0"' in text
    assert "k3" not in text


def test_format_none_and_structured_error():
    assert format_result_for_display(None) == "No data."
    error = StructuredError(kind="recoverable", message="ECONNRESET", attempts=2)
    assert format_result_for_display(error) == "Error: ECONNRESET (attempts: 2)"


def test_long_float_strings_are_rounded():
    assert format_result_for_display("price 36.889999389648 BRL") == "price 36.89 BRL"


def test_render_json_and_truncate():
    assert render_json("plain") == "plain"
    assert render_json({"a": [1, 2]}) == '{"a": [1, 2]}'
    assert truncate_text("abcdef", 3) == "abc... [truncated from 6 chars]"
    assert truncate_text("abc", 3) == "abc"


def test_format_arguments_bullets():
    assert format_arguments({}) == "(no arguments)"
    assert format_arguments({"amount": "1", "path": ["a", "b"]}) == '- amount: 1\n- path: ["a", "b"]'
