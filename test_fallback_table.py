from __future__ import annotations

from capabilities.catalog import descriptor_for
from capabilities.fallbacks import DEFAULT_FALLBACKS, FallbackTable, adapt_arguments


def test_default_chains_are_ordered():
    table = FallbackTable()
    assert table.chain_for("token_price_coingecko") == ("token_price_dexscreener", "search_internet")
    assert table.chain_for("fetch_tweets_for_symbol") == ("search_internet",)
    assert table.chain_for("execute_trade") == ()
    assert "search_products" in table


def test_chain_never_contains_the_failing_capability():
    table = FallbackTable({"a": ["a", "b", "c"]})
    assert table.chain_for("a") == ("b", "c")


def test_table_is_read_only_copy():
    source = {"a": ["b"]}
    table = FallbackTable(source)
    source["a"].append("c")
    assert table.chain_for("a") == ("b",)
    assert table.as_dict() == {"a": ["b"]}


def test_default_table_covers_every_declared_entry():
    table = FallbackTable()
    for name in DEFAULT_FALLBACKS:
        assert name in table


def test_adapt_arguments_fills_query_from_token_symbol():
    descriptor = descriptor_for("token_price_dexscreener")
    adapted = adapt_arguments(descriptor, {"tokenSymbol": "PEPE"})
    assert adapted == {"tokenSymbol": "PEPE", "query": "PEPE"}


def test_adapt_arguments_keeps_existing_values():
    descriptor = descriptor_for("search_internet")
    adapted = adapt_arguments(descriptor, {"query": "solana news", "tokenSymbol": "SOL"})
    assert adapted["query"] == "solana news"
