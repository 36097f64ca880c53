"""
Fallback Table — ordered alternates per failing capability.

Read-only after construction. Alternates that are not registered in the
running process are skipped by the retry resolver.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Mapping

from shared.models import CapabilityDescriptor

DEFAULT_FALLBACKS: dict[str, tuple[str, ...]] = {
    # Token prices
    "token_price_coingecko": ("token_price_dexscreener", "search_internet"),
    "token_price_dexscreener": ("token_price_coingecko", "search_internet"),
    "token_price_dextools": ("token_price_dexscreener", "token_price_coingecko"),
    # Sentiment
    "fetch_tweets_for_symbol": ("search_internet",),
    "monitor_kol": ("fetch_tweets_for_symbol", "search_internet"),
    # Market categories
    "fetch_market_categories": ("fetch_market_category_metrics", "search_internet"),
    "fetch_market_category_metrics": ("search_internet",),
    "fetch_coins_by_category": ("fetch_market_categories", "search_internet"),
    "get_market_conditions": ("search_internet",),
    # Trending
    "fetch_trending_tokens_coingecko": ("fetch_trending_tokens_dexscreener", "fetch_trending_tokens_unified"),
    "fetch_trending_tokens_dextools": ("fetch_trending_tokens_dexscreener", "fetch_trending_tokens_unified"),
    "fetch_trending_tokens_dexscreener": ("fetch_trending_tokens_dextools", "fetch_trending_tokens_coingecko"),
    "fetch_trending_tokens_unified": ("fetch_trending_tokens_coingecko", "fetch_trending_tokens_twitter"),
    "fetch_trending_tokens_twitter": ("search_internet", "fetch_trending_tokens_coingecko"),
    # Token analysis
    "analyze_token_by_symbol": ("token_price_dexscreener", "search_internet"),
    "analyze_token_by_address": ("token_price_dexscreener", "search_internet"),
    # Search and products
    "search_products": ("search_internet",),
    "search_internet": ("fetch_trending_tokens_unified", "fetch_trending_tokens_twitter"),
    "handle_product_reference": ("search_products",),
}

# Field names an alternate may expect under a different name.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "query": ("tokenSymbol", "tokenAddress", "text", "handle", "cashtag", "productId"),
    "tokenSymbol": ("query", "cashtag"),
    "tokenAddress": ("query", "address"),
    "cashtag": ("tokenSymbol", "query"),
    "recipient": ("walletAddress",),
    "amount": ("tokenAmount",),
    "action": ("tradeAction",),
    "executeAt": ("executionTime",),
    "targetPrice": ("priceTarget",),
}


class FallbackTable:
    """Ordered fallback chains keyed by the failing capability."""

    def __init__(self, chains: Mapping[str, Iterable[str]] | None = None):
        source = DEFAULT_FALLBACKS if chains is None else chains
        self._chains = MappingProxyType(
            {name: tuple(alt for alt in alternates if alt != name) for name, alternates in source.items()}
        )

    def chain_for(self, name: str) -> tuple[str, ...]:
        """Alternates for ``name`` in priority order (empty when none)."""
        return self._chains.get(name, ())

    def __contains__(self, name: object) -> bool:
        return name in self._chains

    def as_dict(self) -> dict[str, list[str]]:
        return {name: list(chain) for name, chain in self._chains.items()}


def adapt_arguments(descriptor: CapabilityDescriptor, arguments: dict[str, Any]) -> dict[str, Any]:
    """Carry the failed task's arguments over to an alternate capability.

    Required fields the alternate is missing are filled from known aliases
    (``tokenSymbol`` → ``query`` and so on); nothing is removed.
    """
    adapted = dict(arguments)
    for field in descriptor.required_params:
        if adapted.get(field) not in (None, ""):
            continue
        for alias in FIELD_ALIASES.get(field, ()):
            value = arguments.get(alias)
            if value not in (None, ""):
                adapted[field] = value
                break
    return adapted
