"""
DexScreener market data capabilities.

Handlers follow the capability contract ``(arguments, session_id) -> payload``.
HTTP failures are left to escape as httpx errors; the gateway turns them
into CapabilityError with the upstream status code.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from shared.errors import CapabilityValidationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.dexscreener.com"


def format_pair(pair: dict[str, Any]) -> dict[str, Any]:
    """Reduce a DexScreener pair object to the fields worth showing."""
    info = pair.get("info") or {}
    socials: dict[str, str] = {}
    for social in info.get("socials") or []:
        kind = social.get("type")
        if kind in ("twitter", "telegram"):
            socials[kind] = social.get("url", "")
    website = next(
        (site.get("url") for site in info.get("websites") or [] if site.get("label") == "Website"),
        None,
    )
    created_ms = pair.get("pairCreatedAt")
    created_at = (
        datetime.fromtimestamp(created_ms / 1000, tz=timezone.utc).isoformat()
        if isinstance(created_ms, (int, float))
        else "Unknown"
    )
    base = pair.get("baseToken") or {}
    quote = pair.get("quoteToken") or {}
    txns = (pair.get("txns") or {}).get("h24") or {}
    return {
        "name": base.get("name"),
        "symbol": base.get("symbol"),
        "address": base.get("address"),
        "chain": pair.get("chainId"),
        "dex": pair.get("dexId"),
        "pair": f"{base.get('symbol', '?')}/{quote.get('symbol', '?')}",
        "priceUsd": pair.get("priceUsd") or "N/A",
        "priceChange": pair.get("priceChange") or {},
        "liquidityUsd": (pair.get("liquidity") or {}).get("usd", 0),
        "volume24h": (pair.get("volume") or {}).get("h24", 0),
        "buys24h": txns.get("buys", 0),
        "sells24h": txns.get("sells", 0),
        "marketCap": pair.get("marketCap") or "N/A",
        "fdv": pair.get("fdv") or "N/A",
        "createdAt": created_at,
        "website": website,
        "socials": socials,
        "url": pair.get("url"),
    }


def _best_pair(pairs: list[dict[str, Any]]) -> dict[str, Any] | None:
    if not pairs:
        return None
    return max(pairs, key=lambda p: float((p.get("liquidity") or {}).get("usd") or 0))


def _required(arguments: dict[str, Any], field: str, capability: str) -> str:
    value = str(arguments.get(field) or "").strip()
    if not value:
        raise CapabilityValidationError(f"'{field}' is required", capability=capability)
    return value


class DexScreenerClient:
    """Async DexScreener client exposing capability handlers."""

    CAPABILITIES = (
        "analyze_token_by_symbol",
        "analyze_token_by_address",
        "token_price_dexscreener",
        "fetch_trending_tokens_dexscreener",
    )

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds,
            headers={"Accept": "application/json"},
        )

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def search_pairs(self, query: str) -> list[dict[str, Any]]:
        data = await self._get("/latest/dex/search", {"q": query})
        return list((data or {}).get("pairs") or [])

    async def token_pairs(self, address: str) -> list[dict[str, Any]]:
        data = await self._get(f"/latest/dex/tokens/{address}")
        return list((data or {}).get("pairs") or [])

    # ─── Capability handlers ──────────────────────────────────

    async def analyze_token_by_symbol(self, arguments: dict[str, Any], session_id: str) -> dict[str, Any]:
        symbol = _required(arguments, "tokenSymbol", "analyze_token_by_symbol").lstrip("$")
        pairs = await self.search_pairs(symbol)
        matching = [p for p in pairs if str((p.get("baseToken") or {}).get("symbol", "")).upper() == symbol.upper()]
        best = _best_pair(matching or pairs)
        if best is None:
            return {"error": f"No pairs found for symbol {symbol}"}
        return {"token": format_pair(best), "pairsFound": len(matching or pairs)}

    async def analyze_token_by_address(self, arguments: dict[str, Any], session_id: str) -> dict[str, Any]:
        address = _required(arguments, "tokenAddress", "analyze_token_by_address")
        pairs = await self.token_pairs(address)
        best = _best_pair(pairs)
        if best is None:
            return {"error": f"No pairs found for address {address}"}
        return {"token": format_pair(best), "pairsFound": len(pairs)}

    async def token_price_dexscreener(self, arguments: dict[str, Any], session_id: str) -> dict[str, Any]:
        query = _required(arguments, "query", "token_price_dexscreener")
        pairs = await self.search_pairs(query)
        best = _best_pair(pairs)
        if best is None:
            return {"error": f"No price found for {query}"}
        pair = format_pair(best)
        return {
            "symbol": pair["symbol"],
            "priceUsd": pair["priceUsd"],
            "priceChange24h": pair["priceChange"].get("h24"),
            "chain": pair["chain"],
            "source": "dexscreener",
        }

    async def fetch_trending_tokens_dexscreener(self, arguments: dict[str, Any], session_id: str) -> list[dict[str, Any]]:
        limit = int(arguments.get("limit") or 10)
        data = await self._get("/token-boosts/latest/v1")
        items = data if isinstance(data, list) else []
        return [
            {
                "chain": item.get("chainId"),
                "tokenAddress": item.get("tokenAddress"),
                "description": item.get("description"),
                "boostAmount": item.get("totalAmount") or item.get("amount"),
                "url": item.get("url"),
            }
            for item in items[:limit]
        ]

    def handlers(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.CAPABILITIES}

    async def aclose(self) -> None:
        await self._client.aclose()
