"""
Capability catalogue of the trading assistant.

Schemas and sensitivity flags for every capability the planner may name.
Only entries that receive a handler at startup are actually registered;
the rest stay visible here so templates and fallbacks can reference them.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from capabilities.registry import CapabilityHandler, CapabilityRegistry
from shared.models import CapabilityDescriptor

logger = logging.getLogger(__name__)


def _str(description: str, **extra: Any) -> dict[str, Any]:
    return {"type": "string", "description": description, **extra}


def _num(description: str) -> dict[str, Any]:
    return {"type": "number", "description": description}


def _list(description: str) -> dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}, "description": description}


NETWORK = _str("Network name.", enum=["ethereum", "base", "solana", "bsc", "arbitrum"])


CAPABILITY_SPECS: list[dict[str, Any]] = [
    # ─── Token approvals & payments ───────────────────────────
    {
        "name": "approve_token",
        "description": "Approve token spending on EVM networks.",
        "parameters": {
            "network": NETWORK,
            "tokenAddress": _str("Token contract address."),
            "spenderAddress": _str("Address to approve."),
            "amount": _str("Approval amount."),
            "walletAddress": _str("Wallet address for approval."),
        },
        "required": ["network", "tokenAddress", "spenderAddress", "walletAddress"],
        "sensitive": True,
    },
    {
        "name": "revoke_token_approval",
        "description": "Revoke token approval for EVM networks.",
        "parameters": {
            "network": NETWORK,
            "tokenAddress": _str("Token contract address."),
            "spenderAddress": _str("Spender address."),
            "walletAddress": _str("Wallet address."),
        },
        "required": ["network", "tokenAddress", "spenderAddress", "walletAddress"],
        "sensitive": True,
    },
    {
        "name": "create_solana_payment",
        "description": "Create a Solana Pay payment request.",
        "parameters": {
            "amount": _num("Payment amount."),
            "recipient": _str("Recipient address."),
            "reference": _str("Payment reference."),
            "label": _str("Payment label."),
        },
        "required": ["amount", "recipient"],
        "sensitive": True,
    },
    # ─── Trading ──────────────────────────────────────────────
    {
        "name": "execute_trade",
        "description": "Buy or sell a token from one of the user's wallets.",
        "parameters": {
            "action": _str("Trade direction.", enum=["buy", "sell"]),
            "tokenAddress": _str("Token contract address."),
            "amount": _str("Amount to trade."),
            "walletAddress": _str("Wallet executing the trade."),
            "slippage": _num("Maximum slippage percentage."),
        },
        "required": ["action", "tokenAddress", "amount", "walletAddress"],
        "sensitive": True,
    },
    {
        "name": "create_timed_order",
        "description": "Schedule a buy or sell for a later time.",
        "parameters": {
            "tokenAddress": _str("Token contract address."),
            "action": _str("Trade direction.", enum=["buy", "sell"]),
            "amount": _str("Amount to trade."),
            "executeAt": _str("ISO timestamp of execution."),
        },
        "required": ["tokenAddress", "action", "amount", "executeAt"],
        "sensitive": True,
    },
    {
        "name": "get_portfolio",
        "description": "Show balances of the user's wallets.",
        "parameters": {"walletAddress": _str("Optional wallet to inspect.")},
        "required": [],
    },
    {
        "name": "setup_flipper_mode",
        "description": "Configure automatic flipping of new tokens.",
        "parameters": {
            "profitTarget": _num("Take-profit percentage."),
            "stopLoss": _num("Stop-loss percentage."),
            "maxPositions": _num("Maximum simultaneous positions."),
        },
        "required": [],
    },
    {
        "name": "start_flipper_mode",
        "description": "Start automatic flipping with the configured settings.",
        "parameters": {"walletAddress": _str("Wallet used for flipping.")},
        "required": ["walletAddress"],
        "sensitive": True,
    },
    {
        "name": "stop_flipper_mode",
        "description": "Stop automatic flipping.",
        "parameters": {},
        "required": [],
        "sensitive": True,
    },
    {
        "name": "fetch_flipper_mode_metrics",
        "description": "Performance metrics of flipper mode.",
        "parameters": {},
        "required": [],
    },
    # ─── Market data ──────────────────────────────────────────
    {
        "name": "analyze_token_by_symbol",
        "description": "Analyze a token (price, liquidity, volume, pairs) by its symbol.",
        "parameters": {
            "tokenSymbol": _str("Token symbol, e.g. PEPE."),
            "tokenSymbols": _list("Several symbols to analyze independently."),
        },
        "required": ["tokenSymbol"],
        "batch": {"tokenSymbols": "tokenSymbol"},
    },
    {
        "name": "analyze_token_by_address",
        "description": "Analyze a token (price, liquidity, volume, pairs) by its contract address.",
        "parameters": {
            "tokenAddress": _str("Token contract address."),
            "tokenAddresses": _list("Several addresses to analyze independently."),
        },
        "required": ["tokenAddress"],
        "batch": {"tokenAddresses": "tokenAddress"},
    },
    {
        "name": "token_price_dexscreener",
        "description": "Current token price from DexScreener.",
        "parameters": {
            "query": _str("Token symbol, name or address."),
            "queries": _list("Several tokens to price independently."),
        },
        "required": ["query"],
        "batch": {"queries": "query"},
    },
    {
        "name": "token_price_coingecko",
        "description": "Current token price from CoinGecko.",
        "parameters": {"query": _str("Token symbol or name.")},
        "required": ["query"],
    },
    {
        "name": "fetch_trending_tokens_dexscreener",
        "description": "Tokens currently boosted/trending on DexScreener.",
        "parameters": {"limit": _num("Maximum number of tokens to return.")},
        "required": [],
    },
    {
        "name": "fetch_trending_tokens_coingecko",
        "description": "Trending tokens on CoinGecko.",
        "parameters": {},
        "required": [],
    },
    {
        "name": "fetch_trending_tokens_unified",
        "description": "Trending tokens merged from several sources.",
        "parameters": {"sources": _list("Sources to combine.")},
        "required": [],
    },
    {
        "name": "fetch_trending_tokens_twitter",
        "description": "Tokens trending on X.",
        "parameters": {},
        "required": [],
    },
    {
        "name": "fetch_trending_tokens_by_chain",
        "description": "Trending tokens on one chain.",
        "parameters": {"network": NETWORK},
        "required": ["network"],
    },
    {
        "name": "fetch_market_categories",
        "description": "Market categories from CoinGecko.",
        "parameters": {"order": _str("Sort order.")},
        "required": [],
    },
    {
        "name": "fetch_market_category_metrics",
        "description": "Metrics of market categories.",
        "parameters": {},
        "required": [],
    },
    {
        "name": "fetch_coins_by_category",
        "description": "Coins of one market category.",
        "parameters": {"categoryId": _str("Category identifier.")},
        "required": ["categoryId"],
    },
    {
        "name": "get_market_conditions",
        "description": "General market conditions overview.",
        "parameters": {},
        "required": [],
    },
    # ─── Price alerts ─────────────────────────────────────────
    {
        "name": "create_price_alert",
        "description": "Create a price alert for a token.",
        "parameters": {
            "tokenAddress": _str("Token address. Confirm with the user when unknown."),
            "targetPrice": _num("Target price in USD."),
            "condition": _str("Trigger condition.", enum=["above", "below"]),
        },
        "required": ["tokenAddress", "targetPrice", "condition"],
        "sensitive": True,
    },
    {
        "name": "price_alert",
        "description": "Set a price alert for a token (short form of create_price_alert).",
        "parameters": {
            "tokenAddress": _str("Token address."),
            "targetPrice": _num("Target price in USD."),
            "condition": _str("Trigger condition.", enum=["above", "below"]),
        },
        "required": ["tokenAddress", "targetPrice", "condition"],
        "sensitive": True,
    },
    {
        "name": "view_price_alerts",
        "description": "View all price alerts of the current user.",
        "parameters": {},
        "required": [],
        "insufficiency": "none",
    },
    {
        "name": "edit_price_alert",
        "description": "Change the target or condition of a price alert.",
        "parameters": {
            "alertId": _str("Alert identifier."),
            "targetPrice": _num("New target price."),
            "condition": _str("New condition.", enum=["above", "below"]),
        },
        "required": ["alertId"],
        "sensitive": True,
    },
    {
        "name": "delete_price_alert",
        "description": "Delete a price alert by its ID.",
        "parameters": {"alertId": _str("Alert identifier.")},
        "required": ["alertId"],
        "sensitive": True,
    },
    # ─── Research & social ────────────────────────────────────
    {
        "name": "search_internet",
        "description": "Search the web for recent information.",
        "parameters": {
            "query": _str("Search query."),
            "queries": _list("Several independent queries."),
        },
        "required": ["query"],
        "batch": {"queries": "query"},
    },
    {
        "name": "fetch_tweets_for_symbol",
        "description": "Social sentiment for a cashtag on X.",
        "parameters": {
            "cashtag": _str("Cashtag without $, lowercase."),
            "cashtags": _list("Several cashtags to check independently."),
            "minLikes": _num("Minimum likes per tweet."),
        },
        "required": ["cashtag"],
        "batch": {"cashtags": "cashtag"},
    },
    {
        "name": "monitor_kol",
        "description": "Start monitoring a key opinion leader on X.",
        "parameters": {"handle": _str("X handle without @.")},
        "required": ["handle"],
        "sensitive": True,
    },
    {
        "name": "stop_monitor_kol",
        "description": "Stop monitoring a key opinion leader.",
        "parameters": {"handle": _str("X handle without @.")},
        "required": ["handle"],
    },
    {
        "name": "search_products",
        "description": "Search the shop catalogue.",
        "parameters": {"query": _str("Product search terms.")},
        "required": ["query"],
    },
    # ─── Reminders, reports & preferences ─────────────────────
    {
        "name": "set_reminder",
        "description": "Set a reminder for the user.",
        "parameters": {"text": _str("Reminder text."), "time": _str("When to remind.")},
        "required": ["text"],
        "sensitive": True,
    },
    {
        "name": "start_monitoring_reminders",
        "description": "Start delivering reminders.",
        "parameters": {"text": _str("Reminder filter.")},
        "required": ["text"],
    },
    {
        "name": "generate_google_report",
        "description": "Generate a summary report document.",
        "parameters": {},
        "required": [],
    },
    {
        "name": "set_guidelines_manners_rules",
        "description": "Store the user's conversation preferences.",
        "parameters": {"query": _str("Preference text.")},
        "required": ["query"],
        "sensitive": True,
    },
    {
        "name": "save_strategy",
        "description": "Save a named trading strategy.",
        "parameters": {
            "name": _str("Strategy name."),
            "description": _str("Strategy description."),
            "parameters": {"type": "object", "description": "Strategy parameters."},
        },
        "required": ["name", "description", "parameters"],
        "sensitive": True,
    },
    # ─── Gift cards ───────────────────────────────────────────
    {
        "name": "start_bitrefill_shopping_flow",
        "description": "Start buying a gift card with crypto.",
        "parameters": {"productId": _str("Gift card product.")},
        "required": [],
        "sensitive": True,
    },
    {
        "name": "check_bitrefill_payment_status",
        "description": "Check the payment status of a gift card invoice.",
        "parameters": {"invoiceId": _str("Invoice identifier.")},
        "required": ["invoiceId"],
    },
]

_SPECS_BY_NAME: dict[str, dict[str, Any]] = {spec["name"]: spec for spec in CAPABILITY_SPECS}


def known_capabilities() -> list[str]:
    return list(_SPECS_BY_NAME.keys())


def descriptor_for(name: str, handler: CapabilityHandler | None = None) -> CapabilityDescriptor:
    """Build the descriptor of a catalogued capability."""
    spec = _SPECS_BY_NAME.get(name)
    if spec is None:
        raise KeyError(f"Capability '{name}' is not in the catalogue.")
    return CapabilityDescriptor(
        name=spec["name"],
        description=spec.get("description", ""),
        required_params=tuple(spec.get("required", ())),
        parameters=dict(spec.get("parameters", {})),
        sensitive=bool(spec.get("sensitive", False)),
        batch_params=dict(spec.get("batch", {})),
        insufficiency_check=spec.get("insufficiency", "keyword"),
        handler=handler,
    )


def register_catalog(
    registry: CapabilityRegistry,
    handlers: Mapping[str, CapabilityHandler],
) -> list[str]:
    """Register every catalogued capability that has a handler."""
    registered: list[str] = []
    for name, handler in handlers.items():
        if name not in _SPECS_BY_NAME:
            logger.warning("Handler for uncatalogued capability '%s' ignored", name)
            continue
        registry.register(descriptor_for(name, handler))
        registered.append(name)
    missing = len(_SPECS_BY_NAME) - len(registered)
    logger.info("Registered %d catalogued capabilities (%d without handler)", len(registered), missing)
    return registered
