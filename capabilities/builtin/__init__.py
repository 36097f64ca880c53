"""Built-in leaf capabilities: DexScreener market data, Brave search, price alerts."""

from capabilities.builtin.alerts import PriceAlertBook
from capabilities.builtin.market_data import DexScreenerClient
from capabilities.builtin.web_search import BraveSearchClient

__all__ = ["BraveSearchClient", "DexScreenerClient", "PriceAlertBook"]
