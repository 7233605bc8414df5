"""
Market data adapter.

- detector: Asset type detection from ticker symbols
- sources: Binance, CoinGecko and Yahoo Finance price sources
- service: ``MarketDataService`` routing and asset price maintenance
"""

from src.market.detector import AssetDetection, detect_asset_type
from src.market.service import MarketDataService
from src.market.sources import (
    BinanceSource,
    CoinGeckoSource,
    PriceSource,
    YahooFinanceSource,
)

__all__ = [
    "AssetDetection",
    "detect_asset_type",
    "MarketDataService",
    "PriceSource",
    "BinanceSource",
    "CoinGeckoSource",
    "YahooFinanceSource",
]
