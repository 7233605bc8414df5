"""Asset type detection from ticker symbols."""

import re
from typing import NamedTuple

from src.models.schemas import AssetType


class AssetDetection(NamedTuple):
    type: AssetType
    confidence: float
    normalized_symbol: str


CRYPTO_SYMBOLS = frozenset({
    "BTC", "ETH", "BNB", "ADA", "SOL", "XRP", "DOT", "DOGE", "AVAX", "MATIC",
    "LINK", "UNI", "LTC", "BCH", "ATOM", "FIL", "TRX", "ETC", "XLM", "VET",
    "ICP", "FTT", "ALGO", "MANA", "SAND", "AXS", "SHIB", "CRO", "NEAR", "APE",
})

STOCK_SYMBOLS = frozenset({
    "AAPL", "MSFT", "GOOGL", "GOOG", "AMZN", "TSLA", "META", "NVDA", "BRK.A", "BRK.B",
    "UNH", "JNJ", "JPM", "V", "PG", "HD", "MA", "PYPL", "DIS", "ADBE", "NFLX", "CRM",
    "INTC", "VZ", "KO", "PFE", "T", "CISCO", "XOM", "ABT", "TMO", "ACN", "CVX",
    "WMT", "MRK", "COST", "DHR", "LLY", "AVGO", "ORCL", "LIN", "NKE", "NEE", "UPS",
})

ETF_SYMBOLS = frozenset({
    "SPY", "QQQ", "IWM", "EFA", "VTI", "VEA", "VWO", "TLT", "HYG", "LQD",
    "XLF", "XLE", "XLK", "XLI", "XLU", "XLV", "XLY", "XLP", "XLB", "XLRE",
    "VOO", "VXUS", "BND", "VTEB", "SCHX", "SCHF", "SCHE",
})

INDEX_PATTERNS = [re.compile(r"^\^"), re.compile(r"^(SPX|DJI|NDX|RUT)$")]

CURRENCY_PATTERNS = [re.compile(r"^[A-Z]{3}[A-Z]{3}=X$"), re.compile(r"^[A-Z]{6}$")]

COMMODITY_PATTERNS = [
    re.compile(r"^(GC=F|SI=F|CL=F|NG=F|ZC=F|ZS=F|ZW=F)$"),
    re.compile(r"^(GLD|SLV|USO|UNG|DBA|DJP)$"),
]

STOCK_PATTERNS = [re.compile(r"^[A-Z]{1,5}$"), re.compile(r"^[A-Z]+\.[A-Z]{2}$")]

ETF_PATTERNS = [re.compile(r"^[A-Z]{3,4}$")]


def _any_match(patterns: list[re.Pattern], symbol: str) -> bool:
    return any(pattern.search(symbol) for pattern in patterns)


def detect_asset_type(symbol: str) -> AssetDetection:
    """Classify a ticker symbol.

    Known symbol sets win over patterns; unrecognised symbols default to
    STOCK with low confidence.
    """
    upper = symbol.strip().upper()

    if upper in CRYPTO_SYMBOLS:
        return AssetDetection(AssetType.CRYPTO, 0.95, upper)
    if upper in STOCK_SYMBOLS:
        return AssetDetection(AssetType.STOCK, 0.9, upper)
    if upper in ETF_SYMBOLS:
        return AssetDetection(AssetType.ETF, 0.9, upper)
    if _any_match(INDEX_PATTERNS, upper):
        return AssetDetection(AssetType.INDEX, 0.9, upper)
    if _any_match(CURRENCY_PATTERNS, upper):
        return AssetDetection(AssetType.CURRENCY, 0.9, upper)
    if _any_match(COMMODITY_PATTERNS, upper):
        return AssetDetection(AssetType.COMMODITY, 0.85, upper)
    if _any_match(STOCK_PATTERNS, upper):
        return AssetDetection(AssetType.STOCK, 0.7, upper)
    if _any_match(ETF_PATTERNS, upper):
        return AssetDetection(AssetType.ETF, 0.6, upper)
    return AssetDetection(AssetType.STOCK, 0.5, upper)
