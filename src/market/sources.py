"""Price sources: Binance, CoinGecko and Yahoo Finance.

Each source returns ``PriceQuote`` objects, or ``None`` when it has no
price for the symbol. Transport and API failures are logged and turned
into ``None`` so the caller can fall through to the next source.

API Reference:
    https://binance-docs.github.io/apidocs/spot/en/#24hr-ticker-price-change-statistics
    https://docs.coingecko.com/reference/simple-price
"""

from abc import abstractmethod
from typing import Any, Awaitable, Callable, Optional

import structlog

from src.core.exceptions import CollectorError
from src.core.http_source import HttpSource
from src.models.schemas import PriceQuote

logger = structlog.get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

BINANCE_API_BASE = "https://api.binance.com/api/v3"
COINGECKO_API_BASE = "https://api.coingecko.com/api/v3"
YAHOO_QUOTE_URL = "https://query1.finance.yahoo.com/v7/finance/quote"
YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart"
YAHOO_SUMMARY_URL = "https://query2.finance.yahoo.com/v10/finance/quoteSummary"

YAHOO_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36",
    "Accept": "application/json",
}

COINGECKO_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BNB": "binancecoin",
    "SOL": "solana",
    "XRP": "ripple",
    "ADA": "cardano",
    "DOGE": "dogecoin",
    "AVAX": "avalanche-2",
    "DOT": "polkadot",
    "MATIC": "matic-network",
}

QUOTE_CURRENCY = "USDT"

# Parsing failures inside a payload are treated like a missing price
_PAYLOAD_ERRORS = (KeyError, TypeError, ValueError, IndexError, ZeroDivisionError)


def coingecko_id(symbol: str) -> str:
    return COINGECKO_IDS.get(symbol, symbol.lower())


def _float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


class PriceSource(HttpSource):
    """A market data API that can price symbols."""

    @abstractmethod
    async def get_price(self, symbol: str) -> Optional[PriceQuote]:
        ...

    async def get_batch_prices(self, symbols: list[str]) -> dict[str, PriceQuote]:
        """Price several symbols; missing prices are omitted."""
        prices = {}
        for symbol in symbols:
            quote = await self.get_price(symbol)
            if quote is not None:
                prices[symbol] = quote
        return prices

    async def _guarded(
        self,
        symbol: str,
        fetch: Callable[[], Awaitable[Optional[PriceQuote]]],
    ) -> Optional[PriceQuote]:
        try:
            return await fetch()
        except CollectorError as e:
            logger.warning(f"{self.source_name}_price_failed", symbol=symbol, error=str(e))
        except _PAYLOAD_ERRORS as e:
            logger.warning(f"{self.source_name}_payload_invalid", symbol=symbol, error=str(e))
        return None


# =============================================================================
# Binance
# =============================================================================


class BinanceSource(PriceSource):
    """Spot prices against USDT from the Binance 24h ticker."""

    source_name = "binance"

    def __init__(self, **kwargs):
        kwargs.setdefault("base_url", BINANCE_API_BASE)
        super().__init__(**kwargs)

    @staticmethod
    def _to_quote(symbol: str, ticker: dict[str, Any]) -> PriceQuote:
        last_price = float(ticker["lastPrice"])
        return PriceQuote(
            symbol=symbol,
            price=last_price,
            change_24h=float(ticker["priceChangePercent"]),
            volume_24h=float(ticker["volume"]) * last_price,
            high_24h=_float(ticker.get("highPrice")),
            low_24h=_float(ticker.get("lowPrice")),
            source=BinanceSource.source_name,
        )

    async def get_price(self, symbol: str) -> Optional[PriceQuote]:
        async def fetch():
            ticker = await self._request(
                "GET",
                "ticker/24hr",
                params={"symbol": f"{symbol}{QUOTE_CURRENCY}"},
                operation="get_price",
            )
            return self._to_quote(symbol, ticker) if ticker else None

        return await self._guarded(symbol, fetch)

    async def get_batch_prices(self, symbols: list[str]) -> dict[str, PriceQuote]:
        """Price many symbols from a single all-tickers request."""
        wanted = set(symbols)
        prices: dict[str, PriceQuote] = {}
        try:
            tickers = await self._request("GET", "ticker/24hr", operation="get_batch_prices")
        except CollectorError as e:
            logger.warning("binance_batch_prices_failed", error=str(e))
            return prices

        for ticker in tickers or []:
            pair = ticker.get("symbol", "")
            if not pair.endswith(QUOTE_CURRENCY):
                continue
            symbol = pair[: -len(QUOTE_CURRENCY)]
            if symbol in wanted:
                try:
                    prices[symbol] = self._to_quote(symbol, ticker)
                except _PAYLOAD_ERRORS as e:
                    logger.warning("binance_payload_invalid", symbol=symbol, error=str(e))
        return prices


# =============================================================================
# CoinGecko
# =============================================================================


class CoinGeckoSource(PriceSource):
    """USD prices from CoinGecko's simple price endpoint."""

    source_name = "coingecko"

    def __init__(self, **kwargs):
        kwargs.setdefault("base_url", COINGECKO_API_BASE)
        super().__init__(**kwargs)

    async def _simple_price(self, coin_ids: list[str], operation: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            "simple/price",
            params={
                "ids": ",".join(coin_ids),
                "vs_currencies": "usd",
                "include_market_cap": "true",
                "include_24hr_vol": "true",
                "include_24hr_change": "true",
            },
            operation=operation,
        )

    def _to_quote(self, symbol: str, entry: dict[str, Any]) -> PriceQuote:
        return PriceQuote(
            symbol=symbol,
            price=float(entry["usd"]),
            change_24h=float(entry.get("usd_24h_change") or 0),
            volume_24h=float(entry.get("usd_24h_vol") or 0),
            market_cap=float(entry.get("usd_market_cap") or 0),
            source=self.source_name,
        )

    async def get_price(self, symbol: str) -> Optional[PriceQuote]:
        coin_id = coingecko_id(symbol)

        async def fetch():
            data = await self._simple_price([coin_id], "get_price")
            entry = data.get(coin_id)
            return self._to_quote(symbol, entry) if entry else None

        return await self._guarded(symbol, fetch)

    async def get_batch_prices(self, symbols: list[str]) -> dict[str, PriceQuote]:
        prices: dict[str, PriceQuote] = {}
        if not symbols:
            return prices
        ids = {symbol: coingecko_id(symbol) for symbol in symbols}
        try:
            data = await self._simple_price(list(ids.values()), "get_batch_prices")
        except CollectorError as e:
            logger.warning("coingecko_batch_prices_failed", error=str(e))
            return prices

        for symbol, coin_id in ids.items():
            entry = data.get(coin_id)
            if entry:
                prices[symbol] = self._to_quote(symbol, entry)
        return prices


# =============================================================================
# Yahoo Finance
# =============================================================================


class YahooFinanceSource(PriceSource):
    """Traditional assets from Yahoo Finance, trying three endpoints in turn."""

    source_name = "yahoo"

    def __init__(self, **kwargs):
        kwargs.setdefault("headers", dict(YAHOO_HEADERS))
        super().__init__(**kwargs)

    async def get_price(self, symbol: str) -> Optional[PriceQuote]:
        endpoints = (self._from_quote, self._from_chart, self._from_summary)
        for endpoint in endpoints:
            quote = await self._guarded(symbol, lambda: endpoint(symbol))
            if quote is not None and quote.price > 0:
                return quote
            logger.debug("yahoo_endpoint_empty", symbol=symbol, endpoint=endpoint.__name__)

        logger.warning("yahoo_all_endpoints_failed", symbol=symbol)
        return None

    async def _from_quote(self, symbol: str) -> Optional[PriceQuote]:
        data = await self._request(
            "GET", YAHOO_QUOTE_URL, params={"symbols": symbol}, operation="quote"
        )
        results = (data.get("quoteResponse") or {}).get("result") or []
        if not results:
            return None
        quote = results[0]
        return PriceQuote(
            symbol=symbol,
            price=float(quote.get("regularMarketPrice") or quote.get("price") or 0),
            change_24h=float(quote.get("regularMarketChangePercent") or 0),
            volume_24h=float(quote.get("regularMarketVolume") or 0),
            market_cap=_float(quote.get("marketCap")),
            high_24h=_float(quote.get("regularMarketDayHigh")),
            low_24h=_float(quote.get("regularMarketDayLow")),
            source=self.source_name,
        )

    async def _from_chart(self, symbol: str) -> Optional[PriceQuote]:
        data = await self._request(
            "GET",
            f"{YAHOO_CHART_URL}/{symbol}",
            params={"interval": "1d", "range": "1d"},
            operation="chart",
        )
        results = (data.get("chart") or {}).get("result") or []
        if not results or not results[0].get("meta"):
            return None
        meta = results[0]["meta"]
        price = meta.get("regularMarketPrice")
        previous_close = meta.get("previousClose")
        change = 0.0
        if price is not None and previous_close:
            change = (price - previous_close) / previous_close * 100
        return PriceQuote(
            symbol=symbol,
            price=float(price or previous_close or 0),
            change_24h=change,
            volume_24h=float(meta.get("regularMarketVolume") or 0),
            market_cap=_float(meta.get("marketCap")),
            high_24h=_float(meta.get("regularMarketDayHigh")),
            low_24h=_float(meta.get("regularMarketDayLow")),
            source=self.source_name,
        )

    async def _from_summary(self, symbol: str) -> Optional[PriceQuote]:
        data = await self._request(
            "GET",
            f"{YAHOO_SUMMARY_URL}/{symbol}",
            params={"modules": "price"},
            operation="summary",
        )
        results = (data.get("quoteSummary") or {}).get("result") or []
        if not results or not results[0].get("price"):
            return None
        price = results[0]["price"]

        def raw(field: str) -> Optional[float]:
            return _float((price.get(field) or {}).get("raw"))

        return PriceQuote(
            symbol=symbol,
            price=raw("regularMarketPrice") or raw("preMarketPrice") or 0.0,
            change_24h=raw("regularMarketChangePercent") or 0.0,
            volume_24h=raw("regularMarketVolume") or 0.0,
            market_cap=raw("marketCap"),
            high_24h=raw("regularMarketDayHigh"),
            low_24h=raw("regularMarketDayLow"),
            source=self.source_name,
        )
