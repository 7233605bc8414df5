"""Unified market data adapter.

Routes price lookups to the right source by asset type and keeps asset
price snapshots and price history up to date.

Usage:
    service = MarketDataService(repository)
    quote = await service.get_price("BTC")          # Binance, then CoinGecko
    quote = await service.get_price("AAPL")         # Yahoo Finance
    await service.update_all_asset_prices()
"""

from typing import Literal, Optional

import structlog

from src.core.exceptions import MarketDataError
from src.market.detector import detect_asset_type
from src.market.sources import BinanceSource, CoinGeckoSource, YahooFinanceSource
from src.models.schemas import Asset, AssetType, PriceData, PriceHistory, PriceQuote, utc_now
from src.store.repository import PipelineRepository

logger = structlog.get_logger(__name__)

PriceSourceName = Literal["auto", "binance", "coingecko", "yahoo"]


def price_24h_ago(quote: PriceQuote) -> float:
    """Reference price 24 hours back, derived from the quote's 24h change."""
    if quote.change_24h <= -100:
        return quote.price
    return quote.price / (1 + quote.change_24h / 100)


class MarketDataService:
    """Price lookups and asset price maintenance."""

    def __init__(
        self,
        repository: PipelineRepository,
        binance: Optional[BinanceSource] = None,
        coingecko: Optional[CoinGeckoSource] = None,
        yahoo: Optional[YahooFinanceSource] = None,
    ):
        self._repository = repository
        self._binance = binance or BinanceSource()
        self._coingecko = coingecko or CoinGeckoSource()
        self._yahoo = yahoo or YahooFinanceSource()

    async def aclose(self) -> None:
        for source in (self._binance, self._coingecko, self._yahoo):
            await source.aclose()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    async def get_price(
        self,
        symbol: str,
        source: PriceSourceName = "auto",
    ) -> Optional[PriceQuote]:
        """Get the current price of a symbol.

        Args:
            symbol: Ticker symbol, any case.
            source: Force a specific source, or ``auto`` to route by asset type.

        Returns:
            The quote, or None when no source has a price.
        """
        if source == "binance":
            return await self._binance.get_price(symbol)
        if source == "coingecko":
            return await self._coingecko.get_price(symbol)
        if source == "yahoo":
            return await self._yahoo.get_price(symbol)

        detection = detect_asset_type(symbol)
        logger.debug(
            "asset_type_detected",
            symbol=symbol,
            asset_type=detection.type.value,
            confidence=detection.confidence,
        )
        quote = await self._price_by_type(detection.normalized_symbol, detection.type)

        if quote:
            logger.info(
                "price_found",
                symbol=detection.normalized_symbol,
                asset_type=detection.type.value,
                price=quote.price,
                source=quote.source,
            )
        else:
            logger.warning(
                "price_not_found",
                symbol=detection.normalized_symbol,
                asset_type=detection.type.value,
            )
        return quote

    async def _price_by_type(self, symbol: str, asset_type: AssetType) -> Optional[PriceQuote]:
        if asset_type == AssetType.CRYPTO:
            quote = await self._binance.get_price(symbol)
            if quote is None:
                quote = await self._coingecko.get_price(symbol)
            return quote
        return await self._yahoo.get_price(symbol)

    # -------------------------------------------------------------------------
    # Asset maintenance
    # -------------------------------------------------------------------------

    async def _store_quote(self, asset: Asset, quote: PriceQuote) -> None:
        now = utc_now()
        await self._repository.update_asset_price_data(
            asset.id,
            PriceData(
                price=quote.price,
                change_24h=quote.change_24h,
                volume_24h=quote.volume_24h,
                market_cap=quote.market_cap,
                high_24h=quote.high_24h,
                low_24h=quote.low_24h,
                source=quote.source,
                updated_at=now,
                price_24h_ago=price_24h_ago(quote),
            ),
        )
        await self._repository.insert_price_history(
            PriceHistory(
                asset_id=asset.id,
                price=quote.price,
                volume=quote.volume_24h,
                source=quote.source,
                recorded_at=now,
            )
        )

    async def update_asset_price(self, asset_id: str) -> PriceQuote:
        """Refresh one asset's price snapshot and append a history entry.

        Raises:
            MarketDataError: If the asset does not exist or no price is available.
        """
        asset = await self._repository.get_asset(asset_id)
        if asset is None:
            raise MarketDataError("Asset not found", {"asset_id": asset_id})

        quote = await self.get_price(asset.symbol)
        if quote is None:
            raise MarketDataError(
                f"Failed to fetch price for {asset.symbol}",
                {"asset_id": asset_id, "symbol": asset.symbol},
            )

        await self._store_quote(asset, quote)
        return quote

    async def update_all_asset_prices(self) -> dict[str, PriceQuote]:
        """Refresh every asset.

        Crypto assets are priced with one Binance batch request, with
        CoinGecko filling the gaps. Other assets go to Yahoo Finance.

        Returns:
            Quotes keyed by symbol for every asset that was priced.
        """
        assets = await self._repository.list_assets()
        crypto = sorted({a.symbol for a in assets if a.type == AssetType.CRYPTO})
        traditional = sorted({a.symbol for a in assets if a.type != AssetType.CRYPTO})

        prices = await self._binance.get_batch_prices(crypto) if crypto else {}
        missing = [symbol for symbol in crypto if symbol not in prices]
        if missing:
            prices.update(await self._coingecko.get_batch_prices(missing))
        if traditional:
            prices.update(await self._yahoo.get_batch_prices(traditional))

        updated = 0
        for asset in assets:
            quote = prices.get(asset.symbol)
            if quote is None:
                continue
            await self._store_quote(asset, quote)
            updated += 1

        logger.info(
            "asset_prices_updated",
            assets=len(assets),
            updated=updated,
            missing=len(assets) - updated,
        )
        return prices
