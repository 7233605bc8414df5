"""Unit tests for asset type detection, price sources and the market data service."""

import httpx
import pytest

from src.core.exceptions import MarketDataError
from src.market.detector import detect_asset_type
from src.market.service import MarketDataService
from src.market.sources import BinanceSource, CoinGeckoSource, YahooFinanceSource
from src.models.schemas import AssetType


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def binance_ticker(symbol: str, price: str = "65000.5") -> dict:
    return {
        "symbol": f"{symbol}USDT",
        "lastPrice": price,
        "priceChangePercent": "2.5",
        "volume": "10",
        "highPrice": "66000",
        "lowPrice": "64000",
    }


def not_found(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404, json={})


class TestAssetDetection:
    """Test symbol classification."""

    @pytest.mark.parametrize(
        "symbol,expected",
        [
            ("btc", AssetType.CRYPTO),
            ("AAPL", AssetType.STOCK),
            ("SPY", AssetType.ETF),
            ("^GSPC", AssetType.INDEX),
            ("EURUSD=X", AssetType.CURRENCY),
            ("GC=F", AssetType.COMMODITY),
            ("ABCD", AssetType.STOCK),
            ("weird-symbol-123", AssetType.STOCK),
        ],
    )
    def test_detection(self, symbol, expected):
        assert detect_asset_type(symbol).type == expected

    def test_known_symbols_are_confident(self):
        detection = detect_asset_type(" eth ")

        assert detection.normalized_symbol == "ETH"
        assert detection.confidence == 0.95

    def test_unknown_symbol_has_low_confidence(self):
        assert detect_asset_type("weird-symbol-123").confidence == 0.5


class TestBinanceSource:
    """Test Binance ticker parsing."""

    @pytest.mark.asyncio
    async def test_get_price(self):
        seen = []

        def handler(request):
            seen.append(request.url.params["symbol"])
            return httpx.Response(200, json=binance_ticker("BTC"))

        source = BinanceSource(client=mock_client(handler))
        quote = await source.get_price("BTC")

        assert seen == ["BTCUSDT"]
        assert quote.price == 65000.5
        assert quote.change_24h == 2.5
        assert quote.volume_24h == 650005.0
        assert quote.source == "binance"

    @pytest.mark.asyncio
    async def test_unknown_pair_returns_none(self):
        source = BinanceSource(client=mock_client(lambda r: httpx.Response(400, json={"code": -1121})))

        assert await source.get_price("NOPE") is None

    @pytest.mark.asyncio
    async def test_batch_prices_from_one_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=[
                binance_ticker("BTC"),
                binance_ticker("ETH", "3000"),
                {"symbol": "ETHBTC", "lastPrice": "0.05"},
            ])

        prices = await BinanceSource(client=mock_client(handler)).get_batch_prices(["BTC", "ETH", "SOL"])

        assert len(calls) == 1
        assert set(prices) == {"BTC", "ETH"}
        assert prices["ETH"].price == 3000.0


class TestCoinGeckoSource:
    """Test CoinGecko simple price parsing."""

    @pytest.mark.asyncio
    async def test_get_price_maps_coin_id(self):
        def handler(request):
            assert request.url.params["ids"] == "bitcoin"
            return httpx.Response(200, json={
                "bitcoin": {"usd": 64000, "usd_24h_change": -1.5, "usd_24h_vol": 1e9, "usd_market_cap": 1.2e12}
            })

        quote = await CoinGeckoSource(client=mock_client(handler)).get_price("BTC")

        assert quote.price == 64000.0
        assert quote.change_24h == -1.5
        assert quote.source == "coingecko"

    @pytest.mark.asyncio
    async def test_missing_coin_returns_none(self):
        source = CoinGeckoSource(client=mock_client(lambda r: httpx.Response(200, json={})))

        assert await source.get_price("NOPE") is None


class TestYahooFinanceSource:
    """Test the three-endpoint Yahoo fallback chain."""

    @pytest.mark.asyncio
    async def test_quote_endpoint(self):
        def handler(request):
            return httpx.Response(200, json={"quoteResponse": {"result": [
                {"regularMarketPrice": 190.5, "regularMarketChangePercent": 1.2, "regularMarketVolume": 1000}
            ]}})

        quote = await YahooFinanceSource(client=mock_client(handler)).get_price("AAPL")

        assert quote.price == 190.5
        assert quote.source == "yahoo"

    @pytest.mark.asyncio
    async def test_falls_back_to_chart(self):
        """A failing quote endpoint falls through to the chart endpoint."""
        def handler(request):
            if "/v7/" in request.url.path:
                return httpx.Response(401, json={})
            return httpx.Response(200, json={"chart": {"result": [
                {"meta": {"regularMarketPrice": 110.0, "previousClose": 100.0}}
            ]}})

        quote = await YahooFinanceSource(client=mock_client(handler)).get_price("AAPL")

        assert quote.price == 110.0
        assert quote.change_24h == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_falls_back_to_summary(self):
        def handler(request):
            if "/v10/" in request.url.path:
                return httpx.Response(200, json={"quoteSummary": {"result": [
                    {"price": {"regularMarketPrice": {"raw": 42.0}}}
                ]}})
            return httpx.Response(404, json={})

        quote = await YahooFinanceSource(client=mock_client(handler)).get_price("XYZ")

        assert quote.price == 42.0

    @pytest.mark.asyncio
    async def test_all_endpoints_failing_returns_none(self):
        assert await YahooFinanceSource(client=mock_client(not_found)).get_price("XYZ") is None


class TestMarketDataService:
    """Test routing and asset price maintenance."""

    def service(self, repository, binance=not_found, coingecko=not_found, yahoo=not_found):
        return MarketDataService(
            repository,
            binance=BinanceSource(client=mock_client(binance)),
            coingecko=CoinGeckoSource(client=mock_client(coingecko)),
            yahoo=YahooFinanceSource(client=mock_client(yahoo)),
        )

    @pytest.mark.asyncio
    async def test_crypto_falls_back_to_coingecko(self, repository):
        service = self.service(
            repository,
            coingecko=lambda r: httpx.Response(200, json={"ethereum": {"usd": 3000}}),
        )

        quote = await service.get_price("eth")

        assert quote.source == "coingecko"
        assert quote.symbol == "ETH"

    @pytest.mark.asyncio
    async def test_stock_goes_to_yahoo(self, repository):
        service = self.service(
            repository,
            binance=lambda r: pytest.fail("stocks are not priced on Binance"),
            yahoo=lambda r: httpx.Response(200, json={"quoteResponse": {"result": [{"regularMarketPrice": 10}]}}),
        )

        quote = await service.get_price("AAPL")

        assert quote.source == "yahoo"

    @pytest.mark.asyncio
    async def test_forced_source(self, repository):
        service = self.service(repository, binance=lambda r: httpx.Response(200, json=binance_ticker("AAPL")))

        quote = await service.get_price("AAPL", source="binance")

        assert quote.source == "binance"

    @pytest.mark.asyncio
    async def test_update_asset_price_stores_snapshot_and_history(self, repository, store):
        btc = await repository.upsert_asset("BTC", AssetType.CRYPTO)
        service = self.service(repository, binance=lambda r: httpx.Response(200, json=binance_ticker("BTC")))

        await service.update_asset_price(btc.id)
        await service.update_asset_price(btc.id)

        asset = await repository.get_asset(btc.id)
        assert asset.price_data.price == 65000.5
        # Ticker reports +2.5% over 24h
        assert asset.price_data.price_24h_ago == pytest.approx(65000.5 / 1.025)
        assert asset.price_data.change_24h == 2.5
        assert asset.price_data.source == "binance"
        assert len(store.rows("price_history")) == 2

    @pytest.mark.asyncio
    async def test_update_asset_price_errors(self, repository):
        service = self.service(repository)
        unknown = await repository.upsert_asset("ZZZZ", AssetType.STOCK)

        with pytest.raises(MarketDataError):
            await service.update_asset_price("missing")
        with pytest.raises(MarketDataError):
            await service.update_asset_price(unknown.id)

    @pytest.mark.asyncio
    async def test_update_all_asset_prices(self, repository):
        await repository.upsert_asset("BTC", AssetType.CRYPTO)
        await repository.upsert_asset("SOL", AssetType.CRYPTO)
        await repository.upsert_asset("AAPL", AssetType.STOCK)
        service = self.service(
            repository,
            binance=lambda r: httpx.Response(200, json=[binance_ticker("BTC")]),
            coingecko=lambda r: httpx.Response(200, json={"solana": {"usd": 150}}),
            yahoo=lambda r: httpx.Response(200, json={"quoteResponse": {"result": [{"regularMarketPrice": 190}]}}),
        )

        prices = await service.update_all_asset_prices()

        assert set(prices) == {"BTC", "SOL", "AAPL"}
        assets = {a.symbol: a for a in await repository.list_assets()}
        assert assets["SOL"].price_data.price == 150.0
        assert assets["AAPL"].price_data.price == 190.0
