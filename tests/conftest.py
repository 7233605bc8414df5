"""
Pytest Configuration and Shared Fixtures.

This module provides common fixtures for all tests:

- store / repository: InMemoryStore and a PipelineRepository over it
- forecaster / channel: Sample verified forecaster and its YouTube channel
- asset: Sample BTC asset with a stored price snapshot
- market: MarketDataService double with an AsyncMock ``get_price``
- FakeProvider: Scripted LLM provider
"""

from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.circuit_breaker import reset_all_circuit_breakers
from src.core.exceptions import LLMProviderError
from src.extraction.llm import LLMProvider
from src.market.service import MarketDataService
from src.models.schemas import (
    AssetType,
    Channel,
    Forecaster,
    PriceData,
    PriceQuote,
    SourceType,
)
from src.store.memory_store import InMemoryStore
from src.store.repository import PipelineRepository


class FakeProvider(LLMProvider):
    """LLM provider returning scripted responses, or raising when given an exception."""

    def __init__(self, name: str, responses, model: Optional[str] = None):
        self.name = name
        self.model = model or f"{name}-model"
        self._responses = list(responses) if isinstance(responses, (list, tuple)) else [responses]
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        response = self._responses[min(len(self.prompts), len(self._responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response


def failing_provider(name: str) -> FakeProvider:
    return FakeProvider(name, LLMProviderError(name, "provider unavailable"))


@pytest.fixture(autouse=True)
def reset_breakers():
    """Circuit breakers are process-wide; start every test closed."""
    reset_all_circuit_breakers()
    yield
    reset_all_circuit_breakers()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def repository(store) -> PipelineRepository:
    return PipelineRepository(store)


@pytest.fixture
async def forecaster(repository) -> Forecaster:
    return await repository.insert_forecaster(Forecaster(name="Macro Mike", is_verified=True))


@pytest.fixture
async def channel(repository, forecaster) -> Channel:
    return await repository.insert_channel(
        Channel(
            forecaster_id=forecaster.id,
            channel_type=SourceType.YOUTUBE,
            external_id="UC_macro_mike",
            channel_name="Macro Mike",
        )
    )


@pytest.fixture
async def asset(repository):
    btc = await repository.upsert_asset("BTC", AssetType.CRYPTO, name="Bitcoin")
    await repository.update_asset_price_data(
        btc.id, PriceData(price=100.0, change_24h=0.5, price_24h_ago=100.0, source="binance")
    )
    return await repository.get_asset(btc.id)


def quote(symbol: str, price: float, change_24h: float = 0.0) -> PriceQuote:
    return PriceQuote(symbol=symbol, price=price, change_24h=change_24h, source="test")


@pytest.fixture
def market() -> MagicMock:
    """Market data double; set ``market.get_price.return_value`` per test."""
    service = MagicMock(spec=MarketDataService)
    service.get_price = AsyncMock(return_value=None)
    return service
