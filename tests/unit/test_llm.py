"""Unit tests for the language model providers."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest

from src.core.exceptions import LLMProviderError
from src.extraction.llm import EMPTY_RESPONSE, NO_MODEL, AnthropicProvider, FallbackLLM, OpenAIProvider
from src.extraction.prompts import SYSTEM_PROMPT
from tests.conftest import FakeProvider, failing_provider

REQUEST = httpx.Request("POST", "https://api.example.com/v1")


def anthropic_client(response=None, error=None):
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=response, side_effect=error)
    return client


def openai_client(response=None, error=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response, side_effect=error)
    return client


class TestAnthropicProvider:
    @pytest.mark.asyncio
    async def test_generate(self):
        client = anthropic_client(SimpleNamespace(content=[SimpleNamespace(text='[{"a": 1}]')]))
        provider = AnthropicProvider(client, model="claude-test")

        assert await provider.generate("find predictions") == '[{"a": 1}]'
        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["system"] == SYSTEM_PROMPT
        assert kwargs["messages"] == [{"role": "user", "content": "find predictions"}]

    @pytest.mark.asyncio
    async def test_empty_content(self):
        provider = AnthropicProvider(anthropic_client(SimpleNamespace(content=[])))

        assert await provider.generate("prompt") == EMPTY_RESPONSE

    @pytest.mark.asyncio
    async def test_api_error_is_wrapped(self):
        provider = AnthropicProvider(anthropic_client(error=anthropic.APIConnectionError(request=REQUEST)))

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.generate("prompt")

        assert exc_info.value.provider == "anthropic"


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_generate(self):
        message = SimpleNamespace(content="[]")
        client = openai_client(SimpleNamespace(choices=[SimpleNamespace(message=message)]))
        provider = OpenAIProvider(client)

        assert await provider.generate("prompt") == "[]"
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0.1
        assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}

    @pytest.mark.asyncio
    async def test_api_error_is_wrapped(self):
        provider = OpenAIProvider(openai_client(error=openai.APIConnectionError(request=REQUEST)))

        with pytest.raises(LLMProviderError):
            await provider.generate("prompt")


class TestFallbackLLM:
    """Test primary/fallback ordering."""

    @pytest.mark.asyncio
    async def test_primary_answers(self):
        primary = FakeProvider("anthropic", "[1]")
        fallback = FakeProvider("openai", "[2]")

        completion = await FallbackLLM(primary, fallback).complete("prompt")

        assert completion == ("[1]", "anthropic-model")
        assert fallback.prompts == []

    @pytest.mark.asyncio
    async def test_fallback_answers_when_primary_fails(self):
        fallback = FakeProvider("openai", "[2]")

        completion = await FallbackLLM(failing_provider("anthropic"), fallback).complete("prompt")

        assert completion.text == "[2]"
        assert completion.model == "openai-model"

    @pytest.mark.asyncio
    async def test_all_failing_returns_empty_array(self):
        llm = FallbackLLM(failing_provider("anthropic"), failing_provider("openai"))

        completion = await llm.complete("prompt", label="chunk_2")

        assert completion.text == EMPTY_RESPONSE
        assert completion.model == NO_MODEL

    @pytest.mark.asyncio
    async def test_without_fallback(self):
        assert await FallbackLLM(failing_provider("anthropic")).generate("prompt") == EMPTY_RESPONSE
