"""
Language model providers for prediction extraction.

Anthropic Claude is the primary model; OpenAI ``gpt-4o-mini`` is the
fallback. ``FallbackLLM`` never raises: when both providers fail it
answers with an empty JSON array so the caller extracts nothing.

Usage:
    llm = FallbackLLM(AnthropicProvider(api_key=...), OpenAIProvider(api_key=...))
    completion = await llm.complete(prompt, label="single")
    completion.text   # raw model output
    completion.model  # model that produced it
"""

from abc import ABC, abstractmethod
from typing import NamedTuple, Optional

import anthropic
import openai
import structlog

from src.core.exceptions import LLMProviderError
from src.extraction.prompts import SYSTEM_PROMPT
from src.monitoring.metrics import track_llm_call

logger = structlog.get_logger(__name__)

EMPTY_RESPONSE = "[]"
NO_MODEL = "none"


class LLMCompletion(NamedTuple):
    text: str
    model: str


class LLMProvider(ABC):
    """A model that turns a prompt into raw text."""

    name: str = "llm"
    model: str = ""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Run the prompt.

        Raises:
            LLMProviderError: If the provider call fails.
        """
        ...


class AnthropicProvider(LLMProvider):
    """Claude through the Messages API."""

    name = "anthropic"

    def __init__(
        self,
        client: Optional[anthropic.AsyncAnthropic] = None,
        *,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 4000,
    ):
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens

    async def generate(self, prompt: str) -> str:
        try:
            with track_llm_call(self.name):
                raw = await self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": prompt}],
                )
        except anthropic.APIError as e:
            raise LLMProviderError(self.name, str(e)) from e

        if not raw.content:
            return EMPTY_RESPONSE
        return raw.content[0].text or EMPTY_RESPONSE


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions."""

    name = "openai"

    def __init__(
        self,
        client: Optional[openai.AsyncOpenAI] = None,
        *,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ):
        self.client = client or openai.AsyncOpenAI(api_key=api_key)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(self, prompt: str) -> str:
        try:
            with track_llm_call(self.name):
                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                )
        except openai.OpenAIError as e:
            raise LLMProviderError(self.name, str(e)) from e

        if not response.choices:
            return EMPTY_RESPONSE
        return response.choices[0].message.content or EMPTY_RESPONSE


class FallbackLLM:
    """Primary provider with an optional fallback."""

    def __init__(self, primary: LLMProvider, fallback: Optional[LLMProvider] = None):
        self.primary = primary
        self.fallback = fallback

    async def complete(self, prompt: str, label: str = "single") -> LLMCompletion:
        """Run the prompt on the primary, then the fallback.

        Args:
            prompt: Full prompt text.
            label: Call label for logs, e.g. ``single`` or ``chunk_2``.

        Returns:
            The completion; ``"[]"`` from no model when both providers fail.
        """
        providers = [p for p in (self.primary, self.fallback) if p is not None]
        for provider in providers:
            logger.info("llm_call_started", provider=provider.name, model=provider.model, label=label)
            try:
                text = await provider.generate(prompt)
            except LLMProviderError as e:
                logger.error("llm_call_failed", provider=provider.name, label=label, error=str(e))
                continue
            return LLMCompletion(text=text, model=provider.model)

        logger.error("llm_all_providers_failed", label=label)
        return LLMCompletion(text=EMPTY_RESPONSE, model=NO_MODEL)

    async def generate(self, prompt: str) -> str:
        return (await self.complete(prompt)).text
