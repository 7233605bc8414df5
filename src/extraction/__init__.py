"""
Prediction extraction from transcripts and posts.

- chunking: Token estimates and sentence-aligned chunks
- prompts: Extraction prompt templates
- llm: Anthropic primary / OpenAI fallback providers
- parser: Model output -> ``PredictionCandidate``
- dedup: Hash, position and similarity deduplication
- scoring: Quality grades and summaries
- engine: ``ExtractionEngine`` orchestration
- writer: ``PredictionWriter`` persistence with direction correction
"""

from src.extraction.chunking import create_chunks, estimate_tokens
from src.extraction.dedup import deduplicate
from src.extraction.engine import ExtractionEngine, text_context
from src.extraction.llm import AnthropicProvider, FallbackLLM, LLMProvider, OpenAIProvider
from src.extraction.parser import parse_candidates
from src.extraction.scoring import build_summary, score_candidate
from src.extraction.writer import PredictionWriter

__all__ = [
    "AnthropicProvider",
    "ExtractionEngine",
    "FallbackLLM",
    "LLMProvider",
    "OpenAIProvider",
    "PredictionWriter",
    "build_summary",
    "create_chunks",
    "deduplicate",
    "estimate_tokens",
    "parse_candidates",
    "score_candidate",
    "text_context",
]
