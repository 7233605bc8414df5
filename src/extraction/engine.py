"""
Prediction extraction engine.

Flow:
    estimate tokens -> single call or sentence-aligned chunks
    -> parse -> deduplicate -> quality score -> summary + metadata

Usage:
    engine = ExtractionEngine(llm)
    result = await engine.extract(VideoContext(video_id="abc", title=..., transcript=...))
"""

import time
from datetime import date
from typing import Callable, Optional

import structlog

from src.extraction.chunking import create_chunks, estimate_tokens, needs_chunking
from src.extraction.dedup import deduplicate, deduplication_rate
from src.extraction.llm import NO_MODEL, FallbackLLM
from src.extraction.parser import parse_candidates
from src.extraction.prompts import build_chunk_prompt, build_comprehensive_prompt
from src.extraction.scoring import build_summary, score_candidate
from src.models.extraction import (
    ExtractionMetadata,
    ExtractionResult,
    PredictionCandidate,
    VideoContext,
)

logger = structlog.get_logger(__name__)

COST_PER_1K_TOKENS = 0.001


def estimate_cost(tokens: int) -> float:
    return round(tokens / 1000 * COST_PER_1K_TOKENS, 2)


class ExtractionEngine:
    """Extracts scored, deduplicated prediction candidates from content."""

    def __init__(self, llm: FallbackLLM, today: Callable[[], date] = date.today):
        self._llm = llm
        self._today = today

    async def extract(self, context: VideoContext) -> ExtractionResult:
        """Extract predictions from one piece of content.

        Args:
            context: Title, description and transcript of the content.

        Returns:
            Candidates with quality scores, a summary and run metadata.
        """
        started = time.perf_counter()
        tokens = estimate_tokens(context)
        logger.info(
            "extraction_started",
            video_id=context.video_id,
            title=context.title,
            estimated_tokens=tokens,
        )

        models_used: list[str] = []
        if needs_chunking(context):
            raw, chunks_processed = await self._extract_chunked(context, models_used)
        else:
            raw = await self._extract_single(context, models_used)
            chunks_processed = 1

        deduped = deduplicate(raw)
        dedup_rate = deduplication_rate(len(raw), len(deduped))
        scored = [score_candidate(c) for c in deduped]

        metadata = ExtractionMetadata(
            video_id=context.video_id,
            model_used=",".join(dict.fromkeys(m for m in models_used if m != NO_MODEL)) or NO_MODEL,
            total_processing_time_ms=int((time.perf_counter() - started) * 1000),
            chunks_processed=chunks_processed,
            deduplication_rate=dedup_rate,
            tokens_used=tokens,
            estimated_cost=estimate_cost(tokens),
        )
        logger.info(
            "extraction_complete",
            video_id=context.video_id,
            raw_predictions=len(raw),
            predictions=len(scored),
            deduplication_rate=round(dedup_rate, 1),
            chunks=chunks_processed,
            duration_ms=metadata.total_processing_time_ms,
        )
        return ExtractionResult(
            predictions=scored,
            summary=build_summary(scored),
            metadata=metadata,
        )

    async def _extract_single(
        self,
        context: VideoContext,
        models_used: list[str],
    ) -> list[PredictionCandidate]:
        prompt = build_comprehensive_prompt(context, today=self._today())
        completion = await self._llm.complete(prompt, label="single")
        models_used.append(completion.model)
        return parse_candidates(completion.text, completion.model)

    async def _extract_chunked(
        self,
        context: VideoContext,
        models_used: list[str],
    ) -> tuple[list[PredictionCandidate], int]:
        chunks = create_chunks(context.transcript)
        logger.info("extraction_chunked", video_id=context.video_id, chunks=len(chunks))

        candidates: list[PredictionCandidate] = []
        for index, chunk in enumerate(chunks):
            label = f"chunk_{index + 1}"
            prompt = build_chunk_prompt(chunk, context, index, len(chunks), today=self._today())
            try:
                completion = await self._llm.complete(prompt, label=label)
            except Exception as e:
                logger.error("extraction_chunk_failed", video_id=context.video_id, chunk=label, error=str(e))
                continue
            models_used.append(completion.model)
            found = parse_candidates(completion.text, completion.model)
            logger.debug("extraction_chunk_complete", chunk=label, predictions=len(found))
            candidates.extend(found)

        return candidates, len(chunks)


def text_context(
    text: str,
    content_id: str,
    title: str = "",
    channel_name: Optional[str] = None,
) -> VideoContext:
    """Build a context for content that has only a text body, such as a tweet."""
    return VideoContext(
        video_id=content_id,
        title=title,
        channel_name=channel_name or "",
        transcript=text,
    )
