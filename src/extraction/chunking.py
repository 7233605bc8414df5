"""
Token estimation and sentence-aligned chunking for long transcripts.

One token is approximated as four characters. Content estimated under
``MAX_SINGLE_CALL_TOKENS`` goes to the model in one call; anything longer
is split into ``CHUNK_SIZE_TOKENS`` chunks that never cut a sentence, each
prefixed with the tail of the previous chunk.
"""

import math
import re

from src.models.extraction import VideoContext

CHARS_PER_TOKEN = 4
PROMPT_OVERHEAD_CHARS = 1000

MAX_SINGLE_CALL_TOKENS = 50_000
CHUNK_SIZE_TOKENS = 30_000
OVERLAP_TOKENS = 2_000

SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


def estimate_tokens(context: VideoContext) -> int:
    total_chars = (
        len(context.title or "")
        + len(context.description or "")
        + len(context.transcript or "")
        + PROMPT_OVERHEAD_CHARS
    )
    return math.ceil(total_chars / CHARS_PER_TOKEN)


def needs_chunking(context: VideoContext) -> bool:
    return estimate_tokens(context) >= MAX_SINGLE_CALL_TOKENS


def split_sentences(text: str) -> list[str]:
    """Split after sentence terminators.

    Trailing text without a terminator is kept as the last sentence.
    """
    return [sentence for sentence in SENTENCE_BREAK.split(text) if sentence.strip()]


def create_chunks(
    transcript: str,
    chunk_size_tokens: int = CHUNK_SIZE_TOKENS,
    overlap_tokens: int = OVERLAP_TOKENS,
) -> list[str]:
    """Split a transcript into overlapping chunks on sentence boundaries.

    Args:
        transcript: Full transcript text.
        chunk_size_tokens: Target chunk body size in tokens.
        overlap_tokens: Tokens of the previous chunk body prefixed to the next.

    Returns:
        Chunks in transcript order.
    """
    chunk_size = chunk_size_tokens * CHARS_PER_TOKEN
    overlap = overlap_tokens * CHARS_PER_TOKEN

    chunks: list[str] = []
    current = ""
    previous_overlap = ""

    for sentence in split_sentences(transcript):
        if current and len(current) + len(sentence) > chunk_size:
            chunks.append(previous_overlap + current)
            previous_overlap = current[-overlap:] if overlap else ""
            current = " " + sentence
        else:
            current += " " + sentence

    if current.strip():
        chunks.append(previous_overlap + current)

    return chunks
