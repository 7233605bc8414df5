"""Unit tests for prediction extraction: chunking, parsing, dedup, scoring and the engine."""

import json
from datetime import date

import pytest

from src.extraction.chunking import (
    CHARS_PER_TOKEN,
    OVERLAP_TOKENS,
    create_chunks,
    estimate_tokens,
    needs_chunking,
)
from src.extraction.dedup import deduplicate, deduplication_rate
from src.extraction.engine import ExtractionEngine, estimate_cost, text_context
from src.extraction.llm import FallbackLLM
from src.extraction.parser import parse_candidates
from src.extraction.prompts import build_chunk_prompt, build_comprehensive_prompt
from src.extraction.scoring import build_summary, grade_for, score_candidate
from src.models.extraction import (
    CandidateAsset,
    CandidateContext,
    CandidatePrediction,
    PredictionCandidate,
    TranscriptSpan,
    VideoContext,
)
from src.models.schemas import AssetType
from tests.conftest import FakeProvider, failing_provider


def candidate(
    symbol="BTC",
    direction="bullish",
    target=100000.0,
    timeframe="Q4",
    confidence=70.0,
    position=None,
) -> PredictionCandidate:
    return PredictionCandidate(
        asset=CandidateAsset(symbol=symbol, type=AssetType.CRYPTO, confidence=80),
        prediction=CandidatePrediction(
            text=f"{symbol} goes {direction}",
            direction=direction,
            timeframe=timeframe,
            target_price=target,
            confidence=confidence,
        ),
        context=CandidateContext(position=position),
    )


def model_output(*items: dict) -> str:
    return "Here you go:\n" + json.dumps(list(items)) + "\nDone."


BTC_ITEM = {
    "asset": {"symbol": "btc", "fullName": "Bitcoin", "type": "crypto", "confidence": 90},
    "prediction": {
        "text": "Bitcoin will reach 100k by year end",
        "direction": "BULLISH",
        "timeframe": "end of year",
        "targetDate": "2025-12-31T00:00:00Z",
        "targetPrice": "$100,000",
        "confidence": 80,
    },
    "context": {
        "exactQuote": "I think we hit a hundred k",
        "reasoning": "ETF flows",
        "marketFactors": ["ETF inflows"],
        "technicalIndicators": ["RSI"],
        "positionInTranscript": {"start": 10, "end": 60},
    },
}


class TestChunking:
    """Test token estimation and sentence-aligned chunking."""

    def test_short_content_is_single_call(self):
        """Short transcripts are not chunked."""
        context = VideoContext(video_id="v1", title="t", transcript="Short. Text.")

        assert not needs_chunking(context)
        assert estimate_tokens(context) == -(-(1 + 12 + 1000) // CHARS_PER_TOKEN)

    def test_long_transcript_is_chunked_with_overlap(self):
        """A 200,000 character transcript yields overlapping chunks."""
        sentence = "Bitcoin looks strong into the halving and I expect more upside. "
        tail = "and ethereum to ten thousand by december no doubt"
        transcript = sentence * (200_000 // len(sentence) + 1) + tail
        context = VideoContext(video_id="v1", transcript=transcript)

        assert needs_chunking(context)
        chunks = create_chunks(context.transcript)

        assert len(chunks) >= 2
        overlap = OVERLAP_TOKENS * CHARS_PER_TOKEN
        body = chunks[0]
        assert chunks[1].startswith(body[-overlap:])

        # Without the overlap prefixes the chunks cover the whole transcript
        bodies = [chunks[0]] + [chunk[overlap:] for chunk in chunks[1:]]
        assert " ".join("".join(bodies).split()) == " ".join(transcript.split())
        assert chunks[-1].endswith(tail)

    def test_unterminated_text_is_kept(self):
        transcript = "Gold breaks out. Silver follows by summer"

        chunks = create_chunks(transcript, chunk_size_tokens=3, overlap_tokens=0)

        assert [chunk.strip() for chunk in chunks] == ["Gold breaks out.", "Silver follows by summer"]

    def test_chunks_never_split_sentences(self):
        """Every chunk ends on a sentence terminator."""
        transcript = "One sentence here. " * 50
        chunks = create_chunks(transcript, chunk_size_tokens=25, overlap_tokens=0)

        assert len(chunks) > 1
        assert all(chunk.rstrip().endswith(".") for chunk in chunks)

    def test_zero_overlap_has_no_prefix(self):
        """With no overlap the chunks partition the sentences."""
        transcript = "Alpha. Beta. Gamma. Delta."
        chunks = create_chunks(transcript, chunk_size_tokens=2, overlap_tokens=0)

        assert "".join(chunks).count("Alpha.") == 1


class TestParser:
    """Test parsing of malformed and partial model output."""

    def test_parses_array_inside_prose(self):
        """The first JSON array is found even with surrounding text."""
        candidates = parse_candidates(model_output(BTC_ITEM), "claude")

        assert len(candidates) == 1
        parsed = candidates[0]
        assert parsed.asset.symbol == "BTC"
        assert parsed.asset.type == AssetType.CRYPTO
        assert parsed.prediction.direction == "bullish"
        assert parsed.prediction.target_price == 100000.0
        assert parsed.prediction.target_date == date(2025, 12, 31)
        assert parsed.context.position == TranscriptSpan(start=10, end=60)
        assert parsed.metadata.model_used == "claude"

    def test_missing_fields_get_defaults(self):
        """An empty object becomes an UNKNOWN neutral candidate."""
        parsed = parse_candidates("[{}]")[0]

        assert parsed.asset.symbol == "UNKNOWN"
        assert parsed.asset.type == AssetType.STOCK
        assert parsed.prediction.direction == "neutral"
        assert parsed.prediction.confidence == 50
        assert parsed.prediction.target_price is None

    def test_invalid_values_are_normalized(self):
        """Unknown directions and types fall back, confidences are clamped."""
        item = {
            "asset": {"symbol": "xyz", "type": "spaceship"},
            "prediction": {"direction": "sideways", "confidence": 250, "targetPrice": "soon"},
        }
        parsed = parse_candidates(json.dumps([item]))[0]

        assert parsed.asset.type == AssetType.STOCK
        assert parsed.prediction.direction == "neutral"
        assert parsed.prediction.confidence == 100
        assert parsed.prediction.target_price is None

    def test_zero_target_price_is_kept(self):
        """A target of 0 is a real target, not a missing one."""
        parsed = parse_candidates('[{"prediction": {"targetPrice": 0}}]')[0]

        assert parsed.prediction.target_price == 0.0

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2025-12-31", date(2025, 12, 31)),
            ("2025-12-31T00:00:00Z", date(2025, 12, 31)),
            ("end of year", None),
            ("12/31/2025", None),
            (20251231, None),
        ],
    )
    def test_target_date_must_be_iso(self, value, expected):
        """Relative or free-form dates are dropped, datetimes keep their date."""
        item = {"prediction": {"targetDate": value}}

        assert parse_candidates(json.dumps([item]))[0].prediction.target_date == expected

    @pytest.mark.parametrize("text", ["", "no json here", "[not json", '{"a": 1}'])
    def test_unparseable_output_yields_nothing(self, text):
        """Output without a parseable array produces no candidates."""
        assert parse_candidates(text) == []

    def test_non_object_elements_are_skipped(self):
        """Strings and numbers inside the array are ignored."""
        candidates = parse_candidates(json.dumps(["junk", 3, BTC_ITEM]))

        assert len(candidates) == 1


class TestDeduplication:
    """Test the hash, position and similarity layers."""

    def test_identical_candidates_share_hash(self):
        """The dedup key is deterministic over symbol, direction, target and timeframe."""
        assert candidate().dedup_key == candidate().dedup_key
        assert candidate().dedup_key != candidate(timeframe="Q1").dedup_key

    def test_hash_duplicates_are_dropped(self):
        """Only one of two identical candidates is kept."""
        kept = deduplicate([candidate(), candidate()])

        assert len(kept) == 1
        assert kept[0].metadata.dedup_hash == candidate().dedup_key

    def test_overlapping_positions_are_dropped(self):
        """A candidate starting inside a kept span is a duplicate."""
        first = candidate(symbol="ETH", position=TranscriptSpan(start=0, end=100))
        second = candidate(symbol="SOL", position=TranscriptSpan(start=50, end=150))

        kept = deduplicate([first, second])

        assert [c.asset.symbol for c in kept] == ["ETH"]

    def test_similar_candidate_with_higher_confidence_wins(self):
        """Same asset, direction and target: the more confident one is kept."""
        low = candidate(timeframe="soon", confidence=40)
        high = candidate(timeframe="by december", confidence=90)

        kept = deduplicate([low, high])

        assert len(kept) == 1
        assert kept[0].prediction.confidence == 90

    def test_distinct_candidates_are_kept_in_order(self):
        """Different assets survive in first-seen order."""
        kept = deduplicate([candidate(symbol="BTC"), candidate(symbol="ETH"), candidate(symbol="SOL")])

        assert [c.asset.symbol for c in kept] == ["BTC", "ETH", "SOL"]

    def test_deduplication_rate(self):
        assert deduplication_rate(4, 3) == 25.0
        assert deduplication_rate(0, 0) == 0.0


class TestScoring:
    """Test quality scores, grades and summaries."""

    @pytest.mark.parametrize(
        "score,grade",
        [(95, "A"), (90, "A"), (85, "B"), (70, "C"), (60, "D"), (59.9, "F")],
    )
    def test_grades(self, score, grade):
        assert grade_for(score) == grade

    def test_score_rewards_detail(self):
        """Target, date, quote, reasoning and factors all add to the score."""
        parsed = parse_candidates(json.dumps([BTC_ITEM]))[0]
        scored = score_candidate(parsed)

        # 50 + 90*0.2 + 80*0.2 + 10 + 10 + 10 + 5 + 5
        assert scored.metadata.quality_score == 124
        assert scored.metadata.quality_grade == "A"

    def test_bare_candidate_scores_low(self):
        """A default candidate still gets a grade."""
        scored = score_candidate(PredictionCandidate())

        assert scored.metadata.quality_score == 70
        assert scored.metadata.quality_grade == "C"

    def test_summary(self):
        """The summary counts assets, sentiment and ranks by confidence."""
        candidates = [
            candidate(symbol="BTC", confidence=60),
            candidate(symbol="ETH", direction="bearish", confidence=90),
            candidate(symbol="BTC", timeframe="Q1", confidence=30),
        ]
        summary = build_summary(candidates)

        assert summary.total_predictions == 3
        assert summary.unique_assets == 2
        assert summary.asset_list == ["BTC", "ETH"]
        assert summary.sentiment_breakdown == {"bullish": 2, "bearish": 1}
        assert summary.average_confidence == 60
        assert summary.top_predictions[0].asset == "ETH"


class TestPrompts:
    """Test prompt construction."""

    def test_comprehensive_prompt_includes_content(self):
        context = VideoContext(video_id="v1", title="BTC outlook", channel_name="Macro Mike", transcript="Buy.")
        prompt = build_comprehensive_prompt(context, today=date(2025, 3, 1))

        assert "BTC outlook" in prompt
        assert "Macro Mike" in prompt
        assert "Buy." in prompt
        assert "2025" in prompt

    def test_chunk_prompt_numbers_chunks_from_one(self):
        context = VideoContext(video_id="v1", title="BTC outlook")
        prompt = build_chunk_prompt("chunk body", context, 0, 3, today=date(2025, 3, 1))

        assert "chunk body" in prompt
        assert "chunk 1/3" in prompt


class TestExtractionEngine:
    """Test the end-to-end extraction flow with scripted providers."""

    @pytest.mark.asyncio
    async def test_single_call_extraction(self):
        """Short content is extracted in one call and summarized."""
        provider = FakeProvider("anthropic", model_output(BTC_ITEM, BTC_ITEM))
        engine = ExtractionEngine(FallbackLLM(provider), today=lambda: date(2025, 3, 1))

        result = await engine.extract(
            VideoContext(video_id="v1", title="BTC", transcript="Bitcoin to 100k.")
        )

        assert len(provider.prompts) == 1
        assert len(result.predictions) == 1
        assert result.metadata.chunks_processed == 1
        assert result.metadata.deduplication_rate == 50.0
        assert result.metadata.model_used == "anthropic-model"
        assert result.summary.asset_list == ["BTC"]

    @pytest.mark.asyncio
    async def test_fallback_provider_used_when_primary_fails(self):
        """The fallback answers when the primary raises."""
        fallback = FakeProvider("openai", model_output(BTC_ITEM), model="gpt-4o-mini")
        engine = ExtractionEngine(FallbackLLM(failing_provider("anthropic"), fallback))

        result = await engine.extract(VideoContext(video_id="v1", transcript="text."))

        assert len(result.predictions) == 1
        assert result.metadata.model_used == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_all_providers_failing_extracts_nothing(self):
        """With every provider down the result is empty, not an error."""
        llm = FallbackLLM(failing_provider("anthropic"), failing_provider("openai"))

        result = await ExtractionEngine(llm).extract(VideoContext(video_id="v1", transcript="text."))

        assert result.predictions == []
        assert result.metadata.model_used == "none"
        assert result.summary.total_predictions == 0

    @pytest.mark.asyncio
    async def test_chunked_extraction_calls_once_per_chunk(self):
        """Long transcripts are extracted chunk by chunk."""
        transcript = "Ethereum will outperform this cycle for sure. " * 5000
        provider = FakeProvider("anthropic", model_output(BTC_ITEM))
        engine = ExtractionEngine(FallbackLLM(provider))

        result = await engine.extract(VideoContext(video_id="v1", transcript=transcript))

        chunks = create_chunks(transcript)
        assert result.metadata.chunks_processed == len(chunks)
        assert len(provider.prompts) == len(chunks)
        # Every chunk returned the same prediction
        assert len(result.predictions) == 1

    def test_estimate_cost(self):
        assert estimate_cost(50_000) == 0.05

    def test_text_context(self):
        context = text_context("BTC to the moon", "tweet-1", channel_name="@mike")

        assert context.transcript == "BTC to the moon"
        assert context.channel_name == "@mike"
