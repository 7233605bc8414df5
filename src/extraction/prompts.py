"""Prompt templates for prediction extraction."""

from datetime import date
from typing import Optional

from src.models.extraction import VideoContext

SYSTEM_PROMPT = "You are a financial analyst. Extract predictions and return ONLY valid JSON array."

COMPREHENSIVE_TEMPLATE = """You are an expert financial analyst extracting ALL predictions from video content.

VIDEO INFORMATION:
==================
Title: {title}
Channel: {channel}
Published: {published}
Description: {description}

FULL TRANSCRIPT:
===============
{transcript}

EXTRACTION TASK:
===============
Extract EVERY financial prediction made in this video. For each prediction:

1. ASSET IDENTIFICATION (use full video context):
   - symbol: The EXACT ticker/symbol mentioned (e.g., XRP, BTC, ETH, AAPL, TSLA)
   - fullName: Complete official name (e.g., "Ripple" for XRP, "Bitcoin" for BTC)
   - type: CRYPTO, STOCK, ETF, INDEX, COMMODITY, CURRENCY, BOND, OPTION, FUTURE
   - dataSource: binance (major crypto), yfinance (stocks/ETFs), coingecko (altcoins)
   - alternativeSymbols: Other symbols used
   - confidence: 0-100

2. PREDICTION DETAILS:
   - text: Complete prediction statement
   - direction: bullish/bearish/neutral
   - timeframe: Exact timeframe mentioned
   - targetDate: ALWAYS an ISO date (YYYY-MM-DD). Convert relative dates:
     * "Q1 {year}" -> "{year}-03-31", "Q2 {year}" -> "{year}-06-30"
     * "Q3 {year}" -> "{year}-09-30", "Q4 {year}" -> "{year}-12-31"
     * "end of year" -> {year}-12-31
     * "next month" -> 1 month from today
     * "next few months" -> 3 months from today
     * "within 6 months" -> 6 months from today
   - targetPrice: Specific target if mentioned (number only)
   - confidence: 0-100

   TODAY'S DATE: {today}

DIRECTION RULES:
- Target price above the current price = bullish
- Target price below the current price = bearish
- Target within 2% of the current price = neutral
- Do not rely on language sentiment alone

3. CONTEXT:
   - exactQuote: Exact words from the transcript
   - reasoning: Why the prediction was made
   - marketFactors: Market conditions
   - technicalIndicators: Technical analysis mentioned
   - fundamentalPoints: Fundamental analysis points
   - positionInTranscript: {{"start": char_position, "end": char_position}}

RULES:
- Extract the actual ticker; never return "UNKNOWN" as a symbol
- Assets named in the title are key focus assets
- Fix common typos ("Bitcon" -> "BTC", "Etherium" -> "ETH")
- Unwrap tokens ("WBTC" -> "BTC", "stETH" -> "ETH")
- Pairs: "BTC/USD" -> "BTC"; "XRP and XLM" -> one prediction each
- Price ranges use the upper bound; "crash to zero" -> targetPrice 0
- Multiples ("double", "10x") apply to the current price
- SKIP questions, jokes, sarcasm and hypotheticals
- REDUCE confidence for hedged or second-hand statements

Return ONLY a valid JSON array with this structure:
[
  {{
    "asset": {{
      "symbol": "XRP",
      "fullName": "Ripple",
      "type": "CRYPTO",
      "dataSource": "binance",
      "alternativeSymbols": [],
      "confidence": 95
    }},
    "prediction": {{
      "text": "XRP will hit $5 by end of year",
      "direction": "bullish",
      "timeframe": "end of year",
      "targetDate": "{year}-12-31",
      "targetPrice": 5,
      "confidence": 85
    }},
    "context": {{
      "exactQuote": "I believe XRP will hit $5 by end of year",
      "reasoning": "SEC lawsuit ending and institutional adoption",
      "marketFactors": ["SEC lawsuit resolution", "institutional adoption"],
      "technicalIndicators": [],
      "fundamentalPoints": ["adoption growing"],
      "positionInTranscript": {{"start": 100, "end": 200}}
    }}
  }}
]"""

CHUNK_TEMPLATE = """You are extracting predictions from chunk {index}/{total} of a video.

VIDEO CONTEXT:
Title: {title}
Channel: {channel}
TODAY'S DATE: {today}

CHUNK CONTENT:
{chunk}

Extract all financial predictions from this chunk. Focus on specific asset
symbols, target prices (number only), ISO target dates and timeframes.

Return ONLY a JSON array where each element has "asset" (symbol, fullName,
type, dataSource, alternativeSymbols, confidence), "prediction" (text,
direction, timeframe, targetDate, targetPrice, confidence) and "context"
(exactQuote, reasoning, marketFactors, technicalIndicators,
fundamentalPoints, positionInTranscript)."""


def build_comprehensive_prompt(context: VideoContext, today: Optional[date] = None) -> str:
    today = today or date.today()
    return COMPREHENSIVE_TEMPLATE.format(
        title=context.title,
        channel=context.channel_name or "Unknown",
        published=context.published_at.isoformat() if context.published_at else "Unknown",
        description=context.description or "No description",
        transcript=context.transcript,
        today=today.isoformat(),
        year=today.year,
    )


def build_chunk_prompt(
    chunk: str,
    context: VideoContext,
    index: int,
    total: int,
    today: Optional[date] = None,
) -> str:
    """Build the prompt for chunk ``index`` (0-based) of ``total``."""
    today = today or date.today()
    return CHUNK_TEMPLATE.format(
        index=index + 1,
        total=total,
        title=context.title,
        channel=context.channel_name or "Unknown",
        today=today.isoformat(),
        chunk=chunk,
    )
