"""
Numeric direction correction.

The model labels a prediction bullish, bearish or neutral from language
alone. When both a target and a baseline price are known, the direction
implied by the numbers wins:

    pct = (target - baseline) / baseline * 100
    |pct| < 2  -> NEUTRAL
    pct > 0    -> BULLISH
    otherwise  -> BEARISH
"""

from typing import Optional

from src.models.schemas import Direction, DirectionCorrection

NEUTRAL_BAND_PERCENT = 2.0
INSUFFICIENT_DATA_REASON = "Insufficient price data for mathematical validation"


def normalize_direction(value: Optional[str]) -> Direction:
    try:
        return Direction(str(value or Direction.NEUTRAL.value).upper())
    except ValueError:
        return Direction.NEUTRAL


def mathematical_direction(price_change_percent: float) -> Direction:
    if abs(price_change_percent) < NEUTRAL_BAND_PERCENT:
        return Direction.NEUTRAL
    return Direction.BULLISH if price_change_percent > 0 else Direction.BEARISH


def correct_direction(
    target_price: Optional[float],
    baseline_price: Optional[float],
    ai_direction: Optional[str],
) -> tuple[Direction, DirectionCorrection]:
    """Reconcile the model's direction with the price move it implies.

    Args:
        target_price: Predicted price, if any.
        baseline_price: Price when the prediction was extracted, if known.
        ai_direction: Direction the model assigned, any case.

    Returns:
        The final direction and the audit record.
    """
    original = normalize_direction(ai_direction)

    if target_price is None or not baseline_price or baseline_price <= 0:
        return original, DirectionCorrection(
            original_ai_direction=original.value,
            reasoning=INSUFFICIENT_DATA_REASON,
        )

    price_change = target_price - baseline_price
    price_change_percent = price_change / baseline_price * 100
    numeric = mathematical_direction(price_change_percent)

    if numeric != original:
        reasoning = (
            f"AI classified as {original.value} but mathematically {numeric.value} "
            f"({price_change_percent:.1f}% change)"
        )
    else:
        reasoning = f"AI and mathematical direction aligned ({price_change_percent:.1f}% change)"

    return numeric, DirectionCorrection(
        original_ai_direction=original.value,
        mathematical_direction=numeric,
        correction_made=numeric != original,
        price_change=price_change,
        price_change_percent=price_change_percent,
        reasoning=reasoning,
    )
