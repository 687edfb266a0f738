"""Trend detection — dual-EMA directional bias."""

from typing import Literal

TrendLabel = Literal["BULLISH", "BEARISH", "SIDEWAYS"]


def detect_trend(
    ema_fast: float,
    ema_slow: float,
    sideways_threshold: float = 0.01,
) -> TrendLabel:
    """Classify trend direction from a fast/slow EMA pair.

    Args:
        ema_fast: Latest fast EMA value.
        ema_slow: Latest slow EMA value.
        sideways_threshold: Relative EMA gap below which the market is
            considered directionless (default 1 %).

    Returns:
        "BULLISH", "BEARISH" or "SIDEWAYS".

    Rules:
        - **Sideways**: ``|fast - slow| / slow`` below the threshold.
        - **Bullish**: fast above slow.
        - **Bearish**: fast below slow.
    """
    if ema_slow <= 0 or abs(ema_fast - ema_slow) / ema_slow < sideways_threshold:
        return "SIDEWAYS"
    return "BULLISH" if ema_fast > ema_slow else "BEARISH"
