"""Technical indicators — EMA, RSI, volume ratio, VWAP. Pure functions, no I/O."""

import math
from collections.abc import Sequence

from hedgeforge.strategy.models import IndicatorSnapshot, PriceSample
from hedgeforge.strategy.trend import detect_trend


def calculate_ema(prices: Sequence[float], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series.

    Uses the standard EMA formula:
        ``EMA_today = price × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    The first EMA value is seeded with the SMA of the first *period*
    prices.  Entries before the seed are ``float('nan')``.

    Raises ``ValueError`` if fewer than *period* prices are provided.
    """
    if len(prices) < period:
        raise ValueError(
            f"Need at least {period} prices for EMA({period}), got {len(prices)}"
        )

    k = 2.0 / (period + 1)
    ema: list[float] = [float("nan")] * len(prices)
    ema[period - 1] = sum(prices[:period]) / period
    for i in range(period, len(prices)):
        ema[i] = prices[i] * k + ema[i - 1] * (1 - k)
    return ema


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(prices: Sequence[float], period: int = 14) -> list[float]:
    """Calculate Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = price[i] - price[i-1]
        2. Seed average gain/loss = SMA of first *period* deltas.
        3. Subsequent: avg = (prev_avg × (period-1) + current) / period
        4. RSI = 100 - 100 / (1 + avg_gain / avg_loss)

    Requires at least ``period + 1`` prices.  Returns a list the same
    length as *prices*; entries before the seed are ``float('nan')``.
    """
    if len(prices) < period + 1:
        raise ValueError(
            f"Need at least {period + 1} prices for RSI({period}), got {len(prices)}"
        )

    deltas = [prices[i] - prices[i - 1] for i in range(1, len(prices))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    def _rsi(avg_gain: float, avg_loss: float) -> float:
        if avg_loss == 0:
            return 100.0
        return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)

    rsi: list[float] = [float("nan")] * len(prices)
    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    rsi[period] = _rsi(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        rsi[i + 1] = _rsi(avg_gain, avg_loss)
    return rsi


# ── Volume / VWAP ────────────────────────────────────────────────────────


def calculate_volume_sma(volumes: Sequence[float], period: int = 20) -> float:
    """Simple average of the last *period* volumes."""
    if len(volumes) < period:
        raise ValueError(
            f"Need at least {period} volumes for SMA({period}), got {len(volumes)}"
        )
    return sum(volumes[-period:]) / period


def calculate_volume_ratio(volumes: Sequence[float], period: int = 20) -> float:
    """Latest volume divided by its *period* SMA (0 when the SMA is 0)."""
    sma = calculate_volume_sma(volumes, period)
    if sma == 0:
        return 0.0
    return volumes[-1] / sma


def calculate_vwap(samples: Sequence[PriceSample]) -> float:
    """Volume-weighted average price over *samples*.

    Falls back to the plain average when total volume is zero.
    """
    if not samples:
        raise ValueError("Need at least 1 sample for VWAP, got 0")
    total_volume = sum(s.volume for s in samples)
    if total_volume == 0:
        return sum(s.price for s in samples) / len(samples)
    return sum(s.price * s.volume for s in samples) / total_volume


def build_snapshot(
    samples: Sequence[PriceSample],
    ema_fast: int = 9,
    ema_slow: int = 18,
    rsi_period: int = 14,
    volume_period: int = 20,
) -> IndicatorSnapshot:
    """Compute one timeframe's ``IndicatorSnapshot`` from oldest-first samples.

    Raises ``ValueError`` when there are too few samples for the slowest
    indicator.
    """
    needed = max(ema_slow, rsi_period + 2, volume_period)
    if len(samples) < needed:
        raise ValueError(
            f"Need at least {needed} samples for a snapshot, got {len(samples)}"
        )

    prices = [s.price for s in samples]
    volumes = [s.volume for s in samples]
    rsi_series = calculate_rsi(prices, rsi_period)
    fast = calculate_ema(prices, ema_fast)[-1]
    slow = calculate_ema(prices, ema_slow)[-1]
    vwap = calculate_vwap(samples)
    previous = rsi_series[-2]

    return IndicatorSnapshot(
        rsi=rsi_series[-1],
        rsi_previous=None if math.isnan(previous) else previous,
        ema_fast=fast,
        ema_slow=slow,
        volume_ratio=calculate_volume_ratio(volumes, volume_period),
        volume_sma=calculate_volume_sma(volumes, volume_period),
        vwap=vwap,
        vwap_distance_pct=(prices[-1] - vwap) / vwap * 100.0 if vwap else None,
        trend=detect_trend(fast, slow),
    )
