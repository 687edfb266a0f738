"""Optional advisory filter — sentiment/regime/risk veto for new exposure.

The filter is an external collaborator.  Its absence, the absence of an
analysis, or a failure inside the filter all mean "allow".
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

from hedgeforge.models.position import Side
from hedgeforge.strategy.models import TradingSignal

logger = logging.getLogger("hedgeforge.advisory")


class Recommendation(str, Enum):
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"
    STRONG_SELL = "STRONG_SELL"
    AVOID = "AVOID"


@dataclass(frozen=True)
class AdvisoryAnalysis:
    """One advisory assessment of the market."""

    sentiment_score: float  # -1 (bearish) .. 1 (bullish)
    regime: str  # e.g. "TRENDING_UP", "RANGING", "VOLATILE"
    risk_score: float  # 0 .. 1
    confidence: float  # 0 .. 1
    recommendation: Recommendation

    def __post_init__(self) -> None:
        if not -1.0 <= self.sentiment_score <= 1.0:
            raise ValueError(f"sentiment_score must be within [-1, 1], got {self.sentiment_score}")
        if not 0.0 <= self.risk_score <= 1.0:
            raise ValueError(f"risk_score must be within [0, 1], got {self.risk_score}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")


class _NoAdvisory:
    """Marker for "no analysis available this cycle"."""

    _instance: Optional["_NoAdvisory"] = None

    def __new__(cls) -> "_NoAdvisory":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_ADVISORY"

    def __bool__(self) -> bool:
        return False


NO_ADVISORY = _NoAdvisory()

Advisory = AdvisoryAnalysis | _NoAdvisory


@runtime_checkable
class AdvisoryFilter(Protocol):
    """Returns ``True`` to allow *signal*, ``False`` to veto it."""

    def allow(self, signal: TradingSignal, analysis: AdvisoryAnalysis) -> bool:
        ...


class RuleBasedAdvisoryFilter:
    """Veto rules applied to entry and re-entry signals.

    Vetoes when the recommendation is AVOID, when the risk score reaches
    *max_risk*, or when a confident recommendation strongly opposes the
    signal side (STRONG_SELL against LONG, STRONG_BUY against SHORT).
    Analyses below *min_confidence* are ignored.
    """

    def __init__(self, max_risk: float = 0.8, min_confidence: float = 0.3) -> None:
        self._max_risk = max_risk
        self._min_confidence = min_confidence

    def allow(self, signal: TradingSignal, analysis: AdvisoryAnalysis) -> bool:
        if analysis.confidence < self._min_confidence:
            return True
        if analysis.recommendation is Recommendation.AVOID:
            return False
        if analysis.risk_score >= self._max_risk:
            return False
        if signal.side is Side.LONG and analysis.recommendation is Recommendation.STRONG_SELL:
            return False
        if signal.side is Side.SHORT and analysis.recommendation is Recommendation.STRONG_BUY:
            return False
        return True


def allow_signal(
    advisory_filter: Optional[AdvisoryFilter],
    signal: TradingSignal,
    analysis: Advisory = NO_ADVISORY,
) -> bool:
    """Apply *advisory_filter* to *signal*, defaulting to allow."""
    if advisory_filter is None or not isinstance(analysis, AdvisoryAnalysis):
        return True
    try:
        allowed = advisory_filter.allow(signal, analysis)
    except Exception:
        logger.exception("Advisory filter failed; allowing %s signal.", signal.signal_type.value)
        return True
    if not allowed:
        logger.info(
            "Advisory veto: %s %s (recommendation=%s, risk=%.2f)",
            signal.signal_type.value, signal.side.value,
            analysis.recommendation.value, analysis.risk_score,
        )
    return bool(allowed)
