"""Strategy data models — market inputs and signal outputs of one cycle."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from hedgeforge.models.position import PositionRole, Side


@dataclass(frozen=True)
class PriceSample:
    """A single price/volume observation (one closed candle)."""

    price: float
    volume: float
    timestamp: datetime


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Read-only indicator bundle for one timeframe and one cycle.

    Any field may be ``None`` when the provider had too little data; checks
    that depend on a missing value are skipped for the cycle.
    """

    rsi: Optional[float] = None
    rsi_previous: Optional[float] = None  # RSI one candle earlier
    ema_fast: Optional[float] = None
    ema_slow: Optional[float] = None
    volume_ratio: Optional[float] = None
    volume_sma: Optional[float] = None
    vwap: Optional[float] = None
    vwap_distance_pct: Optional[float] = None  # (price - vwap) / vwap × 100
    trend: str = "SIDEWAYS"  # "BULLISH", "BEARISH" or "SIDEWAYS"


@dataclass(frozen=True)
class MarketCycle:
    """Everything the decision engine may read during one evaluation.

    The price, the snapshots and the recent samples are fixed for the whole
    cycle; the engine never re-reads market data mid-evaluation.
    """

    instrument: str
    price: float
    timestamp: datetime
    snapshots: dict[str, IndicatorSnapshot] = field(default_factory=dict)
    recent_prices: tuple[float, ...] = ()  # oldest-first, fine timeframe closes
    scalp_activation: bool = False  # set by the external volume-spike monitor

    def __post_init__(self) -> None:
        if self.price <= 0:
            raise ValueError(f"price must be positive, got {self.price}")

    def snapshot(self, timeframe: str) -> Optional[IndicatorSnapshot]:
        return self.snapshots.get(timeframe)


# ── Signals ──────────────────────────────────────────────────────────────


class SignalType(str, Enum):
    ENTRY = "ENTRY"
    HEDGE = "HEDGE"
    EXIT = "EXIT"
    RE_ENTRY = "RE_ENTRY"


@dataclass(frozen=True)
class TradingSignal:
    """Advisory output of the decision engine.

    ``position_id`` names the position an EXIT closes, or the primary a
    HEDGE protects.  ``leverage`` and ``size_fraction`` are the settings the
    execution layer should apply when opening a new position.
    """

    signal_type: SignalType
    side: Side
    price: float
    confidence: float
    reason: str
    timestamp: datetime
    instrument: str
    role: PositionRole
    position_id: Optional[str] = None
    leverage: Optional[int] = None
    size_fraction: Optional[float] = None
    level_price: Optional[float] = None  # S/R level the signal refers to

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(
                f"confidence must be within [0, 1], got {self.confidence}"
            )
