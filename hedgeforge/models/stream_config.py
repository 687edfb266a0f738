"""Instrument stream configuration dataclass.

Represents one instrument in the multi-instrument engine.
"""

from dataclasses import dataclass, field
from typing import Optional

from hedgeforge.models.position import PositionRole


@dataclass(frozen=True)
class LeverageSettings:
    """Leverage applied when opening each role."""

    anchor: int = 10
    anchor_hedge: int = 15
    opportunity: int = 10
    opportunity_hedge: int = 15
    scalp: int = 15
    scalp_hedge: int = 15

    def __post_init__(self) -> None:
        for name, value in vars(self).items():
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"leverage.{name} must be an integer >= 1, got {value!r}")

    def for_role(self, role: PositionRole) -> int:
        return getattr(self, _ROLE_FIELD[role])


@dataclass(frozen=True)
class PositionSizing:
    """Fraction of account balance committed to each role."""

    anchor: float = 0.20
    anchor_hedge: float = 0.30
    opportunity: float = 0.20
    opportunity_hedge: float = 0.30
    scalp: float = 0.10
    scalp_hedge: float = 0.10

    def __post_init__(self) -> None:
        for name, value in vars(self).items():
            if not 0 < value <= 1:
                raise ValueError(f"sizing.{name} must be in (0, 1], got {value}")

    def for_role(self, role: PositionRole) -> float:
        return getattr(self, _ROLE_FIELD[role])


_ROLE_FIELD = {
    PositionRole.PRIMARY_ANCHOR: "anchor",
    PositionRole.HEDGE_ANCHOR: "anchor_hedge",
    PositionRole.PRIMARY_OPPORTUNITY: "opportunity",
    PositionRole.HEDGE_OPPORTUNITY: "opportunity_hedge",
    PositionRole.SCALP: "scalp",
    PositionRole.SCALP_HEDGE: "scalp_hedge",
}


@dataclass(frozen=True)
class InstrumentConfig:
    """Configuration for a single instrument stream.

    Each stream runs its own ``InstrumentEngine`` with its own ledger slice,
    level learner and catalog.
    """

    name: str
    instrument: str
    timeframes: list[str] = field(default_factory=lambda: ["4h", "1h", "15m"])
    poll_interval_seconds: int = 60
    candle_count: int = 100
    leverage: LeverageSettings = field(default_factory=LeverageSettings)
    sizing: PositionSizing = field(default_factory=PositionSizing)
    levels_path: Optional[str] = None  # JSON catalog; None = built-in defaults
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "InstrumentConfig":
        """Build from one entry of the streams JSON file."""
        if "instrument" not in data:
            raise ValueError("stream entry is missing 'instrument'")
        kwargs = dict(data)
        kwargs.setdefault("name", data["instrument"].lower())
        if "leverage" in kwargs:
            kwargs["leverage"] = LeverageSettings(**kwargs["leverage"])
        if "sizing" in kwargs:
            kwargs["sizing"] = PositionSizing(**kwargs["sizing"])
        return cls(**kwargs)
