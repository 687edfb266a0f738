"""Support/resistance level models — learned and catalogued."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class LevelType(str, Enum):
    SUPPORT = "SUPPORT"
    RESISTANCE = "RESISTANCE"


class Importance(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _IMPORTANCE_RANK[self]


_IMPORTANCE_RANK = {
    Importance.CRITICAL: 4,
    Importance.HIGH: 3,
    Importance.MEDIUM: 2,
    Importance.LOW: 1,
}


@dataclass(frozen=True)
class Level:
    """A support or resistance price learned from price history."""

    price: float
    level_type: LevelType
    strength: float  # 0..1
    touches: int
    last_touch: Optional[datetime]
    timeframe: str  # e.g. "4h", "1h", "15m"
    timeframe_weight: float


@dataclass(frozen=True)
class CatalogLevel:
    """An externally supplied level, immutable for the process lifetime."""

    price: float
    description: str
    level_type: LevelType
    importance: Importance


@dataclass(frozen=True)
class PriceZone:
    """A [lower, upper) price band and the catalog levels inside it.

    Levels are sorted by importance (most important first), then price.
    """

    name: str
    lower: float
    upper: float
    levels: tuple[CatalogLevel, ...] = ()

    def contains(self, price: float) -> bool:
        return self.lower <= price < self.upper


@dataclass(frozen=True)
class TradingLevels:
    """Catalog levels relevant to one price, as used by entry rules."""

    current_zone: Optional[PriceZone]
    long_entry: Optional[CatalogLevel]  # resistance to break for a LONG
    short_entry: Optional[CatalogLevel]  # support to break for a SHORT
    nearest_resistance: Optional[CatalogLevel]
    nearest_support: Optional[CatalogLevel]
