"""Dynamic support/resistance learning from raw price history.

Local extrema become candidate levels; candidates close to an existing
level of the same type reinforce it instead of creating a new one.  Several
timeframes can write into the same level set with different weights, so a
level confirmed on more than one timeframe gains strength faster.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import datetime
from typing import Optional

from hedgeforge.config import LevelSettings
from hedgeforge.levels.models import Level, LevelType
from hedgeforge.strategy.models import PriceSample

logger = logging.getLogger("hedgeforge.levels")


def find_extrema(prices: Sequence[float]) -> list[tuple[int, LevelType]]:
    """Return ``(index, type)`` for each strict 5-point local extremum.

    A sample is a local high when it is strictly greater than the two
    samples on each side; a local low is the mirror.  The first and last
    two samples can never qualify.
    """
    extrema: list[tuple[int, LevelType]] = []
    for i in range(2, len(prices) - 2):
        p = prices[i]
        neighbours = (prices[i - 2], prices[i - 1], prices[i + 1], prices[i + 2])
        if all(p > n for n in neighbours):
            extrema.append((i, LevelType.RESISTANCE))
        elif all(p < n for n in neighbours):
            extrema.append((i, LevelType.SUPPORT))
    return extrema


class LevelLearner:
    """Learns and retains the strongest support/resistance levels.

    Args:
        settings: Tolerance, retention cap and strength parameters.
    """

    def __init__(self, settings: Optional[LevelSettings] = None) -> None:
        self._settings = settings or LevelSettings()
        self._levels: list[Level] = []

    # ── Learning ─────────────────────────────────────────────────────────

    def learn(
        self,
        samples: Sequence[PriceSample],
        timeframe: str,
        weight: Optional[float] = None,
    ) -> None:
        """Run one learning pass over *samples* and clean up weak levels."""
        self._learn_pass(samples, timeframe, weight)
        self._cleanup()

    def learn_combined(self, series: Mapping[str, Sequence[PriceSample]]) -> None:
        """Learn every timeframe in *series*, then clean up once.

        Weights come from ``LevelSettings.timeframe_weights``; timeframes
        without a configured weight are skipped.
        """
        for timeframe, samples in series.items():
            if timeframe not in self._settings.timeframe_weights:
                logger.warning("No weight configured for timeframe %s, skipping.", timeframe)
                continue
            self._learn_pass(samples, timeframe, None)
        self._cleanup()

    def touch(self, price: float, timestamp: Optional[datetime] = None) -> int:
        """Reinforce every level within tolerance of *price*.

        Returns the number of levels touched.
        """
        touched = 0
        for i, level in enumerate(self._levels):
            if self._within_tolerance(level.price, price):
                self._levels[i] = self._reinforce(level, level.timeframe_weight, timestamp)
                touched += 1
        return touched

    def reset(self) -> None:
        self._levels = []

    def _learn_pass(
        self,
        samples: Sequence[PriceSample],
        timeframe: str,
        weight: Optional[float],
    ) -> None:
        if weight is None:
            weight = self._settings.timeframe_weights.get(timeframe, 1.0)
        if len(samples) < self._settings.min_samples:
            logger.warning(
                "Not enough %s samples to learn levels (%d < %d).",
                timeframe, len(samples), self._settings.min_samples,
            )
            return

        prices = [s.price for s in samples]
        for index, level_type in find_extrema(prices):
            self._add_candidate(
                prices[index], level_type, samples[index].timestamp, timeframe, weight
            )

    def _add_candidate(
        self,
        price: float,
        level_type: LevelType,
        timestamp: datetime,
        timeframe: str,
        weight: float,
    ) -> None:
        for i, level in enumerate(self._levels):
            if level.level_type is level_type and self._within_tolerance(level.price, price):
                self._levels[i] = self._reinforce(level, weight, timestamp)
                return

        self._levels.append(
            Level(
                price=price,
                level_type=level_type,
                strength=min(1.0, self._settings.new_level_strength * weight),
                touches=1,
                last_touch=timestamp,
                timeframe=timeframe,
                timeframe_weight=weight,
            )
        )

    def _reinforce(self, level: Level, weight: float, timestamp: Optional[datetime]) -> Level:
        return replace(
            level,
            touches=level.touches + 1,
            strength=min(1.0, level.strength + weight * self._settings.touch_strength_step),
            last_touch=timestamp or level.last_touch,
        )

    def _within_tolerance(self, level_price: float, price: float) -> bool:
        return abs(level_price - price) / price <= self._settings.tolerance

    def _cleanup(self) -> None:
        kept = [lv for lv in self._levels if lv.touches >= self._settings.min_touches]
        if len(kept) > self._settings.max_levels:
            kept = sorted(kept, key=lambda lv: lv.strength, reverse=True)
            kept = kept[: self._settings.max_levels]
        dropped = len(self._levels) - len(kept)
        if dropped:
            logger.debug("Level cleanup dropped %d level(s).", dropped)
        self._levels = kept

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def levels(self) -> list[Level]:
        """All retained levels, supports first (price descending) then resistances."""
        return self.supports() + self.resistances()

    def supports(self) -> list[Level]:
        """Support levels sorted by price, highest first."""
        return sorted(
            (lv for lv in self._levels if lv.level_type is LevelType.SUPPORT),
            key=lambda lv: lv.price,
            reverse=True,
        )

    def resistances(self) -> list[Level]:
        """Resistance levels sorted by price, lowest first."""
        return sorted(
            (lv for lv in self._levels if lv.level_type is LevelType.RESISTANCE),
            key=lambda lv: lv.price,
        )

    def nearest_support(self, price: float) -> Optional[Level]:
        """Closest support strictly below *price*."""
        below = [lv for lv in self.supports() if lv.price < price]
        return max(below, key=lambda lv: lv.price) if below else None

    def nearest_resistance(self, price: float) -> Optional[Level]:
        """Closest resistance strictly above *price*."""
        above = [lv for lv in self.resistances() if lv.price > price]
        return min(above, key=lambda lv: lv.price) if above else None

    def strongest(self, level_type: LevelType) -> Optional[Level]:
        """Highest-strength level of *level_type*, regardless of distance."""
        candidates = [lv for lv in self._levels if lv.level_type is level_type]
        if not candidates:
            return None
        return max(candidates, key=lambda lv: (lv.strength, lv.touches))

    def strongest_support_below(self, price: float) -> Optional[Level]:
        below = [lv for lv in self.supports() if lv.price < price]
        return max(below, key=lambda lv: (lv.strength, lv.touches), default=None)

    def strongest_resistance_above(self, price: float) -> Optional[Level]:
        above = [lv for lv in self.resistances() if lv.price > price]
        return max(above, key=lambda lv: (lv.strength, lv.touches), default=None)

    def is_near_level(self, price: float) -> bool:
        return any(self._within_tolerance(lv.price, price) for lv in self._levels)

    def level_strength(self, price: float) -> float:
        """Strength of the strongest level within tolerance of *price*, else 0."""
        near = [lv.strength for lv in self._levels if self._within_tolerance(lv.price, price)]
        return max(near, default=0.0)

    def stats(self) -> dict:
        supports = self.supports()
        resistances = self.resistances()
        total = len(supports) + len(resistances)
        return {
            "total_levels": total,
            "support_levels": len(supports),
            "resistance_levels": len(resistances),
            "average_strength": (
                sum(lv.strength for lv in self._levels) / total if total else 0.0
            ),
            "strongest_support": max((lv.strength for lv in supports), default=0.0),
            "strongest_resistance": max(
                (lv.strength for lv in resistances), default=0.0
            ),
        }

    def __len__(self) -> int:
        return len(self._levels)
