"""Static level catalog — externally supplied levels organised in price zones."""

import json
import logging
import pathlib
from collections.abc import Iterable, Sequence
from typing import Optional

from hedgeforge.levels.defaults import DEFAULT_LEVELS
from hedgeforge.levels.models import (
    CatalogLevel,
    Importance,
    LevelType,
    PriceZone,
    TradingLevels,
)

logger = logging.getLogger("hedgeforge.levels")

# (name, lower, upper); bands are [lower, upper)
DEFAULT_ZONES: tuple[tuple[str, float, float], ...] = (
    ("Extreme Bear Zone (0.0-0.4)", 0.0, 0.4),
    ("Deep Bear Zone (0.4-0.6)", 0.4, 0.6),
    ("Bear Zone (0.6-0.8)", 0.6, 0.8),
    ("Current Zone (0.8-0.9)", 0.8, 0.9),
    ("Bull Zone (0.9-1.0)", 0.9, 1.0),
    ("Extreme Bull Zone (1.0+)", 1.0, 2.0),
)

_ENTRY_IMPORTANCE = (Importance.CRITICAL, Importance.HIGH)


def _sort_key(level: CatalogLevel) -> tuple[int, float]:
    return (-level.importance.rank, level.price)


class StaticLevelCatalog:
    """Immutable catalog of price levels partitioned into zones.

    Args:
        levels: Catalog entries; those outside every zone are dropped.
        zones: ``(name, lower, upper)`` bands.  Bands must not overlap.

    Raises:
        ValueError: If two zones overlap or a zone has upper <= lower.
    """

    def __init__(
        self,
        levels: Iterable[CatalogLevel],
        zones: Sequence[tuple[str, float, float]] = DEFAULT_ZONES,
    ) -> None:
        bands = sorted(zones, key=lambda z: z[1])
        for name, lower, upper in bands:
            if upper <= lower:
                raise ValueError(f"zone {name!r} has upper <= lower")
        for (name_a, _, upper_a), (name_b, lower_b, _) in zip(bands, bands[1:]):
            if lower_b < upper_a:
                raise ValueError(f"zones {name_a!r} and {name_b!r} overlap")

        all_levels = list(levels)
        self._zones: list[PriceZone] = []
        placed = 0
        for name, lower, upper in bands:
            members = sorted(
                (lv for lv in all_levels if lower <= lv.price < upper), key=_sort_key
            )
            placed += len(members)
            self._zones.append(PriceZone(name, lower, upper, tuple(members)))
        if placed < len(all_levels):
            logger.warning(
                "%d catalog level(s) fall outside every zone and were ignored.",
                len(all_levels) - placed,
            )
        self._levels: tuple[CatalogLevel, ...] = tuple(
            lv for zone in self._zones for lv in zone.levels
        )

    # ── Zone lookups ─────────────────────────────────────────────────────

    @property
    def zones(self) -> list[PriceZone]:
        """Zones ordered from lowest to highest price."""
        return list(self._zones)

    @property
    def levels(self) -> tuple[CatalogLevel, ...]:
        return self._levels

    def current_zone(self, price: float) -> Optional[PriceZone]:
        """Zone whose [lower, upper) band contains *price*."""
        for zone in self._zones:
            if zone.contains(price):
                return zone
        return None

    def levels_for_zone(self, name: str) -> tuple[CatalogLevel, ...]:
        for zone in self._zones:
            if zone.name == name:
                return zone.levels
        raise KeyError(f"Unknown zone: {name}")

    # ── Level lookups ────────────────────────────────────────────────────

    def nearest_resistance(self, price: float) -> Optional[CatalogLevel]:
        """Closest resistance strictly above *price*."""
        above = [
            lv for lv in self._levels
            if lv.level_type is LevelType.RESISTANCE and lv.price > price
        ]
        return min(above, key=lambda lv: lv.price) if above else None

    def nearest_support(self, price: float) -> Optional[CatalogLevel]:
        """Closest support strictly below *price*."""
        below = [
            lv for lv in self._levels
            if lv.level_type is LevelType.SUPPORT and lv.price < price
        ]
        return max(below, key=lambda lv: lv.price) if below else None

    def critical_levels(self) -> list[CatalogLevel]:
        return [lv for lv in self._levels if lv.importance is Importance.CRITICAL]

    def high_importance_levels(self) -> list[CatalogLevel]:
        return [lv for lv in self._levels if lv.importance in _ENTRY_IMPORTANCE]

    def is_near_level(self, price: float, tolerance: float = 0.01) -> bool:
        return any(abs(lv.price - price) / lv.price <= tolerance for lv in self._levels)

    def nearest_level(self, price: float) -> Optional[CatalogLevel]:
        """Closest level of either type, by absolute distance."""
        if not self._levels:
            return None
        return min(self._levels, key=lambda lv: abs(lv.price - price))

    def trading_signals(self, price: float) -> TradingLevels:
        """Entry candidates around *price*.

        The LONG candidate is the closest CRITICAL/HIGH resistance above
        *price* in the current zone, else in the zone above.  The SHORT
        candidate is the closest CRITICAL/HIGH support below *price* in the
        current zone, else in the zone below.
        """
        zone = self.current_zone(price)
        long_entry: Optional[CatalogLevel] = None
        short_entry: Optional[CatalogLevel] = None

        if zone is not None:
            index = self._zones.index(zone)
            long_entry = self._entry_candidate(zone, price, LevelType.RESISTANCE)
            if long_entry is None and index + 1 < len(self._zones):
                long_entry = self._entry_candidate(
                    self._zones[index + 1], price, LevelType.RESISTANCE
                )
            short_entry = self._entry_candidate(zone, price, LevelType.SUPPORT)
            if short_entry is None and index > 0:
                short_entry = self._entry_candidate(
                    self._zones[index - 1], price, LevelType.SUPPORT
                )

        return TradingLevels(
            current_zone=zone,
            long_entry=long_entry,
            short_entry=short_entry,
            nearest_resistance=self.nearest_resistance(price),
            nearest_support=self.nearest_support(price),
        )

    @staticmethod
    def _entry_candidate(
        zone: PriceZone, price: float, level_type: LevelType
    ) -> Optional[CatalogLevel]:
        if level_type is LevelType.RESISTANCE:
            candidates = [
                lv for lv in zone.levels
                if lv.level_type is level_type
                and lv.importance in _ENTRY_IMPORTANCE
                and lv.price > price
            ]
        else:
            candidates = [
                lv for lv in zone.levels
                if lv.level_type is level_type
                and lv.importance in _ENTRY_IMPORTANCE
                and lv.price < price
            ]
        if not candidates:
            return None
        return min(candidates, key=lambda lv: abs(lv.price - price))


# ── Loading ──────────────────────────────────────────────────────────────


def load_catalog(path: str | pathlib.Path) -> StaticLevelCatalog:
    """Build a catalog from a JSON file.

    Expected shape::

        {"zones": [["Bear Zone", 0.6, 0.8], ...],          # optional
         "levels": [{"price": 0.86, "description": "High",
                     "type": "RESISTANCE", "importance": "HIGH"}, ...]}

    Without ``zones`` every level goes into one zone spanning
    ``[0, 2 × highest level)``, whatever the instrument's price scale.

    Raises ``ValueError`` for an unknown level type or importance.
    """
    data = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
    try:
        levels = [
            CatalogLevel(
                price=float(item["price"]),
                description=item.get("description", ""),
                level_type=LevelType(item["type"].upper()),
                importance=Importance(item.get("importance", "LOW").upper()),
            )
            for item in data["levels"]
        ]
    except KeyError as exc:
        raise ValueError(f"{path}: catalog level is missing {exc}") from None
    if "zones" in data:
        zones = [tuple(z) for z in data["zones"]]
    else:
        zones = _covering_zone(levels)
    return StaticLevelCatalog(levels, zones)


def _covering_zone(levels: Sequence[CatalogLevel]) -> list[tuple[str, float, float]]:
    if not levels:
        return []
    return [("All levels", 0.0, 2.0 * max(lv.price for lv in levels))]


def default_catalog(instrument: str) -> StaticLevelCatalog:
    """Built-in catalog for *instrument*; empty when none ships."""
    rows = DEFAULT_LEVELS.get(instrument, ())
    if not rows:
        logger.warning("No built-in level catalog for %s.", instrument)
    return StaticLevelCatalog(
        CatalogLevel(price, description, LevelType(kind), Importance(importance))
        for price, description, kind, importance in rows
    )
