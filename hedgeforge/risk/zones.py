"""Protection and buffer zones between entry and liquidation — pure math, no I/O."""

from dataclasses import dataclass
from typing import Optional

from hedgeforge.config import ZoneSettings
from hedgeforge.models.position import Side


@dataclass(frozen=True)
class ZoneGeometry:
    """Zone bounds for one position at one price.  Never persisted.

    Bounds are ordered by price: ``*_start <= *_end`` on both sides.
    """

    protection_start: float
    protection_end: float
    buffer_start: float
    buffer_end: float
    in_protection_zone: bool
    in_buffer_zone: bool

    @property
    def valid(self) -> bool:
        return self.protection_start > 0


_EMPTY = ZoneGeometry(0.0, 0.0, 0.0, 0.0, False, False)


def compute_zones(
    entry_price: float,
    liquidation_price: float,
    side: Side,
    current_price: float,
    settings: Optional[ZoneSettings] = None,
) -> ZoneGeometry:
    """Derive protection and buffer zones for a position.

    Offsets are measured from the entry towards liquidation, in units of
    ``D = |entry - liquidation|`` (defaults shown)::

        LONG:  buffer     = [entry - 0.30D, entry - 0.15D]
               protection = [entry - 0.70D, entry - 0.30D]
        SHORT: buffer     = [entry + 0.15D, entry + 0.30D]
               protection = [entry + 0.30D, entry + 0.70D]

    An adverse move first crosses the buffer, where no hedge is opened,
    then enters the protection zone.  The bands share the boundary at
    ``0.30D``; a price on it counts as protection, never buffer, so the
    two flags are mutually exclusive.

    Returns an all-zero geometry with both flags False when
    *liquidation_price* is not positive.
    """
    if liquidation_price <= 0:
        return _EMPTY
    s = settings or ZoneSettings()
    distance = abs(entry_price - liquidation_price)
    direction = -1.0 if side is Side.LONG else 1.0

    def offset(fraction: float) -> float:
        return entry_price + direction * fraction * distance

    protection_start, protection_end = sorted(
        (offset(s.protection_fraction), offset(s.loose_fraction))
    )
    buffer_start, buffer_end = sorted(
        (offset(s.protection_fraction - s.buffer_fraction), offset(s.protection_fraction))
    )

    in_protection = protection_start <= current_price <= protection_end
    in_buffer = buffer_start <= current_price <= buffer_end and not in_protection

    return ZoneGeometry(
        protection_start=protection_start,
        protection_end=protection_end,
        buffer_start=buffer_start,
        buffer_end=buffer_end,
        in_protection_zone=in_protection,
        in_buffer_zone=in_buffer,
    )
