"""Peak/trough detection over short price windows.

Two detectors live here:

* ``PeakTroughDetector`` keeps a small ring buffer per position id and
  spots a 3-point peak or trough.  It is the fallback exit confirmation
  when RSI/volume do not confirm a reversal.
* ``detect_market_reversal`` is a stateless 5-point pattern over the
  cycle's recent closes, confirmed by RSI and volume, used for re-entry.
"""

from collections import deque
from collections.abc import Hashable, Iterable, Sequence
from datetime import datetime
from typing import Optional

from hedgeforge.config import DetectorSettings, ReentrySettings
from hedgeforge.models.position import Side


class PeakTroughDetector:
    """Per-position price history with 3-point peak/trough detection.

    Histories are isolated by key (a stable position id) and must be
    dropped with :meth:`forget` once the position closes.
    """

    def __init__(self, settings: Optional[DetectorSettings] = None) -> None:
        self._settings = settings or DetectorSettings()
        self._history: dict[Hashable, deque[tuple[datetime, float]]] = {}

    def observe(self, key: Hashable, timestamp: datetime, price: float) -> None:
        """Record *price* for *key*.

        A second observation with the same timestamp replaces the first, so
        re-running a cycle leaves the history unchanged.
        """
        history = self._history.get(key)
        if history is None:
            history = deque(maxlen=self._settings.history)
            self._history[key] = history
        if history and history[-1][0] == timestamp:
            history[-1] = (timestamp, price)
        else:
            history.append((timestamp, price))

    def history(self, key: Hashable) -> tuple[float, ...]:
        return tuple(price for _, price in self._history.get(key, ()))

    def is_peak(self, key: Hashable) -> bool:
        """Middle of the last three samples is highest and price fell enough."""
        window = self.history(key)[-3:]
        if len(window) < 3:
            return False
        first, second, third = window
        return (
            second > first
            and third < second
            and (second - third) / second >= self._settings.min_reversal
        )

    def is_trough(self, key: Hashable) -> bool:
        """Middle of the last three samples is lowest and price rose enough."""
        window = self.history(key)[-3:]
        if len(window) < 3:
            return False
        first, second, third = window
        return (
            second < first
            and third > second
            and (third - second) / second >= self._settings.min_reversal
        )

    def forget(self, key: Hashable) -> None:
        self._history.pop(key, None)

    def prune(self, active_keys: Iterable[Hashable]) -> None:
        """Drop histories for every key not in *active_keys*."""
        active = set(active_keys)
        for key in [k for k in self._history if k not in active]:
            del self._history[key]

    def __contains__(self, key: Hashable) -> bool:
        return key in self._history


def detect_market_reversal(
    prices: Sequence[float],
    rsi: float,
    volume_ratio: float,
    rsi_previous: Optional[float] = None,
    settings: Optional[ReentrySettings] = None,
) -> Optional[Side]:
    """Detect a 5-point peak (SHORT) or trough (LONG) in the latest closes.

    Peak: two consecutive rises then two consecutive falls, RSI above
    ``rsi_peak`` and not rising, volume ratio below ``volume_peak`` and a
    decline of at least ``min_reversal`` from the top.  Trough is the
    mirror.  When *rsi_previous* is unknown the RSI direction is not
    checked.

    Returns:
        ``Side.SHORT`` for a peak, ``Side.LONG`` for a trough, else ``None``.
    """
    s = settings or ReentrySettings()
    if len(prices) < 5:
        return None
    p0, p1, p2, p3, p4 = prices[-5:]

    rose_then_fell = p1 > p0 and p2 > p1 and p3 < p2 and p4 < p3
    if rose_then_fell:
        rsi_declining = rsi_previous is None or rsi < rsi_previous
        if (
            rsi > s.rsi_peak
            and rsi_declining
            and volume_ratio < s.volume_peak
            and (p2 - p4) / p2 >= s.min_reversal
        ):
            return Side.SHORT
        return None

    fell_then_rose = p1 < p0 and p2 < p1 and p3 > p2 and p4 > p3
    if fell_then_rose:
        rsi_rising = rsi_previous is None or rsi > rsi_previous
        if (
            rsi < s.rsi_trough
            and rsi_rising
            and volume_ratio > s.volume_trough
            and (p4 - p2) / p2 >= s.min_reversal
        ):
            return Side.LONG
    return None
