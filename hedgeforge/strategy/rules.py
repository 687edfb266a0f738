"""Decision rules — pure predicates evaluated in a fixed precedence order.

Entry rules are tried in ``ENTRY_RULES`` order and the first match wins.
Primary exit rules are tried in ``PRIMARY_EXIT_RULES`` order.  No rule
reads the clock, the ledger or any mutable state; everything arrives in
the context objects.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from hedgeforge.config import EngineSettings, ExitSettings
from hedgeforge.levels.catalog import StaticLevelCatalog
from hedgeforge.levels.models import CatalogLevel, Importance, LevelType, TradingLevels
from hedgeforge.models.position import Position, PositionRole, Side
from hedgeforge.risk.pnl import price_change_pct, take_profit_progress
from hedgeforge.risk.zones import ZoneGeometry
from hedgeforge.strategy.models import IndicatorSnapshot


# ── Entry ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EntryContext:
    price: float
    signal: IndicatorSnapshot  # signal timeframe
    trend: Optional[IndicatorSnapshot]  # coarse timeframe, confidence only
    levels: TradingLevels
    nearest_level: Optional[CatalogLevel]
    scalp_activation: bool
    settings: EngineSettings


@dataclass(frozen=True)
class EntryDecision:
    side: Side
    role: PositionRole
    confidence: float
    reason: str
    level_price: Optional[float] = None


@dataclass(frozen=True)
class EntryRule:
    name: str
    role: PositionRole
    evaluate: Callable[[EntryContext], Optional[EntryDecision]]


def _trend_agrees(trend: Optional[IndicatorSnapshot], side: Side) -> bool:
    if trend is None:
        return False
    return trend.trend == ("BULLISH" if side is Side.LONG else "BEARISH")


def entry_confidence(ctx: EntryContext, side: Side, volume_ok: bool, rsi_ok: bool) -> float:
    s = ctx.settings.entry
    confidence = s.base_confidence
    if volume_ok:
        confidence += 0.2
    if rsi_ok:
        confidence += 0.1
    if _trend_agrees(ctx.trend, side):
        confidence += 0.2
    return min(confidence, 1.0)


def _volume_confirmed(ctx: EntryContext) -> bool:
    ratio = ctx.signal.volume_ratio
    return ratio is not None and ratio >= ctx.settings.entry.volume_multiplier


def scalp_entry(ctx: EntryContext) -> Optional[EntryDecision]:
    """Volume-spike scalp at a catalog level within the scalp tolerance."""
    if not ctx.settings.scalp_enabled or not ctx.scalp_activation:
        return None
    level = ctx.nearest_level
    if level is None or ctx.signal.volume_ratio is None:
        return None
    if abs(ctx.price - level.price) / level.price > ctx.settings.entry.scalp_level_tolerance:
        return None
    if not _volume_confirmed(ctx):
        return None

    side = Side.LONG if level.level_type is LevelType.SUPPORT else Side.SHORT
    confidence = ctx.settings.entry.base_confidence
    if ctx.signal.volume_ratio >= ctx.settings.entry.scalp_strong_volume:
        confidence += 0.2
    rsi = ctx.signal.rsi
    if rsi is not None and 30.0 <= rsi <= 70.0:
        confidence += 0.2
    if _trend_agrees(ctx.trend, side):
        confidence += 0.1
    return EntryDecision(
        side=side,
        role=PositionRole.SCALP,
        confidence=min(confidence, 1.0),
        reason=f"Scalp at {level.description} ({level.price:.4f})",
        level_price=level.price,
    )


def resistance_breakout(ctx: EntryContext) -> Optional[EntryDecision]:
    """LONG when price is at/above the entry resistance with confirmations."""
    level = ctx.levels.long_entry
    snap = ctx.signal
    if level is None or snap.rsi is None or snap.vwap is None:
        return None
    s = ctx.settings.entry
    at_level = (
        abs(ctx.price - level.price) / level.price <= s.level_tolerance
        or ctx.price >= level.price
    )
    volume_ok = _volume_confirmed(ctx)
    rsi_ok = snap.rsi < s.rsi_oversold
    if not (at_level and volume_ok and rsi_ok and ctx.price < snap.vwap):
        return None
    return EntryDecision(
        side=Side.LONG,
        role=PositionRole.PRIMARY_ANCHOR,
        confidence=entry_confidence(ctx, Side.LONG, volume_ok, rsi_ok),
        reason=f"Resistance breakout at {level.description} ({level.price:.4f})",
        level_price=level.price,
    )


def support_breakdown(ctx: EntryContext) -> Optional[EntryDecision]:
    """SHORT when price is at/below the entry support with confirmations."""
    level = ctx.levels.short_entry
    snap = ctx.signal
    if level is None or snap.rsi is None or snap.vwap is None:
        return None
    s = ctx.settings.entry
    at_level = (
        abs(ctx.price - level.price) / level.price <= s.level_tolerance
        or ctx.price <= level.price
    )
    volume_ok = _volume_confirmed(ctx)
    rsi_ok = snap.rsi > s.rsi_overbought
    if not (at_level and volume_ok and rsi_ok and ctx.price > snap.vwap):
        return None
    return EntryDecision(
        side=Side.SHORT,
        role=PositionRole.PRIMARY_ANCHOR,
        confidence=entry_confidence(ctx, Side.SHORT, volume_ok, rsi_ok),
        reason=f"Support breakdown at {level.description} ({level.price:.4f})",
        level_price=level.price,
    )


ENTRY_RULES: tuple[EntryRule, ...] = (
    EntryRule("scalp_entry", PositionRole.SCALP, scalp_entry),
    EntryRule("resistance_breakout", PositionRole.PRIMARY_ANCHOR, resistance_breakout),
    EntryRule("support_breakdown", PositionRole.PRIMARY_ANCHOR, support_breakdown),
)


# ── Hedge ────────────────────────────────────────────────────────────────


def vwap_confirms_hedge(
    primary_side: Side,
    price: float,
    snapshot: IndicatorSnapshot,
    threshold_pct: float,
) -> Optional[bool]:
    """Price is beyond VWAP against the primary by more than *threshold_pct*.

    Returns ``None`` when VWAP is unavailable.
    """
    if snapshot.vwap is None or snapshot.vwap <= 0:
        return None
    distance = (price - snapshot.vwap) / snapshot.vwap * 100.0
    if primary_side is Side.LONG:
        return distance < -threshold_pct
    return distance > threshold_pct


def zone_hedge_gate(zone: ZoneGeometry, vwap_confirmed: bool) -> bool:
    """Hedge only inside the protection zone, outside the buffer, with VWAP."""
    return zone.in_protection_zone and not zone.in_buffer_zone and vwap_confirmed


def crossed_scalp_levels(
    scalp: Position,
    price: float,
    level_prices: list[float],
    hedged_levels: list[float],
    tolerance: float,
) -> list[float]:
    """Learned levels beyond the scalp entry that price has crossed, unhedged.

    For a LONG scalp these are supports below entry with price below them;
    for a SHORT scalp, resistances above entry with price above them.
    Ordered nearest-to-entry first.
    """
    def already_hedged(level: float) -> bool:
        return any(abs(level - h) / level <= tolerance for h in hedged_levels)

    if scalp.side is Side.LONG:
        crossed = [lv for lv in level_prices if lv < scalp.entry_price and price < lv]
        crossed.sort(reverse=True)
    else:
        crossed = [lv for lv in level_prices if lv > scalp.entry_price and price > lv]
        crossed.sort()
    return [lv for lv in crossed if not already_hedged(lv)]


# ── Primary exits ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExitContext:
    price: float
    snapshot: Optional[IndicatorSnapshot]
    catalog: StaticLevelCatalog
    reversal_confirmed: bool  # detector peak (LONG) or trough (SHORT)
    settings: ExitSettings


PrimaryExitRule = Callable[[Position, ExitContext], Optional[str]]


def take_profit_reached(position: Position, ctx: ExitContext) -> Optional[str]:
    """Fixed-percentage target achieved (100 % of target)."""
    target = (
        ctx.settings.scalp_take_profit_pct
        if position.role is PositionRole.SCALP
        else ctx.settings.take_profit_target_pct
    )
    progress = take_profit_progress(position, ctx.price, target)
    if progress >= 100.0:
        return f"Take profit reached ({progress:.0f}% of {target}% target)"
    return None


def catalog_target_reached(position: Position, ctx: ExitContext) -> Optional[str]:
    """Price reached the catalog level that was the next target at entry."""
    if position.role is PositionRole.SCALP:
        return None
    if position.side is Side.LONG:
        target = ctx.catalog.nearest_resistance(position.entry_price)
        reached = target is not None and ctx.price >= target.price
    else:
        target = ctx.catalog.nearest_support(position.entry_price)
        reached = target is not None and ctx.price <= target.price
    if not reached:
        return None
    if abs(ctx.price - target.price) / target.price > ctx.settings.target_tolerance:
        return None
    return f"Catalog target {target.description} ({target.price:.4f}) reached"


def exhaustion_at_level(position: Position, ctx: ExitContext) -> Optional[str]:
    """In profit at a HIGH/CRITICAL level with RSI or price-reversal confirmation."""
    if price_change_pct(position.entry_price, ctx.price, position.side) <= 0:
        return None
    if position.side is Side.LONG:
        level = ctx.catalog.nearest_resistance(ctx.price)
    else:
        level = ctx.catalog.nearest_support(ctx.price)
    if level is None or level.importance not in (Importance.CRITICAL, Importance.HIGH):
        return None
    if abs(ctx.price - level.price) / level.price > ctx.settings.target_tolerance:
        return None

    rsi = ctx.snapshot.rsi if ctx.snapshot is not None else None
    if rsi is not None:
        if position.side is Side.LONG and rsi > 70.0:
            return f"RSI overbought at {level.description}"
        if position.side is Side.SHORT and rsi < 30.0:
            return f"RSI oversold at {level.description}"
    if ctx.reversal_confirmed:
        kind = "peak" if position.side is Side.LONG else "trough"
        return f"Price {kind} detected at {level.description}"
    return None


PRIMARY_EXIT_RULES: tuple[PrimaryExitRule, ...] = (
    take_profit_reached,
    catalog_target_reached,
    exhaustion_at_level,
)
