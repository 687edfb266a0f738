"""Leverage-adjusted PnL math for hedge pairs — pure functions, no I/O.

All percentages are unleveraged price moves, signed by side:
``(price - entry) / entry × 100`` for LONG and the negation for SHORT.
"""

from dataclasses import dataclass
from typing import Optional

from hedgeforge.config import ExitSettings
from hedgeforge.models.position import Position, Side


@dataclass(frozen=True)
class HedgeExitAnalysis:
    """Closure decision for one hedge against the primary it protects."""

    primary_pnl_pct: float
    hedge_pnl_pct: float
    leverage_ratio: float
    leverage_adjusted_hedge_pnl: float
    total_pnl: float
    estimated_fees: float
    should_close: bool
    reason: str


def price_change_pct(entry_price: float, price: float, side: Side) -> float:
    """Signed percentage move from *entry_price* to *price*."""
    return (price - entry_price) / entry_price * 100.0 * side.sign


def analyse_hedge_pair(
    primary: Position,
    hedge: Position,
    price: float,
    settings: Optional[ExitSettings] = None,
) -> HedgeExitAnalysis:
    """Decide whether *hedge* should be closed at *price*.

    The hedge closes when any of these holds:

    * both legs are profitable;
    * the leverage-adjusted hedge profit exceeds ``|primary| + fees``;
    * the primary has recovered beyond ``primary_recovery_pct``;
    * price is back within ``entry_return_tolerance`` of the primary entry;
    * the leverage-adjusted hedge loss exceeds ``hedge_loss_multiple ×
      ratio`` while the primary is still negative;
    * the hedge is losing faster than the primary gains, by more than fees;
    * the hedge is losing and the total adjusted PnL is below ``-fees``.

    Args:
        primary: The protected position.
        hedge: The opposite-side hedge.
        price: Current price for this cycle.
        settings: Exit thresholds; defaults when omitted.

    Returns:
        ``HedgeExitAnalysis`` with every intermediate value, so callers can
        log the full comparison.
    """
    s = settings or ExitSettings()
    primary_pnl = primary.pnl_pct(price)
    hedge_pnl = hedge.pnl_pct(price)
    ratio = hedge.leverage / primary.leverage
    adjusted = hedge_pnl / ratio
    total = primary_pnl + adjusted
    fees = s.fee_pct * ratio

    reason = ""
    if primary_pnl > 0 and hedge_pnl > 0:
        reason = "both legs profitable"
    elif adjusted > abs(primary_pnl) + fees:
        reason = "hedge profit covers primary loss and fees"
    elif primary_pnl > s.primary_recovery_pct:
        reason = "primary recovered"
    elif abs(price - primary.entry_price) / primary.entry_price <= s.entry_return_tolerance:
        reason = "price returned to primary entry"
    elif adjusted < -s.hedge_loss_multiple * ratio and primary_pnl < 0:
        reason = "hedge loss limit reached while primary negative"
    elif (
        hedge_pnl < -s.hedge_bleed_pct
        and primary_pnl > 0
        and abs(hedge_pnl) * ratio - primary_pnl > fees
    ):
        reason = "hedge losing faster than primary gains"
    elif hedge_pnl < 0 and total < 0 and abs(total) > fees:
        reason = "hedge counterproductive, total loss exceeds fees"

    return HedgeExitAnalysis(
        primary_pnl_pct=primary_pnl,
        hedge_pnl_pct=hedge_pnl,
        leverage_ratio=ratio,
        leverage_adjusted_hedge_pnl=adjusted,
        total_pnl=total,
        estimated_fees=fees,
        should_close=bool(reason),
        reason=reason or "hedge still protecting",
    )


def take_profit_progress(position: Position, price: float, target_pct: float) -> float:
    """Percentage of a fixed profit target achieved by *position* at *price*.

    ``(Δprice / entry × notional) / (target_pct% × notional) × 100``; the
    target is reached at 100.
    """
    if target_pct <= 0:
        raise ValueError(f"target_pct must be positive, got {target_pct}")
    notional = position.notional
    profit = price_change_pct(position.entry_price, price, position.side) / 100.0 * notional
    return profit / (target_pct / 100.0 * notional) * 100.0


# ── Liquidation lock ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class LiquidationLock:
    """Net result of closing a pair just before the primary is liquidated."""

    near_liquidation: bool
    primary_loss_at_liquidation: float
    hedge_profit: float
    net: float

    @property
    def locks_profit(self) -> bool:
        return self.near_liquidation and self.net > 0


def liquidation_lock(
    primary: Position,
    hedge: Position,
    price: float,
    liquidation_price: float,
    proximity: float = 0.01,
) -> LiquidationLock:
    """Compare the primary's loss at liquidation with the hedge's profit now.

    The pair is "near liquidation" when *price* is within *proximity*
    (relative) of *liquidation_price* on the losing side.  Amounts are in
    quote currency.
    """
    if primary.side is Side.LONG:
        near = price <= liquidation_price * (1 + proximity)
    else:
        near = price >= liquidation_price * (1 - proximity)
    primary_loss = primary.pnl_amount(liquidation_price)
    hedge_profit = hedge.pnl_amount(price)
    return LiquidationLock(
        near_liquidation=near and liquidation_price > 0,
        primary_loss_at_liquidation=primary_loss,
        hedge_profit=hedge_profit,
        net=primary_loss + hedge_profit,
    )
