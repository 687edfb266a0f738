"""Liquidation price estimation — pluggable, pure math."""

from typing import Protocol, runtime_checkable

from hedgeforge.models.position import Position, Side


@runtime_checkable
class LiquidationModel(Protocol):
    """Estimates the price at which a position would be liquidated."""

    def liquidation_price(self, entry_price: float, leverage: int, side: Side) -> float:
        ...


class SimpleLiquidationModel:
    """Isolated-margin approximation with no maintenance margin or fees.

    ``entry × (1 − 1/leverage)`` for LONG, ``entry × (1 + 1/leverage)`` for
    SHORT.  Real exchange margin tiers will liquidate earlier.
    """

    def liquidation_price(self, entry_price: float, leverage: int, side: Side) -> float:
        if leverage < 1:
            raise ValueError(f"leverage must be >= 1, got {leverage}")
        if side is Side.LONG:
            return entry_price * (1 - 1 / leverage)
        return entry_price * (1 + 1 / leverage)


def resolve_liquidation_price(position: Position, model: LiquidationModel) -> float:
    """Exchange-reported liquidation price if known, else the model's estimate."""
    if position.liquidation_price is not None:
        return position.liquidation_price
    return model.liquidation_price(position.entry_price, position.leverage, position.side)
