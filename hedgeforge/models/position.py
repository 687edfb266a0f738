"""Position data models — leveraged exposures tracked by the ledger."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Side(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def opposite(self) -> "Side":
        return Side.SHORT if self is Side.LONG else Side.LONG

    @property
    def sign(self) -> int:
        """+1 for LONG, -1 for SHORT."""
        return 1 if self is Side.LONG else -1


class PositionRole(str, Enum):
    PRIMARY_ANCHOR = "PRIMARY_ANCHOR"
    PRIMARY_OPPORTUNITY = "PRIMARY_OPPORTUNITY"
    HEDGE_ANCHOR = "HEDGE_ANCHOR"
    HEDGE_OPPORTUNITY = "HEDGE_OPPORTUNITY"
    SCALP = "SCALP"
    SCALP_HEDGE = "SCALP_HEDGE"

    @property
    def is_hedge(self) -> bool:
        return self in PROTECTED_ROLE

    @property
    def is_primary(self) -> bool:
        return self in HEDGE_ROLE


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    LIQUIDATED = "LIQUIDATED"


# ── Role pairing ─────────────────────────────────────────────────────────

# primary role → the role of the hedge that protects it
HEDGE_ROLE: dict[PositionRole, PositionRole] = {
    PositionRole.PRIMARY_ANCHOR: PositionRole.HEDGE_ANCHOR,
    PositionRole.PRIMARY_OPPORTUNITY: PositionRole.HEDGE_OPPORTUNITY,
    PositionRole.SCALP: PositionRole.SCALP_HEDGE,
}

# hedge role → the primary role it protects
PROTECTED_ROLE: dict[PositionRole, PositionRole] = {
    hedge: primary for primary, hedge in HEDGE_ROLE.items()
}

# Roles that may have several OPEN positions per instrument (one per level)
MULTI_SLOT_ROLES: frozenset[PositionRole] = frozenset({PositionRole.SCALP_HEDGE})


@dataclass(frozen=True)
class Position:
    """One leveraged exposure on a single instrument.

    Positions are immutable snapshots; the ledger replaces them when the
    execution layer reports a fill, a closure or a liquidation.
    """

    id: str
    instrument: str
    side: Side
    role: PositionRole
    quantity: float
    entry_price: float
    leverage: int
    status: PositionStatus = PositionStatus.OPEN
    liquidation_price: Optional[float] = None  # exchange-reported, if known
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    realized_pnl: Optional[float] = None
    parent_id: Optional[str] = None  # protected primary, hedges only
    hedge_level: Optional[float] = None  # learned level a scalp hedge covers

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"quantity must be positive, got {self.quantity}")
        if self.entry_price <= 0:
            raise ValueError(
                f"entry_price must be positive, got {self.entry_price}"
            )
        if not isinstance(self.leverage, int) or self.leverage < 1:
            raise ValueError(f"leverage must be an integer >= 1, got {self.leverage}")

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    @property
    def notional(self) -> float:
        """Position value at entry, in quote currency."""
        return self.quantity * self.entry_price

    def pnl_pct(self, price: float) -> float:
        """Unleveraged percentage PnL at *price*, signed by side."""
        return (price - self.entry_price) / self.entry_price * 100.0 * self.side.sign

    def pnl_amount(self, price: float) -> float:
        """PnL in quote currency at *price*."""
        return (price - self.entry_price) * self.quantity * self.side.sign
