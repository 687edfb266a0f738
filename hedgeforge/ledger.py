"""Position ledger — the authoritative set of positions per instrument.

The decision engine only reads the ledger.  The execution layer records
fills and closures through ``open_position`` / ``close_position`` /
``mark_liquidated``, which enforce the role invariants:

* at most one OPEN position per role, except multi-slot roles;
* a hedge may only be opened while its protected position is OPEN;
* a hedge is always on the opposite side of the position it protects.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from hedgeforge.models.position import (
    HEDGE_ROLE,
    MULTI_SLOT_ROLES,
    PROTECTED_ROLE,
    Position,
    PositionRole,
    PositionStatus,
    Side,
)

logger = logging.getLogger("hedgeforge.ledger")


class PositionLedger:
    """Open and closed positions for a single instrument.

    Args:
        instrument: Symbol every position in this ledger must carry.
    """

    def __init__(self, instrument: str) -> None:
        self.instrument = instrument
        self._positions: dict[str, Position] = {}

    # ── Mutation (execution layer only) ──────────────────────────────────

    def open_position(self, position: Position) -> Position:
        """Record a confirmed fill as a new OPEN position.

        Raises:
            ValueError: If the position breaks a ledger invariant.
        """
        if position.instrument != self.instrument:
            raise ValueError(
                f"instrument {position.instrument} does not match ledger {self.instrument}"
            )
        if position.id in self._positions:
            raise ValueError(f"position id {position.id} already recorded")
        if position.status is not PositionStatus.OPEN:
            raise ValueError(f"new position {position.id} must be OPEN")

        if position.role not in MULTI_SLOT_ROLES and self.open_by_role(position.role):
            raise ValueError(
                f"an OPEN {position.role.value} already exists on {self.instrument}"
            )

        if position.role.is_hedge:
            protected = self._resolve_protected(position)
            if protected is None:
                raise ValueError(
                    f"{position.role.value} requires an OPEN "
                    f"{PROTECTED_ROLE[position.role].value}"
                )
            if position.side is not protected.side.opposite:
                raise ValueError(
                    f"hedge side {position.side.value} must oppose "
                    f"{protected.side.value}"
                )
            if position.parent_id is None:
                position = replace(position, parent_id=protected.id)

        if position.opened_at is None:
            position = replace(position, opened_at=datetime.now(timezone.utc))
        self._positions[position.id] = position
        logger.info(
            "Opened %s %s %s @ %.5f x%d (id=%s)",
            self.instrument, position.role.value, position.side.value,
            position.entry_price, position.leverage, position.id,
        )
        return position

    def close_position(
        self,
        position_id: str,
        closed_at: Optional[datetime] = None,
        realized_pnl: Optional[float] = None,
    ) -> Position:
        """Mark an OPEN position CLOSED."""
        return self._finish(position_id, PositionStatus.CLOSED, closed_at, realized_pnl)

    def mark_liquidated(
        self,
        position_id: str,
        closed_at: Optional[datetime] = None,
        realized_pnl: Optional[float] = None,
    ) -> Position:
        """Mark an OPEN position LIQUIDATED."""
        return self._finish(position_id, PositionStatus.LIQUIDATED, closed_at, realized_pnl)

    def update_liquidation_price(self, position_id: str, price: float) -> Position:
        """Store the exchange-reported liquidation price for a position."""
        if price <= 0:
            raise ValueError(f"liquidation price must be positive, got {price}")
        position = replace(self.get(position_id), liquidation_price=price)
        self._positions[position_id] = position
        return position

    def _finish(
        self,
        position_id: str,
        status: PositionStatus,
        closed_at: Optional[datetime],
        realized_pnl: Optional[float],
    ) -> Position:
        position = self.get(position_id)
        if not position.is_open:
            raise ValueError(f"position {position_id} is already {position.status.value}")
        position = replace(
            position,
            status=status,
            closed_at=closed_at or datetime.now(timezone.utc),
            realized_pnl=realized_pnl,
        )
        self._positions[position_id] = position
        logger.info(
            "%s %s %s (id=%s, pnl=%s)",
            status.value.capitalize(), self.instrument, position.role.value,
            position_id, realized_pnl,
        )
        return position

    def _resolve_protected(self, hedge: Position) -> Optional[Position]:
        if hedge.parent_id is not None:
            parent = self._positions.get(hedge.parent_id)
            if (
                parent is not None
                and parent.is_open
                and parent.role is PROTECTED_ROLE[hedge.role]
            ):
                return parent
            return None
        return self.open_by_role(PROTECTED_ROLE[hedge.role])

    # ── Queries ──────────────────────────────────────────────────────────

    def get(self, position_id: str) -> Position:
        try:
            return self._positions[position_id]
        except KeyError:
            raise KeyError(f"Unknown position: {position_id}") from None

    @property
    def positions(self) -> list[Position]:
        return list(self._positions.values())

    def open_positions(
        self,
        role: Optional[PositionRole] = None,
        side: Optional[Side] = None,
    ) -> list[Position]:
        return [
            p for p in self._positions.values()
            if p.is_open
            and (role is None or p.role is role)
            and (side is None or p.side is side)
        ]

    def open_by_role(self, role: PositionRole) -> Optional[Position]:
        """The first OPEN position with *role*, if any."""
        for p in self._positions.values():
            if p.is_open and p.role is role:
                return p
        return None

    def has_open(self, role: PositionRole) -> bool:
        return self.open_by_role(role) is not None

    def hedges_for(self, primary: Position) -> list[Position]:
        """OPEN hedges protecting *primary*."""
        hedge_role = HEDGE_ROLE.get(primary.role)
        if hedge_role is None:
            return []
        return [
            h for h in self.open_positions(hedge_role)
            if h.parent_id in (None, primary.id)
        ]

    def protected_position(self, hedge: Position) -> Optional[Position]:
        """The OPEN position *hedge* protects; ``None`` means orphaned."""
        return self._resolve_protected(hedge)

    def open_primary_count(self) -> int:
        return sum(1 for p in self._positions.values() if p.is_open and p.role.is_primary)


class Portfolio:
    """All instrument ledgers of one process.

    Each instrument engine writes only to its own ledger; the portfolio
    is the shared read view used for the global primary cap.
    """

    def __init__(self) -> None:
        self._ledgers: dict[str, PositionLedger] = {}

    def ledger_for(self, instrument: str) -> PositionLedger:
        ledger = self._ledgers.get(instrument)
        if ledger is None:
            ledger = PositionLedger(instrument)
            self._ledgers[instrument] = ledger
        return ledger

    @property
    def instruments(self) -> list[str]:
        return list(self._ledgers)

    def open_primary_count(self) -> int:
        return sum(ledger.open_primary_count() for ledger in self._ledgers.values())
