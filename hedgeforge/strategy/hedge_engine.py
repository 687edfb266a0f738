"""Hedge decision engine — entry, hedge, exit and re-entry per cycle.

``HedgeDecisionEngine.evaluate`` is a pure input→signals step over one
``MarketCycle`` and the instrument's ``PositionLedger``.  The checks run
in a fixed order (entry, hedge, exit, re-entry); each is isolated so a
failure in one never prevents the others, and ``evaluate`` never raises.
The engine does not touch the ledger: the execution layer turns signals
into orders and records fills itself.
"""

import logging
from collections.abc import Callable
from typing import Optional

from hedgeforge.advisory import NO_ADVISORY, Advisory, AdvisoryFilter, allow_signal
from hedgeforge.config import EngineSettings
from hedgeforge.ledger import PositionLedger
from hedgeforge.levels.catalog import StaticLevelCatalog
from hedgeforge.levels.dynamic_levels import LevelLearner
from hedgeforge.levels.models import LevelType
from hedgeforge.models.position import (
    HEDGE_ROLE,
    PROTECTED_ROLE,
    Position,
    PositionRole,
    Side,
)
from hedgeforge.models.stream_config import InstrumentConfig
from hedgeforge.risk.liquidation import (
    LiquidationModel,
    SimpleLiquidationModel,
    resolve_liquidation_price,
)
from hedgeforge.risk.pnl import analyse_hedge_pair, liquidation_lock
from hedgeforge.risk.zones import compute_zones
from hedgeforge.strategy.models import MarketCycle, SignalType, TradingSignal
from hedgeforge.strategy.peak_detector import PeakTroughDetector, detect_market_reversal
from hedgeforge.strategy.rules import (
    ENTRY_RULES,
    PRIMARY_EXIT_RULES,
    EntryContext,
    EntryDecision,
    ExitContext,
    crossed_scalp_levels,
    vwap_confirms_hedge,
    zone_hedge_gate,
)

logger = logging.getLogger("hedgeforge.strategy")

_PRIMARY_ROLES = (
    PositionRole.PRIMARY_ANCHOR,
    PositionRole.PRIMARY_OPPORTUNITY,
    PositionRole.SCALP,
)
_ZONE_HEDGED_ROLES = (PositionRole.PRIMARY_ANCHOR, PositionRole.PRIMARY_OPPORTUNITY)


class HedgeDecisionEngine:
    """Turns one market snapshot and the ledger into trading signals.

    Args:
        instrument_config: Stream settings (leverage and sizing per role).
        settings: Engine thresholds.
        learner: Learned support/resistance levels for the instrument.
        catalog: Static level catalog for the instrument.
        advisory_filter: Optional veto for entry and re-entry signals.
        liquidation_model: Estimator used when the ledger has no
            exchange-reported liquidation price.
        detector: Per-position price history for reversal confirmation.
    """

    def __init__(
        self,
        instrument_config: InstrumentConfig,
        settings: EngineSettings,
        learner: LevelLearner,
        catalog: StaticLevelCatalog,
        advisory_filter: Optional[AdvisoryFilter] = None,
        liquidation_model: Optional[LiquidationModel] = None,
        detector: Optional[PeakTroughDetector] = None,
    ) -> None:
        self._stream = instrument_config
        self._settings = settings
        self._learner = learner
        self._catalog = catalog
        self._advisory_filter = advisory_filter
        self._liquidation = liquidation_model or SimpleLiquidationModel()
        self._detector = detector or PeakTroughDetector(settings.detector)

    @property
    def instrument(self) -> str:
        return self._stream.instrument

    @property
    def detector(self) -> PeakTroughDetector:
        return self._detector

    # ── Public API ───────────────────────────────────────────────────────

    def evaluate(
        self,
        cycle: MarketCycle,
        ledger: PositionLedger,
        portfolio_primaries: Optional[int] = None,
        advisory: Advisory = NO_ADVISORY,
    ) -> list[TradingSignal]:
        """Run every check against one consistent snapshot.

        Args:
            cycle: Price, indicators and recent closes for this cycle.
            ledger: Positions of this instrument (read only).
            portfolio_primaries: OPEN primaries across all instruments; the
                ledger's own count is used when omitted.
            advisory: Advisory analysis for the cycle, if any.

        Returns:
            Signals in check order: entry, hedge, exit, re-entry.
        """
        if cycle.instrument != ledger.instrument:
            logger.warning(
                "Cycle for %s evaluated against ledger for %s; skipping.",
                cycle.instrument, ledger.instrument,
            )
            return []

        checks: tuple[tuple[str, Callable[[], list[TradingSignal]]], ...] = (
            ("entry", lambda: self._check_entry(cycle, ledger, portfolio_primaries, advisory)),
            ("hedge", lambda: self._check_hedges(cycle, ledger)),
            ("exit", lambda: self._check_exits(cycle, ledger)),
            ("re-entry", lambda: self._check_reentry(cycle, ledger, portfolio_primaries, advisory)),
        )
        signals: list[TradingSignal] = []
        for name, check in checks:
            try:
                signals.extend(check())
            except Exception:
                logger.exception("%s: %s check failed; skipping.", self.instrument, name)

        for signal in signals:
            logger.info(
                "%s %s %s %s @ %.5f (%.2f): %s",
                self.instrument, signal.signal_type.value, signal.role.value,
                signal.side.value, signal.price, signal.confidence, signal.reason,
            )
        return signals

    # ── Entry ────────────────────────────────────────────────────────────

    def _check_entry(
        self,
        cycle: MarketCycle,
        ledger: PositionLedger,
        portfolio_primaries: Optional[int],
        advisory: Advisory,
    ) -> list[TradingSignal]:
        if self._primary_cap_reached(ledger, portfolio_primaries, "entry"):
            return []

        snapshot = cycle.snapshot(self._settings.signal_timeframe)
        if snapshot is None:
            logger.warning(
                "%s: no %s indicators, skipping entry.",
                self.instrument, self._settings.signal_timeframe,
            )
            return []

        ctx = EntryContext(
            price=cycle.price,
            signal=snapshot,
            trend=cycle.snapshot(self._settings.trend_timeframe),
            levels=self._catalog.trading_signals(cycle.price),
            nearest_level=self._catalog.nearest_level(cycle.price),
            scalp_activation=cycle.scalp_activation,
            settings=self._settings,
        )
        for rule in ENTRY_RULES:
            if ledger.has_open(rule.role):
                continue
            decision = rule.evaluate(ctx)
            if decision is None:
                continue
            signal = self._opening_signal(cycle, SignalType.ENTRY, decision)
            if not allow_signal(self._advisory_filter, signal, advisory):
                return []
            return [signal]
        return []

    def _primary_cap_reached(
        self, ledger: PositionLedger, portfolio_primaries: Optional[int], action: str
    ) -> bool:
        open_primaries = (
            portfolio_primaries
            if portfolio_primaries is not None
            else ledger.open_primary_count()
        )
        if open_primaries < self._settings.max_concurrent_primaries:
            return False
        logger.debug(
            "%s: primary cap reached (%d/%d), no %s.",
            self.instrument, open_primaries, self._settings.max_concurrent_primaries, action,
        )
        return True

    # ── Hedge ────────────────────────────────────────────────────────────

    def _check_hedges(self, cycle: MarketCycle, ledger: PositionLedger) -> list[TradingSignal]:
        signals: list[TradingSignal] = []
        for role in _ZONE_HEDGED_ROLES:
            primary = ledger.open_by_role(role)
            if primary is None or ledger.hedges_for(primary):
                continue
            signal = self._zone_hedge(cycle, primary)
            if signal is not None:
                signals.append(signal)

        scalp = ledger.open_by_role(PositionRole.SCALP)
        if scalp is not None:
            signal = self._scalp_hedge(cycle, ledger, scalp)
            if signal is not None:
                signals.append(signal)
        return signals

    def _zone_hedge(self, cycle: MarketCycle, primary: Position) -> Optional[TradingSignal]:
        liquidation = resolve_liquidation_price(primary, self._liquidation)
        zone = compute_zones(
            primary.entry_price, liquidation, primary.side, cycle.price, self._settings.zones
        )
        if not zone.valid:
            logger.warning(
                "%s: invalid liquidation price %.5f for %s, no hedge check.",
                self.instrument, liquidation, primary.id,
            )
            return None

        snapshot = cycle.snapshot(self._settings.signal_timeframe)
        vwap_ok = (
            vwap_confirms_hedge(
                primary.side, cycle.price, snapshot, self._settings.hedge.vwap_confirmation_pct
            )
            if snapshot is not None
            else None
        )
        if vwap_ok is None:
            logger.warning("%s: VWAP unavailable, skipping hedge check.", self.instrument)
            return None
        if not zone_hedge_gate(zone, vwap_ok):
            return None

        reference_type = LevelType.SUPPORT if primary.side is Side.LONG else LevelType.RESISTANCE
        reference = self._learner.strongest(reference_type)
        reason = (
            f"Price {cycle.price:.5f} in protection zone "
            f"[{zone.protection_start:.5f}, {zone.protection_end:.5f}] with VWAP confirmation"
        )
        if reference is not None:
            reason += f"; strongest {reference_type.value.lower()} {reference.price:.5f}"
        return self._opening_signal(
            cycle,
            SignalType.HEDGE,
            EntryDecision(
                side=primary.side.opposite,
                role=HEDGE_ROLE[primary.role],
                confidence=self._settings.hedge.hedge_confidence,
                reason=reason,
                level_price=reference.price if reference is not None else None,
            ),
            position_id=primary.id,
        )

    def _scalp_hedge(
        self, cycle: MarketCycle, ledger: PositionLedger, scalp: Position
    ) -> Optional[TradingSignal]:
        if scalp.side is Side.LONG:
            level_prices = [lv.price for lv in self._learner.supports()]
        else:
            level_prices = [lv.price for lv in self._learner.resistances()]
        hedged = [
            h.hedge_level for h in ledger.hedges_for(scalp) if h.hedge_level is not None
        ]
        crossed = crossed_scalp_levels(
            scalp, cycle.price, level_prices, hedged, self._settings.levels.tolerance
        )
        if not crossed:
            return None
        level = crossed[0]
        return self._opening_signal(
            cycle,
            SignalType.HEDGE,
            EntryDecision(
                side=scalp.side.opposite,
                role=PositionRole.SCALP_HEDGE,
                confidence=self._settings.hedge.hedge_confidence,
                reason=f"Scalp level {level:.5f} crossed",
                level_price=level,
            ),
            position_id=scalp.id,
        )

    # ── Exit ─────────────────────────────────────────────────────────────

    def _check_exits(self, cycle: MarketCycle, ledger: PositionLedger) -> list[TradingSignal]:
        price = cycle.price
        exit_settings = self._settings.exit
        signals: list[TradingSignal] = []
        exiting: set[str] = set()

        primaries = [p for role in _PRIMARY_ROLES for p in ledger.open_positions(role)]
        self._detector.prune(p.id for p in primaries)
        for primary in primaries:
            self._detector.observe(primary.id, cycle.timestamp, price)

        # Paired exits: lock a net gain before liquidation, or double profit
        for primary in primaries:
            for hedge in ledger.hedges_for(primary):
                if primary.id in exiting:
                    break
                paired = self._paired_exit_reason(primary, hedge, price)
                if paired is None:
                    continue
                reason, confidence = paired
                for position in (primary, hedge):
                    signals.append(self._exit_signal(cycle, position, confidence, reason))
                    exiting.add(position.id)

        # Hedge exits
        hedges = [p for role in PROTECTED_ROLE for p in ledger.open_positions(role)]
        for hedge in hedges:
            if hedge.id in exiting:
                continue
            protected = ledger.protected_position(hedge)
            if protected is None:
                signals.append(
                    self._exit_signal(cycle, hedge, 1.0, "Orphaned hedge: protected position closed")
                )
                exiting.add(hedge.id)
                continue
            analysis = analyse_hedge_pair(protected, hedge, price, exit_settings)
            logger.debug(
                "%s hedge %s: primary=%.3f%% hedge=%.3f%% ratio=%.2f adjusted=%.3f%% "
                "total=%.3f%% fees=%.3f%% close=%s",
                self.instrument, hedge.id, analysis.primary_pnl_pct, analysis.hedge_pnl_pct,
                analysis.leverage_ratio, analysis.leverage_adjusted_hedge_pnl,
                analysis.total_pnl, analysis.estimated_fees, analysis.should_close,
            )
            if analysis.should_close:
                signals.append(
                    self._exit_signal(cycle, hedge, 0.9, f"Hedge exit: {analysis.reason}")
                )
                exiting.add(hedge.id)

        # Primary exits, hedged or not
        snapshot = cycle.snapshot(self._settings.signal_timeframe)
        for primary in primaries:
            if primary.id in exiting:
                continue
            reversal = (
                self._detector.is_peak(primary.id)
                if primary.side is Side.LONG
                else self._detector.is_trough(primary.id)
            )
            ctx = ExitContext(
                price=price,
                snapshot=snapshot,
                catalog=self._catalog,
                reversal_confirmed=reversal,
                settings=exit_settings,
            )
            for rule in PRIMARY_EXIT_RULES:
                reason = rule(primary, ctx)
                if reason is not None:
                    signals.append(self._exit_signal(cycle, primary, 0.8, reason))
                    exiting.add(primary.id)
                    break
        return signals

    def _paired_exit_reason(
        self, primary: Position, hedge: Position, price: float
    ) -> Optional[tuple[str, float]]:
        """Reason and confidence for closing *primary* and *hedge* together."""
        s = self._settings.exit
        liquidation = resolve_liquidation_price(primary, self._liquidation)
        lock = liquidation_lock(primary, hedge, price, liquidation, s.liquidation_proximity)
        if lock.locks_profit:
            return (
                f"Liquidation lock: hedge profit {lock.hedge_profit:.4f} exceeds "
                f"loss at liquidation {lock.primary_loss_at_liquidation:.4f}",
                0.95,
            )

        if hedge.pnl_pct(price) < s.hedge_take_profit_pct:
            return None
        if primary.side is Side.LONG:
            level = self._learner.nearest_support(price)
        else:
            level = self._learner.nearest_resistance(price)
        if level is None:
            return None
        if abs(price - level.price) / level.price <= s.double_profit_level_tolerance:
            return f"Double profit: hedge target hit near level {level.price:.5f}", 0.9
        return None

    # ── Re-entry ─────────────────────────────────────────────────────────

    def _check_reentry(
        self,
        cycle: MarketCycle,
        ledger: PositionLedger,
        portfolio_primaries: Optional[int],
        advisory: Advisory,
    ) -> list[TradingSignal]:
        if ledger.has_open(PositionRole.PRIMARY_OPPORTUNITY):
            return []
        if self._primary_cap_reached(ledger, portfolio_primaries, "re-entry"):
            return []
        snapshot = cycle.snapshot(self._settings.signal_timeframe)
        if snapshot is None or snapshot.rsi is None or snapshot.volume_ratio is None:
            logger.warning("%s: RSI/volume unavailable, skipping re-entry.", self.instrument)
            return []

        side = detect_market_reversal(
            cycle.recent_prices,
            snapshot.rsi,
            snapshot.volume_ratio,
            snapshot.rsi_previous,
            self._settings.reentry,
        )
        if side is None:
            return []
        if ledger.open_positions(side=side):
            logger.info(
                "%s: %s reversal suppressed, a %s position is already open.",
                self.instrument, side.value, side.value,
            )
            return []

        kind = "Peak" if side is Side.SHORT else "Trough"
        signal = self._opening_signal(
            cycle,
            SignalType.RE_ENTRY,
            EntryDecision(
                side=side,
                role=PositionRole.PRIMARY_OPPORTUNITY,
                confidence=self._settings.reentry.confidence,
                reason=f"{kind} detected, opening {side.value} reversal",
            ),
        )
        if not allow_signal(self._advisory_filter, signal, advisory):
            return []
        return [signal]

    # ── Signal construction ──────────────────────────────────────────────

    def _opening_signal(
        self,
        cycle: MarketCycle,
        signal_type: SignalType,
        decision: EntryDecision,
        position_id: Optional[str] = None,
    ) -> TradingSignal:
        return TradingSignal(
            signal_type=signal_type,
            side=decision.side,
            price=cycle.price,
            confidence=decision.confidence,
            reason=decision.reason,
            timestamp=cycle.timestamp,
            instrument=self.instrument,
            role=decision.role,
            position_id=position_id,
            leverage=self._stream.leverage.for_role(decision.role),
            size_fraction=self._stream.sizing.for_role(decision.role),
            level_price=decision.level_price,
        )

    def _exit_signal(
        self, cycle: MarketCycle, position: Position, confidence: float, reason: str
    ) -> TradingSignal:
        return TradingSignal(
            signal_type=SignalType.EXIT,
            side=position.side,
            price=cycle.price,
            confidence=confidence,
            reason=reason,
            timestamp=cycle.timestamp,
            instrument=self.instrument,
            role=position.role,
            position_id=position.id,
        )
