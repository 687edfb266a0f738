"""Tests for HedgeDecisionEngine — entry, hedge, exit and re-entry per cycle.

Verifies:
  - Entry uniqueness per role, global primary cap, advisory veto
  - Zone + VWAP hedge gate for anchor and opportunity primaries
  - Scalp entries and per-level scalp hedges
  - Orphaned hedge exits, leverage-adjusted hedge exits, paired exits
  - Primary take-profit, catalog-target and exhaustion exits, hedged or not
  - Peak/trough re-entry, same-direction suppression, global primary cap
  - evaluate() never raises and is repeatable for the same snapshot
"""

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from hedgeforge.advisory import AdvisoryAnalysis, Recommendation, RuleBasedAdvisoryFilter
from hedgeforge.config import EngineSettings
from hedgeforge.ledger import PositionLedger
from hedgeforge.levels.catalog import StaticLevelCatalog
from hedgeforge.levels.dynamic_levels import LevelLearner
from hedgeforge.levels.models import CatalogLevel, Importance, LevelType
from hedgeforge.models.position import Position, PositionRole, Side
from hedgeforge.models.stream_config import InstrumentConfig
from hedgeforge.strategy.hedge_engine import HedgeDecisionEngine
from hedgeforge.strategy.models import (
    IndicatorSnapshot,
    MarketCycle,
    PriceSample,
    SignalType,
)


# ── Helpers ──────────────────────────────────────────────────────────────

_T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)
_INSTRUMENT = "ADAUSDT"

_WAVE = [
    1.05, 1.07, 1.10, 1.07, 1.05, 1.03, 1.00, 1.03,
    1.05, 1.07, 1.10, 1.07, 1.05, 1.03, 1.00, 1.03,
    1.05, 1.07, 1.10, 1.07, 1.05, 1.03,
]


def _make_catalog() -> StaticLevelCatalog:
    rows = [
        (0.8673, "High", "RESISTANCE", "HIGH"),
        (0.8602, "Previous Close", "SUPPORT", "HIGH"),
        (0.8816, "Pivot R1", "RESISTANCE", "HIGH"),
        (0.8389, "1 SD Support", "SUPPORT", "MEDIUM"),
        (0.9001, "3 SD Resistance", "RESISTANCE", "HIGH"),
        (0.7664, "1-Month Low", "SUPPORT", "CRITICAL"),
        (1.0179, "13-Week High", "RESISTANCE", "CRITICAL"),
    ]
    return StaticLevelCatalog(
        CatalogLevel(p, d, LevelType(t), Importance(i)) for p, d, t, i in rows
    )


def _learner_around(scale: float) -> LevelLearner:
    """Learner with one support at 1.00 × scale and one resistance at 1.10 × scale."""
    learner = LevelLearner()
    learner.learn(
        [
            PriceSample(p * scale, 100.0, _T0 + timedelta(hours=i))
            for i, p in enumerate(_WAVE)
        ],
        "4h",
    )
    return learner


def _make_engine(settings=None, learner=None, catalog=None, **kwargs) -> HedgeDecisionEngine:
    return HedgeDecisionEngine(
        instrument_config=InstrumentConfig(name="ada", instrument=_INSTRUMENT),
        settings=settings or EngineSettings(),
        learner=learner or LevelLearner(),
        catalog=catalog or _make_catalog(),
        **kwargs,
    )


def _snap(rsi=50.0, volume_ratio=1.0, vwap=None, **overrides) -> IndicatorSnapshot:
    return IndicatorSnapshot(rsi=rsi, volume_ratio=volume_ratio, vwap=vwap, **overrides)


def _cycle(price, snap=None, trend=None, recent=(), scalp=False, ts=_T0) -> MarketCycle:
    snapshots = {"1h": snap if snap is not None else _snap()}
    if trend is not None:
        snapshots["4h"] = trend
    return MarketCycle(
        instrument=_INSTRUMENT,
        price=price,
        timestamp=ts,
        snapshots=snapshots,
        recent_prices=tuple(recent),
        scalp_activation=scalp,
    )


def _position(id="p1", role=PositionRole.PRIMARY_ANCHOR, side=Side.LONG, entry=1.0,
              leverage=10, quantity=100.0, **overrides) -> Position:
    return Position(
        id=id,
        instrument=_INSTRUMENT,
        side=side,
        role=role,
        quantity=quantity,
        entry_price=entry,
        leverage=leverage,
        **overrides,
    )


def _ledger(*positions) -> PositionLedger:
    ledger = PositionLedger(_INSTRUMENT)
    for position in positions:
        ledger.open_position(position)
    return ledger


def _anchor_with_hedge(hedge_entry=0.97, hedge_quantity=100.0) -> PositionLedger:
    return _ledger(
        _position(),
        _position(id="h1", role=PositionRole.HEDGE_ANCHOR, side=Side.SHORT,
                  entry=hedge_entry, leverage=15, quantity=hedge_quantity),
    )


# ── Entry ────────────────────────────────────────────────────────────────


class TestEntry:
    def test_resistance_breakout_long(self):
        """0.87 within 2% of 0.8816, volume 1.5, RSI 25, below VWAP → LONG anchor."""
        engine = _make_engine()
        cycle = _cycle(0.87, _snap(rsi=25.0, volume_ratio=1.5, vwap=0.88))
        signals = engine.evaluate(cycle, _ledger())
        assert len(signals) == 1
        s = signals[0]
        assert s.signal_type is SignalType.ENTRY
        assert s.side is Side.LONG
        assert s.role is PositionRole.PRIMARY_ANCHOR
        assert s.level_price == 0.8816
        assert s.confidence == pytest.approx(0.8)
        assert s.leverage == 10
        assert s.size_fraction == pytest.approx(0.20)
        assert s.timestamp == _T0
        assert s.instrument == _INSTRUMENT

    def test_trend_agreement_raises_confidence(self):
        engine = _make_engine()
        cycle = _cycle(
            0.87, _snap(rsi=25.0, volume_ratio=1.5, vwap=0.88),
            trend=_snap(trend="BULLISH"),
        )
        assert engine.evaluate(cycle, _ledger())[0].confidence == pytest.approx(1.0)

    def test_support_breakdown_short(self):
        """0.865 near 0.8602, RSI 75, above VWAP → SHORT anchor."""
        engine = _make_engine()
        cycle = _cycle(0.865, _snap(rsi=75.0, volume_ratio=1.5, vwap=0.85))
        signals = engine.evaluate(cycle, _ledger())
        assert [(s.signal_type, s.side) for s in signals] == [(SignalType.ENTRY, Side.SHORT)]
        assert signals[0].level_price == 0.8602

    def test_no_entry_without_volume(self):
        engine = _make_engine()
        cycle = _cycle(0.87, _snap(rsi=25.0, volume_ratio=1.0, vwap=0.88))
        assert engine.evaluate(cycle, _ledger()) == []

    def test_no_second_entry_while_primary_open(self):
        engine = _make_engine()
        ledger = _ledger(_position(entry=0.87))
        cycle = _cycle(0.87, _snap(rsi=25.0, volume_ratio=1.5, vwap=0.88))
        assert engine.evaluate(cycle, ledger) == []

    def test_global_cap_blocks_entry(self):
        engine = _make_engine()
        cycle = _cycle(0.87, _snap(rsi=25.0, volume_ratio=1.5, vwap=0.88))
        assert engine.evaluate(cycle, _ledger(), portfolio_primaries=2) == []

    def test_ledger_count_used_when_portfolio_count_missing(self):
        engine = _make_engine(EngineSettings(max_concurrent_primaries=1))
        ledger = _ledger(_position(id="o1", role=PositionRole.PRIMARY_OPPORTUNITY, entry=0.87))
        cycle = _cycle(0.87, _snap(rsi=25.0, volume_ratio=1.5, vwap=0.88))
        assert [s for s in engine.evaluate(cycle, ledger) if s.signal_type is SignalType.ENTRY] == []

    def test_advisory_veto(self):
        engine = _make_engine(advisory_filter=RuleBasedAdvisoryFilter())
        cycle = _cycle(0.87, _snap(rsi=25.0, volume_ratio=1.5, vwap=0.88))
        analysis = AdvisoryAnalysis(-0.5, "VOLATILE", 0.9, 0.9, Recommendation.AVOID)
        assert engine.evaluate(cycle, _ledger(), advisory=analysis) == []

    def test_advisory_without_analysis_allows(self):
        engine = _make_engine(advisory_filter=RuleBasedAdvisoryFilter())
        cycle = _cycle(0.87, _snap(rsi=25.0, volume_ratio=1.5, vwap=0.88))
        assert len(engine.evaluate(cycle, _ledger())) == 1

    def test_missing_signal_snapshot_skips_entry(self, caplog):
        engine = _make_engine()
        cycle = MarketCycle(instrument=_INSTRUMENT, price=0.87, timestamp=_T0)
        with caplog.at_level(logging.WARNING, logger="hedgeforge.strategy"):
            assert engine.evaluate(cycle, _ledger()) == []
        assert "skipping entry" in caplog.text


class TestScalpEntry:
    def test_scalp_at_support_goes_long(self):
        """0.8605 within 0.5% of support 0.8602, volume 1.6, RSI 50 → 0.5 + 0.2 + 0.2."""
        engine = _make_engine()
        cycle = _cycle(0.8605, _snap(rsi=50.0, volume_ratio=1.6), scalp=True)
        signals = engine.evaluate(cycle, _ledger())
        assert len(signals) == 1
        s = signals[0]
        assert s.role is PositionRole.SCALP
        assert s.side is Side.LONG
        assert s.confidence == pytest.approx(0.9)
        assert s.leverage == 15
        assert s.size_fraction == pytest.approx(0.10)

    def test_scalp_at_resistance_goes_short(self):
        engine = _make_engine()
        cycle = _cycle(0.8670, _snap(rsi=50.0, volume_ratio=1.3), scalp=True)
        signals = engine.evaluate(cycle, _ledger())
        assert [(s.role, s.side) for s in signals] == [(PositionRole.SCALP, Side.SHORT)]
        assert signals[0].confidence == pytest.approx(0.7)

    def test_scalp_needs_activation(self):
        engine = _make_engine()
        cycle = _cycle(0.8605, _snap(rsi=50.0, volume_ratio=1.6), scalp=False)
        assert engine.evaluate(cycle, _ledger()) == []

    def test_scalp_disabled(self):
        engine = _make_engine(EngineSettings(scalp_enabled=False))
        cycle = _cycle(0.8605, _snap(rsi=50.0, volume_ratio=1.6), scalp=True)
        assert engine.evaluate(cycle, _ledger()) == []


# ── Hedge ────────────────────────────────────────────────────────────────


class TestZoneHedge:
    def test_hedge_in_protection_zone_with_vwap(self):
        """LONG 1.00 x10 (liq 0.90): 0.95 in [0.93, 0.97], 2% below VWAP 0.97."""
        engine = _make_engine()
        signals = engine.evaluate(_cycle(0.95, _snap(vwap=0.97)), _ledger(_position()))
        assert len(signals) == 1
        s = signals[0]
        assert s.signal_type is SignalType.HEDGE
        assert s.side is Side.SHORT
        assert s.role is PositionRole.HEDGE_ANCHOR
        assert s.position_id == "p1"
        assert s.leverage == 15
        assert s.size_fraction == pytest.approx(0.30)
        assert s.confidence == pytest.approx(0.8)
        assert s.level_price is None

    def test_hedge_reachable_with_default_settings(self):
        """Sweep 0.999 → 0.901 with VWAP 2% above: hedges across [0.93, 0.97]."""
        engine = _make_engine()
        hedge_prices = []
        for i in range(1, 100):
            price = round(1.0 - i * 0.001, 3)
            signals = engine.evaluate(
                _cycle(price, _snap(vwap=price * 1.02)), _ledger(_position())
            )
            if signals:
                assert [(s.signal_type, s.position_id) for s in signals] == [
                    (SignalType.HEDGE, "p1")
                ]
                hedge_prices.append(price)
        assert len(hedge_prices) >= 39
        assert min(hedge_prices) >= 0.929
        assert max(hedge_prices) <= 0.971

    def test_hedge_logs_strongest_level(self):
        engine = _make_engine(learner=_learner_around(0.9))
        signals = engine.evaluate(_cycle(0.95, _snap(vwap=0.97)), _ledger(_position()))
        assert signals[0].level_price == pytest.approx(0.90)
        assert "strongest support" in signals[0].reason

    def test_no_hedge_without_vwap_confirmation(self):
        engine = _make_engine()
        assert engine.evaluate(_cycle(0.95, _snap(vwap=0.951)), _ledger(_position())) == []

    def test_no_hedge_in_buffer_zone(self):
        """0.98 lies in the buffer [0.97, 0.985] between entry and protection."""
        engine = _make_engine()
        assert engine.evaluate(_cycle(0.98, _snap(vwap=1.0)), _ledger(_position())) == []

    def test_no_hedge_past_protection_zone(self):
        engine = _make_engine()
        assert engine.evaluate(_cycle(0.92, _snap(vwap=0.94)), _ledger(_position())) == []

    def test_no_hedge_without_vwap(self, caplog):
        engine = _make_engine()
        with caplog.at_level(logging.WARNING, logger="hedgeforge.strategy"):
            assert engine.evaluate(_cycle(0.95, _snap(vwap=None)), _ledger(_position())) == []
        assert "VWAP unavailable" in caplog.text

    def test_no_hedge_with_invalid_liquidation_price(self):
        engine = _make_engine()
        ledger = _ledger(_position(liquidation_price=0.0))
        assert engine.evaluate(_cycle(0.95, _snap(vwap=0.97)), ledger) == []

    def test_reported_liquidation_price_drives_zone(self):
        """Reported liq 0.95 → protection [0.965, 0.985]; 0.975 is buffer for liq 0.90."""
        engine = _make_engine()
        cycle = _cycle(0.975, _snap(vwap=0.995))
        assert engine.evaluate(cycle, _ledger(_position())) == []
        signals = engine.evaluate(cycle, _ledger(_position(liquidation_price=0.95)))
        assert [(s.signal_type, s.position_id) for s in signals] == [(SignalType.HEDGE, "p1")]

    def test_at_most_one_hedge_per_primary(self):
        engine = _make_engine()
        assert engine.evaluate(_cycle(0.94, _snap(vwap=0.96)), _anchor_with_hedge()) == []

    def test_opportunity_hedged_independently(self):
        """SHORT opportunity 1.00 (liq 1.10): 1.05 in [1.03, 1.07], 1.9% above VWAP."""
        engine = _make_engine()
        ledger = _ledger(_position(id="o1", role=PositionRole.PRIMARY_OPPORTUNITY, side=Side.SHORT))
        signals = engine.evaluate(_cycle(1.05, _snap(vwap=1.03)), ledger)
        assert [(s.signal_type, s.role, s.side) for s in signals] == [
            (SignalType.HEDGE, PositionRole.HEDGE_OPPORTUNITY, Side.LONG)
        ]
        assert signals[0].position_id == "o1"


class TestScalpHedge:
    def test_hedge_per_crossed_level(self):
        engine = _make_engine(learner=_learner_around(0.98))
        ledger = _ledger(_position(id="s1", role=PositionRole.SCALP, leverage=15))
        signals = engine.evaluate(_cycle(0.975), ledger)
        assert len(signals) == 1
        s = signals[0]
        assert s.signal_type is SignalType.HEDGE
        assert s.role is PositionRole.SCALP_HEDGE
        assert s.side is Side.SHORT
        assert s.level_price == pytest.approx(0.98)
        assert s.position_id == "s1"

    def test_level_already_hedged(self):
        engine = _make_engine(learner=_learner_around(0.98))
        ledger = _ledger(
            _position(id="s1", role=PositionRole.SCALP, leverage=15),
            _position(id="sh1", role=PositionRole.SCALP_HEDGE, side=Side.SHORT,
                      entry=0.98, leverage=15, hedge_level=0.98),
        )
        assert engine.evaluate(_cycle(0.975), ledger) == []


# ── Exit ─────────────────────────────────────────────────────────────────


class TestHedgeExit:
    @pytest.mark.parametrize("price", [0.5, 0.95, 1.5])
    def test_orphaned_hedge_always_exits(self, price):
        ledger = _anchor_with_hedge()
        ledger.close_position("p1")
        signals = _make_engine().evaluate(_cycle(price), ledger)
        assert len(signals) == 1
        s = signals[0]
        assert s.signal_type is SignalType.EXIT
        assert s.position_id == "h1"
        assert s.role is PositionRole.HEDGE_ANCHOR
        assert s.side is Side.SHORT
        assert s.confidence == 1.0
        assert s.reason.startswith("Orphaned hedge")

    def test_hedge_stays_open_in_reference_scenario(self):
        assert _make_engine().evaluate(_cycle(0.94), _anchor_with_hedge()) == []

    def test_hedge_exit_when_primary_recovers(self):
        signals = _make_engine().evaluate(_cycle(1.02), _anchor_with_hedge())
        assert [(s.signal_type, s.position_id) for s in signals] == [
            (SignalType.EXIT, "h1"),
            (SignalType.EXIT, "p1"),
        ]
        assert signals[0].reason == "Hedge exit: primary recovered"
        assert signals[0].confidence == pytest.approx(0.9)

    def test_hedged_primary_still_takes_profit(self):
        """LONG 1.00 hedged by SHORT 0.985; at 1.02 the primary is +2% (200% of target)."""
        signals = _make_engine().evaluate(_cycle(1.02), _anchor_with_hedge(hedge_entry=0.985))
        assert [(s.signal_type, s.position_id) for s in signals] == [
            (SignalType.EXIT, "h1"),
            (SignalType.EXIT, "p1"),
        ]
        assert signals[0].reason == "Hedge exit: primary recovered"
        assert signals[1].reason.startswith("Take profit reached")
        assert signals[1].confidence == pytest.approx(0.8)


class TestPairedExit:
    def test_liquidation_lock_closes_both_legs(self):
        """Loss at liq 0.90 = -10, hedge profit at 0.905 = +26."""
        ledger = _anchor_with_hedge(hedge_quantity=400.0)
        signals = _make_engine().evaluate(_cycle(0.905), ledger)
        assert [s.position_id for s in signals] == ["p1", "h1"]
        assert all(s.signal_type is SignalType.EXIT for s in signals)
        assert all(s.confidence == pytest.approx(0.95) for s in signals)
        assert signals[0].reason.startswith("Liquidation lock")

    def test_no_lock_when_net_negative(self):
        ledger = _anchor_with_hedge(hedge_quantity=100.0)
        signals = _make_engine().evaluate(_cycle(0.905), ledger)
        assert "p1" not in [s.position_id for s in signals]

    def test_double_profit_near_support(self):
        """Hedge +3.9% and price 0.932 within 0.5% of learned support 0.93."""
        engine = _make_engine(learner=_learner_around(0.93))
        signals = engine.evaluate(_cycle(0.932), _anchor_with_hedge())
        assert [s.position_id for s in signals] == ["p1", "h1"]
        assert signals[0].reason.startswith("Double profit")
        assert signals[0].confidence == pytest.approx(0.9)


class TestPrimaryExit:
    def test_take_profit(self):
        signals = _make_engine().evaluate(_cycle(1.011), _ledger(_position()))
        assert [(s.signal_type, s.position_id) for s in signals] == [(SignalType.EXIT, "p1")]
        assert signals[0].reason.startswith("Take profit reached")
        assert signals[0].confidence == pytest.approx(0.8)

    def test_scalp_uses_scalp_target(self):
        ledger = _ledger(_position(id="s1", role=PositionRole.SCALP, entry=0.86, leverage=15))
        signals = _make_engine().evaluate(_cycle(0.8645), ledger)
        assert [s.position_id for s in signals] == ["s1"]
        assert "0.5% target" in signals[0].reason

    def test_catalog_target(self):
        """Entry 0.865 → next resistance 0.8673; 0.8675 reached, under 1% profit."""
        signals = _make_engine().evaluate(_cycle(0.8675), _ledger(_position(entry=0.865)))
        assert [s.position_id for s in signals] == ["p1"]
        assert signals[0].reason == "Catalog target High (0.8673) reached"

    def test_rsi_exhaustion_at_level(self):
        ledger = _ledger(_position(entry=0.875))
        signals = _make_engine().evaluate(_cycle(0.879, _snap(rsi=75.0)), ledger)
        assert [s.position_id for s in signals] == ["p1"]
        assert signals[0].reason == "RSI overbought at Pivot R1"

    def test_price_peak_confirms_exhaustion(self):
        engine = _make_engine()
        ledger = _ledger(_position(entry=0.875))
        prices = [0.8760, 0.8812, 0.8780]
        results = [
            engine.evaluate(_cycle(p, ts=_T0 + timedelta(hours=i)), ledger)
            for i, p in enumerate(prices)
        ]
        assert results[0] == [] and results[1] == []
        assert [s.position_id for s in results[2]] == ["p1"]
        assert results[2][0].reason == "Price peak detected at Pivot R1"

    def test_detector_forgets_closed_positions(self):
        engine = _make_engine()
        ledger = _ledger(_position(entry=0.875))
        engine.evaluate(_cycle(0.876), ledger)
        assert "p1" in engine.detector
        ledger.close_position("p1")
        engine.evaluate(_cycle(0.876, ts=_T0 + timedelta(hours=1)), ledger)
        assert "p1" not in engine.detector


# ── Re-entry ─────────────────────────────────────────────────────────────


class TestReentry:
    def test_peak_opens_short_opportunity(self):
        cycle = _cycle(1.00, _snap(rsi=75.0, volume_ratio=0.5),
                       recent=[1.00, 1.02, 1.05, 1.03, 1.00])
        signals = _make_engine().evaluate(cycle, _ledger())
        assert len(signals) == 1
        s = signals[0]
        assert s.signal_type is SignalType.RE_ENTRY
        assert s.side is Side.SHORT
        assert s.role is PositionRole.PRIMARY_OPPORTUNITY
        assert s.confidence == pytest.approx(0.8)
        assert s.reason == "Peak detected, opening SHORT reversal"

    def test_trough_opens_long_opportunity(self):
        cycle = _cycle(1.05, _snap(rsi=25.0, volume_ratio=1.5),
                       recent=[1.05, 1.03, 1.00, 1.02, 1.05])
        signals = _make_engine().evaluate(cycle, _ledger())
        assert [(s.signal_type, s.side) for s in signals] == [(SignalType.RE_ENTRY, Side.LONG)]
        assert signals[0].reason == "Trough detected, opening LONG reversal"

    def test_suppressed_when_same_side_open(self):
        ledger = _ledger(_position(side=Side.SHORT))
        cycle = _cycle(1.00, _snap(rsi=75.0, volume_ratio=0.5),
                       recent=[1.00, 1.02, 1.05, 1.03, 1.00])
        assert _make_engine().evaluate(cycle, ledger) == []

    def test_global_cap_blocks_reentry(self):
        cycle = _cycle(1.00, _snap(rsi=75.0, volume_ratio=0.5),
                       recent=[1.00, 1.02, 1.05, 1.03, 1.00])
        assert _make_engine().evaluate(cycle, _ledger(), portfolio_primaries=2) == []

    def test_reentry_allowed_below_global_cap(self):
        cycle = _cycle(1.00, _snap(rsi=75.0, volume_ratio=0.5),
                       recent=[1.00, 1.02, 1.05, 1.03, 1.00])
        signals = _make_engine().evaluate(cycle, _ledger(), portfolio_primaries=1)
        assert [s.signal_type for s in signals] == [SignalType.RE_ENTRY]

    def test_reentry_cap_falls_back_to_ledger_count(self):
        """One LONG anchor open, cap 1: the SHORT reversal is not opened."""
        ledger = _ledger(_position())
        cycle = _cycle(1.00, _snap(rsi=75.0, volume_ratio=0.5),
                       recent=[1.00, 1.02, 1.05, 1.03, 1.00])
        assert [s.signal_type for s in _make_engine().evaluate(cycle, ledger)] == [
            SignalType.RE_ENTRY
        ]
        capped = _make_engine(EngineSettings(max_concurrent_primaries=1))
        assert capped.evaluate(cycle, ledger) == []

    def test_skipped_while_opportunity_open(self):
        ledger = _ledger(_position(id="o1", role=PositionRole.PRIMARY_OPPORTUNITY))
        cycle = _cycle(1.00, _snap(rsi=75.0, volume_ratio=0.5),
                       recent=[1.00, 1.02, 1.05, 1.03, 1.00])
        assert [s for s in _make_engine().evaluate(cycle, ledger)
                if s.signal_type is SignalType.RE_ENTRY] == []


# ── Robustness ───────────────────────────────────────────────────────────


class TestRobustness:
    def test_failing_check_does_not_block_others(self, caplog):
        catalog = MagicMock(spec=StaticLevelCatalog)
        catalog.trading_signals.side_effect = RuntimeError("catalog exploded")
        catalog.nearest_level.side_effect = RuntimeError("catalog exploded")
        ledger = _anchor_with_hedge()
        ledger.close_position("p1")
        engine = _make_engine(catalog=catalog)
        with caplog.at_level(logging.ERROR, logger="hedgeforge.strategy"):
            signals = engine.evaluate(_cycle(0.95), ledger)
        assert [s.position_id for s in signals] == ["h1"]
        assert "entry check failed" in caplog.text

    def test_instrument_mismatch_yields_nothing(self):
        ledger = PositionLedger("BTCUSDT")
        assert _make_engine().evaluate(_cycle(0.87), ledger) == []

    def test_same_snapshot_gives_same_signals(self):
        engine = _make_engine(learner=_learner_around(0.9))
        ledger = _ledger(_position())
        cycle = _cycle(0.95, _snap(vwap=0.97))
        first = engine.evaluate(cycle, ledger)
        second = engine.evaluate(cycle, ledger)
        assert first == second
        assert len(first) == 1
