"""HedgeForge — per-instrument evaluation loop.

Connects market data, indicators, level learning and the hedge decision
engine into a single polling loop.  Each cycle reads one consistent
snapshot, evaluates it, and hands the resulting signals to the execution
layer while holding the instrument's ledger lock.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from hedgeforge.advisory import NO_ADVISORY, Advisory, AdvisoryFilter
from hedgeforge.config import EngineSettings
from hedgeforge.gateway import AdvisoryProvider, ExecutionLayer, MarketDataGateway
from hedgeforge.ledger import Portfolio, PositionLedger
from hedgeforge.levels.catalog import StaticLevelCatalog, default_catalog, load_catalog
from hedgeforge.levels.dynamic_levels import LevelLearner
from hedgeforge.models.stream_config import InstrumentConfig
from hedgeforge.risk.liquidation import LiquidationModel
from hedgeforge.strategy.hedge_engine import HedgeDecisionEngine
from hedgeforge.strategy.indicators import build_snapshot
from hedgeforge.strategy.models import IndicatorSnapshot, MarketCycle, PriceSample

logger = logging.getLogger("hedgeforge")

_RECENT_PRICES = 10


class InstrumentEngine:
    """Orchestrates one evaluate-and-submit cycle per call.

    Args:
        stream: Per-instrument settings.
        settings: Engine thresholds shared by all instruments.
        gateway: Market data source.
        executor: Execution layer receiving signals.
        portfolio: Shared ledgers; used for this instrument's slice and the
            global primary cap.
        catalog: Static levels; loaded from ``stream.levels_path`` or the
            built-in defaults when omitted.
        advisory_filter: Optional entry veto.
        advisory_provider: Optional source of advisory analyses.
        liquidation_model: Optional liquidation estimator.
    """

    def __init__(
        self,
        stream: InstrumentConfig,
        settings: EngineSettings,
        gateway: MarketDataGateway,
        executor: ExecutionLayer,
        portfolio: Optional[Portfolio] = None,
        catalog: Optional[StaticLevelCatalog] = None,
        advisory_filter: Optional[AdvisoryFilter] = None,
        advisory_provider: Optional[AdvisoryProvider] = None,
        liquidation_model: Optional[LiquidationModel] = None,
    ) -> None:
        self._stream = stream
        self._settings = settings
        self._gateway = gateway
        self._executor = executor
        self._portfolio = portfolio or Portfolio()
        self._ledger = self._portfolio.ledger_for(stream.instrument)
        if catalog is None:
            catalog = (
                load_catalog(stream.levels_path)
                if stream.levels_path
                else default_catalog(stream.instrument)
            )
        self._learner = LevelLearner(settings.levels)
        self._decision = HedgeDecisionEngine(
            instrument_config=stream,
            settings=settings,
            learner=self._learner,
            catalog=catalog,
            advisory_filter=advisory_filter,
            liquidation_model=liquidation_model,
        )
        self._advisory_provider = advisory_provider
        self._lock = asyncio.Lock()
        self._last_candle: dict[str, datetime] = {}
        self._running: bool = False
        self._cycle_count: int = 0

    @property
    def stream_name(self) -> str:
        return self._stream.name

    @property
    def instrument(self) -> str:
        return self._stream.instrument

    @property
    def ledger(self) -> PositionLedger:
        return self._ledger

    @property
    def lock(self) -> asyncio.Lock:
        """Single-writer lock for this instrument's ledger and levels."""
        return self._lock

    @property
    def learner(self) -> LevelLearner:
        return self._learner

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Learn initial levels so the first cycle has a level set."""
        try:
            series = await self._fetch_candles()
            async with self._lock:
                self._relearn(series)
        except Exception as exc:
            logger.error(
                "Stream '%s' — failed to load initial candles: %s",
                self.stream_name, exc,
            )
        self._running = True

    def stop(self) -> None:
        """Signal the engine to stop after the current cycle."""
        self._running = False

    # ── Polling loop ─────────────────────────────────────────────────────

    async def run(
        self,
        poll_interval: int | None = None,
        max_cycles: int = 0,
    ) -> list[dict]:
        """Run the evaluation loop until stopped.

        Args:
            poll_interval: Seconds between cycles.  Defaults to the stream's
                ``poll_interval_seconds``.
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            List of per-cycle result dicts.
        """
        if poll_interval is None:
            poll_interval = self._stream.poll_interval_seconds
        results: list[dict] = []
        cycle = 0

        while self._running:
            cycle += 1
            self._cycle_count += 1
            try:
                result = await self.run_once()
                results.append(result)
                logger.info(
                    "Stream '%s' cycle %d: %s", self.stream_name, cycle, result["action"]
                )
            except Exception as exc:
                logger.error("Stream '%s' cycle %d error: %s", self.stream_name, cycle, exc)
                results.append({"action": "error", "reason": str(exc)})

            if max_cycles and cycle >= max_cycles:
                break
            if self._running:
                await asyncio.sleep(poll_interval)

        self._running = False
        return results

    async def run_once(self, utc_now: Optional[datetime] = None) -> dict:
        """Fetch one snapshot, evaluate it and submit any signals.

        Returns:
            ``{"action": "signals" | "none", "reason": str, "signals": [...]}``
        """
        now = utc_now or datetime.now(timezone.utc)
        price = await self._gateway.get_price(self.instrument)
        series = await self._fetch_candles()
        advisory = await self._fetch_advisory()

        snapshots: dict[str, IndicatorSnapshot] = {}
        for timeframe, samples in series.items():
            try:
                snapshots[timeframe] = build_snapshot(samples)
            except ValueError as exc:
                logger.warning(
                    "Stream '%s' — no %s indicators this cycle: %s",
                    self.stream_name, timeframe, exc,
                )

        fine = series.get(self._stream.timeframes[-1], []) if self._stream.timeframes else []
        fine_snapshot = snapshots.get(self._stream.timeframes[-1]) if self._stream.timeframes else None
        scalp_activation = (
            fine_snapshot is not None
            and fine_snapshot.volume_ratio is not None
            and fine_snapshot.volume_ratio >= self._settings.entry.scalp_strong_volume
        )
        cycle = MarketCycle(
            instrument=self.instrument,
            price=price,
            timestamp=now,
            snapshots=snapshots,
            recent_prices=tuple(s.price for s in fine[-_RECENT_PRICES:]),
            scalp_activation=scalp_activation,
        )

        async with self._lock:
            if self._candles_changed(series):
                self._relearn(series)
            self._learner.touch(price, now)
            signals = self._decision.evaluate(
                cycle,
                self._ledger,
                portfolio_primaries=self._portfolio.open_primary_count(),
                advisory=advisory,
            )
            if signals:
                await self._executor.submit(signals, self._ledger)

        if not signals:
            return {"action": "none", "reason": "no conditions met", "signals": []}
        return {
            "action": "signals",
            "reason": "; ".join(s.reason for s in signals),
            "signals": signals,
        }

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _fetch_candles(self) -> dict[str, list[PriceSample]]:
        series: dict[str, list[PriceSample]] = {}
        for timeframe in self._stream.timeframes:
            series[timeframe] = await self._gateway.get_candles(
                self.instrument, timeframe, self._stream.candle_count
            )
        return series

    async def _fetch_advisory(self) -> Advisory:
        if self._advisory_provider is None:
            return NO_ADVISORY
        try:
            analysis = await self._advisory_provider.get_analysis(self.instrument)
        except Exception as exc:
            logger.warning(
                "Stream '%s' — advisory unavailable: %s", self.stream_name, exc
            )
            return NO_ADVISORY
        return analysis if analysis is not None else NO_ADVISORY

    def _candles_changed(self, series: dict[str, list[PriceSample]]) -> bool:
        latest = {tf: samples[-1].timestamp for tf, samples in series.items() if samples}
        return latest != self._last_candle

    def _relearn(self, series: dict[str, list[PriceSample]]) -> None:
        """Rebuild the level set from the current candle windows."""
        self._learner.reset()
        self._learner.learn_combined(series)
        self._last_candle = {
            tf: samples[-1].timestamp for tf, samples in series.items() if samples
        }
        logger.debug(
            "Stream '%s' — relearned levels: %s", self.stream_name, self._learner.stats()
        )
