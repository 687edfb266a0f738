"""EngineManager — runs one InstrumentEngine per instrument concurrently.

Each enabled stream gets its own ``InstrumentEngine`` with its own ledger
slice and level learner.  Engines share a ``Portfolio`` so the global
primary cap sees every instrument.  Streams run as concurrent ``asyncio``
tasks and can be stopped individually or en masse.
"""

import asyncio
import logging
from typing import Optional

from hedgeforge.advisory import AdvisoryFilter
from hedgeforge.config import Config
from hedgeforge.engine import InstrumentEngine
from hedgeforge.gateway import AdvisoryProvider, ExecutionLayer, MarketDataGateway
from hedgeforge.ledger import Portfolio
from hedgeforge.models.stream_config import InstrumentConfig

logger = logging.getLogger("hedgeforge.engine_manager")


class EngineManager:
    """Lifecycle manager for one-or-many instrument streams.

    Args:
        config: Global ``Config`` loaded from ``.env``.
        gateway: Shared market data gateway.
        executor: Shared execution layer.
        streams: Instrument streams (disabled ones are ignored).
        advisory_filter: Optional entry veto shared by every stream.
        advisory_provider: Optional advisory source shared by every stream.
    """

    def __init__(
        self,
        config: Config,
        gateway: MarketDataGateway,
        executor: ExecutionLayer,
        streams: list[InstrumentConfig],
        advisory_filter: Optional[AdvisoryFilter] = None,
        advisory_provider: Optional[AdvisoryProvider] = None,
    ) -> None:
        self._config = config
        self._gateway = gateway
        self._executor = executor
        self._streams = [s for s in streams if s.enabled]
        self._advisory_filter = advisory_filter
        self._advisory_provider = advisory_provider
        self._portfolio = Portfolio()
        self._engines: dict[str, InstrumentEngine] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def engines(self) -> dict[str, InstrumentEngine]:
        """Map of stream-name → ``InstrumentEngine``."""
        return dict(self._engines)

    @property
    def stream_names(self) -> list[str]:
        return list(self._engines.keys())

    @property
    def portfolio(self) -> Portfolio:
        return self._portfolio

    def build_engines(self) -> None:
        """Instantiate an ``InstrumentEngine`` per enabled stream.

        Raises:
            ValueError: If two streams trade the same instrument.
        """
        seen: set[str] = set()
        for stream in self._streams:
            if stream.instrument in seen:
                raise ValueError(f"instrument {stream.instrument} configured twice")
            seen.add(stream.instrument)
            self._engines[stream.name] = InstrumentEngine(
                stream=stream,
                settings=self._config.engine,
                gateway=self._gateway,
                executor=self._executor,
                portfolio=self._portfolio,
                advisory_filter=self._advisory_filter,
                advisory_provider=self._advisory_provider,
            )
            logger.info("Registered stream '%s' on %s", stream.name, stream.instrument)

    async def initialize_all(self) -> None:
        """Call ``initialize()`` on every engine."""
        for name, engine in self._engines.items():
            await engine.initialize()
            logger.info("Initialised stream '%s'.", name)

    async def run_all(self, max_cycles: int = 0) -> dict[str, list[dict]]:
        """Launch all streams concurrently and wait for them to finish.

        Returns:
            ``{stream_name: [cycle_results]}`` for every stream.
        """
        if not self._engines:
            self.build_engines()

        await self.initialize_all()

        async def _run_stream(name: str, engine: InstrumentEngine):
            logger.info("Starting stream '%s'.", name)
            return await engine.run(max_cycles=max_cycles)

        tasks = {
            name: asyncio.create_task(_run_stream(name, eng))
            for name, eng in self._engines.items()
        }
        self._tasks = tasks

        results: dict[str, list[dict]] = {}
        for name, task in tasks.items():
            try:
                results[name] = await task
            except Exception as exc:  # pragma: no cover
                logger.error("Stream '%s' crashed: %s", name, exc)
                results[name] = [{"action": "error", "reason": str(exc)}]

        return results

    def stop_all(self) -> None:
        """Signal every engine to stop gracefully."""
        for name, engine in self._engines.items():
            engine.stop()
            logger.info("Stop signal sent to stream '%s'.", name)

    def stop_stream(self, name: str) -> None:
        """Stop a single stream by name."""
        engine = self._engines.get(name)
        if engine:
            engine.stop()
            logger.info("Stop signal sent to stream '%s'.", name)

    def get_status(self, name: Optional[str] = None) -> dict:
        """Return aggregated or per-stream status.

        Args:
            name: If given, return status for that stream only.
        """
        if name is not None:
            engine = self._engines.get(name)
            if engine is None:
                return {"error": f"Unknown stream: {name}"}
            return {"stream_name": name, **self._engine_status(engine)}

        return {
            "open_primaries": self._portfolio.open_primary_count(),
            "streams": {n: self._engine_status(eng) for n, eng in self._engines.items()},
        }

    @staticmethod
    def _engine_status(engine: InstrumentEngine) -> dict:
        return {
            "instrument": engine.instrument,
            "running": engine.running,
            "cycle_count": engine.cycle_count,
            "open_positions": len(engine.ledger.open_positions()),
            "levels": len(engine.learner),
        }
