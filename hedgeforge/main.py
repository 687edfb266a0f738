"""HedgeForge — application entry points.

The decision core owns no exchange connectivity, so an embedding
application passes its own market data gateway and execution layer to
``build_manager`` / ``run_engines``.  The CLI validates configuration:
it loads ``.env``, the stream file and each stream's level catalog, and
reports what would run.
"""

import logging
from typing import Optional

from hedgeforge.advisory import AdvisoryFilter, RuleBasedAdvisoryFilter
from hedgeforge.config import load_config, load_streams
from hedgeforge.engine_manager import EngineManager
from hedgeforge.gateway import AdvisoryProvider, ExecutionLayer, MarketDataGateway
from hedgeforge.levels.catalog import default_catalog, load_catalog

logger = logging.getLogger("hedgeforge")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Apply the process-wide log format at *level*."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def build_manager(
    gateway: MarketDataGateway,
    executor: ExecutionLayer,
    env_path: Optional[str] = None,
    streams_path: Optional[str] = None,
    advisory_provider: Optional[AdvisoryProvider] = None,
    advisory_filter: Optional[AdvisoryFilter] = None,
) -> EngineManager:
    """Load configuration and return an ``EngineManager`` with engines built.

    When an advisory provider is given without a filter, the rule-based
    filter is used.
    """
    config = load_config(env_path)
    streams = load_streams(
        streams_path or config.streams_path, config.poll_interval_seconds
    )
    if advisory_provider is not None and advisory_filter is None:
        advisory_filter = RuleBasedAdvisoryFilter()
    manager = EngineManager(
        config=config,
        gateway=gateway,
        executor=executor,
        streams=streams,
        advisory_filter=advisory_filter,
        advisory_provider=advisory_provider,
    )
    manager.build_engines()
    return manager


async def run_engines(
    gateway: MarketDataGateway,
    executor: ExecutionLayer,
    env_path: Optional[str] = None,
    max_cycles: int = 0,
) -> dict[str, list[dict]]:
    """Configure logging, build every stream and run until stopped."""
    config = load_config(env_path)
    configure_logging(config.log_level)
    manager = build_manager(gateway, executor, env_path=env_path)
    logger.info("Starting HedgeForge with %d stream(s).", len(manager.stream_names))
    results = await manager.run_all(max_cycles=max_cycles)
    logger.info("HedgeForge stopped.")
    return results


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Validate configuration, streams and level catalogs."""
    import argparse

    parser = argparse.ArgumentParser(description="HedgeForge configuration check")
    parser.add_argument("--env", help="Path to a .env file")
    parser.add_argument("--streams", help="Path to the streams JSON file")
    args = parser.parse_args()

    config = load_config(args.env)
    configure_logging(config.log_level)
    streams = load_streams(args.streams or config.streams_path, config.poll_interval_seconds)

    logger.info(
        "Config OK: max %d concurrent primaries, poll every %ds, scalp %s.",
        config.engine.max_concurrent_primaries,
        config.poll_interval_seconds,
        "on" if config.engine.scalp_enabled else "off",
    )
    for stream in streams:
        catalog = (
            load_catalog(stream.levels_path)
            if stream.levels_path
            else default_catalog(stream.instrument)
        )
        logger.info(
            "Stream '%s' on %s: %s, %d catalog level(s), timeframes %s.",
            stream.name,
            stream.instrument,
            "enabled" if stream.enabled else "disabled",
            len(catalog.levels),
            ", ".join(stream.timeframes),
        )


if __name__ == "__main__":
    _run_cli()
