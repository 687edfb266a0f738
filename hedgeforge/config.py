"""HedgeForge — application configuration.

Loads .env variables into typed, immutable config objects.  Every
threshold the decision engine uses is a named field with a default here;
components receive the settings at construction and never read the
environment themselves.
"""

import json
import logging
import os
import pathlib
from dataclasses import dataclass, field, replace

from dotenv import load_dotenv

from hedgeforge.models.stream_config import InstrumentConfig

logger = logging.getLogger("hedgeforge.config")

DEFAULT_INSTRUMENT = "ADAUSDT"


# ── Engine thresholds ────────────────────────────────────────────────────


@dataclass(frozen=True)
class ZoneSettings:
    """Fractions of the entry→liquidation distance D, measured from entry.

    The protection zone spans ``protection_fraction`` to ``loose_fraction``;
    the buffer is the ``buffer_fraction`` wide band just before it.
    """

    protection_fraction: float = 0.30
    loose_fraction: float = 0.70
    buffer_fraction: float = 0.15

    def __post_init__(self) -> None:
        if not 0.0 <= self.buffer_fraction <= self.protection_fraction:
            raise ValueError(
                f"buffer_fraction must be within [0, protection_fraction], "
                f"got {self.buffer_fraction}"
            )
        if not self.protection_fraction < self.loose_fraction <= 1.0:
            raise ValueError(
                f"loose_fraction must be within (protection_fraction, 1], "
                f"got {self.loose_fraction}"
            )


@dataclass(frozen=True)
class LevelSettings:
    """Level learner parameters."""

    tolerance: float = 0.005  # relative merge distance
    min_touches: int = 2
    max_levels: int = 10
    min_samples: int = 20
    new_level_strength: float = 0.3  # × timeframe weight
    touch_strength_step: float = 0.1  # × timeframe weight
    timeframe_weights: dict[str, float] = field(
        default_factory=lambda: {"4h": 1.0, "1h": 0.7, "15m": 0.4}
    )


@dataclass(frozen=True)
class EntrySettings:
    level_tolerance: float = 0.02  # breakout "at" a catalog level
    volume_multiplier: float = 1.2
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    base_confidence: float = 0.5
    scalp_level_tolerance: float = 0.005
    scalp_strong_volume: float = 1.5


@dataclass(frozen=True)
class HedgeSettings:
    vwap_confirmation_pct: float = 0.5
    hedge_confidence: float = 0.8


@dataclass(frozen=True)
class ExitSettings:
    """Hedge-closure math, take-profit and paired-exit thresholds.

    ``fee_pct`` and ``take_profit_target_pct`` are percentages.
    """

    fee_pct: float = 0.09
    primary_recovery_pct: float = 1.0
    entry_return_tolerance: float = 0.002
    hedge_loss_multiple: float = 2.0
    hedge_bleed_pct: float = 0.5
    take_profit_target_pct: float = 1.0
    scalp_take_profit_pct: float = 0.5
    liquidation_proximity: float = 0.01
    hedge_take_profit_pct: float = 2.0
    double_profit_level_tolerance: float = 0.005
    target_tolerance: float = 0.005


@dataclass(frozen=True)
class ReentrySettings:
    rsi_peak: float = 70.0
    rsi_trough: float = 30.0
    volume_peak: float = 0.8
    volume_trough: float = 1.2
    min_reversal: float = 0.003
    confidence: float = 0.8


@dataclass(frozen=True)
class DetectorSettings:
    history: int = 10
    min_reversal: float = 0.003


@dataclass(frozen=True)
class EngineSettings:
    """All decision-engine thresholds for one process."""

    zones: ZoneSettings = field(default_factory=ZoneSettings)
    levels: LevelSettings = field(default_factory=LevelSettings)
    entry: EntrySettings = field(default_factory=EntrySettings)
    hedge: HedgeSettings = field(default_factory=HedgeSettings)
    exit: ExitSettings = field(default_factory=ExitSettings)
    reentry: ReentrySettings = field(default_factory=ReentrySettings)
    detector: DetectorSettings = field(default_factory=DetectorSettings)
    max_concurrent_primaries: int = 2
    scalp_enabled: bool = True
    signal_timeframe: str = "1h"
    trend_timeframe: str = "4h"


# ── Process configuration ────────────────────────────────────────────────


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    log_level: str
    streams_path: str
    poll_interval_seconds: int
    engine: EngineSettings


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Every variable is optional.  Raises ``ValueError`` with a message naming
    the variable when a value cannot be parsed or is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    defaults = EngineSettings()
    engine = replace(
        defaults,
        max_concurrent_primaries=_env_int("MAX_CONCURRENT_PRIMARIES", 2),
        scalp_enabled=_env_bool("SCALP_ENABLED", True),
        entry=replace(
            defaults.entry,
            volume_multiplier=_env_float("VOLUME_MULTIPLIER", 1.2),
        ),
        levels=replace(
            defaults.levels,
            tolerance=_env_float("LEVEL_TOLERANCE", 0.005),
        ),
        exit=replace(
            defaults.exit,
            fee_pct=_env_float("FEE_PCT", 0.09),
            take_profit_target_pct=_env_float(
                "TAKE_PROFIT_TARGET_PCT", 1.0, minimum=0.01
            ),
            scalp_take_profit_pct=_env_float(
                "SCALP_TAKE_PROFIT_PCT", 0.5, minimum=0.01
            ),
        ),
    )

    return Config(
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        streams_path=os.environ.get("STREAMS_PATH", "streams.json"),
        poll_interval_seconds=_env_int("POLL_INTERVAL_SECONDS", 60),
        engine=engine,
    )


def load_streams(
    path: str | pathlib.Path | None = None,
    default_poll_interval: int = 60,
) -> list[InstrumentConfig]:
    """Load instrument streams from a JSON list.

    Falls back to a single stream for ``DEFAULT_INSTRUMENT`` when the file
    does not exist.  Streams without ``poll_interval_seconds`` use
    *default_poll_interval*.
    """
    streams_file = pathlib.Path(path or "streams.json")
    if not streams_file.exists():
        logger.info(
            "No streams file at %s; using single stream for %s.",
            streams_file, DEFAULT_INSTRUMENT,
        )
        return [InstrumentConfig(name=DEFAULT_INSTRUMENT.lower(),
                                 instrument=DEFAULT_INSTRUMENT,
                                 poll_interval_seconds=default_poll_interval)]

    data = json.loads(streams_file.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("streams", [])
    if not isinstance(data, list):
        raise ValueError(f"{streams_file}: expected a list of stream objects")
    return [
        InstrumentConfig.from_dict(
            {"poll_interval_seconds": default_poll_interval, **entry}
        )
        for entry in data
    ]
