"""Collaborator interfaces — market data, execution and advisory.

The decision core owns no I/O.  The embedding application supplies
objects implementing these protocols; all methods are coroutines so
implementations can talk to an exchange without blocking the loop.
"""

from typing import Optional, Protocol, runtime_checkable

from hedgeforge.advisory import AdvisoryAnalysis
from hedgeforge.ledger import PositionLedger
from hedgeforge.strategy.models import PriceSample, TradingSignal


@runtime_checkable
class MarketDataGateway(Protocol):
    """Current price and closed candles per timeframe."""

    async def get_price(self, instrument: str) -> float:
        ...

    async def get_candles(
        self, instrument: str, timeframe: str, count: int
    ) -> list[PriceSample]:
        """Closed candles, oldest first."""
        ...


@runtime_checkable
class ExecutionLayer(Protocol):
    """Turns signals into orders and records fills in the ledger.

    ``submit`` is called while the instrument's ledger lock is held, so
    fills recorded inside it are serialised with evaluation.
    """

    async def submit(self, signals: list[TradingSignal], ledger: PositionLedger) -> None:
        ...


@runtime_checkable
class AdvisoryProvider(Protocol):
    async def get_analysis(self, instrument: str) -> Optional[AdvisoryAnalysis]:
        ...
