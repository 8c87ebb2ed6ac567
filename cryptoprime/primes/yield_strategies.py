# cryptoprime/primes/yield_strategies.py
# When a long search hands control back to the event loop, per substrate.

import asyncio
from abc import ABC, abstractmethod


class YieldStrategy(ABC):
    @abstractmethod
    def should_yield(self, attempts: int) -> bool:
        ...

    @abstractmethod
    async def suspend(self) -> None:
        ...


class _EveryN(YieldStrategy):
    every = 1

    def should_yield(self, attempts: int) -> bool:
        return attempts % self.every == 0

    async def suspend(self) -> None:
        await asyncio.sleep(0)


class InteractiveYield(_EveryN):
    """Foreground host: yield often so the loop stays responsive."""
    every = 1000


class BackgroundYield(_EveryN):
    """Service host: only needs to let pending I/O through."""
    every = 5000


class NoYield(YieldStrategy):
    """Isolated worker owns its process; suspending would only cost time."""

    def should_yield(self, attempts: int) -> bool:
        return False

    async def suspend(self) -> None:
        return None
