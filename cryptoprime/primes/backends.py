# cryptoprime/primes/backends.py
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from .request import GenerationRequest
from .search import OnFound, SearchEngine
from .yield_strategies import InteractiveYield, YieldStrategy


class Substrate(str, Enum):
    REMOTE = "remote"
    WORKER = "worker"
    COOPERATIVE = "cooperative"


# fallback order; a failure moves one step right
FALLBACK_CHAIN = (Substrate.REMOTE, Substrate.WORKER, Substrate.COOPERATIVE)


class PrimeBackend(ABC):
    substrate: Substrate

    @abstractmethod
    async def generate_progressive(self, request: GenerationRequest,
                                   on_found: Optional[OnFound] = None) -> None:
        ...

    def available(self) -> bool:
        return True

    def close(self) -> None:
        pass

    async def generate(self, request: GenerationRequest) -> List[int]:
        primes: List[int] = []
        await self.generate_progressive(request, primes.append)
        return primes


class CooperativeBackend(PrimeBackend):
    """Runs the search on the caller's own event loop."""

    substrate = Substrate.COOPERATIVE

    def __init__(self, engine: Optional[SearchEngine] = None,
                 yield_strategy: Optional[YieldStrategy] = None):
        self.engine = engine or SearchEngine()
        self.yield_strategy = yield_strategy or InteractiveYield()

    async def generate_progressive(self, request, on_found=None):
        await self.engine.generate_progressive(request, on_found, self.yield_strategy)
