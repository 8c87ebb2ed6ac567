# cryptoprime/primes/search.py
import functools
import logging
from typing import Callable, List, Optional

from cryptoprime.crypto.primality import is_probable_prime
from cryptoprime.crypto.sampler import CandidateSampler
from cryptoprime.errors import AttemptsExhausted
from .request import GenerationRequest
from .yield_strategies import NoYield, YieldStrategy

logger = logging.getLogger(__name__)

OnFound = Callable[[int], None]

LARGE_DIGITS = 100
LARGE_MAX_ATTEMPTS = 500_000
DEFAULT_MAX_ATTEMPTS = 10_000


def max_attempts_for(digit_length: int) -> int:
    return LARGE_MAX_ATTEMPTS if digit_length > LARGE_DIGITS else DEFAULT_MAX_ATTEMPTS


class SearchEngine:
    """Sample, test and report primes one at a time.

    Host-agnostic: the caller picks the YieldStrategy that matches where the
    engine runs.
    """

    def __init__(self, sampler: Optional[CandidateSampler] = None,
                 is_prime_fn: Optional[Callable[[int], bool]] = None):
        self.sampler = sampler or CandidateSampler()
        if is_prime_fn is None:
            is_prime_fn = functools.partial(is_probable_prime, source=self.sampler.source)
        self.is_prime_fn = is_prime_fn

    async def generate_progressive(self, request: GenerationRequest,
                                   on_found: Optional[OnFound] = None,
                                   yield_strategy: Optional[YieldStrategy] = None) -> int:
        yield_strategy = yield_strategy or NoYield()
        max_attempts = max_attempts_for(request.digit_length)
        accepted = set()
        found = 0

        while found < request.count:
            attempts = 0
            while True:
                cand = self.sampler.odd_candidate(request.digit_length)
                attempts += 1
                if attempts > max_attempts:
                    raise AttemptsExhausted(
                        f"Could not find {request.count} primes with {request.digit_length} "
                        f"digits after {max_attempts} attempts"
                    )
                if yield_strategy.should_yield(attempts):
                    await yield_strategy.suspend()
                if cand not in accepted and self.is_prime_fn(cand):
                    break

            accepted.add(cand)
            found += 1
            logger.debug("prime %d/%d after %d attempts", found, request.count, attempts)
            if on_found is not None:
                on_found(cand)
            await yield_strategy.suspend()

        return found

    async def generate(self, request: GenerationRequest,
                       yield_strategy: Optional[YieldStrategy] = None) -> List[int]:
        primes: List[int] = []
        await self.generate_progressive(request, primes.append, yield_strategy)
        return primes
