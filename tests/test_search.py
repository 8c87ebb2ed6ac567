import asyncio

import pytest

from cryptoprime.crypto.primality import is_probable_prime
from cryptoprime.errors import AttemptsExhausted
from cryptoprime.primes.request import GenerationRequest
from cryptoprime.primes.search import SearchEngine, max_attempts_for
from cryptoprime.primes.yield_strategies import (
    BackgroundYield,
    InteractiveYield,
    NoYield,
    YieldStrategy,
)


class RecordingYield(YieldStrategy):
    def __init__(self, every=1):
        self.every = every
        self.checked = []
        self.suspended = 0

    def should_yield(self, attempts):
        self.checked.append(attempts)
        return attempts % self.every == 0

    async def suspend(self):
        self.suspended += 1
        await asyncio.sleep(0)


class FixedSampler:
    def __init__(self, values):
        self.values = list(values)

    def odd_candidate(self, digit_length):
        return self.values.pop(0)


class TestYieldStrategies:
    def test_interactive_every_thousand(self):
        s = InteractiveYield()
        assert not s.should_yield(999)
        assert s.should_yield(1000)
        assert s.should_yield(3000)

    def test_background_every_five_thousand(self):
        s = BackgroundYield()
        assert not s.should_yield(1000)
        assert s.should_yield(5000)

    def test_no_yield(self):
        s = NoYield()
        assert not any(s.should_yield(n) for n in (0, 1000, 5000))
        assert asyncio.run(s.suspend()) is None


class TestMaxAttempts:
    def test_budget(self):
        assert max_attempts_for(3) == 10_000
        assert max_attempts_for(100) == 10_000
        assert max_attempts_for(101) == 500_000


class TestGenerateProgressive:
    def test_five_three_digit_primes(self):
        found = []
        strategy = RecordingYield(every=1000)
        n = asyncio.run(SearchEngine().generate_progressive(
            GenerationRequest(3, 5), found.append, strategy))
        assert n == 5
        assert len(found) == 5
        assert len(set(found)) == 5
        for p in found:
            assert 100 <= p <= 999
            assert p % 2 == 1
            assert is_probable_prime(p)
        assert max(strategy.checked) <= 10_000
        # one suspension after every reported prime at least
        assert strategy.suspended >= 5

    def test_duplicates_are_skipped(self):
        engine = SearchEngine(FixedSampler([9, 7, 7, 9, 7, 11]), is_prime_fn=is_probable_prime)
        found = asyncio.run(engine.generate(GenerationRequest(2, 2)))
        assert found == [7, 11]

    def test_discovery_order(self):
        engine = SearchEngine(FixedSampler([13, 11, 15, 3]), is_prime_fn=is_probable_prime)
        assert asyncio.run(engine.generate(GenerationRequest(2, 3))) == [13, 11, 3]

    def test_attempts_exhausted(self):
        # only 3, 5 and 7 are odd one-digit primes
        found = []
        with pytest.raises(AttemptsExhausted, match="Could not find 4 primes with 1 digits after 10000 attempts"):
            asyncio.run(SearchEngine().generate_progressive(GenerationRequest(1, 4), found.append))
        assert sorted(found) == [3, 5, 7]

    def test_yield_checked_after_every_sample(self):
        engine = SearchEngine(FixedSampler([9, 15, 21, 7]), is_prime_fn=is_probable_prime)
        strategy = RecordingYield(every=2)
        asyncio.run(engine.generate_progressive(GenerationRequest(1, 1), None, strategy))
        assert strategy.checked == [1, 2, 3, 4]
        # attempts 2 and 4, then once after the prime
        assert strategy.suspended == 3

    def test_large_digit_prime(self):
        found = asyncio.run(SearchEngine().generate(GenerationRequest(120, 1), NoYield()))
        assert len(str(found[0])) == 120
