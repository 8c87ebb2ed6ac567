# cryptoprime/crypto/sampler.py
from typing import Optional

from cryptoprime.errors import InvalidRequest
from .random_source import RandomnessSource, SecretsRandomSource


class CandidateSampler:
    """Uniform big-integer draws on top of a RandomnessSource.

    Rejection works on whole bytes rather than masking to the exact bit
    length of the span, so up to ~50% of draws can be thrown away when the
    span sits just above a power of 256. The result is still uniform.
    """

    def __init__(self, source: Optional[RandomnessSource] = None):
        self.source = source or SecretsRandomSource()

    def sample_in_range(self, lo: int, hi: int) -> int:
        if hi < lo:
            raise ValueError(f"Empty range [{lo}, {hi}]")
        span = hi - lo
        if span == 0:
            return lo
        byte_len = (span.bit_length() + 7) // 8
        while True:
            r = int.from_bytes(self.source.fill(byte_len), byteorder="big", signed=False)
            if r <= span:
                return lo + r

    def odd_candidate(self, digit_length: int) -> int:
        # 10**d - 1 is odd, so bumping an even draw never adds a digit.
        if digit_length < 1:
            raise InvalidRequest(f"digit_length must be >= 1, got {digit_length}")
        lo = 10 ** (digit_length - 1)
        hi = 10 ** digit_length - 1
        cand = self.sample_in_range(lo, hi)
        if cand % 2 == 0:
            cand += 1
        return cand
