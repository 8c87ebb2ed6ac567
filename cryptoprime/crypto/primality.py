# cryptoprime/crypto/primality.py
from typing import Optional, Tuple

from .random_source import RandomnessSource
from .sampler import CandidateSampler

# Jaeschke/Sinclair bases: together they classify every n < 2**64 correctly.
DETERMINISTIC_BASES = (2, 325, 9375, 28178, 450775, 9780504, 1795265022)
DETERMINISTIC_BOUND = 1 << 64
RANDOM_ROUNDS = 20


def mod_mul(a: int, b: int, m: int) -> int:
    return a * b % m


def mod_pow(base: int, exponent: int, modulus: int) -> int:
    if modulus < 1:
        raise ValueError(f"modulus must be positive, got {modulus}")
    if exponent < 0:
        raise ValueError("negative exponents are not supported")
    if base == 0 or base % modulus == 0:
        return 0
    if base == 1 or exponent == 0:
        return 1
    res = 1
    while exponent:
        if exponent & 1:
            res = mod_mul(res, base, modulus)
        base = mod_mul(base, base, modulus)
        exponent >>= 1
    return res


def decompose(n: int) -> Tuple[int, int]:
    """Write n - 1 as d * 2**s with d odd; returns (s, d)."""
    d = n - 1
    s = 0
    while d % 2 == 0:
        d //= 2
        s += 1
    return s, d


def _passes(a: int, n: int, s: int, d: int) -> bool:
    a %= n
    if a == 0:
        return True
    p = mod_pow(a, d, n)
    if p == 1 or p == n - 1:
        return True
    for _ in range(s - 1):
        p = mod_mul(p, p, n)
        if p == n - 1:
            return True
        if p == 1:
            return False
    return False


def is_probable_prime(n: int, rounds: int = RANDOM_ROUNDS,
                      source: Optional[RandomnessSource] = None) -> bool:
    """Miller-Rabin with a fixed witness set, plus random witnesses above 2**64.

    Never rejects a prime. A composite above 2**64 slips through with
    probability at most 4**-rounds.
    """
    if n < 2:
        return False
    # only 2 and 3 are prime outside the residues coprime to 6
    if n % 6 % 4 != 1:
        return n in (2, 3)
    s, d = decompose(n)
    for a in DETERMINISTIC_BASES:
        if not _passes(a, n, s, d):
            return False
    if n < DETERMINISTIC_BOUND:
        return True
    sampler = CandidateSampler(source)
    for _ in range(rounds):
        a = sampler.sample_in_range(2, n - 2)
        if not _passes(a, n, s, d):
            return False
    return True
