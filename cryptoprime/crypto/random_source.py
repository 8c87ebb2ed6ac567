# cryptoprime/crypto/random_source.py
import os
import secrets
from abc import ABC, abstractmethod


class RandomnessSource(ABC):
    """Cryptographically secure byte source, one implementation per platform API."""

    @abstractmethod
    def fill(self, n: int) -> bytes:
        ...


def _check_length(n: int) -> None:
    if n < 0:
        raise ValueError(f"Cannot draw a negative number of bytes: {n}")


class SecretsRandomSource(RandomnessSource):
    def fill(self, n: int) -> bytes:
        _check_length(n)
        return secrets.token_bytes(n)


class UrandomRandomSource(RandomnessSource):
    def fill(self, n: int) -> bytes:
        _check_length(n)
        return os.urandom(n)
