# cryptoprime/primes/request.py
from dataclasses import dataclass
from typing import Any, Dict

from cryptoprime.errors import InvalidRequest


def _positive_int(name: str, value: Any) -> int:
    # bool is an int subclass; True must not pass as 1
    if value is None:
        raise InvalidRequest(f"{name} is required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequest(f"{name} must be an integer, got {value!r}")
    if value < 1:
        raise InvalidRequest(f"{name} must be >= 1, got {value}")
    return value


@dataclass(frozen=True)
class GenerationRequest:
    digit_length: int
    count: int

    def __post_init__(self):
        _positive_int("digitLength", self.digit_length)
        _positive_int("count", self.count)

    @property
    def complexity(self) -> int:
        return self.digit_length * self.count

    @classmethod
    def from_payload(cls, payload: Any) -> "GenerationRequest":
        if not isinstance(payload, dict):
            raise InvalidRequest("Invalid digitLength or count")
        return cls(payload.get("digitLength"), payload.get("count"))

    def to_payload(self) -> Dict[str, int]:
        return {"digitLength": self.digit_length, "count": self.count}
