# cryptoprime/service/frames.py
# Message shapes shared by the worker channel and the NDJSON stream:
#   {"type": "generate", "digitLength": int, "count": int}   (worker request)
#   {"type": "prime", "prime": "<decimal>"}
#   {"type": "complete"}
#   {"type": "error", "error": "<message>"}

import codecs
import json
from typing import Any, Dict, List, Union

from cryptoprime.errors import MalformedFrame
from cryptoprime.primes.request import GenerationRequest

NDJSON_CONTENT_TYPE = "application/x-ndjson"
TERMINAL_TYPES = ("complete", "error")


def generate_message(request: GenerationRequest) -> Dict[str, Any]:
    return {"type": "generate", **request.to_payload()}


def prime_frame(prime: int) -> Dict[str, str]:
    return {"type": "prime", "prime": str(prime)}


def complete_frame() -> Dict[str, str]:
    return {"type": "complete"}


def error_frame(message: str) -> Dict[str, str]:
    return {"type": "error", "error": str(message)}


def encode_frame(frame: Dict[str, Any]) -> bytes:
    return (json.dumps(frame, separators=(",", ":")) + "\n").encode("utf-8")


def parse_frame(raw: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    """Validate one response message; the prime comes back as an int."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise MalformedFrame(f"Frame is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise MalformedFrame(f"Frame must be a JSON object, got {type(raw).__name__}")

    kind = raw.get("type")
    if kind == "prime":
        value = raw.get("prime")
        if not isinstance(value, str) or not (value.isascii() and value.isdigit()):
            raise MalformedFrame(f"Prime frame carries no decimal string: {value!r}")
        return {"type": "prime", "prime": int(value)}
    if kind == "complete":
        return {"type": "complete"}
    if kind == "error":
        message = raw.get("error")
        if not isinstance(message, str):
            raise MalformedFrame(f"Error frame carries no message: {message!r}")
        return {"type": "error", "error": message}
    raise MalformedFrame(f"Unknown frame type: {kind!r}")


class NdjsonDecoder:
    """Split an arbitrarily chunked byte stream into parsed frames.

    A trailing partial line (and a partial UTF-8 sequence) is kept until the
    next feed().
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""

    def feed(self, data: bytes) -> List[Dict[str, Any]]:
        try:
            self._buffer += self._decoder.decode(data)
        except UnicodeDecodeError as e:
            raise MalformedFrame(f"Stream is not valid UTF-8: {e}") from e
        *lines, self._buffer = self._buffer.split("\n")
        return [parse_frame(line) for line in lines if line.strip()]

    def finish(self) -> List[Dict[str, Any]]:
        try:
            rest = self._buffer + self._decoder.decode(b"", final=True)
        except UnicodeDecodeError as e:
            raise MalformedFrame(f"Stream ended inside a UTF-8 sequence: {e}") from e
        self._buffer = ""
        if not rest.strip():
            return []
        return [parse_frame(rest)]
