# cryptoprime/service/client.py
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Tuple
from urllib.parse import urlsplit

from cryptoprime.errors import ChannelFailure
from cryptoprime.primes.backends import PrimeBackend, Substrate
from .frames import TERMINAL_TYPES, NdjsonDecoder

logger = logging.getLogger(__name__)

READ_SIZE = 8192


def _split_url(url: str) -> Tuple[str, int, str]:
    parts = urlsplit(url)
    if parts.scheme != "http" or not parts.hostname:
        raise ValueError(f"Only plain http:// service URLs are supported: {url}")
    path = parts.path or "/"
    if parts.query:
        path += "?" + parts.query
    return parts.hostname, parts.port or 80, path


async def _readline(reader: asyncio.StreamReader) -> bytes:
    try:
        return await reader.readline()
    except ValueError as e:
        # line longer than the stream limit
        raise ChannelFailure(f"Response line too long: {e}") from None


async def _read_head(reader: asyncio.StreamReader) -> Tuple[int, Dict[str, str]]:
    status_line = await _readline(reader)
    try:
        _version, status, _reason = status_line.decode("latin-1").split(" ", 2)
        code = int(status)
    except ValueError:
        raise ChannelFailure(f"Malformed status line: {status_line!r}") from None
    headers = {}
    while True:
        line = await _readline(reader)
        if line in (b"\r\n", b"\n", b""):
            return code, headers
        name, _, value = line.decode("latin-1").partition(":")
        headers[name.strip().lower()] = value.strip()


async def _iter_chunked(reader: asyncio.StreamReader) -> AsyncIterator[bytes]:
    while True:
        size_line = await _readline(reader)
        try:
            size = int(size_line.split(b";", 1)[0].strip(), 16)
        except ValueError:
            raise ChannelFailure(f"Malformed chunk header: {size_line!r}") from None
        if size == 0:
            # trailers, then the blank line
            while (await _readline(reader)) not in (b"\r\n", b"\n", b""):
                pass
            return
        yield await reader.readexactly(size)
        await reader.readexactly(2)


async def _iter_until_eof(reader: asyncio.StreamReader) -> AsyncIterator[bytes]:
    while True:
        data = await reader.read(READ_SIZE)
        if not data:
            return
        yield data


class RemoteBackend(PrimeBackend):
    """Client side of the streaming service; one in-flight request at a time."""

    substrate = Substrate.REMOTE

    def __init__(self, url: str, connect_timeout: float = 10.0):
        self.host, self.port, self.path = _split_url(url)
        self.url = url
        self.connect_timeout = connect_timeout
        self.busy = False

    def _request_bytes(self, payload: Dict[str, Any]) -> bytes:
        body = json.dumps(payload).encode("utf-8")
        head = (
            f"POST {self.path} HTTP/1.1\r\n"
            f"Host: {self.host}:{self.port}\r\n"
            "Content-Type: application/json\r\n"
            "Accept: application/x-ndjson\r\n"
            f"Content-Length: {len(body)}\r\n"
            "Connection: close\r\n\r\n"
        )
        return head.encode("latin-1") + body

    async def generate_progressive(self, request, on_found=None):
        if self.busy:
            raise ChannelFailure("Service channel is busy with another request")
        self.busy = True
        try:
            await self._exchange(request, on_found)
        except (OSError, asyncio.IncompleteReadError, asyncio.TimeoutError) as e:
            raise ChannelFailure(f"Server generation failed: {e!r}") from e
        finally:
            self.busy = False

    async def _exchange(self, request, on_found) -> None:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(self.host, self.port), self.connect_timeout)
        try:
            writer.write(self._request_bytes(request.to_payload()))
            await writer.drain()

            status, headers = await _read_head(reader)
            if status != 200:
                raise ChannelFailure(f"Server error: {status} {await self._error_text(reader, headers)}")

            if "chunked" in headers.get("transfer-encoding", "").lower():
                body = _iter_chunked(reader)
            else:
                body = _iter_until_eof(reader)

            decoder = NdjsonDecoder()
            async for data in body:
                if self._dispatch(decoder.feed(data), on_found):
                    return
            if self._dispatch(decoder.finish(), on_found):
                return
            raise ChannelFailure("Stream ended without a terminal frame")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

    @staticmethod
    def _dispatch(frames, on_found) -> bool:
        """Feed parsed frames to the caller; True once the stream completed."""
        for frame in frames:
            if frame["type"] not in TERMINAL_TYPES:
                if on_found is not None:
                    on_found(frame["prime"])
                continue
            if frame["type"] == "error":
                logger.warning("service reported: %s", frame["error"])
                raise ChannelFailure(frame["error"])
            return True
        return False

    @staticmethod
    async def _error_text(reader, headers) -> str:
        try:
            length = int(headers.get("content-length", "0"))
            raw = await reader.readexactly(length) if length else await reader.read(READ_SIZE)
            return json.loads(raw).get("error", "")
        except (ValueError, AttributeError, asyncio.IncompleteReadError):
            return ""
