# cryptoprime/service/server.py
# Remote substrate: POST /api/primes {digitLength, count} answered with a
# chunked NDJSON stream of prime frames and one terminal frame.
# Usage: python -m cryptoprime.service.server --host 0.0.0.0 --port 3000

import argparse
import asyncio
import json
import logging
from http import HTTPStatus
from typing import Dict, Iterable, Optional, Tuple
from urllib.parse import urlsplit

from cryptoprime.config import GeneratorConfig
from cryptoprime.errors import InvalidRequest, PrimeGenerationError
from cryptoprime.primes.request import GenerationRequest
from cryptoprime.primes.search import SearchEngine
from cryptoprime.primes.yield_strategies import BackgroundYield, YieldStrategy
from .frames import (
    NDJSON_CONTENT_TYPE,
    complete_frame,
    encode_frame,
    error_frame,
    prime_frame,
)

logger = logging.getLogger(__name__)

API_PATH = "/api/primes"
MAX_HEADERS = 100
MAX_BODY = 64 * 1024


class BadRequest(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status


def _head(status: int, headers: Iterable[Tuple[str, str]]) -> bytes:
    lines = [f"HTTP/1.1 {status} {HTTPStatus(status).phrase}"]
    lines += [f"{k}: {v}" for k, v in headers]
    lines += ["Access-Control-Allow-Origin: *", "Connection: close", "", ""]
    return "\r\n".join(lines).encode("latin-1")


def _chunk(data: bytes) -> bytes:
    return b"%x\r\n%s\r\n" % (len(data), data)


async def _read_headers(reader: asyncio.StreamReader) -> Dict[str, str]:
    headers = {}
    for _ in range(MAX_HEADERS):
        line = await reader.readline()
        if line in (b"\r\n", b"\n", b""):
            return headers
        name, sep, value = line.decode("latin-1").partition(":")
        if not sep:
            raise BadRequest(400, f"Malformed header line: {line!r}")
        headers[name.strip().lower()] = value.strip()
    raise BadRequest(431, "Too many headers")


class PrimeService:
    def __init__(self, engine: Optional[SearchEngine] = None,
                 yield_strategy: Optional[YieldStrategy] = None,
                 path: str = API_PATH):
        self.engine = engine or SearchEngine()
        self.yield_strategy = yield_strategy or BackgroundYield()
        self.path = path

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        try:
            await self._serve(reader, writer)
        except BadRequest as e:
            await self._respond_json(writer, e.status, error_frame(str(e)))
        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.info("client %s went away: %s", peer, e)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _serve(self, reader, writer) -> None:
        request_line = await reader.readline()
        if not request_line:
            return
        try:
            method, target, _version = request_line.decode("latin-1").split()
        except ValueError:
            raise BadRequest(400, "Malformed request line") from None
        headers = await _read_headers(reader)
        logger.info("%s %s", method, target)

        # drain the body before answering so closing does not reset the peer
        try:
            length = int(headers.get("content-length", "0"))
        except ValueError:
            raise BadRequest(400, "Invalid Content-Length") from None
        if length < 0:
            raise BadRequest(400, "Invalid Content-Length")
        if length > MAX_BODY:
            raise BadRequest(413, "Request body too large")
        body = await reader.readexactly(length) if length else b""

        if urlsplit(target).path != self.path:
            raise BadRequest(404, f"No route for {target}")
        if method == "OPTIONS":
            writer.write(_head(204, [
                ("Access-Control-Allow-Methods", "POST, OPTIONS"),
                ("Access-Control-Allow-Headers", "Content-Type"),
                ("Content-Length", "0"),
            ]))
            await writer.drain()
            return
        if method != "POST":
            raise BadRequest(405, f"Method {method} not allowed")

        try:
            payload = json.loads(body) if body else None
        except ValueError:
            raise BadRequest(400, "Request body is not valid JSON") from None
        try:
            request = GenerationRequest.from_payload(payload)
        except InvalidRequest as e:
            raise BadRequest(400, f"Invalid digitLength or count: {e}") from None

        await self._stream(writer, request)

    async def _stream(self, writer: asyncio.StreamWriter, request: GenerationRequest) -> None:
        writer.write(_head(200, [
            ("Content-Type", NDJSON_CONTENT_TYPE),
            ("Transfer-Encoding", "chunked"),
            ("Cache-Control", "no-cache"),
        ]))

        def emit(prime: int) -> None:
            # a failed write closes the transport; stop searching for nobody
            if writer.is_closing():
                raise ConnectionResetError("client disconnected mid-stream")
            writer.write(_chunk(encode_frame(prime_frame(prime))))

        try:
            await self.engine.generate_progressive(request, emit, self.yield_strategy)
        except PrimeGenerationError as e:
            # headers are out; the status can no longer change
            logger.warning("generation failed mid-stream: %s", e)
            writer.write(_chunk(encode_frame(error_frame(str(e)))))
        else:
            writer.write(_chunk(encode_frame(complete_frame())))
        writer.write(b"0\r\n\r\n")
        await writer.drain()

    async def _respond_json(self, writer, status: int, frame) -> None:
        body = json.dumps(frame).encode("utf-8")
        writer.write(_head(status, [
            ("Content-Type", "application/json"),
            ("Content-Length", str(len(body))),
        ]))
        writer.write(body)
        try:
            await writer.drain()
        except ConnectionError:
            pass


async def start_server(host: str, port: int,
                       service: Optional[PrimeService] = None) -> asyncio.AbstractServer:
    service = service or PrimeService()
    return await asyncio.start_server(service.handle, host, port)


async def _run(config: GeneratorConfig) -> None:
    server = await start_server(config.host, config.port)
    addrs = ", ".join(str(s.getsockname()) for s in server.sockets)
    logger.info("Prime generation server running on %s", addrs)
    async with server:
        await server.serve_forever()


def main(argv=None):
    parser = argparse.ArgumentParser(description="cryptoprime remote generation service")
    parser.add_argument("--host", type=str, default=None, help="Interface to bind (default 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="TCP port (default 3000)")
    parser.add_argument("--log-level", type=str, default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        config = GeneratorConfig.from_env(host=args.host, port=args.port)
    except ValueError as e:
        parser.error(str(e))

    try:
        asyncio.run(_run(config))
    except KeyboardInterrupt:
        logger.info("shutting down")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
