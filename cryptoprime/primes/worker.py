# cryptoprime/primes/worker.py
# Isolated worker substrate: a separate process running the search with no
# yielding, driven over a pair of queues with one request in flight at a time.

import asyncio
import logging
import multiprocessing
import queue
from typing import Any, Callable, Dict

from cryptoprime.crypto.random_source import SecretsRandomSource
from cryptoprime.crypto.sampler import CandidateSampler
from cryptoprime.errors import ChannelFailure, MalformedFrame, PrimeGenerationError
from cryptoprime.service.frames import (
    TERMINAL_TYPES,
    complete_frame,
    error_frame,
    generate_message,
    parse_frame,
    prime_frame,
)
from .backends import PrimeBackend, Substrate
from .request import GenerationRequest
from .search import SearchEngine
from .yield_strategies import NoYield

logger = logging.getLogger(__name__)


def handle_message(engine: SearchEngine, message: Any, post: Callable[[Dict[str, Any]], None]) -> None:
    """Serve one request message, posting prime frames and exactly one terminal frame."""
    if not isinstance(message, dict) or message.get("type") != "generate":
        post(error_frame(f"Unsupported message: {message!r}"))
        return
    try:
        request = GenerationRequest.from_payload(message)
        asyncio.run(engine.generate_progressive(
            request, lambda p: post(prime_frame(p)), NoYield()))
    except PrimeGenerationError as e:
        post(error_frame(str(e)))
    else:
        post(complete_frame())


def worker_main(requests, responses) -> None:
    """Process entry point. A None request shuts the worker down."""
    engine = SearchEngine(CandidateSampler(SecretsRandomSource()))
    for message in iter(requests.get, None):
        handle_message(engine, message, responses.put)


class WorkerBackend(PrimeBackend):
    substrate = Substrate.WORKER

    def __init__(self, start_method: str = "spawn", poll_interval: float = 0.25,
                 target: Callable = worker_main):
        self._ctx = multiprocessing.get_context(start_method)
        self.poll_interval = poll_interval
        self._target = target
        self._process = None
        self._requests = None
        self._responses = None
        self.busy = False

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.is_alive()

    def _ensure_started(self) -> None:
        if self.running:
            return
        self.terminate()
        self._requests = self._ctx.Queue()
        self._responses = self._ctx.Queue()
        self._process = self._ctx.Process(
            target=self._target,
            args=(self._requests, self._responses),
            name="cryptoprime-worker",
            daemon=True,
        )
        self._process.start()
        logger.debug("started worker pid=%s", self._process.pid)

    async def _next_message(self) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        # one extra poll after death picks up messages flushed on the way out
        grace = True
        while True:
            try:
                raw = await loop.run_in_executor(
                    None, self._responses.get, True, self.poll_interval)
            except queue.Empty:
                if not self.running:
                    if grace:
                        grace = False
                        continue
                    code = self._process.exitcode if self._process is not None else None
                    self.terminate()
                    raise ChannelFailure(f"Worker exited unexpectedly (exit code {code})")
                continue
            try:
                return parse_frame(raw)
            except MalformedFrame:
                # the stream is out of sync; a fresh process is needed
                self.terminate()
                raise

    async def generate_progressive(self, request, on_found=None):
        if self.busy:
            raise ChannelFailure("Worker is busy with another request")
        self.busy = True
        settled = False
        try:
            try:
                self._ensure_started()
            except OSError as e:
                raise ChannelFailure(f"Could not start worker: {e}") from e
            self._requests.put(generate_message(request))
            while True:
                message = await self._next_message()
                if message["type"] in TERMINAL_TYPES:
                    settled = True
                    if message["type"] == "error":
                        raise ChannelFailure(message["error"])
                    return
                if on_found is not None:
                    on_found(message["prime"])
        finally:
            # an abandoned search would leak its frames into the next request
            if not settled:
                self.terminate()
            self.busy = False

    def terminate(self) -> None:
        if self._process is not None:
            if self._process.is_alive():
                self._process.terminate()
                self._process.join(timeout=5)
            logger.debug("worker stopped")
            self._process = None
        for q in (self._requests, self._responses):
            if q is not None:
                q.cancel_join_thread()
                q.close()
        self._requests = self._responses = None

    def close(self) -> None:
        if self.running and not self.busy:
            self._requests.put(None)
            self._process.join(timeout=2)
        self.terminate()
