# cryptoprime/primes/dispatcher.py
import logging
from typing import Dict, Iterable, List, Optional, Union

from cryptoprime.config import GeneratorConfig
from cryptoprime.errors import AttemptsExhausted, ChannelFailure
from cryptoprime.service.client import RemoteBackend
from .backends import FALLBACK_CHAIN, CooperativeBackend, PrimeBackend, Substrate
from .request import GenerationRequest
from .search import OnFound
from .worker import WorkerBackend

logger = logging.getLogger(__name__)

# failures that move the request on to the next substrate
RETRYABLE = (AttemptsExhausted, ChannelFailure)


class Dispatcher:
    """Picks a substrate for each request and falls back remote -> worker -> cooperative.

    Fallbacks run one after another, never in parallel. Each attempt gets the
    whole request and the same callback, so primes delivered before a
    substrate failed stay with the caller and may be delivered again.
    """

    def __init__(self, backends: Iterable[PrimeBackend], mode: Union[str, Substrate] = "auto",
                 config: Optional[GeneratorConfig] = None):
        self.config = config or GeneratorConfig()
        self.backends: Dict[Substrate, PrimeBackend] = {b.substrate: b for b in backends}
        self.mode = mode if mode == "auto" else Substrate(mode)

    @classmethod
    def from_config(cls, config: Optional[GeneratorConfig] = None) -> "Dispatcher":
        config = config or GeneratorConfig.from_env()
        backends: List[PrimeBackend] = []
        if config.remote_enabled:
            backends.append(RemoteBackend(config.server_url))
        if config.worker_enabled:
            backends.append(WorkerBackend(config.worker_start_method, config.worker_poll_interval))
        backends.append(CooperativeBackend())
        return cls(backends, config.mode, config)

    def _worker_available(self) -> bool:
        worker = self.backends.get(Substrate.WORKER)
        return worker is not None and worker.available()

    def select_substrate(self, request: GenerationRequest,
                         explicit_mode: Optional[Union[str, Substrate]] = None) -> Substrate:
        mode = explicit_mode if explicit_mode is not None else self.mode
        if mode != "auto":
            return Substrate(mode)
        complexity = request.complexity
        if complexity > self.config.remote_threshold:
            return Substrate.REMOTE
        if complexity > self.config.worker_threshold and self._worker_available():
            return Substrate.WORKER
        return Substrate.COOPERATIVE

    def chain_for(self, start: Substrate) -> List[PrimeBackend]:
        chain = FALLBACK_CHAIN[FALLBACK_CHAIN.index(start):]
        return [self.backends[s] for s in chain if s in self.backends and self.backends[s].available()]

    async def generate_progressive(self, request: GenerationRequest,
                                   on_found: Optional[OnFound] = None) -> Substrate:
        """Run request to completion; returns the substrate that finished it."""
        if not isinstance(request, GenerationRequest):
            request = GenerationRequest.from_payload(request)
        start = self.select_substrate(request)
        chain = self.chain_for(start)
        if not chain:
            raise ChannelFailure(f"No substrate available from {start.value} onwards")
        logger.info("generating %d primes of %d digits on %s",
                    request.count, request.digit_length, chain[0].substrate.value)

        for i, backend in enumerate(chain):
            try:
                await backend.generate_progressive(request, on_found)
                return backend.substrate
            except RETRYABLE as e:
                if i + 1 == len(chain):
                    raise
                logger.warning("%s generation failed, falling back to %s: %s",
                               backend.substrate.value, chain[i + 1].substrate.value, e)

    async def generate(self, request: GenerationRequest) -> List[int]:
        primes: List[int] = []
        await self.generate_progressive(request, primes.append)
        return primes

    def close(self) -> None:
        for backend in self.backends.values():
            backend.close()
