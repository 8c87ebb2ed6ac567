import asyncio
import os

import pytest

from cryptoprime.crypto.primality import is_probable_prime
from cryptoprime.errors import ChannelFailure, MalformedFrame
from cryptoprime.primes.request import GenerationRequest
from cryptoprime.primes.search import SearchEngine
from cryptoprime.primes.worker import WorkerBackend, handle_message


def _crash(requests, responses):
    requests.get()
    os._exit(3)


def _garbage(requests, responses):
    requests.get()
    responses.put({"type": "prime", "prime": "seventeen"})


def _half_then_crash(requests, responses):
    requests.get()
    responses.put({"type": "prime", "prime": "101"})
    responses.close()
    responses.join_thread()
    os._exit(1)


class TestHandleMessage:
    def run(self, message):
        posted = []
        handle_message(SearchEngine(), message, posted.append)
        return posted

    def test_generate(self):
        posted = self.run({"type": "generate", "digitLength": 3, "count": 4})
        assert [m["type"] for m in posted] == ["prime"] * 4 + ["complete"]
        primes = [int(m["prime"]) for m in posted[:-1]]
        assert len(set(primes)) == 4
        assert all(is_probable_prime(p) and 100 <= p <= 999 for p in primes)

    def test_invalid_request(self):
        posted = self.run({"type": "generate", "digitLength": 0, "count": 4})
        assert posted == [{"type": "error", "error": "digitLength must be >= 1, got 0"}]

    def test_exhausted(self):
        posted = self.run({"type": "generate", "digitLength": 1, "count": 4})
        assert posted[-1]["type"] == "error"
        assert "Could not find 4 primes" in posted[-1]["error"]
        assert [m["type"] for m in posted[:-1]] == ["prime"] * 3

    @pytest.mark.parametrize("message", ["generate", {"type": "stop"}, None])
    def test_unknown_message(self, message):
        posted = self.run(message)
        assert len(posted) == 1 and posted[0]["type"] == "error"


class TestWorkerBackend:
    def test_round_trip_in_spawned_process(self):
        backend = WorkerBackend(poll_interval=0.05)
        found = []
        try:
            asyncio.run(backend.generate_progressive(GenerationRequest(8, 5), found.append))
            assert backend.running
            first_pid = backend._process.pid
            # the process is reused for the next request
            asyncio.run(backend.generate_progressive(GenerationRequest(5, 2), found.append))
            assert backend._process.pid == first_pid
        finally:
            backend.close()
        assert not backend.running
        assert [len(str(p)) for p in found] == [8] * 5 + [5] * 2
        assert all(isinstance(p, int) and is_probable_prime(p) for p in found)

    def test_worker_error_is_channel_failure(self):
        backend = WorkerBackend(start_method="fork", poll_interval=0.05)
        try:
            with pytest.raises(ChannelFailure, match="Could not find"):
                asyncio.run(backend.generate_progressive(GenerationRequest(1, 4)))
            assert not backend.busy
        finally:
            backend.close()

    def test_busy_guard_rejects_second_request(self):
        backend = WorkerBackend(start_method="fork", poll_interval=0.05)

        async def both():
            return await asyncio.gather(
                backend.generate_progressive(GenerationRequest(4, 2)),
                backend.generate_progressive(GenerationRequest(4, 2)),
                return_exceptions=True,
            )

        try:
            first, second = asyncio.run(both())
        finally:
            backend.close()
        assert first is None
        assert isinstance(second, ChannelFailure)
        assert "busy" in str(second)

    def test_crashed_worker(self):
        backend = WorkerBackend(start_method="fork", poll_interval=0.05, target=_crash)
        with pytest.raises(ChannelFailure, match="exit code 3"):
            asyncio.run(backend.generate_progressive(GenerationRequest(3, 1)))
        assert not backend.running and not backend.busy

    def test_primes_before_crash_are_delivered(self):
        backend = WorkerBackend(start_method="fork", poll_interval=0.05, target=_half_then_crash)
        found = []
        with pytest.raises(ChannelFailure):
            asyncio.run(backend.generate_progressive(GenerationRequest(3, 2), found.append))
        assert found == [101]

    def test_malformed_message(self):
        backend = WorkerBackend(start_method="fork", poll_interval=0.05, target=_garbage)
        try:
            with pytest.raises(MalformedFrame):
                asyncio.run(backend.generate_progressive(GenerationRequest(3, 1)))
            assert not backend.running
        finally:
            backend.terminate()

    def test_raising_callback_does_not_leak_into_next_request(self):
        backend = WorkerBackend(start_method="fork", poll_interval=0.05)

        def explode(prime):
            raise RuntimeError("caller gave up")

        try:
            with pytest.raises(RuntimeError, match="caller gave up"):
                asyncio.run(backend.generate_progressive(GenerationRequest(3, 20), explode))
            assert not backend.busy
            found = []
            asyncio.run(backend.generate_progressive(GenerationRequest(12, 1), found.append))
        finally:
            backend.close()
        assert len(found) == 1 and len(str(found[0])) == 12

    def test_cancelled_request_does_not_leak_into_next_request(self):
        backend = WorkerBackend(start_method="fork", poll_interval=0.05)

        async def abandon():
            await asyncio.wait_for(backend.generate_progressive(GenerationRequest(400, 20)), 0.5)

        try:
            with pytest.raises(asyncio.TimeoutError):
                asyncio.run(abandon())
            assert not backend.busy and not backend.running
            found = []
            asyncio.run(backend.generate_progressive(GenerationRequest(6, 3), found.append))
        finally:
            backend.close()
        assert [len(str(p)) for p in found] == [6] * 3
