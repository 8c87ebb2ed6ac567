# cryptoprime/config.py
# Runtime settings shared by the CLIs, the dispatcher and the service.
# Every field can be overridden from the environment (CRYPTOPRIME_*).

import os
from dataclasses import dataclass, replace

MODES = ("auto", "remote", "worker", "cooperative")
START_METHODS = ("spawn", "fork", "forkserver")

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    raw = raw.strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class GeneratorConfig:
    mode: str = "auto"
    server_url: str = "http://127.0.0.1:3000/api/primes"
    host: str = "127.0.0.1"
    port: int = 3000
    # complexity = digit_length * count
    remote_threshold: int = 1000
    worker_threshold: int = 200
    remote_enabled: bool = True
    worker_enabled: bool = True
    worker_start_method: str = "spawn"
    worker_poll_interval: float = 0.25

    def __post_init__(self):
        if self.mode not in MODES:
            raise ValueError(f"Unknown mode: {self.mode} (expected one of {', '.join(MODES)})")
        if self.worker_start_method not in START_METHODS:
            raise ValueError(f"Unknown worker start method: {self.worker_start_method}")
        if not 0 < self.port < 65536:
            raise ValueError(f"Port out of range: {self.port}")
        if self.worker_poll_interval <= 0:
            raise ValueError("worker_poll_interval must be positive")

    @classmethod
    def from_env(cls, **overrides) -> "GeneratorConfig":
        base = cls(
            mode=os.environ.get("CRYPTOPRIME_MODE", cls.mode).strip().lower(),
            server_url=os.environ.get("CRYPTOPRIME_SERVER_URL", cls.server_url),
            host=os.environ.get("CRYPTOPRIME_HOST", cls.host),
            port=_env_int("CRYPTOPRIME_PORT", cls.port),
            remote_threshold=_env_int("CRYPTOPRIME_REMOTE_THRESHOLD", cls.remote_threshold),
            worker_threshold=_env_int("CRYPTOPRIME_WORKER_THRESHOLD", cls.worker_threshold),
            remote_enabled=_env_bool("CRYPTOPRIME_REMOTE", cls.remote_enabled),
            worker_enabled=_env_bool("CRYPTOPRIME_WORKER", cls.worker_enabled),
            worker_start_method=os.environ.get(
                "CRYPTOPRIME_WORKER_START_METHOD", cls.worker_start_method
            ),
        )
        # argparse passes None for flags the user did not give
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(base, **overrides) if overrides else base
