# cryptoprime/errors.py


class PrimeGenerationError(Exception):
    """Base class for every failure raised while generating primes."""


class InvalidRequest(PrimeGenerationError, ValueError):
    """digitLength or count missing, non-integer or below 1."""


class AttemptsExhausted(PrimeGenerationError):
    """The per-prime attempt budget ran out before the target count was met."""


class ChannelFailure(PrimeGenerationError):
    """A worker or network channel died, errored or spoke out of protocol."""


class MalformedFrame(ChannelFailure):
    """A streamed line was not JSON or not one of the known message shapes."""
