# cryptoprime/primes/cli.py
# Usage: python -m cryptoprime.primes.cli --digits 50 --count 10 [--mode auto|remote|worker|cooperative]

import argparse
import asyncio
import logging
import sys
import time
from datetime import datetime
from typing import List

from cryptoprime.config import MODES, GeneratorConfig
from cryptoprime.errors import PrimeGenerationError
from cryptoprime.primes.dispatcher import Dispatcher
from cryptoprime.primes.request import GenerationRequest

MAX_DIGITS = 500
MAX_COUNT = 100


def _bounded(name: str, hi: int):
    def parse(raw: str) -> int:
        try:
            value = int(raw, 10)
        except ValueError:
            raise argparse.ArgumentTypeError(f"{name} must be an integer") from None
        if not 1 <= value <= hi:
            raise argparse.ArgumentTypeError(f"Please enter a valid {name} (1 - {hi})")
        return value
    return parse


def format_export(primes: List[int], digit_length: int, elapsed: float,
                  generated_at: datetime) -> str:
    header = (
        "CryptoPrime Generator\n"
        f"Generated: {generated_at:%Y-%m-%d %H:%M:%S}\n"
        f"Total Primes: {len(primes)}\n"
        f"Digit Length: {digit_length}\n"
        f"Generation Time: {elapsed:.2f} seconds\n"
        f"{'=' * 50}\n\n"
    )
    return header + "\n".join(f"Prime {i}: {p}" for i, p in enumerate(primes, 1)) + "\n"


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate random probable primes of a given digit length")
    parser.add_argument("--digits", type=_bounded("digit length", MAX_DIGITS), required=True,
                        help=f"Decimal digits per prime (1-{MAX_DIGITS})")
    parser.add_argument("--count", type=_bounded("prime count", MAX_COUNT), required=True,
                        help=f"How many distinct primes to generate (1-{MAX_COUNT})")
    parser.add_argument("--mode", type=str, default=None, choices=MODES,
                        help="Substrate to run on (default auto)")
    parser.add_argument("--server-url", type=str, default=None, help="Remote service endpoint")
    parser.add_argument("--show", type=int, default=10, help="Print the first K primes as they arrive (0 to disable)")
    parser.add_argument("--output", type=str, default=None, help="Write all primes to this text file")
    parser.add_argument("--verify", action="store_true", help="Cross-check every prime with sympy.isprime")
    parser.add_argument("--log-level", type=str, default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")
    try:
        config = GeneratorConfig.from_env(mode=args.mode, server_url=args.server_url)
        dispatcher = Dispatcher.from_config(config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    request = GenerationRequest(args.digits, args.count)
    primes: List[int] = []

    def on_found(p: int) -> None:
        primes.append(p)
        if len(primes) <= args.show:
            print(f"Prime {len(primes)}: {p}", flush=True)

    t0 = time.time()
    try:
        substrate = asyncio.run(dispatcher.generate_progressive(request, on_found))
    except PrimeGenerationError as e:
        print(f"Error generating primes: {e}", file=sys.stderr)
        return 1
    finally:
        dispatcher.close()
    dt = time.time() - t0

    print(f"Substrate: {substrate.value}")
    print(f"Digits: {args.digits}")
    print(f"Primes received: {len(primes)}")
    print(f"Time: {dt:.3f}s")

    if args.verify:
        from sympy import isprime
        bad = [p for p in primes if not isprime(p)]
        print(f"Verified (sympy): {len(primes) - len(bad)}/{len(primes)}")
        if bad:
            print(f"Composite values: {bad}", file=sys.stderr)
            return 1

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(format_export(primes, args.digits, dt, datetime.now()))
        print(f"Wrote {len(primes)} primes to {args.output}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
