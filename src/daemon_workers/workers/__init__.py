"""Example worker pools run by the daemon."""

from daemon_workers.workers.factors import FACTORS_OPERATIONS, GET_FACTORS, get_factors
from daemon_workers.workers.primes import (
    PRIME_NUMBERS,
    PRIMES_OPERATIONS,
    PrimeOperation,
    is_prime,
    primes_among,
    sieve,
)

__all__ = [
    "FACTORS_OPERATIONS",
    "GET_FACTORS",
    "PRIMES_OPERATIONS",
    "PRIME_NUMBERS",
    "PrimeOperation",
    "get_factors",
    "is_prime",
    "primes_among",
    "sieve",
]
