"""Multi-operation prime numbers worker."""

from __future__ import annotations

import math
from collections.abc import Iterable
from enum import Enum
from typing import Any

from daemon_workers.pool.errors import InvalidArgumentError
from daemon_workers.pool.models import WorkerOperation

PRIME_NUMBERS = "PrimeNumbers"


class PrimeOperation(str, Enum):
    """Operations the PrimeNumbers pool accepts."""

    SIEVE = "sieve"
    IS_PRIME = "is_prime"
    PRIMES_AMONG = "primes_among"


def is_prime(number: int) -> bool:
    if number < 2:
        return False
    if number < 4:
        return True
    if number % 2 == 0:
        return False
    for divisor in range(3, math.isqrt(number) + 1, 2):
        if number % divisor == 0:
            return False
    return True


def sieve(start: int, end: int) -> list[int]:
    """Primes in the closed range [start, end] (sieve of Eratosthenes)."""

    if end < 2 or end < start:
        return []
    flags = bytearray([1]) * (end + 1)
    flags[0] = 0
    flags[1] = 0
    for number in range(2, math.isqrt(end) + 1):
        if flags[number]:
            flags[number * number :: number] = bytes(len(range(number * number, end + 1, number)))
    return [number for number in range(max(start, 2), end + 1) if flags[number]]


def primes_among(numbers: Iterable[int]) -> list[int]:
    return [number for number in numbers if is_prime(number)]


def _validate_sieve(args: tuple[Any, ...]) -> None:
    if len(args) != 2:
        raise InvalidArgumentError(f"sieve expects (start, end), got {len(args)} arguments.")
    start, end = args
    if not (_is_integer(start) and _is_integer(end)):
        raise InvalidArgumentError("sieve bounds must be integers.")
    if start < 0 or end < start:
        raise InvalidArgumentError(f"Invalid sieve range: [{start}, {end}].")


def _validate_is_prime(args: tuple[Any, ...]) -> None:
    if len(args) != 1 or not _is_integer(args[0]):
        raise InvalidArgumentError("is_prime expects a single integer.")


def _validate_primes_among(args: tuple[Any, ...]) -> None:
    if len(args) != 1 or not isinstance(args[0], (list, tuple)):
        raise InvalidArgumentError("primes_among expects a single list of integers.")
    if not all(_is_integer(value) for value in args[0]):
        raise InvalidArgumentError("primes_among expects a single list of integers.")


def _is_integer(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


PRIMES_OPERATIONS = {
    PrimeOperation.SIEVE.value: WorkerOperation(target=sieve, validate=_validate_sieve),
    PrimeOperation.IS_PRIME.value: WorkerOperation(target=is_prime, validate=_validate_is_prime),
    PrimeOperation.PRIMES_AMONG.value: WorkerOperation(
        target=primes_among,
        validate=_validate_primes_among,
    ),
}
