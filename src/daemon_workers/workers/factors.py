"""Single-function worker that lists the factors of an integer."""

from __future__ import annotations

from typing import Any

from daemon_workers.pool.errors import InvalidArgumentError
from daemon_workers.pool.models import WorkerOperation

GET_FACTORS = "GetFactors"


def get_factors(integer: int) -> list[int]:
    """Factors of ``integer`` between 2 and integer / 2."""

    if not _is_integer(integer):
        raise TypeError(f"Invalid Input! Expected Integer. Given: {type(integer).__name__}")
    return [candidate for candidate in range(2, (integer + 1) // 2) if integer % candidate == 0]


def validate_factors_args(args: tuple[Any, ...]) -> None:
    if len(args) != 1:
        raise InvalidArgumentError(f"{GET_FACTORS} expects exactly one argument, got {len(args)}.")
    if not _is_integer(args[0]):
        raise InvalidArgumentError(
            f"Invalid Input! Expected Integer. Given: {type(args[0]).__name__}",
        )


def _is_integer(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


FACTORS_OPERATIONS = {None: WorkerOperation(target=get_factors, validate=validate_factors_args)}
