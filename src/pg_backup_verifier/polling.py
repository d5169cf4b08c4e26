from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class PollOutcome(Generic[T]):
    satisfied: bool
    value: T | None
    attempts: int
    last_error: Exception | None = None


def poll_until(
    fetch: Callable[[], T],
    predicate: Callable[[T], bool],
    *,
    timeout_seconds: float,
    interval_seconds: float,
    retry_on: tuple[type[Exception], ...] = (),
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> PollOutcome[T]:
    """Call ``fetch`` until ``predicate`` accepts its value or the deadline passes.

    The deadline is measured once from loop entry. The fetch always runs at
    least once. Exceptions listed in ``retry_on`` count as an unsatisfied
    attempt; anything else propagates. ``value`` holds the last successfully
    fetched value, which may be stale when the final attempt raised.
    """
    if timeout_seconds <= 0:
        raise ValueError("timeout_seconds must be positive")
    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be positive")

    deadline = clock() + timeout_seconds
    attempts = 0
    value: T | None = None
    last_error: Exception | None = None
    while True:
        attempts += 1
        try:
            value = fetch()
            last_error = None
            if predicate(value):
                return PollOutcome(satisfied=True, value=value, attempts=attempts)
        except retry_on as error:
            last_error = error

        remaining = deadline - clock()
        if remaining <= 0:
            return PollOutcome(satisfied=False, value=value, attempts=attempts, last_error=last_error)
        sleep(min(interval_seconds, remaining))
