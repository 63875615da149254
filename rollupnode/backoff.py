"""Retrying operations with pluggable backoff strategies."""

from __future__ import annotations

import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, TypeVar

T = TypeVar("T")


class FailedPermanentlyError(Exception):
    """Raised by :func:`do` once an operation has used up all its attempts."""

    def __init__(self, attempts: int, last_err: BaseException) -> None:
        super().__init__(
            f"operation failed permanently after {attempts} attempts: {last_err}"
        )
        self.attempts = attempts
        self.last_err = last_err


class Strategy(ABC):
    """Computes how long to wait before a given retry attempt."""

    @abstractmethod
    def duration(self, attempt: int) -> float:
        """Return the delay in seconds before retry number ``attempt``."""


@dataclass
class ExponentialStrategy(Strategy):
    """Exponential backoff: ``min(min + 2**attempt * 1000 + jitter, max)`` ms."""

    min: float = 0.0
    max: float = 0.0
    max_jitter: int = 0

    def duration(self, attempt: int) -> float:
        jitter = random.randrange(self.max_jitter) if self.max_jitter > 0 else 0
        millis = self.min + (2.0**attempt) * 1000 + jitter
        if millis > self.max:
            return int(self.max) / 1000
        return int(millis) / 1000


@dataclass
class FixedStrategy(Strategy):
    """Waits the same number of seconds before every retry."""

    dur: float

    def duration(self, attempt: int) -> float:
        return self.dur


def exponential() -> Strategy:
    """Exponential backoff capped at ten seconds with up to 250 ms of jitter."""
    return ExponentialStrategy(max=10000, max_jitter=250)


def fixed(dur: float) -> Strategy:
    """Backoff that always waits ``dur`` seconds."""
    return FixedStrategy(dur=dur)


def do(max_attempts: int, strategy: Strategy, op: Callable[[], T]) -> T:
    """Call ``op`` until it succeeds or ``max_attempts`` attempts have failed.

    Returns what ``op`` returned; raises :class:`FailedPermanentlyError`
    carrying the last exception once the attempts are used up.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return op()
        except Exception as err:
            if attempt == max_attempts:
                raise FailedPermanentlyError(max_attempts, err) from err
        time.sleep(strategy.duration(attempt - 1))