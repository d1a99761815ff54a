from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], float]


class Deadline:
    """Absolute point in monotonic time after which a fetch is abandoned."""

    __slots__ = ("_expires_at", "_clock")

    def __init__(self, expires_at: float, *, clock: Clock = time.monotonic) -> None:
        self._expires_at = expires_at
        self._clock = clock

    @classmethod
    def after(cls, seconds: float, *, clock: Clock = time.monotonic) -> Deadline:
        if seconds < 0:
            raise ValueError("seconds must be >= 0")
        return cls(clock() + seconds, clock=clock)

    def remaining(self) -> float:
        return max(self._expires_at - self._clock(), 0.0)

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0
