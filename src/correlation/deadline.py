"""Per-run deadline.  A run past its deadline is abandoned before it commits anything."""

from __future__ import annotations

import time
from collections.abc import Callable

from src.contracts.errors import DeadlineExceeded


class Deadline:
    def __init__(
        self,
        seconds: float | None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._monotonic = monotonic
        self._expires = None if seconds is None else monotonic() + seconds

    def remaining(self) -> float | None:
        if self._expires is None:
            return None
        return max(0.0, self._expires - self._monotonic())

    @property
    def expired(self) -> bool:
        return self._expires is not None and self._monotonic() >= self._expires

    def check(self, stage: str) -> None:
        if self.expired:
            raise DeadlineExceeded(f"run deadline exceeded during {stage}")
