import time
from typing import Optional

from .errors import DeadlineExceeded


class Deadline:
    """Monotonic expiry shared by every store/tracker call of one report."""

    def __init__(self, seconds: float, clock=time.monotonic):
        self._clock = clock
        self.expires_at = clock() + float(seconds)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    def expired(self) -> bool:
        return self._clock() >= self.expires_at

    def check(self, what: str = "operation") -> None:
        if self.expired():
            raise DeadlineExceeded(f"deadline exceeded before {what}")

    def bound(self, timeout: float) -> float:
        """Shrink a network timeout so it never outlives the deadline."""
        return min(float(timeout), self.remaining())


def bounded_timeout(deadline: Optional[Deadline], timeout: float, what: str) -> float:
    if deadline is None:
        return timeout
    deadline.check(what)
    return deadline.bound(timeout)
