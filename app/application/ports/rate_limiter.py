from typing import Protocol


class RateLimiter(Protocol):
    """Counts hits per key; ``allow`` records the hit and says whether it fits the window."""

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        ...
