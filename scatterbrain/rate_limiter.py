import time
from typing import Callable, Dict, List, Optional

class RateLimiter:
    def __init__(
        self,
        max_attempts: int = 10,
        window_seconds: float = 60,
        clock: Optional[Callable[[], float]] = None
    ):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock or time.monotonic
        self._attempts: Dict[str, List[float]] = {}

    def _recent(self, identifier: str, now: float) -> List[float]:
        return [t for t in self._attempts.get(identifier, []) if now - t < self.window_seconds]

    def _prune(self, now: float) -> None:
        """Forget identifiers with no attempts left in the window."""
        stale = [key for key, times in self._attempts.items() if not times or now - times[-1] >= self.window_seconds]
        for key in stale:
            del self._attempts[key]

    def is_allowed(self, identifier: str) -> bool:
        """Record an attempt for identifier unless it is over the limit."""
        now = self._clock()
        recent = self._recent(identifier, now)
        self._prune(now)

        if len(recent) >= self.max_attempts:
            self._attempts[identifier] = recent
            return False

        recent.append(now)
        self._attempts[identifier] = recent
        return True

    def remaining(self, identifier: str) -> int:
        recent = self._recent(identifier, self._clock())
        if not recent:
            self._attempts.pop(identifier, None)
        return max(0, self.max_attempts - len(recent))

    def __len__(self) -> int:
        return len(self._attempts)
