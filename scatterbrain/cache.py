import hashlib
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

from scatterbrain.models import CacheEntry

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300.0  # 5 minutes
KEY_LENGTH = 32


class ResponseCache:
    """In-memory TTL cache for synthesis results.

    Expiry is lazy: a stale entry is dropped the next time it is looked up.
    Nothing here awaits, so get/set never interleave under asyncio.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None, default_ttl: float = DEFAULT_TTL):
        self._clock = clock or time.monotonic
        self.default_ttl = default_ttl
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        if not entry.is_valid(self._clock()):
            logger.debug(f"Cache entry expired: {key}")
            del self._entries[key]
            return None

        return entry.data

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        self._entries[key] = CacheEntry(
            data=data,
            timestamp=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl
        )

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @staticmethod
    def generate_key(input_text: str, preferences: Any) -> str:
        normalized_input = (input_text or '').lower().strip()
        pref_string = json.dumps(preferences, sort_keys=True, separators=(',', ':'), default=str)
        digest = hashlib.sha256((normalized_input + pref_string).encode('utf-8')).hexdigest()
        return digest[:KEY_LENGTH]
