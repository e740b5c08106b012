"""Process-wide, time-bounded store of cached image region payloads."""
from __future__ import annotations

import logging
import secrets
import string
import threading
import time
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple

from diagram_stream.utils.config import settings

logger = logging.getLogger(__name__)

_KEY_ALPHABET = string.digits + string.ascii_lowercase


class RegionPayloadStore:
    """Maps ``cache_key`` to ``{region_name: payload}`` for a fixed TTL.

    Entries are inserted once, never removed on read, and expire ``ttl_seconds``
    after creation. Expiry is enforced lazily on lookup and by :meth:`sweep`.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = settings.region_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Mapping[str, str]]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for expires_at, _ in self._entries.values() if expires_at > now)

    @staticmethod
    def new_key() -> str:
        suffix = "".join(secrets.choice(_KEY_ALPHABET) for _ in range(9))
        return f"extract_{int(time.time() * 1000)}_{suffix}"

    def put(self, key: str, mapping: Mapping[str, str]) -> str:
        if not key or "/" in key:
            raise ValueError(f"Invalid cache key: {key!r}")
        with self._lock:
            now = self._clock()
            existing = self._entries.get(key)
            if existing is not None and existing[0] > now:
                raise ValueError(f"Cache key already exists: {key}")
            self._entries[key] = (now + self.ttl_seconds, MappingProxyType(dict(mapping)))
        logger.info("Cached %d region(s)", len(mapping), extra={"cache_key": key})
        return key

    def get(self, key: str) -> Optional[Mapping[str, str]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, mapping = entry
            if expires_at <= self._clock():
                del self._entries[key]
                logger.debug("Region cache entry expired", extra={"cache_key": key})
                return None
            return mapping

    def sweep(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired region cache entries", len(expired))
        return len(expired)


region_store = RegionPayloadStore()
