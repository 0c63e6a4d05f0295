from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Tuple

# 프로필별 길드 목록과 응답을 짧게 보관하는 프로세스 전역 캐시입니다.

_MISSING = object()


class CacheService:
    """In-process key/value cache with a per-entry time-to-live.

    Expired entries are swept on every write and the number of stored entries
    never exceeds ``max_entries``; the entry closest to expiry is evicted first.
    """

    def __init__(
        self,
        ttl: float = 300,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 10_000,
    ):
        self.ttl = ttl
        self.max_entries = max(1, int(max_entries))
        self._clock = clock
        self._data: Dict[str, Tuple[float, Any]] = {}

    def _sweep(self, now: float) -> None:
        expired = [k for k, (expires_at, _) in self._data.items() if expires_at <= now]
        for k in expired:
            del self._data[k]

    def get(self, key: Any, default: Any = None) -> Any:
        k = str(key)
        entry = self._data.get(k)
        if entry is None:
            return default
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._data[k]
            return default
        return value

    def set(self, key: Any, value: Any, ttl: Optional[float] = None) -> None:
        k = str(key)
        now = self._clock()
        self._sweep(now)
        self._data.pop(k, None)
        while len(self._data) >= self.max_entries:
            oldest = min(self._data, key=lambda name: self._data[name][0])
            del self._data[oldest]
        self._data[k] = (now + (self.ttl if ttl is None else ttl), value)

    def delete(self, key: Any) -> bool:
        return self._data.pop(str(key), _MISSING) is not _MISSING

    def pop(self, key: Any, default: Any = None) -> Any:
        value = self.get(key, _MISSING)
        if value is _MISSING:
            return default
        self._data.pop(str(key), None)
        return value

    def __contains__(self, key: Any) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for expires_at, _ in self._data.values() if expires_at > now)
