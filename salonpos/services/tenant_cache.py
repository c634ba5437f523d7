from __future__ import annotations

import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any


class TenantDataCache(ABC):
    @abstractmethod
    def get(self, *, session_id: str, tenant_id: int) -> Any | None:
        """Cached value for this session and tenant, if still fresh."""

    @abstractmethod
    def put(self, *, session_id: str, tenant_id: int, value: Any) -> None:
        """Stores a value for this session and tenant."""

    @abstractmethod
    def invalidate_session(self, session_id: str) -> int:
        """Drops every entry of a session (sign-out). Returns how many."""

    @abstractmethod
    def invalidate_tenant(self, tenant_id: int) -> int:
        """Drops every entry of a tenant (after a sync). Returns how many."""


class InMemoryTenantDataCache(TenantDataCache):
    def __init__(self, *, ttl_seconds: float = 300.0, clock=time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, int], tuple[float, Any]] = {}
        self._lock = Lock()

    def get(self, *, session_id: str, tenant_id: int) -> Any | None:
        key = (session_id, int(tenant_id))
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl_seconds:
                self._entries.pop(key, None)
                return None
            return value

    def put(self, *, session_id: str, tenant_id: int, value: Any) -> None:
        now = self._clock()
        with self._lock:
            expired = [key for key, (stored_at, _) in self._entries.items() if now - stored_at > self.ttl_seconds]
            for key in expired:
                del self._entries[key]
            self._entries[(session_id, int(tenant_id))] = (now, value)

    def invalidate_session(self, session_id: str) -> int:
        with self._lock:
            keys = [key for key in self._entries if key[0] == session_id]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def invalidate_tenant(self, tenant_id: int) -> int:
        with self._lock:
            keys = [key for key in self._entries if key[1] == int(tenant_id)]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


tenant_data_cache = InMemoryTenantDataCache()
