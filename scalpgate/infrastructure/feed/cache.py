"""
ScalpGate – Feed Cache
========================
Caché TTL etiquetada por modo (live / synthetic).

Una entrada solo es válida si no ha expirado Y su modo coincide con el
modo actual del feed. El Feed Adapter es su único dueño.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Optional


@dataclass
class CacheEntry:
    value: Any
    mode: str
    stored_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.ttl


class ModeTaggedCache:
    """Caché en memoria con TTL por entrada y etiqueta de modo."""

    def __init__(self) -> None:
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable, mode: str, now: Optional[float] = None) -> Any:
        now = time.time() if now is None else now
        entry = self._entries.get(key)
        if entry is None or entry.mode != mode or not entry.is_fresh(now):
            self._misses += 1
            return None
        self._hits += 1
        return entry.value

    def put(self, key: Hashable, value: Any, mode: str, ttl: float, now: Optional[float] = None) -> None:
        now = time.time() if now is None else now
        self._entries[key] = CacheEntry(value=value, mode=mode, stored_at=now, ttl=ttl)

    def invalidate_instrument(self, instrument: str) -> int:
        """Eliminar todas las entradas del instrumento (keys `(tipo, instrumento, ...)`)."""
        keys = [k for k in self._entries if isinstance(k, tuple) and k[1] == instrument]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> dict:
        return {"size": len(self._entries), "hits": self._hits, "misses": self._misses}
