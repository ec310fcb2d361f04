"""
Petit cache mémoire à expiration (TTL), thread-safe.
Utilisé pour le jeton OAuth PayPal; le TTL et l'horloge sont injectables (tests).
"""
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    def __init__(self, default_ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = float(default_ttl)
        self._clock = clock
        self._data: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else float(ttl)
        if ttl <= 0:
            return
        with self._lock:
            self._data[key] = (self._clock() + ttl, value)

    def invalidate(self, key: Optional[str] = None) -> None:
        """Supprime une clé, ou tout le cache si key est None."""
        with self._lock:
            if key is None:
                self._data.clear()
            else:
                self._data.pop(key, None)
