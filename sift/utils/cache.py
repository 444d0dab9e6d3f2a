from __future__ import annotations

import time
from typing import Any, Callable, Hashable, Optional, Tuple


class TTLCache:
    """Dict-backed cache whose entries expire ``ttl`` seconds after being set."""

    def __init__(self, ttl_sec: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl_sec
        self.clock = clock
        self.store: dict[Hashable, Tuple[float, Any]] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        v = self.store.get(key)
        if not v:
            return None
        ts, data = v
        if self.clock() - ts > self.ttl:
            self.store.pop(key, None)
            return None
        return data

    def set(self, key: Hashable, val: Any) -> None:
        self.store[key] = (self.clock(), val)

    def pop(self, key: Hashable) -> None:
        self.store.pop(key, None)

    def clear(self) -> None:
        self.store.clear()

    def __len__(self) -> int:
        return len(self.store)
