from __future__ import annotations
from collections import OrderedDict
import threading
from typing import Any, Hashable, Optional

class LRUCache:
    """Bounded, thread-safe memo for lazily expanded period branches."""
    def __init__(self, capacity: int = 4096):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = capacity
        self.store: "OrderedDict[Hashable, Any]" = OrderedDict()
        self.lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self.lock:
            if key in self.store:
                self.store.move_to_end(key)
                return self.store[key]
            return None

    def set(self, key: Hashable, value: Any):
        with self.lock:
            self.store[key] = value
            self.store.move_to_end(key)
            if len(self.store) > self.capacity:
                self.store.popitem(last=False)

    def __contains__(self, key: Hashable) -> bool:
        with self.lock:
            return key in self.store

    def __len__(self) -> int:
        with self.lock:
            return len(self.store)
