from __future__ import annotations

import threading
from collections import OrderedDict

DEFAULT_INTERVAL_MS = 30_000


class ThrottleGate:
    """Per-key minimum-interval gate for realtime emissions.

    One instance is created at startup and shared by every live connection.
    ``try_emit`` checks and records under a single lock, so two callers for the
    same key can never both be accepted inside one interval. With ``max_keys``
    set, the key accepted longest ago is dropped first; a dropped key is
    treated as never emitted.
    """

    def __init__(self, interval_ms: int = DEFAULT_INTERVAL_MS, max_keys: int | None = None) -> None:
        if max_keys is not None and max_keys < 1:
            raise ValueError("max_keys must be >= 1")
        self.interval_ms = interval_ms
        self.max_keys = max_keys
        self._lock = threading.Lock()
        self._last: OrderedDict[str, int] = OrderedDict()

    def try_emit(self, key: str, now_ms: int, interval_ms: int | None = None) -> bool:
        interval = self.interval_ms if interval_ms is None else interval_ms
        with self._lock:
            last = self._last.get(key)
            if last is not None and now_ms - last < interval:
                return False
            self._last[key] = now_ms
            self._last.move_to_end(key)
            if self.max_keys is not None:
                while len(self._last) > self.max_keys:
                    self._last.popitem(last=False)
            return True

    def last_emitted(self, key: str) -> int | None:
        with self._lock:
            return self._last.get(key)

    def revert(self, key: str, accepted_at: int) -> bool:
        """Undo the acceptance recorded at ``accepted_at``; a later acceptance is left alone."""
        with self._lock:
            if self._last.get(key) != accepted_at:
                return False
            # an accepted key had no live window before, so dropping it restores that state
            del self._last[key]
            return True

    def forget(self, key: str) -> None:
        with self._lock:
            self._last.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._last)
