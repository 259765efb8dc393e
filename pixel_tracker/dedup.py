"""Time-windowed suppression of repeat opens.

Keys are remembered until a deadline (``now + window``). Deadlines live in a
min-heap next to the key map; every lookup first drops whatever has expired,
so the cache never holds more than the keys seen within one window and no
per-key timer is ever scheduled. State is process-local and starts empty.
"""

import heapq
import itertools
import threading
import time


class DedupCache:

    def __init__(self, window_seconds, clock=time.time):
        if not window_seconds > 0:
            raise ValueError("dedup window must be positive, got %r" % (window_seconds,))
        self.window = window_seconds
        self._clock = clock
        self._deadlines = {}
        self._heap = []
        self._seq = itertools.count()
        self._lock = threading.Lock()
        self._dedup_hits = 0

    def check_and_mark(self, key, window=None):
        """Return True exactly once per key per window, marking it as seen.

        Concurrent callers with the same key are serialized on one lock, so
        only one of them can observe True.
        """
        window = self.window if window is None else window
        if not window > 0:
            raise ValueError("dedup window must be positive, got %r" % (window,))
        with self._lock:
            now = self._clock()
            self._evict(now)
            if key in self._deadlines:
                self._dedup_hits += 1
                return False
            deadline = now + window
            self._deadlines[key] = deadline
            heapq.heappush(self._heap, (deadline, next(self._seq), key))
            return True

    def forget(self, key):
        with self._lock:
            self._deadlines.pop(key, None)

    def sweep(self):
        with self._lock:
            return self._evict(self._clock())

    def _evict(self, now):
        evicted = 0
        while self._heap and self._heap[0][0] <= now:
            deadline, _, key = heapq.heappop(self._heap)
            # skip entries left behind by forget()
            if self._deadlines.get(key) == deadline:
                del self._deadlines[key]
                evicted += 1
        return evicted

    def __len__(self):
        with self._lock:
            self._evict(self._clock())
            return len(self._deadlines)

    @property
    def stats(self):
        with self._lock:
            return {"tracked": len(self._deadlines), "dedup_hits": self._dedup_hits}
