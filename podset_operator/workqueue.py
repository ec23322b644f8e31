"""
Deduplicating work queue with per-key mutual exclusion.

A key is either waiting (in the queue and the dirty set), processing, or
both processing and dirty. A dirty key that is being processed is queued
again only when its worker calls ``done``, so one key is never handed to two
workers at the same time.
"""

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from typing import Deque, Dict, Hashable, List, Optional, Set, Tuple

from .config import Config
from .metrics import WORKQUEUE_DEPTH, WORKQUEUE_RETRIES

LOG = logging.getLogger(__name__)


class ItemExponentialFailureRateLimiter:
    """Per-key exponential backoff: base * 2**failures, capped at max_delay"""

    def __init__(self, base_delay: float = Config.BACKOFF_BASE_DELAY,
                 max_delay: float = Config.BACKOFF_MAX_DELAY):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: Dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def when(self, key: Hashable) -> float:
        with self._lock:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        # Avoid float overflow for long-failing keys
        if failures >= 64:
            return self.max_delay
        return min(self.base_delay * (2 ** failures), self.max_delay)

    def forget(self, key: Hashable) -> None:
        with self._lock:
            self._failures.pop(key, None)

    def num_requeues(self, key: Hashable) -> int:
        with self._lock:
            return self._failures.get(key, 0)


class WorkQueue:
    """Blocking queue of reconcile keys.

    ``maxsize`` bounds the number of waiting keys (0 means unbounded);
    ``add`` blocks while the queue is full. Delayed and rate-limited adds
    bypass the bound when they become ready.
    """

    def __init__(self, maxsize: int = 0,
                 rate_limiter: Optional[ItemExponentialFailureRateLimiter] = None):
        self.maxsize = maxsize
        self.rate_limiter = rate_limiter if rate_limiter is not None else ItemExponentialFailureRateLimiter()
        self._cond = threading.Condition()
        self._queue: Deque[Hashable] = deque()
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._waiting: List[Tuple[float, int, Hashable]] = []
        self._sequence = itertools.count()
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def add(self, key: Hashable) -> None:
        with self._cond:
            # Keys already waiting or in flight do not take a slot
            while (self.maxsize > 0 and len(self._queue) >= self.maxsize
                   and key not in self._dirty and key not in self._processing
                   and not self._shutting_down):
                self._cond.wait()
            self._insert(key)

    def _insert(self, key: Hashable) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        WORKQUEUE_DEPTH.set(len(self._queue))
        self._cond.notify_all()

    def add_after(self, key: Hashable, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            heapq.heappush(self._waiting, (time.monotonic() + delay, next(self._sequence), key))
            self._cond.notify_all()

    def add_rate_limited(self, key: Hashable) -> None:
        WORKQUEUE_RETRIES.inc()
        self.add_after(key, self.rate_limiter.when(key))

    def forget(self, key: Hashable) -> None:
        self.rate_limiter.forget(key)

    def num_requeues(self, key: Hashable) -> int:
        return self.rate_limiter.num_requeues(key)

    def _release_ready(self) -> Optional[float]:
        """Move due delayed keys into the queue; return seconds until the next one"""
        now = time.monotonic()
        while self._waiting and self._waiting[0][0] <= now:
            _, _, key = heapq.heappop(self._waiting)
            self._insert(key)
        if self._waiting:
            return self._waiting[0][0] - now
        return None

    def get(self, timeout: Optional[float] = None) -> Optional[Hashable]:
        """Block for the next key; None once shut down or on timeout"""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._shutting_down:
                    return None
                next_ready = self._release_ready()
                if self._queue:
                    key = self._queue.popleft()
                    self._processing.add(key)
                    self._dirty.discard(key)
                    WORKQUEUE_DEPTH.set(len(self._queue))
                    self._cond.notify_all()
                    return key
                wait = next_ready
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key: Hashable) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty and not self._shutting_down:
                self._queue.append(key)
                WORKQUEUE_DEPTH.set(len(self._queue))
            self._cond.notify_all()

    def shut_down(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()
        LOG.debug("Work queue shut down")

    def wait_idle(self, timeout: float) -> bool:
        """Block until nothing is queued, processing or delayed"""
        deadline = time.monotonic() + timeout
        with self._cond:
            while self._queue or self._processing or self._waiting:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(remaining)
            return True
