"""Deduplicating asyncio work queue for reconcile keys."""

import asyncio
import collections
import logging

logger = logging.getLogger(__name__)


class WorkQueue:
    """Work queue with per-key deduplication and serialization.

    A key sits in at most one place: queued, or being processed. Adding a key
    that is already queued is a no-op; adding a key that is being processed
    marks it dirty so it is queued again once ``done`` is called. This keeps a
    single in-flight reconcile per key.
    """

    def __init__(self, backoff_base=1.0, backoff_max=300.0):
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._queue = collections.deque()
        self._dirty = set()
        self._processing = set()
        self._failures = {}
        self._timers = {}
        self._ready = asyncio.Event()
        self._shutting_down = False

    def __len__(self):
        return len(self._queue)

    @property
    def shutting_down(self):
        return self._shutting_down

    def add(self, key):
        """Queue ``key`` unless it is already pending."""
        if self._shutting_down:
            logger.debug(f"Queue shutting down, dropping {key}")
            return
        if key in self._dirty:
            return

        self._dirty.add(key)
        if key not in self._processing:
            self._queue.append(key)
            self._ready.set()

    def add_after(self, key, delay):
        """Queue ``key`` after ``delay`` seconds.

        If a timer for the key is already armed, the earlier one wins.
        """
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return

        loop = asyncio.get_running_loop()
        due = loop.time() + delay
        existing = self._timers.get(key)
        if existing is not None:
            if existing[0] <= due:
                return
            existing[1].cancel()

        handle = loop.call_later(delay, self._fire, key)
        self._timers[key] = (due, handle)

    def _fire(self, key):
        self._timers.pop(key, None)
        self.add(key)

    def add_rate_limited(self, key):
        """Queue ``key`` after an exponential backoff. Returns the delay."""
        failures = self._failures.get(key, 0)
        delay = min(self.backoff_base * (2**failures), self.backoff_max)
        self._failures[key] = failures + 1
        self.add_after(key, delay)
        return delay

    def cancel(self, key):
        """Disarm the pending timer of ``key``, if any."""
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer[1].cancel()

    def forget(self, key):
        """Reset the backoff of ``key``."""
        self._failures.pop(key, None)

    def num_requeues(self, key):
        return self._failures.get(key, 0)

    async def get(self):
        """Wait for the next key. Returns None once the queue is shut down."""
        while not self._queue:
            if self._shutting_down:
                return None
            self._ready.clear()
            await self._ready.wait()

        if self._shutting_down:
            return None

        key = self._queue.popleft()
        self._processing.add(key)
        self._dirty.discard(key)
        return key

    def done(self, key):
        """Mark ``key`` finished; requeue it if it was added meanwhile."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._queue.append(key)
            self._ready.set()

    def is_processing(self, key):
        return key in self._processing

    def is_idle(self):
        return not self._queue and not self._processing

    def pending(self):
        """Keys queued or waiting on a timer."""
        return sorted(set(self._queue) | set(self._timers))

    def shutdown(self):
        """Stop handing out keys and cancel all timers."""
        self._shutting_down = True
        for _, handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._ready.set()
