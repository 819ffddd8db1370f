"""
The deduplicating, rate-limited queue of the objects' keys to reconcile.

The queue carries no events, only the keys: the workers always reconcile
the latest known state of an object as seen in the cache, no matter how many
changes happened since the key was queued. This makes the processing
level-triggered, and allows the collapsing of the repeated keys:

* A key is queued at most once at a time: re-adding a queued key is a no-op.
* A key being processed is never given to another worker. Instead, re-adding
  it marks it as "dirty", and it is queued again when the processing is done
  (so the latest change is processed after the in-flight one, not in parallel).

Three sets describe the state of every key:

* ``dirty``: the key needs processing (either queued, or re-added while
  processing);
* ``processing``: the key is given to a worker and is not yet ``done()``;
* ``queue``: the ordered keys ready for the workers (always dirty, never
  processing).

The failed keys are re-added with a delay as decided by the rate limiter:
the maximum of the per-key exponential backoff and the overall token bucket.
The limiter also counts the failures of every key until it is forgotten.

All the bookkeeping is synchronous and happens in one event loop, so there are
no races between the workers without any locks. Only the getting is async.
"""
import asyncio
import collections
import logging
import time
from typing import Deque, Dict, Optional, Set, Tuple

from typing_extensions import Protocol

from consul_operator._cogs.configs import configuration
from consul_operator._cogs.structs import references

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    def when(self, key: references.ObjectKey) -> float: ...
    def forget(self, key: references.ObjectKey) -> None: ...
    def num_requeues(self, key: references.ObjectKey) -> int: ...


class ItemExponentialFailureRateLimiter:
    """
    A per-key backoff: ``base_delay * 2 ** failures``, capped at ``max_delay``.
    """

    def __init__(self, *, base_delay: float, max_delay: float) -> None:
        super().__init__()
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: Dict[references.ObjectKey, int] = {}

    def when(self, key: references.ObjectKey) -> float:
        exp = self._failures.get(key, 0)
        self._failures[key] = exp + 1

        # Beyond this, the float would overflow; the cap is reached long before anyway.
        if exp >= 64:
            return self.max_delay
        return min(self.base_delay * 2 ** exp, self.max_delay)

    def forget(self, key: references.ObjectKey) -> None:
        self._failures.pop(key, None)

    def num_requeues(self, key: references.ObjectKey) -> int:
        return self._failures.get(key, 0)


class BucketRateLimiter:
    """
    An overall token bucket for all keys together: ``qps`` with ``burst``.

    Every call reserves one token: the delay is zero while the tokens last,
    then grows so that the reserved retries are spread at the ``qps`` rate.
    It does not count the failures per key.
    """

    def __init__(self, *, qps: float, burst: int) -> None:
        super().__init__()
        self.qps = qps
        self.burst = burst
        self._tokens: float = burst
        self._last: float = time.monotonic()

    def when(self, key: references.ObjectKey) -> float:
        now = time.monotonic()
        self._tokens = min(self.burst, self._tokens + (now - self._last) * self.qps)
        self._last = now
        self._tokens -= 1
        return 0 if self._tokens >= 0 else -self._tokens / self.qps

    def forget(self, key: references.ObjectKey) -> None:
        pass

    def num_requeues(self, key: references.ObjectKey) -> int:
        return 0


class MaxOfRateLimiter:
    """
    The worst (i.e. the longest) delay of several limiters.
    """

    def __init__(self, *limiters: RateLimiter) -> None:
        super().__init__()
        self.limiters = limiters

    def when(self, key: references.ObjectKey) -> float:
        # All limiters must see the call, even if their delays are not the longest.
        delays = [limiter.when(key) for limiter in self.limiters]
        return max(delays, default=0)

    def forget(self, key: references.ObjectKey) -> None:
        for limiter in self.limiters:
            limiter.forget(key)

    def num_requeues(self, key: references.ObjectKey) -> int:
        return max((limiter.num_requeues(key) for limiter in self.limiters), default=0)


def make_rate_limiter(settings: configuration.OperatorSettings) -> RateLimiter:
    """ The default combination of the per-key and the overall rate limiting. """
    per_key = ItemExponentialFailureRateLimiter(
        base_delay=settings.retrying.base_delay,
        max_delay=settings.retrying.max_delay,
    )
    if settings.retrying.qps is None:
        return per_key
    overall = BucketRateLimiter(qps=settings.retrying.qps, burst=settings.retrying.burst)
    return MaxOfRateLimiter(per_key, overall)


class ChangeQueue:
    """
    A work queue of keys with the deduplication, delayed adds, and rate limiting.

    Every key got from the queue must be reported back as ``done()`` exactly
    once, regardless of the processing outcome; otherwise, the key is never
    given to any worker again.

    Once shut down, the queue ignores all new keys, cancels the delayed ones,
    and wakes up all the getters to report the shutdown to them.
    """

    def __init__(
            self,
            *,
            rate_limiter: Optional[RateLimiter] = None,
            name: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.name = name
        self._rate_limiter: RateLimiter = (
            rate_limiter if rate_limiter is not None else
            make_rate_limiter(configuration.OperatorSettings())
        )
        self._queue: Deque[references.ObjectKey] = collections.deque()
        self._dirty: Set[references.ObjectKey] = set()
        self._processing: Set[references.ObjectKey] = set()
        self._waiting: Dict[references.ObjectKey, asyncio.TimerHandle] = {}
        self._wakeup = asyncio.Event()
        self._shutting_down = False

    def __repr__(self) -> str:
        clsname = self.__class__.__name__
        name = f'{self.name}: ' if self.name else ''
        return f'<{clsname}: {name}{len(self._queue)} queued, {len(self._processing)} processing>'

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: references.ObjectKey) -> None:
        """ Queue the key, unless it is already queued; defer it if being processed. """
        if self._shutting_down:
            return
        if key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._wakeup.set()

    async def get(self) -> Tuple[Optional[references.ObjectKey], bool]:
        """
        Wait for the next key; return ``(key, False)``, or ``(None, True)`` on shutdown.
        """
        while True:
            if self._shutting_down:
                return None, True
            if self._queue:
                break
            self._wakeup.clear()
            await self._wakeup.wait()

        key = self._queue.popleft()
        self._processing.add(key)
        self._dirty.discard(key)
        return key, False

    def done(self, key: references.ObjectKey) -> None:
        """ Mark the key as processed; queue it again if it was re-added meanwhile. """
        self._processing.discard(key)
        if key in self._dirty:
            self._queue.append(key)
            self._wakeup.set()

    def add_after(self, key: references.ObjectKey, delay: float) -> None:
        """
        Add the key after a delay. Of the multiple delays for one key, the earliest wins.
        """
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return

        loop = asyncio.get_running_loop()
        ready_time = loop.time() + delay
        existing = self._waiting.get(key)
        if existing is not None:
            if existing.when() <= ready_time:
                return
            existing.cancel()
        self._waiting[key] = loop.call_at(ready_time, self._add_delayed, key)

    def _add_delayed(self, key: references.ObjectKey) -> None:
        self._waiting.pop(key, None)
        self.add(key)

    def add_rate_limited(self, key: references.ObjectKey) -> None:
        """ Add the key after a delay as the rate limiter decides for it. """
        self.add_after(key, self._rate_limiter.when(key))

    def forget(self, key: references.ObjectKey) -> None:
        """ Reset the failures of the key, so that its next retry starts from scratch. """
        self._rate_limiter.forget(key)

    def num_requeues(self, key: references.ObjectKey) -> int:
        return self._rate_limiter.num_requeues(key)

    def shutdown(self) -> None:
        """ Stop accepting and giving keys; wake up all getters. """
        if not self._shutting_down:
            logger.debug(f"Shutting down the change queue with {len(self._queue)} keys queued.")
        self._shutting_down = True
        for handle in self._waiting.values():
            handle.cancel()
        self._waiting.clear()
        self._wakeup.set()
