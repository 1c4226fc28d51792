"""
quota.py - token-bucket admission gate for outbound requests.

Every request the client sends first takes one token from a Quota. Tokens are
regenerated lazily: nothing runs in the background, each admission attempt
credits `floor(elapsed / refill_interval)` tokens since the last accounting
update. Waiting callers are served strictly in arrival order.

Thread safety: `available`, `capacity` and `last_refill` are only touched while
holding the quota's condition lock.
"""

from __future__ import annotations

import collections
import logging
import math
import threading
import time
from typing import Optional

from .exceptions import RequestCancelled

logger = logging.getLogger(__name__)

# upper bound on a single condition wait while a cancel event must be polled
_CANCEL_POLL_INTERVAL = 0.05


class _Waiter:
    __slots__ = ("thread_name",)

    def __init__(self) -> None:
        self.thread_name = threading.current_thread().name


class Quota:
    """
    Token bucket bounding the rate of outbound requests.

    Parameters
    ----------
    capacity : int
        Maximum number of tokens (burst size).
    refill_interval : float
        Seconds needed to regenerate one token.
    initial : Optional[int]
        Tokens available at creation; defaults to `capacity`.

    Example
    -------
    >>> quota = Quota(capacity=30, refill_interval=1.0)
    >>> quota.wait()          # returns at once while tokens are left
    >>> quota.set_max(300)    # key turned out to be premium
    """

    def __init__(self, capacity: int, refill_interval: float, initial: Optional[int] = None):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if refill_interval <= 0:
            raise ValueError("refill_interval must be positive")
        self._capacity = int(capacity)
        self._available = self._capacity if initial is None else max(0, min(int(initial), self._capacity))
        self._refill_interval = float(refill_interval)
        self._last_refill = time.monotonic()
        self._cond = threading.Condition(threading.Lock())
        self._queue: collections.deque = collections.deque()
        self._closed = False

    @property
    def capacity(self) -> int:
        with self._cond:
            return self._capacity

    @property
    def available(self) -> int:
        """Tokens available right now (after crediting elapsed time)."""
        with self._cond:
            self._refill(time.monotonic())
            return self._available

    @property
    def refill_interval(self) -> float:
        return self._refill_interval

    @property
    def closed(self) -> bool:
        return self._closed

    def _refill(self, now: float) -> None:
        # caller holds the lock
        if self._available >= self._capacity:
            # a full bucket does not bank time
            self._last_refill = now
            return
        elapsed = now - self._last_refill
        new_tokens = math.floor(elapsed / self._refill_interval)
        if new_tokens <= 0:
            return
        self._available = min(self._capacity, self._available + new_tokens)
        if self._available >= self._capacity:
            self._last_refill = now
        else:
            self._last_refill += new_tokens * self._refill_interval

    def _next_token_in(self, now: float) -> float:
        return max(0.0, self._last_refill + self._refill_interval - now)

    def wait(self, cancel: Optional[threading.Event] = None, timeout: Optional[float] = None) -> None:
        """
        Block until a token is available, then consume it.

        Callers are admitted first-come-first-served: only the oldest waiter
        may take a token, so a late caller never overtakes an earlier one.

        Parameters
        ----------
        cancel : Optional[threading.Event]
            When set, the caller leaves the queue without consuming a token.
        timeout : Optional[float]
            Maximum seconds to wait for admission.

        Raises
        ------
        RequestCancelled
            If `cancel` was set, `timeout` expired or the quota was closed.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        waiter = _Waiter()
        with self._cond:
            if self._closed:
                raise RequestCancelled("quota closed")
            self._queue.append(waiter)
            try:
                while True:
                    if self._closed:
                        raise RequestCancelled("quota closed")
                    if cancel is not None and cancel.is_set():
                        raise RequestCancelled("request cancelled while waiting for quota")

                    now = time.monotonic()
                    if self._queue[0] is waiter:
                        self._refill(now)
                        if self._available > 0:
                            self._available -= 1
                            return
                        delay = self._next_token_in(now)
                    else:
                        # woken up again when the head of the queue is served
                        delay = None

                    if deadline is not None:
                        remaining = deadline - now
                        if remaining <= 0:
                            raise RequestCancelled("timed out waiting for quota")
                        delay = remaining if delay is None else min(delay, remaining)
                    if cancel is not None:
                        delay = _CANCEL_POLL_INTERVAL if delay is None else min(delay, _CANCEL_POLL_INTERVAL)

                    if delay is not None and delay > 0.5:
                        logger.debug("Quota exhausted; %s waiting %.2fs for a token", waiter.thread_name, delay)
                    self._cond.wait(delay)
            finally:
                self._queue.remove(waiter)
                self._cond.notify_all()

    def set_max(self, new_capacity: int) -> None:
        """
        Change the capacity used for future admission decisions.

        Tokens already handed out are not revoked. Available tokens above the
        new capacity are dropped; raising the capacity credits the difference,
        so a tier upgrade takes effect for the very next burst.
        """
        if new_capacity < 1:
            raise ValueError("capacity must be >= 1")
        with self._cond:
            self._refill(time.monotonic())
            if new_capacity != self._capacity:
                logger.debug("Quota capacity %d -> %d", self._capacity, new_capacity)
            if new_capacity > self._capacity:
                self._available += new_capacity - self._capacity
            self._capacity = int(new_capacity)
            if self._available > self._capacity:
                self._available = self._capacity
            self._cond.notify_all()

    def reset(self) -> None:
        """Refill the bucket completely, e.g. after the server signalled overload."""
        with self._cond:
            self._available = self._capacity
            self._last_refill = time.monotonic()
            self._cond.notify_all()

    def close(self) -> None:
        """Cancel every queued waiter; later calls to `wait()` fail immediately."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __repr__(self) -> str:
        return (f"<Quota capacity={self._capacity} available={self._available} "
                f"refill_interval={self._refill_interval} waiting={len(self._queue)}>")
