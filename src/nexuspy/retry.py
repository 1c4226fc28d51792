"""
retry.py - admission and rate-limit recovery around the Dispatcher.

Per call:

    Pending --quota.wait()--> Dispatched --+--> Success
                                           +--> NonRetryableFailure
                                           +--> RateLimited --reset, cooldown--> Pending

A 429 means the server's own accounting disagrees with ours. The local quota
is refilled (queued callers should not wait on stale accounting), the caller
sleeps for a fixed cooldown and the same request goes through the gate again.
No other failure is retried.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from .dispatcher import Dispatcher, Outcome, RequestContext
from .exceptions import ErrorKind, RequestCancelled
from .quota import Quota

logger = logging.getLogger(__name__)


class RetryCoordinator:
    """
    Runs requests through the quota and resubmits them after a 429.

    Parameters
    ----------
    quota : Quota
        Admission gate shared by every request of the client.
    dispatcher : Dispatcher
        Performs the actual exchanges.
    cooldown : float
        Seconds to wait after a 429 before going through the quota again.
    max_rate_limit_retries : Optional[int]
        Resubmissions allowed per call after a 429. None retries for as long as
        the server keeps answering 429; once a bound is exceeded the
        RATE_LIMITED outcome is returned to the caller.
    """

    def __init__(self, quota: Quota, dispatcher: Dispatcher, cooldown: float,
                 max_rate_limit_retries: Optional[int] = None):
        if cooldown < 0:
            raise ValueError("cooldown must be >= 0")
        if max_rate_limit_retries is not None and max_rate_limit_retries < 0:
            raise ValueError("max_rate_limit_retries must be >= 0 or None")
        self.quota = quota
        self.dispatcher = dispatcher
        self.cooldown = float(cooldown)
        self.max_rate_limit_retries = max_rate_limit_retries
        self._stopped = threading.Event()

    def execute(self, context: RequestContext, cancel: Optional[threading.Event] = None) -> Outcome:
        """
        Wait for admission, dispatch and recover from rate limiting.

        Parameters
        ----------
        context : RequestContext
            The request; reused unchanged for every resubmission.
        cancel : Optional[threading.Event]
            Abandons the call while it is queued or cooling down.

        Returns
        -------
        Outcome
            Success or any failure other than RATE_LIMITED (unless the retry
            bound was exhausted).

        Raises
        ------
        RequestCancelled
            `cancel` was set, or the coordinator was stopped.
        NetworkError
            Propagated from the dispatcher.
        """
        attempt = 0
        while True:
            self.quota.wait(cancel=cancel)
            outcome = self.dispatcher.dispatch(context)
            if outcome.kind is not ErrorKind.RATE_LIMITED:
                return outcome

            attempt += 1
            if self.max_rate_limit_retries is not None and attempt > self.max_rate_limit_retries:
                logger.warning("Rate limited on %s; giving up after %d retries", context.url, attempt - 1)
                return outcome

            logger.warning("Rate limited on %s (attempt %d); cooling down %.2fs",
                           context.url, attempt, self.cooldown)
            self.quota.reset()
            self._cool_down(cancel)

    def _cool_down(self, cancel: Optional[threading.Event]) -> None:
        deadline = time.monotonic() + self.cooldown
        while True:
            if self._stopped.is_set():
                raise RequestCancelled("client closed during rate-limit cooldown")
            if cancel is not None and cancel.is_set():
                raise RequestCancelled("request cancelled during rate-limit cooldown")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            if cancel is None:
                self._stopped.wait(remaining)
            else:
                # two events to watch; poll the caller's in short slices
                self._stopped.wait(min(remaining, 0.05))

    def stop(self) -> None:
        """Interrupt every cooldown in progress and the ones started later."""
        self._stopped.set()
