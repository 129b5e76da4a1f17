# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from __future__ import annotations

import functools
import logging
import threading
import time
from typing import Callable
from typing import Iterable
from typing import Optional

_logger = logging.getLogger(__name__)


class Cancelled(Exception):
    """Operator asked to stop; what is done stays done."""


class Wait:
    """Poll with exponentially growing delay, bounded by timeout.

    Sleeping is interruptible: if a cancellation event is given and set,
    sleep() raises Cancelled instead of waiting out the delay.
    """

    def __init__(
            self,
            until: Optional[str],
            timeout_sec: float = 30,
            max_delay_sec: float = 5,
            cancelled: Optional[threading.Event] = None,
            ):
        self._until = until
        assert timeout_sec is not None
        self._timeout_sec = timeout_sec
        self._max_delay_sec = max_delay_sec
        self._cancelled = cancelled
        self._started_at = time.monotonic()
        self._last_checked_at = self._started_at
        self._attempts_made = 0
        self.delay_sec = max_delay_sec / 16.
        _logger.debug(
            "Waiting until %s: %.1f sec.",
            self._until, self._timeout_sec)

    def again(self):
        now = time.monotonic()
        since_start_sec = now - self._started_at
        if since_start_sec > self._timeout_sec:
            _logger.warning(
                "Timed out waiting until %s: %g/%g sec, %d attempts.",
                self._until, since_start_sec, self._timeout_sec, self._attempts_made)
            return False
        since_last_checked_sec = now - self._last_checked_at
        if since_last_checked_sec < self.delay_sec:
            return True
        self._attempts_made += 1
        self.delay_sec = min(self._max_delay_sec, self.delay_sec * 2)
        _logger.debug(
            "Continue waiting until %s: %.1f/%.1f sec, %d attempts, delay %.1f sec.",
            self._until, since_start_sec, self._timeout_sec, self._attempts_made, self.delay_sec)
        self._last_checked_at = now
        return True

    def sleep(self):
        _logger.debug("Sleep for %.1f seconds", self.delay_sec)
        if self._cancelled is None:
            time.sleep(self.delay_sec)
        elif self._cancelled.wait(self.delay_sec):
            raise Cancelled(f"Cancelled while waiting until {self._until}")


class WaitTimeout(Exception):

    def __init__(self, timeout_sec, message):
        super(WaitTimeout, self).__init__(message)
        self.timeout_sec = timeout_sec


def wait_for_truthy(
        get_value: Callable,
        *,
        args: Iterable = (),
        description: Optional[str] = None,
        timeout_sec: float = 30,
        max_delay_sec: float = 5,
        cancelled: Optional[threading.Event] = None,
        ):
    if description is None:
        description = _description_from_func(get_value)
    wait = Wait(description, timeout_sec, max_delay_sec=max_delay_sec, cancelled=cancelled)
    while True:
        result = get_value(*args)
        if result:
            _logger.debug("Waiting until %s: succeeded (got %r)", description, result)
            return result
        if not wait.again():
            raise WaitTimeout(
                timeout_sec,
                f"Timed out ({timeout_sec} seconds) waiting for: {description}",
                )
        wait.sleep()


def _description_from_func(func) -> str:
    try:
        object_bound_to = func.__self__
    except AttributeError:
        if type(func) is functools.partial:
            func = func.func
        if func.__name__ == '<lambda>':
            raise ValueError("Cannot make description from lambda")
        return func.__name__
    if object_bound_to is None:
        raise ValueError("Cannot make description from unbound method")
    return '{func.__self__!r}.{func.__name__!s}'.format(func=func)
