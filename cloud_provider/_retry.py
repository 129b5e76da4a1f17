# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import threading
from typing import Callable
from typing import Optional
from typing import TypeVar

from cloud_provider._exceptions import TransientProviderError
from waiting import Cancelled

_T = TypeVar('_T')


class RetryPolicy:
    """Bounded exponential backoff for transient provider errors only.

    Permanent errors and anything unexpected propagate on the first
    occurrence. The delay doubles after every failure, up to the maximum.

    >>> RetryPolicy()
    RetryPolicy(attempts=3, base_delay_sec=1.0, max_delay_sec=16.0)
    """

    def __init__(self, attempts: int = 3, base_delay_sec: float = 1., max_delay_sec: float = 16.):
        if attempts < 1:
            raise ValueError(f"At least one attempt is needed, got {attempts}")
        self._attempts = attempts
        self._base_delay_sec = float(base_delay_sec)
        self._max_delay_sec = float(max_delay_sec)

    def __repr__(self):
        return (
            f'{self.__class__.__name__}('
            f'attempts={self._attempts}, '
            f'base_delay_sec={self._base_delay_sec}, '
            f'max_delay_sec={self._max_delay_sec})')

    def call(
            self,
            description: str,
            func: Callable[[], _T],
            cancelled: threading.Event,
            on_attempt: Optional[Callable[[int], None]] = None,
            ) -> _T:
        delay_sec = self._base_delay_sec
        attempt = 1
        while True:
            if cancelled.is_set():
                raise Cancelled(f"Cancelled before {description}")
            if on_attempt is not None:
                on_attempt(attempt)
            try:
                return func()
            except TransientProviderError as e:
                if attempt >= self._attempts:
                    _logger.warning(
                        "%s: giving up after %d attempts: %s", description, attempt, e)
                    raise
                _logger.warning(
                    "%s: attempt %d/%d failed: %s; retry in %.1f sec",
                    description, attempt, self._attempts, e, delay_sec)
            if cancelled.wait(delay_sec):
                raise Cancelled(f"Cancelled while backing off {description}")
            delay_sec = min(self._max_delay_sec, delay_sec * 2)
            attempt += 1


_logger = logging.getLogger(__name__)
