# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import itertools
import threading
import time
import unittest

from waiting import Cancelled
from waiting import WaitTimeout
from waiting import wait_for_truthy


class TestWaitForTruthy(unittest.TestCase):

    def test_returns_first_truthy(self):
        values = iter([None, '', '203.0.113.7'])
        result = wait_for_truthy(lambda: next(values), description="address", max_delay_sec=0.01)
        self.assertEqual(result, '203.0.113.7')

    def test_timeout(self):
        with self.assertRaises(WaitTimeout) as context:
            wait_for_truthy(
                lambda: False, description="never", timeout_sec=0.1, max_delay_sec=0.02)
        self.assertEqual(context.exception.timeout_sec, 0.1)

    def test_cancelled_during_sleep(self):
        cancelled = threading.Event()
        timer = threading.Timer(0.2, cancelled.set)
        timer.start()
        started_at = time.monotonic()
        try:
            with self.assertRaises(Cancelled):
                wait_for_truthy(
                    lambda: False, description="sshd", timeout_sec=60, max_delay_sec=5,
                    cancelled=cancelled)
        finally:
            timer.cancel()
        self.assertLess(time.monotonic() - started_at, 10)

    def test_description_required_for_lambda(self):
        with self.assertRaises(ValueError):
            wait_for_truthy(lambda: True)

    def test_description_from_method(self):
        counter = itertools.count()
        self.assertEqual(wait_for_truthy(counter.__next__, max_delay_sec=0.01), 1)
