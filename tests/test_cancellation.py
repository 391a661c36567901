# Copyright The Volcano Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import os
import signal
import threading
import time
import unittest

from pocket.services.cancellation import CancellationToken, cancel_on_signals
from pocket.services.exceptions import OperationCancelledError


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestCancellationToken(unittest.TestCase):
    def test_cancel_propagates_to_children(self):
        parent = CancellationToken()
        child = parent.child()
        grandchild = child.child()

        parent.cancel("interrupted")

        self.assertTrue(child.cancelled)
        self.assertTrue(grandchild.cancelled)
        self.assertEqual(grandchild.reason, "interrupted")

    def test_child_cancel_leaves_parent_alone(self):
        parent = CancellationToken()
        parent.child().cancel()
        self.assertFalse(parent.cancelled)

    def test_finished_children_are_released(self):
        parent = CancellationToken()
        for _ in range(100):
            parent.child().cancel("session finished")
        kept = parent.child()

        self.assertEqual(parent._children, [kept])

        parent.cancel()
        self.assertTrue(kept.cancelled)
        self.assertEqual(parent._children, [])

    def test_child_of_cancelled_parent_starts_cancelled(self):
        parent = CancellationToken()
        parent.cancel()
        self.assertTrue(parent.child().cancelled)

    def test_deadline(self):
        clock = FakeClock()
        token = CancellationToken(timeout=10, clock=clock)
        self.assertFalse(token.cancelled)
        self.assertEqual(token.remaining(), 10)

        clock.now += 10
        self.assertTrue(token.cancelled)
        self.assertEqual(token.reason, "deadline exceeded")

    def test_child_inherits_earlier_deadline(self):
        clock = FakeClock()
        parent = CancellationToken(timeout=5, clock=clock)
        self.assertEqual(parent.child(timeout=60).remaining(), 5)
        self.assertEqual(parent.child(timeout=2).remaining(), 2)

    def test_wait_wakes_on_cancel(self):
        token = CancellationToken()
        threading.Timer(0.05, token.cancel).start()
        start = time.monotonic()
        self.assertTrue(token.wait(10))
        self.assertLess(time.monotonic() - start, 5)

    def test_wait_times_out(self):
        self.assertFalse(CancellationToken().wait(0.01))

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("stop")
        with self.assertRaises(OperationCancelledError) as ctx:
            token.raise_if_cancelled()
        self.assertEqual(ctx.exception.context["reason"], "stop")


class TestCancelOnSignals(unittest.TestCase):
    def test_signal_cancels_and_handler_is_restored(self):
        previous = signal.getsignal(signal.SIGTERM)
        with cancel_on_signals(CancellationToken()) as token:
            os.kill(os.getpid(), signal.SIGTERM)
            self.assertTrue(token.wait(2))
        self.assertIs(signal.getsignal(signal.SIGTERM), previous)

    def test_outside_main_thread_is_a_no_op(self):
        results = []

        def worker():
            with cancel_on_signals(CancellationToken()) as token:
                results.append(token.cancelled)

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()
        self.assertEqual(results, [False])


if __name__ == "__main__":
    unittest.main()
