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

"""
Cancellation for one CLI invocation.

A ``CancellationToken`` is cancelled either explicitly (signal handler, a
finished pump thread, a test) or implicitly once its deadline passes.
Cancelling a token cancels all of its children; a child may carry a shorter
deadline than its parent. A cancelled child is dropped from its parent.
"""

import signal
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from pocket.services.exceptions import OperationCancelledError
from pocket.services.log import get_logger

logger = get_logger(__name__)


class CancellationToken:
    def __init__(self, timeout: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._event = threading.Event()
        self._deadline = clock() + timeout if timeout is not None else None
        self._children: List["CancellationToken"] = []
        self._parent: Optional["CancellationToken"] = None
        self._lock = threading.Lock()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            children = list(self._children)
        for child in children:
            child.cancel(reason)
        # A cancelled child needs no further propagation
        parent, self._parent = self._parent, None
        if parent is not None:
            parent._detach(self)

    def _detach(self, child: "CancellationToken") -> None:
        with self._lock:
            try:
                self._children.remove(child)
            except ValueError:
                pass

    def child(self, timeout: Optional[float] = None) -> "CancellationToken":
        """Derive a token cancelled with this one, optionally with its own deadline"""
        child = CancellationToken(timeout=timeout, clock=self._clock)
        if self._deadline is not None and (child._deadline is None or self._deadline < child._deadline):
            child._deadline = self._deadline
        child._parent = self
        with self._lock:
            self._children.append(child)
            cancelled = self._event.is_set()
        if cancelled:
            child.cancel(self.reason or "cancelled")
        return child

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and self._clock() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on cancellation.

        Returns True if the token is cancelled.
        """
        remaining = self.remaining()
        if remaining is not None:
            timeout = remaining if timeout is None else min(timeout, remaining)
        self._event.wait(timeout)
        return self.cancelled

    def raise_if_cancelled(self, message: str = "operation cancelled") -> None:
        if self.cancelled:
            raise OperationCancelledError(message, {"reason": self.reason})


@contextmanager
def cancel_on_signals(token: CancellationToken, signals=(signal.SIGINT, signal.SIGTERM)) -> Iterator[CancellationToken]:
    """Cancel ``token`` when one of ``signals`` arrives; restore handlers on exit.

    Signal handlers can only be installed from the main thread; elsewhere the
    token is yielded unchanged.
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def _handler(signum, frame):
        logger.debug("Received signal, cancelling invocation", {"signal": signum})
        token.cancel(f"signal {signum}")

    previous = {}
    for sig in signals:
        previous[sig] = signal.signal(sig, _handler)
    try:
        yield token
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
