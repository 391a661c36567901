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

import time
from typing import Callable, Optional

from pocket.constants import POD_CHECK_INTERVAL, POD_START_TIMEOUT
from pocket.models.resource import PodPhase, PollResult, ResourceHandle
from pocket.providers.kubernetes.lifecycle import pod_failure_details
from pocket.services.cancellation import CancellationToken
from pocket.services.exceptions import (
    NotReadyError,
    OperationCancelledError,
    OperationTimeoutError,
    TransientReadError,
)
from pocket.services.log import get_logger


def is_running(phase: PodPhase) -> bool:
    return phase == PodPhase.RUNNING


def is_terminal(phase: PodPhase) -> bool:
    return phase.is_terminal


class StatePoller:
    """Blocks until a predicate over the observed pod phase holds."""

    def __init__(self, lifecycle, token: Optional[CancellationToken] = None,
                 clock: Callable[[], float] = time.monotonic):
        self._logger = get_logger(f"{__name__}.StatePoller")
        self.lifecycle = lifecycle
        self.token = token if token is not None else CancellationToken()
        self._clock = clock

    def wait_until(
            self,
            handle: ResourceHandle,
            predicate: Callable[[PodPhase], bool],
            poll_interval: float = POD_CHECK_INTERVAL,
            timeout: float = POD_START_TIMEOUT,
            abort: Optional[Callable[[PodPhase], bool]] = None,
    ) -> PollResult:
        """
        Poll the pod phase until ``predicate`` holds.

        The first status read happens immediately. Transient read errors are
        observed as ``Unknown`` and retried on the next cycle.

        Args:
            handle: Pod to observe
            predicate: Condition over the observed phase
            poll_interval: Seconds between reads
            timeout: Total budget in seconds
            abort: Optional condition that makes waiting pointless

        Raises:
            OperationTimeoutError: predicate did not hold within ``timeout``
            OperationCancelledError: the token was cancelled
            NotReadyError: ``abort`` held for the observed phase
        """
        start = self._clock()
        last_phase = PodPhase.UNKNOWN
        polls = 0

        while True:
            self.token.raise_if_cancelled(f"cancelled while waiting for {handle.qualified_name}")

            snapshot = None
            try:
                last_phase, snapshot = self.lifecycle.get_status(handle)
            except TransientReadError as e:
                last_phase = PodPhase.UNKNOWN
                self._logger.debug("Transient status read failure", {"pod": handle.name, "error": str(e)})
            polls += 1
            elapsed = self._clock() - start

            if predicate(last_phase):
                self._logger.debug(
                    "Pod reached expected phase",
                    {"pod": handle.name, "phase": last_phase.value, "polls": polls}
                )
                return PollResult(phase=last_phase, snapshot=snapshot, elapsed=elapsed, polls=polls)

            if abort is not None and abort(last_phase):
                raise NotReadyError(
                    f"Pod {handle.qualified_name} ended in phase {last_phase.value}",
                    pod_failure_details(snapshot)
                )

            if elapsed >= timeout:
                raise OperationTimeoutError(
                    f"Timed out after {timeout}s waiting for {handle.qualified_name} "
                    f"(last phase: {last_phase.value})",
                    last_phase=last_phase,
                    context={"polls": polls}
                )

            if self.token.wait(min(poll_interval, timeout - elapsed)):
                raise OperationCancelledError(
                    f"cancelled while waiting for {handle.qualified_name}",
                    {"reason": self.token.reason, "last_phase": last_phase.value}
                )

    def wait_for_running(self, handle: ResourceHandle, timeout: float = POD_START_TIMEOUT,
                         poll_interval: float = POD_CHECK_INTERVAL) -> PollResult:
        # A terminated pod can never become Running
        return self.wait_until(handle, is_running, poll_interval=poll_interval, timeout=timeout,
                               abort=is_terminal)

    def wait_for_completion(self, handle: ResourceHandle, timeout: float,
                            poll_interval: float = POD_CHECK_INTERVAL) -> PollResult:
        return self.wait_until(handle, is_terminal, poll_interval=poll_interval, timeout=timeout)
