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
Probe runtime for kubectl-pocket.

This module implements the ``test`` command: a one-shot connection test run
from a temporary pod, or an interactive client shell inside one.
"""

from typing import Callable, Optional

from pocket.constants import (
    DEFAULT_PROBE_TIMEOUT,
    POD_CHECK_INTERVAL,
    POD_START_TIMEOUT,
    PROBE_CONTEXT_GRACE,
    SHELL_POD_LIFETIME,
)
from pocket.models.resource import ProbeResult, ResourceHandle, generate_pod_name
from pocket.probes.backends import get_backend
from pocket.providers.kubernetes.lifecycle import LifecycleManager
from pocket.services.cancellation import CancellationToken
from pocket.services.cleanup import CleanupGuard
from pocket.services.exceptions import ProbeFailedError
from pocket.services.log import get_logger
from pocket.services.log_fetcher import LogFetcher
from pocket.services.poller import StatePoller
from pocket.session.interactive import InteractiveSession, IOBindings


class ProbeRuntime:
    """Runtime for the test command."""

    def __init__(
            self,
            k8s_client,
            token: Optional[CancellationToken] = None,
            progress: Optional[Callable[[str], None]] = None,
            timeout: float = DEFAULT_PROBE_TIMEOUT,
            poll_interval: float = POD_CHECK_INTERVAL,
    ) -> None:
        self._logger = get_logger(f"{__name__}.ProbeRuntime")
        self.k8s = k8s_client
        self.token = token if token is not None else CancellationToken()
        self.progress = progress or (lambda message: self._logger.info(message))
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.lifecycle = LifecycleManager(k8s_client)
        self.cleanup_warnings = []

    def _guard(self, leading: str = "") -> CleanupGuard:
        return CleanupGuard(
            self.lifecycle,
            on_cleanup=lambda handle: self.progress(f"{leading}🧹 Cleaning up pod: {handle.name}"),
        )

    def test(self, database: str, connection: str) -> ProbeResult:
        """
        Run a one-shot connection test from inside the cluster.

        Args:
            database: Backend name (redis, mongo, postgres)
            connection: Connection string for the backend's client tool

        Returns:
            ProbeResult of a successful test

        Raises:
            ProbeFailedError: the pod failed or its output lacked the marker
        """
        backend = get_backend(database)
        command, args = backend.test_command(connection)
        handle = ResourceHandle(
            name=generate_pod_name(backend.name),
            namespace=self.k8s.namespace,
            image=backend.image,
            command=command,
            args=args,
        )
        operation_token = self.token.child(timeout=self.timeout + PROBE_CONTEXT_GRACE)

        self.progress(f"🔍 Testing {backend.display_name} connection: {backend.describe(connection)}")
        self.progress(f"📦 Creating test pod: {handle.qualified_name}")

        guard = self._guard()
        try:
            with guard:
                guard.create(handle)
                self.progress("⏳ Waiting for connection test...")
                poll = StatePoller(self.lifecycle, operation_token).wait_for_completion(
                    handle, timeout=self.timeout, poll_interval=self.poll_interval
                )
                output = LogFetcher(self.k8s, operation_token).fetch(handle)
                result = backend.evaluate(poll.phase, output)
        finally:
            operation_token.cancel("test finished")
            self.cleanup_warnings.extend(guard.warnings)

        self._logger.info(
            "Probe finished",
            {"backend": backend.name, "phase": result.phase.value, "succeeded": result.succeeded}
        )
        if not result.succeeded:
            raise ProbeFailedError(
                f"{backend.display_name} connection test failed",
                result=result,
                context={"phase": result.phase.value, "marker_matched": result.metadata.get("marker_matched")}
            )
        return result

    def shell(self, database: str, connection: str, io: Optional[IOBindings] = None) -> Optional[int]:
        """
        Open the backend's interactive client inside a temporary pod.

        Returns:
            Exit code of the remote client when reported
        """
        backend = get_backend(database)
        handle = ResourceHandle(
            name=generate_pod_name(backend.name),
            namespace=self.k8s.namespace,
            image=backend.image,
            command=["sleep", SHELL_POD_LIFETIME],
            tty=True,
            stdin=True,
        )

        self.progress(f"🚀 Starting {backend.display_name} shell: {backend.describe(connection)}")
        self.progress(f"📦 Creating pod: {handle.qualified_name}")

        guard = self._guard(leading="\n")
        try:
            with guard:
                guard.create(handle)
                self.progress("⏳ Waiting for pod to be ready...")
                StatePoller(self.lifecycle, self.token).wait_for_running(
                    handle, timeout=POD_START_TIMEOUT, poll_interval=self.poll_interval
                )
                self.progress(f"✅ Connected! Type '{backend.quit_hint}' to exit.\n")
                session = InteractiveSession(self.k8s, self.lifecycle, self.token)
                return session.attach(handle, backend.shell_command(connection), io=io, tty=True)
        finally:
            self.cleanup_warnings.extend(guard.warnings)
