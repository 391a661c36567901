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
Port-forward runtime for kubectl-pocket.

Resolves a database alias to a pod behind one of its well-known service
names and bridges a local port to it until interrupted.
"""

import threading
from typing import Any, Callable, Dict, Optional

from pocket.constants import DEFAULT_BIND_ADDRESS
from pocket.probes.backends import get_backend
from pocket.services.cancellation import CancellationToken
from pocket.services.exceptions import ConfigurationError
from pocket.services.log import get_logger
from pocket.session.tunnel import TunnelSession


class PortForwardRuntime:
    """Runtime for the pf command."""

    def __init__(self, k8s_client, token: Optional[CancellationToken] = None,
                 progress: Optional[Callable[[str], None]] = None) -> None:
        self._logger = get_logger(f"{__name__}.PortForwardRuntime")
        self.k8s = k8s_client
        self.token = token if token is not None else CancellationToken()
        self.progress = progress or (lambda message: self._logger.info(message))
        self.session = TunnelSession(k8s_client, self.token)

    def forward(self, database: str, local_port: Optional[int] = None,
                address: str = DEFAULT_BIND_ADDRESS, ready: Optional[threading.Event] = None) -> Dict[str, Any]:
        """
        Forward ``address:local_port`` to the database's default port.

        Blocks until the token is cancelled.

        Returns:
            Dict describing the tunnel that ran
        """
        backend = get_backend(database)
        remote_port = backend.default_port
        if local_port is None:
            local_port = remote_port
        if not 0 <= local_port <= 65535:
            raise ConfigurationError(f"invalid port: {local_port}", {"port": local_port})

        namespace = self.k8s.namespace
        target = self.session.resolve_target(backend.name, namespace)

        listening = threading.Event()
        announcer = threading.Thread(
            target=self._announce,
            args=(listening, backend.name, target.name, remote_port, ready),
            name="pocket-pf-ready",
            daemon=True,
        )
        announcer.start()
        try:
            self.session.forward(address, local_port, target, remote_port, ready=listening)
        finally:
            # Unblock the announcer if binding failed
            listening.set()
            announcer.join()

        return {
            "database": backend.name,
            "namespace": namespace,
            "pod": target.name,
            "local_address": address,
            "local_port": self.session.bound_address[1] if self.session.bound_address else local_port,
            "remote_port": remote_port,
        }

    def _announce(self, listening: threading.Event, database: str, pod: str, remote_port: int,
                  ready: Optional[threading.Event]) -> None:
        listening.wait()
        if self.session.bound_address is None:
            return
        address, local_port = self.session.bound_address
        self.progress(f"🔌 Port-forwarding to {database}")
        self.progress(f"📡 {address}:{local_port} → {pod}:{remote_port}")
        self.progress("💡 Press Ctrl+C to stop\n")
        if ready is not None:
            ready.set()
