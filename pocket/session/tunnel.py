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
Local port-forward tunnels to pods.

Every accepted local connection gets its own port-forward stream to the
target pod and two copy threads, one per direction. Cancelling the token
closes the listener and tears down every open bridge.
"""

import socket
import threading
from typing import List, Optional, Sequence, Tuple

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from pocket.constants import ACCEPT_POLL_TIMEOUT, STREAM_READ_SIZE
from pocket.models.resource import ResourceHandle
from pocket.probes.backends import get_backend
from pocket.services.cancellation import CancellationToken
from pocket.services.exceptions import ConfigurationError, NoTargetError, SessionError
from pocket.services.log import get_logger


def _close_quietly(sock) -> None:
    # shutdown wakes threads blocked in recv on this socket
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    try:
        sock.close()
    except OSError:
        pass


class Bridge:
    """Relays bytes between one local connection and one port-forward stream."""

    def __init__(self, local: socket.socket, channel, peer: Tuple):
        self._logger = get_logger(f"{__name__}.Bridge")
        self.local = local
        self.channel = channel
        self.peer = peer
        self._threads: List[threading.Thread] = []
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._remaining = 2

    def start(self) -> None:
        remote = self.channel.socket
        self._threads = [
            threading.Thread(target=self._copy, args=(self.local, remote), name="pocket-pf-up", daemon=True),
            threading.Thread(target=self._copy, args=(remote, self.local), name="pocket-pf-down", daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    def _copy(self, source: socket.socket, destination: socket.socket) -> None:
        try:
            while True:
                data = source.recv(STREAM_READ_SIZE)
                if not data:
                    break
                destination.sendall(data)
            # Half-close so the other side sees EOF while replies still flow back
            destination.shutdown(socket.SHUT_WR)
        except OSError as e:
            self._logger.debug("Bridge direction ended", {"peer": self.peer, "error": str(e)})
        finally:
            with self._lock:
                self._remaining -= 1
                finished = self._remaining == 0
            if finished:
                self.close()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def close(self) -> None:
        with self._lock:
            if self._done.is_set():
                return
            self._done.set()
        error = self.channel.error()
        if error:
            self._logger.warning("Port-forward reported an error", {"peer": self.peer, "error": error})
        _close_quietly(self.local)
        self.channel.close()

    def join(self, timeout: Optional[float] = None) -> None:
        for thread in self._threads:
            thread.join(timeout)


class TunnelSession:
    def __init__(self, k8s_client, token: Optional[CancellationToken] = None):
        self._logger = get_logger(f"{__name__}.TunnelSession")
        self.k8s = k8s_client
        self.token = token if token is not None else CancellationToken()
        self.bound_address: Optional[Tuple[str, int]] = None
        self._bridges: List[Bridge] = []

    def resolve_target(self, alias: str, namespace: str,
                       candidates: Optional[Sequence[str]] = None) -> ResourceHandle:
        """
        Find the pod behind the first existing service among ``candidates``.

        ``candidates`` defaults to the well-known service names of ``alias``.

        Raises:
            NoTargetError: no candidate service exists, it has no selector,
                or no pod matches it
        """
        if candidates is None:
            candidates = get_backend(alias).service_candidates
        service = None
        errors = {}
        for name in candidates:
            try:
                service = self.k8s.get_service(name, namespace)
            except (ApiException, HTTPError) as e:
                # Unreadable counts as missing
                errors[name] = getattr(e, "reason", None) or str(e)
                self._logger.debug("Service lookup failed", {"alias": alias, "service": name, "error": errors[name]})
                continue
            if service is not None:
                self._logger.debug("Resolved service", {"alias": alias, "service": name})
                break
            self._logger.debug("Service not found", {"alias": alias, "service": name})

        if service is None:
            raise NoTargetError(
                f"no {alias} service found in namespace {namespace} (tried: {', '.join(candidates)})",
                {"alias": alias, "namespace": namespace, "errors": errors}
            )

        service_name = service.metadata.name
        selector = service.spec.selector or {}
        if not selector:
            raise NoTargetError(f"service {service_name} has no selector", {"service": service_name})

        label_selector = ",".join(f"{k}={v}" for k, v in sorted(selector.items()))
        try:
            pods = self.k8s.list_pods(namespace, label_selector=label_selector, limit=1)
        except (ApiException, HTTPError) as e:
            raise NoTargetError(
                f"cannot list pods for service {service_name}: {getattr(e, 'reason', None) or e}",
                {"service": service_name, "selector": label_selector}
            ) from e
        if not pods:
            raise NoTargetError(
                f"no pods found for service {service_name}",
                {"service": service_name, "selector": label_selector}
            )

        pod = pods[0]
        return ResourceHandle(
            name=pod.metadata.name,
            namespace=namespace,
            image=pod.spec.containers[0].image if pod.spec and pod.spec.containers else "",
        )

    def forward(self, local_address: str, local_port: int, target: ResourceHandle, remote_port: int,
                ready: Optional[threading.Event] = None) -> None:
        """
        Bridge local TCP connections to ``remote_port`` on the target pod.

        Blocks until the token is cancelled. The target is dialled once before
        listening. ``ready`` is set once the local socket is listening;
        ``bound_address`` then holds the real address.

        Raises:
            SessionError: the port-forward stream to the target cannot be opened
            ConfigurationError: the local address cannot be bound
        """
        self._check_target(target, remote_port)
        try:
            listener = socket.create_server((local_address, local_port))
        except OSError as e:
            raise ConfigurationError(
                f"cannot listen on {local_address}:{local_port}: {e}",
                {"address": local_address, "port": local_port}
            ) from e
        listener.settimeout(ACCEPT_POLL_TIMEOUT)
        self.bound_address = listener.getsockname()[:2]
        self._logger.info(
            "Listening",
            {"address": self.bound_address, "target": target.qualified_name, "remote_port": remote_port}
        )
        if ready is not None:
            ready.set()

        try:
            while not self.token.cancelled:
                try:
                    conn, peer = listener.accept()
                except socket.timeout:
                    continue
                conn.settimeout(None)
                self._open_bridge(conn, peer, target, remote_port)
        finally:
            _close_quietly(listener)
            self._teardown()

    def _check_target(self, target: ResourceHandle, remote_port: int) -> None:
        try:
            channel = self.k8s.open_port_forward(target.name, target.namespace, remote_port)
        except (ApiException, HTTPError, OSError) as e:
            raise SessionError(
                f"cannot port-forward to {target.qualified_name}:{remote_port}: {getattr(e, 'reason', None) or e}",
                {"pod": target.name, "port": remote_port}
            ) from e
        try:
            error = channel.error()
        finally:
            channel.close()
        if error:
            raise SessionError(
                f"cannot port-forward to {target.qualified_name}:{remote_port}: {error}",
                {"pod": target.name, "port": remote_port}
            )
        self._logger.debug("Port-forward stream verified", {"target": target.qualified_name, "port": remote_port})

    def _open_bridge(self, conn: socket.socket, peer, target: ResourceHandle, remote_port: int) -> None:
        self._bridges = [b for b in self._bridges if not b.done]
        try:
            channel = self.k8s.open_port_forward(target.name, target.namespace, remote_port)
        except (ApiException, HTTPError, OSError) as e:
            self._logger.error(
                "Failed to open port-forward stream",
                {"peer": peer, "target": target.qualified_name, "error": str(e)}
            )
            _close_quietly(conn)
            return

        bridge = Bridge(conn, channel, peer)
        self._bridges.append(bridge)
        self._logger.debug("Connection accepted", {"peer": peer})
        bridge.start()

    def _teardown(self) -> None:
        bridges, self._bridges = self._bridges, []
        for bridge in bridges:
            bridge.close()
        for bridge in bridges:
            bridge.join(timeout=1.0)
        self._logger.info("Tunnel closed", {"bridges": len(bridges)})
