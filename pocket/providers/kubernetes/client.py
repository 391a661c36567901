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

import socket
from typing import Optional, Dict, Any, List

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream, portforward

from pocket.constants import DEFAULT_NAMESPACE, SERVICE_ACCOUNT_NAMESPACE_PATH
from pocket.services.exceptions import ConfigurationError
from pocket.services.log import get_logger


class PortForwardChannel:
    """One port-forward websocket and the local socket end it proxies."""

    def __init__(self, forwarder, port: int):
        self._forwarder = forwarder
        self.port = port
        self.socket: socket.socket = forwarder.socket(port)
        self.socket.setblocking(True)

    def error(self) -> Optional[str]:
        return self._forwarder.error(self.port)

    def close(self) -> None:
        # Closing our end makes the client's proxy thread close the websocket
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            self.socket.close()
        except OSError:
            pass


class KubernetesClient:
    """
    Kubernetes API client wrapper with explicit config loading

    Each instance owns its own ``ApiClient``; the global kubernetes
    configuration is never modified.
    """

    def __init__(self, kubeconfig: Optional[str] = None, namespace: Optional[str] = None,
                 context: Optional[str] = None):
        self.kubeconfig = kubeconfig
        self.context = context
        self._logger = get_logger(f"{__name__}.KubernetesClient")
        self._in_cluster = False
        self.api_client = self._configure_client()
        self.core_v1 = client.CoreV1Api(self.api_client)
        self.namespace = namespace or self._discover_namespace()

    def _configure_client(self) -> client.ApiClient:
        if not self.kubeconfig and not self.context:
            try:
                configuration = client.Configuration()
                config.load_incluster_config(client_configuration=configuration)
                self._in_cluster = True
                self._logger.info("Using in-cluster Kubernetes config")
                return client.ApiClient(configuration=configuration)
            except config.ConfigException:
                pass
        try:
            api_client = config.new_client_from_config(
                config_file=self.kubeconfig, context=self.context, persist_config=False
            )
        except (config.ConfigException, OSError) as e:
            raise ConfigurationError(
                f"Failed to load kubeconfig: {e}",
                {"kubeconfig": self.kubeconfig, "context": self.context}
            ) from e
        self._logger.info("Using local Kubernetes config", {"kubeconfig": self.kubeconfig})
        return api_client

    def _discover_namespace(self) -> str:
        """Namespace of the current kubeconfig context, else the service account's"""
        if self._in_cluster:
            try:
                with open(SERVICE_ACCOUNT_NAMESPACE_PATH, 'r') as f:
                    return f.read().strip() or DEFAULT_NAMESPACE
            except OSError:
                return DEFAULT_NAMESPACE
        try:
            contexts, active = config.list_kube_config_contexts(config_file=self.kubeconfig)
        except (config.ConfigException, OSError):
            return DEFAULT_NAMESPACE
        if self.context:
            active = next((c for c in contexts if c.get("name") == self.context), active)
        if not active:
            return DEFAULT_NAMESPACE
        return active.get("context", {}).get("namespace") or DEFAULT_NAMESPACE

    def get_pod(self, name: str, namespace: str) -> Optional[client.V1Pod]:
        try:
            return self.core_v1.read_namespaced_pod(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def create_pod(self, namespace: str, pod_spec: Dict[str, Any]) -> client.V1Pod:
        return self.core_v1.create_namespaced_pod(namespace, body=pod_spec)

    def delete_pod(self, name: str, namespace: str, timeout: Optional[float] = None) -> bool:
        try:
            self.core_v1.delete_namespaced_pod(
                name=name,
                namespace=namespace,
                body=client.V1DeleteOptions(),
                _request_timeout=timeout
            )
            return True
        except ApiException as exception:
            if exception.status == 404:
                return False
            raise exception

    def list_pods(self, namespace: str, label_selector: str, limit: Optional[int] = None) -> List[client.V1Pod]:
        kwargs = {"label_selector": label_selector}
        if limit:
            kwargs["limit"] = limit
        return self.core_v1.list_namespaced_pod(namespace, **kwargs).items

    def get_service(self, name: str, namespace: str) -> Optional[client.V1Service]:
        try:
            return self.core_v1.read_namespaced_service(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def stream_pod_log(self, name: str, namespace: str, container: Optional[str] = None,
                       timeout: Optional[float] = None):
        """Open the pod log as an unread urllib3 response"""
        kwargs = {"_preload_content": False}
        if container:
            kwargs["container"] = container
        if timeout is not None:
            kwargs["_request_timeout"] = timeout
        return self.core_v1.read_namespaced_pod_log(name, namespace, **kwargs)

    def open_exec(self, name: str, namespace: str, command: List[str], container: Optional[str] = None,
                  stdin: bool = True, tty: bool = True):
        """Open an exec websocket; the returned WSClient is not preloaded"""
        kwargs = {
            "command": command,
            "stdin": stdin,
            "stdout": True,
            "stderr": True,
            "tty": tty,
            "_preload_content": False,
            "binary": True,
        }
        if container:
            kwargs["container"] = container
        return stream(self.core_v1.connect_get_namespaced_pod_exec, name, namespace, **kwargs)

    def open_port_forward(self, name: str, namespace: str, port: int) -> PortForwardChannel:
        forwarder = portforward(
            self.core_v1.connect_get_namespaced_pod_portforward,
            name,
            namespace,
            ports=str(port),
        )
        return PortForwardChannel(forwarder, port)
