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

from typing import Any, Dict, Optional, Tuple

from kubernetes.client import V1PodStatus
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from pocket.constants import CLEANUP_TIMEOUT
from pocket.models.pod_templates import get_ephemeral_pod_template
from pocket.models.resource import PodPhase, ResourceHandle
from pocket.services.exceptions import CleanupWarning, CreateError, TransientReadError
from pocket.services.log import get_logger
from pocket.services.resource_tracker import ResourceTracker


def pod_failure_details(status: Optional[V1PodStatus]) -> Dict:
    """Extract failure details from pod status."""
    if status is None:
        return {}
    details = {"phase": status.phase}

    if status.container_statuses:
        container_state = status.container_statuses[0].state
        if container_state.terminated:
            details.update({
                "exit_code": container_state.terminated.exit_code,
                "reason": container_state.terminated.reason,
                "message": container_state.terminated.message
            })
        elif container_state.waiting:
            details.update({
                "reason": container_state.waiting.reason,
                "message": container_state.waiting.message
            })

    return details


class LifecycleManager:
    def __init__(self, k8s_client, tracker: Optional[ResourceTracker] = None):
        self._logger = get_logger(f"{__name__}.LifecycleManager")
        self.k8s = k8s_client
        self.tracker = tracker if tracker is not None else ResourceTracker()

    def create(self, handle: ResourceHandle) -> ResourceHandle:
        self._logger.info(f"Create pod: {handle.qualified_name}", {"image": handle.image})
        pod_spec = get_ephemeral_pod_template(handle)
        try:
            self.k8s.create_pod(handle.namespace, pod_spec)
        except ApiException as api_error:
            raise CreateError(
                f"Failed to create pod {handle.qualified_name}: {api_error.reason}",
                {"status": api_error.status, "namespace": handle.namespace}
            ) from api_error
        except HTTPError as error:
            raise CreateError(
                f"Failed to create pod {handle.qualified_name}: {error}",
                {"namespace": handle.namespace}
            ) from error

        self.tracker.track(handle)
        self._logger.info(
            "Pod created",
            {
                "name": handle.name,
                "namespace": handle.namespace
            }
        )
        return handle

    def delete(self, handle: ResourceHandle, timeout: float = CLEANUP_TIMEOUT) -> bool:
        """Delete a pod; returns False when it was already gone."""
        self.tracker.release(handle)
        try:
            deleted = self.k8s.delete_pod(handle.name, handle.namespace, timeout=timeout)
        except ApiException as api_error:
            raise CleanupWarning(
                f"Failed to delete pod {handle.qualified_name}: {api_error.reason}",
                {"status": api_error.status}
            ) from api_error
        except HTTPError as error:
            raise CleanupWarning(
                f"Failed to delete pod {handle.qualified_name}: {error}"
            ) from error

        if not deleted:
            self._logger.info("Pod already gone", {"name": handle.name, "namespace": handle.namespace})
            return False

        self._logger.info(
            "Pod deleted",
            {
                "name": handle.name,
                "namespace": handle.namespace
            }
        )
        return True

    def get_status(self, handle: ResourceHandle) -> Tuple[PodPhase, Any]:
        try:
            pod = self.k8s.get_pod(handle.name, handle.namespace)
        except ApiException as api_error:
            raise TransientReadError(
                f"Failed to read pod {handle.qualified_name}: {api_error.reason}",
                {"status": api_error.status}
            ) from api_error
        except HTTPError as error:
            raise TransientReadError(f"Failed to read pod {handle.qualified_name}: {error}") from error

        # Not observable yet right after creation
        if pod is None or pod.status is None:
            return PodPhase.PENDING, None

        phase = PodPhase.parse(pod.status.phase)
        if phase == PodPhase.FAILED:
            self._logger.debug("Pod failed", pod_failure_details(pod.status))
        return phase, pod.status
