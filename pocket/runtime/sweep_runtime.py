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
Sweep runtime for kubectl-pocket.

Finds pods left behind by interrupted invocations through their ownership
labels and deletes them.
"""

import time
from typing import Any, Dict, List, Optional

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from pocket.models.pod_templates import ownership_selector
from pocket.models.resource import ResourceHandle
from pocket.providers.kubernetes.lifecycle import LifecycleManager
from pocket.services.exceptions import CleanupWarning, TransientReadError
from pocket.services.log import get_logger


class SweepRuntime:
    """Runtime for the sweep command."""

    def __init__(self, k8s_client) -> None:
        self._logger = get_logger(f"{__name__}.SweepRuntime")
        self.k8s = k8s_client
        self.lifecycle = LifecycleManager(k8s_client)

    def sweep(self, older_than: float = 0, dry_run: bool = False,
              now: Optional[float] = None) -> Dict[str, List[Any]]:
        """
        Delete labelled pods older than ``older_than`` seconds.

        Returns:
            Dict with ``deleted``, ``skipped`` (too young) and ``failed`` pod names
        """
        namespace = self.k8s.namespace
        now = now if now is not None else time.time()
        try:
            pods = self.k8s.list_pods(namespace, label_selector=ownership_selector())
        except (ApiException, HTTPError) as e:
            raise TransientReadError(f"Failed to list pods: {getattr(e, 'reason', None) or e}", {"namespace": namespace}) from e

        result: Dict[str, List[Any]] = {"deleted": [], "skipped": [], "failed": []}
        for pod in pods:
            name = pod.metadata.name
            created = pod.metadata.creation_timestamp
            age = now - created.timestamp() if created is not None else float("inf")
            if age < older_than:
                result["skipped"].append(name)
                continue
            if dry_run:
                result["deleted"].append(name)
                continue
            try:
                self.lifecycle.delete(ResourceHandle(name=name, namespace=namespace))
                result["deleted"].append(name)
            except CleanupWarning as warning:
                self._logger.warning(str(warning), warning.context)
                result["failed"].append(name)

        self._logger.info(
            "Sweep finished",
            {"namespace": namespace, "deleted": len(result["deleted"]), "dry_run": dry_run}
        )
        return result
