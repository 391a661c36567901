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
Kubernetes Pod templates for ephemeral probe pods
"""
from typing import Dict, Any

from pocket.constants import OWNERSHIP_LABELS
from pocket.models.resource import ResourceHandle


def get_ephemeral_pod_template(handle: ResourceHandle) -> Dict[str, Any]:
    """
    Render the Pod manifest for an ephemeral pod

    Args:
        handle: Identity and desired spec of the pod. Empty command/args are
            omitted so the image defaults apply.

    Returns:
        Dict with Pod specification, labelled for ownership
    """
    container: Dict[str, Any] = {
        "name": handle.container,
        "image": handle.image,
        "tty": handle.tty,
        "stdin": handle.stdin,
    }
    if handle.command:
        container["command"] = list(handle.command)
    if handle.args:
        container["args"] = list(handle.args)
    if handle.env:
        container["env"] = [{"name": k, "value": v} for k, v in handle.env]

    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {
            "name": handle.name,
            "namespace": handle.namespace,
            "labels": dict(OWNERSHIP_LABELS),
        },
        "spec": {
            "containers": [container],
            "restartPolicy": "Never"
        }
    }


def ownership_selector() -> str:
    """Label selector matching every pod this tool creates"""
    return ",".join(f"{k}={v}" for k, v in OWNERSHIP_LABELS.items())
