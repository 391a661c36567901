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

# Tool identity
TOOL_NAME = "kubectl-pocket"
POD_NAME_PREFIX = "pocket"
CONTAINER_NAME = "main"

# Ownership labels applied to every ephemeral pod
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
TEMPORARY_LABEL = "kubectl-pocket/temporary"
OWNERSHIP_LABELS = {
    MANAGED_BY_LABEL: TOOL_NAME,
    TEMPORARY_LABEL: "true",
}

# Kubernetes Constants
DEFAULT_NAMESPACE = "default"
SERVICE_ACCOUNT_NAMESPACE_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"
POD_CHECK_INTERVAL = 1  # seconds
POD_START_TIMEOUT = 120  # seconds
DEFAULT_PROBE_TIMEOUT = 30  # seconds
PROBE_CONTEXT_GRACE = 30  # seconds added on top of the probe timeout
CLEANUP_TIMEOUT = 10  # seconds
SHELL_POD_LIFETIME = "3600"  # seconds the idle shell pod sleeps for

# Streaming Constants
STREAM_READ_SIZE = 4096
STREAM_POLL_TIMEOUT = 0.1  # seconds
ACCEPT_POLL_TIMEOUT = 0.5  # seconds
RESIZE_CHANNEL = 4

# Port-forward Constants
DEFAULT_BIND_ADDRESS = "127.0.0.1"
