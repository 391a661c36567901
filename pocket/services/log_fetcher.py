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

from typing import Optional

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from pocket.constants import STREAM_READ_SIZE
from pocket.models.resource import ResourceHandle
from pocket.services.cancellation import CancellationToken
from pocket.services.exceptions import LogRetrievalError
from pocket.services.log import get_logger


class LogFetcher:
    def __init__(self, k8s_client, token: Optional[CancellationToken] = None):
        self._logger = get_logger(f"{__name__}.LogFetcher")
        self.k8s = k8s_client
        self.token = token

    def fetch(self, handle: ResourceHandle) -> str:
        """Read the pod's combined output to completion, whitespace-trimmed

        The request is bounded by the token's remaining time when it has a deadline.
        """
        timeout = None
        if self.token is not None:
            self.token.raise_if_cancelled("log retrieval cancelled")
            timeout = self.token.remaining()
        try:
            response = self.k8s.stream_pod_log(
                handle.name, handle.namespace, container=handle.container, timeout=timeout
            )
        except (ApiException, HTTPError) as e:
            raise LogRetrievalError(
                f"Failed to open logs for {handle.qualified_name}: {e}",
                {"pod": handle.name}
            ) from e

        try:
            chunks = [chunk for chunk in response.stream(STREAM_READ_SIZE)]
        except (HTTPError, OSError) as e:
            raise LogRetrievalError(
                f"Failed to read logs for {handle.qualified_name}: {e}",
                {"pod": handle.name}
            ) from e
        finally:
            response.release_conn()

        output = b"".join(chunks).decode("utf-8", errors="replace").strip()
        self._logger.debug("Fetched pod logs", {"pod": handle.name, "bytes": len(output)})
        return output
