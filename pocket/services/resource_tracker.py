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

import threading
import time
from typing import Dict, List, Optional

from pocket.models.resource import ResourceHandle, TrackedResource


class ResourceTracker:
    """Pods created by the current invocation, keyed by namespace/name."""

    def __init__(self):
        self._resources: Dict[str, TrackedResource] = {}
        self._lock = threading.Lock()

    def track(self, handle: ResourceHandle, created_at: Optional[float] = None) -> TrackedResource:
        entry = TrackedResource(handle=handle, created_at=created_at if created_at is not None else time.time())
        with self._lock:
            self._resources[handle.qualified_name] = entry
        return entry

    def release(self, handle: ResourceHandle) -> Optional[TrackedResource]:
        with self._lock:
            return self._resources.pop(handle.qualified_name, None)

    def get(self, handle: ResourceHandle) -> Optional[TrackedResource]:
        with self._lock:
            return self._resources.get(handle.qualified_name)

    def items(self) -> List[TrackedResource]:
        """Tracked entries, newest first"""
        with self._lock:
            entries = list(self._resources.values())
        return sorted(entries, key=lambda e: e.created_at, reverse=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._resources)
