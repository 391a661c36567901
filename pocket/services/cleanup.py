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

from contextlib import AbstractContextManager
from typing import Callable, List, Optional

from pocket.constants import CLEANUP_TIMEOUT
from pocket.models.resource import ResourceHandle
from pocket.services.exceptions import CleanupWarning
from pocket.services.log import get_logger


class CleanupGuard(AbstractContextManager):
    """Deletes every pod created through it when the block exits.

    Deletion uses its own request timeout and never looks at the
    invocation's cancellation token. Failures are collected in ``warnings``
    and never replace the block's own result or exception.
    """

    def __init__(self, lifecycle, timeout: float = CLEANUP_TIMEOUT,
                 on_cleanup: Optional[Callable[[ResourceHandle], None]] = None):
        self._logger = get_logger(f"{__name__}.CleanupGuard")
        self.lifecycle = lifecycle
        self.timeout = timeout
        self.on_cleanup = on_cleanup
        self.warnings: List[CleanupWarning] = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release_all()
        return False  # Don't suppress exceptions

    def create(self, handle: ResourceHandle) -> ResourceHandle:
        """Create ``handle`` and register its deletion"""
        return self.lifecycle.create(handle)

    def release_all(self) -> None:
        for entry in self.lifecycle.tracker.items():
            if self.on_cleanup is not None:
                self.on_cleanup(entry.handle)
            try:
                self.lifecycle.delete(entry.handle, timeout=self.timeout)
            except CleanupWarning as warning:
                self._record(warning)
            except Exception as cleanup_error:
                self._record(CleanupWarning(
                    f"Cleanup of {entry.handle.qualified_name} failed: {cleanup_error}",
                    {"pod": entry.handle.name}
                ))

    def _record(self, warning: CleanupWarning) -> None:
        self._logger.warning(str(warning), warning.context)
        self.warnings.append(warning)
