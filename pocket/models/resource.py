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

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pocket.constants import CONTAINER_NAME, DEFAULT_NAMESPACE, POD_NAME_PREFIX


class PodPhase(Enum):
    """Pod lifecycle phase as reported by the API server"""
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PodPhase":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES


TERMINAL_PHASES = frozenset({PodPhase.SUCCEEDED, PodPhase.FAILED})


def generate_pod_name(kind: str, now: Optional[float] = None) -> str:
    """Time-derived pod name, e.g. ``pocket-redis-1700000000``."""
    return f"{POD_NAME_PREFIX}-{kind}-{int(now if now is not None else time.time())}"


@dataclass(frozen=True)
class ResourceHandle:
    name: str
    namespace: str = DEFAULT_NAMESPACE
    image: str = ""
    command: Tuple[str, ...] = ()
    args: Tuple[str, ...] = ()
    env: Tuple[Tuple[str, str], ...] = ()
    tty: bool = False
    stdin: bool = False
    container: str = CONTAINER_NAME

    def __post_init__(self):
        # Accept lists/dicts from callers but keep the handle immutable
        object.__setattr__(self, "command", tuple(self.command))
        object.__setattr__(self, "args", tuple(self.args))
        env = self.env.items() if isinstance(self.env, dict) else self.env
        object.__setattr__(self, "env", tuple((str(k), str(v)) for k, v in env))

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class PollResult:
    phase: PodPhase
    snapshot: Any = None
    elapsed: float = 0.0
    polls: int = 0


@dataclass
class TrackedResource:
    handle: ResourceHandle
    created_at: float = field(default_factory=time.time)


@dataclass
class ProbeResult:
    backend: str
    phase: PodPhase
    output: str
    succeeded: bool
    metadata: Dict[str, Any] = field(default_factory=dict)
