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
Database backends that can be probed, opened as a shell, or port-forwarded.
"""

import re
from typing import Dict, List, Tuple

from pocket.models.resource import PodPhase, ProbeResult
from pocket.probes.connection import parse_redis_connection, redact
from pocket.services.exceptions import ConfigurationError


class ProbeBackend:
    name = ""
    display_name = ""
    image = ""
    default_port = 0
    service_candidates: Tuple[str, ...] = ()
    # Regex searched in the probe output; the phase alone is not enough
    success_marker = ""
    quit_hint = "exit"

    def describe(self, conn: str) -> str:
        return redact(conn)

    def test_command(self, conn: str) -> Tuple[List[str], List[str]]:
        """Container command and args for a one-shot connection test"""
        raise NotImplementedError

    def shell_command(self, conn: str) -> List[str]:
        """Command exec'd into the idle pod for an interactive shell"""
        raise NotImplementedError

    def evaluate(self, phase: PodPhase, output: str) -> ProbeResult:
        matched = re.search(self.success_marker, output) is not None
        return ProbeResult(
            backend=self.name,
            phase=phase,
            output=output,
            succeeded=phase == PodPhase.SUCCEEDED and matched,
            metadata={"marker_matched": matched},
        )


class RedisBackend(ProbeBackend):
    name = "redis"
    display_name = "Redis"
    image = "redis:7-alpine"
    default_port = 6379
    service_candidates = ("redis", "redis-master", "redis-svc")
    success_marker = r"PONG"
    quit_hint = "quit"

    def describe(self, conn: str) -> str:
        target = parse_redis_connection(conn)
        return f"{target.host}:{target.port}"

    def _cli_args(self, conn: str) -> List[str]:
        target = parse_redis_connection(conn)
        args = ["-h", target.host, "-p", target.port]
        if target.password:
            args += ["-a", target.password]
        return args

    def test_command(self, conn: str) -> Tuple[List[str], List[str]]:
        return ["redis-cli"], self._cli_args(conn) + ["PING"]

    def shell_command(self, conn: str) -> List[str]:
        return ["redis-cli"] + self._cli_args(conn)


class MongoBackend(ProbeBackend):
    name = "mongo"
    display_name = "MongoDB"
    image = "mongo:7"
    default_port = 27017
    service_candidates = ("mongo", "mongodb", "mongo-svc")
    success_marker = r"ok['\"]?\s*:\s*1"
    quit_hint = "exit"

    def test_command(self, conn: str) -> Tuple[List[str], List[str]]:
        return ["mongosh"], [conn, "--eval", "db.runCommand({ping: 1})", "--quiet"]

    def shell_command(self, conn: str) -> List[str]:
        return ["mongosh", conn]


class PostgresBackend(ProbeBackend):
    name = "postgres"
    display_name = "PostgreSQL"
    image = "postgres:14-alpine"
    default_port = 5432
    service_candidates = ("postgres", "postgresql", "pg", "pg-svc")
    success_marker = r"\(1 row\)"
    quit_hint = "\\q"

    def test_command(self, conn: str) -> Tuple[List[str], List[str]]:
        return ["psql"], [conn, "-c", "SELECT 1 as connection_test;"]

    def shell_command(self, conn: str) -> List[str]:
        return ["psql", conn]


BACKENDS: Dict[str, ProbeBackend] = {
    backend.name: backend for backend in (RedisBackend(), MongoBackend(), PostgresBackend())
}


def get_backend(name: str) -> ProbeBackend:
    try:
        return BACKENDS[name]
    except KeyError:
        raise ConfigurationError(
            f"unsupported database: {name} (supported: {', '.join(BACKENDS)})",
            {"database": name}
        ) from None
