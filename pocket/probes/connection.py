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
Connection-string helpers.

Only redis strings are taken apart; mongo and postgres URIs are handed to
their client tools verbatim.
"""

from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

REDIS_SCHEME = "redis://"
REDIS_DEFAULT_PORT = "6379"


@dataclass(frozen=True)
class RedisTarget:
    host: str
    port: str = REDIS_DEFAULT_PORT
    password: str = ""


def parse_redis_connection(conn: str) -> RedisTarget:
    """
    Parse ``host:port``, ``redis://host:port`` or ``redis://:password@host:port``.

    A missing port defaults to 6379; a trailing ``/db`` path is ignored.
    """
    password = ""
    if conn.startswith(REDIS_SCHEME):
        conn = conn[len(REDIS_SCHEME):]

    if "@" in conn:
        credentials, conn = conn.split("@", 1)
        password = credentials[1:] if credentials.startswith(":") else credentials

    conn = conn.split("/", 1)[0]
    if ":" in conn:
        host, port = conn.split(":", 1)
        return RedisTarget(host=host, port=port or REDIS_DEFAULT_PORT, password=password)
    return RedisTarget(host=conn, password=password)


def redact(conn: str) -> str:
    """Mask the password of a URI for display"""
    parts = urlsplit(conn)
    if not parts.scheme or not parts.password:
        return conn
    userinfo, _, hostinfo = parts.netloc.rpartition("@")
    username = userinfo.split(":", 1)[0]
    return urlunsplit(parts._replace(netloc=f"{username}:****@{hostinfo}"))
