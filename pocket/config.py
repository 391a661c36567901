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
Configuration module for kubectl-pocket
"""
import os
from typing import Optional
from dotenv import load_dotenv

from pocket.constants import DEFAULT_PROBE_TIMEOUT
from pocket.services.exceptions import ConfigurationError


# Load environment variables from .env file
load_dotenv()


def get_kubeconfig() -> Optional[str]:
    """
    Get the kubeconfig path from the environment

    Returns:
        Path from KUBECONFIG, or None to use in-cluster / default discovery
    """
    return os.getenv("KUBECONFIG") or None


def get_namespace() -> Optional[str]:
    """
    Get the namespace override from the environment

    Returns:
        Namespace from POCKET_NAMESPACE, or None to use the kubeconfig context
    """
    return os.getenv("POCKET_NAMESPACE") or None


def get_default_timeout() -> int:
    """
    Get the probe timeout in seconds

    Returns:
        Timeout from POCKET_TIMEOUT, defaulting to 30 seconds

    Raises:
        ConfigurationError: POCKET_TIMEOUT is not a positive integer
    """
    value = os.getenv("POCKET_TIMEOUT")
    if not value:
        return DEFAULT_PROBE_TIMEOUT
    try:
        timeout = int(value)
    except ValueError:
        timeout = 0
    if timeout <= 0:
        raise ConfigurationError(
            f"POCKET_TIMEOUT must be a positive integer, got {value!r}",
            {"POCKET_TIMEOUT": value}
        )
    return timeout


def get_log_level() -> str:
    return os.getenv("POCKET_LOG_LEVEL", "WARNING")


def get_log_file() -> Optional[str]:
    return os.getenv("POCKET_LOG_FILE") or None
