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

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Any, Optional

from pocket import config


def _format_context(context: Dict[str, Any]) -> str:
    return " | ".join(f"{k}={v}" for k, v in context.items())

def _configure_handlers(log_file: Optional[str], level: str):
    """Configure handlers at the root level"""
    root_logger = logging.getLogger("pocket")
    root_logger.setLevel(getattr(logging, level, logging.WARNING))

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)-40s | %(message)s'
    )

    # stdout belongs to probe output and interactive sessions
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler if specified
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_level(level: str) -> None:
    """Change the level of every pocket logger, e.g. for --verbose"""
    logging.getLogger("pocket").setLevel(getattr(logging, level.upper(), logging.WARNING))


class StructuredLogger:
    _global_handlers_configured = False

    def __init__(self, name: str, log_file: Optional[str] = None, level: Optional[str] = None):
        """
        Create a hierarchical logger with parent-child relationships
        Example:
        - pocket (parent)
          - pocket.providers.kubernetes (child)
            - pocket.providers.kubernetes.lifecycle (grandchild)

        Levels are set once on the ``pocket`` root; children inherit it.
        """
        self._logger = logging.getLogger(name)
        self._logger.propagate = True  # Allow propagation to parent loggers

        # Only configure handlers once at the root level
        if not StructuredLogger._global_handlers_configured:
            _configure_handlers(
                log_file or config.get_log_file(),
                (level or config.get_log_level()).upper(),
            )
            StructuredLogger._global_handlers_configured = True

    def info(self, message: str, context: Optional[Dict[str, Any]] = None):
        self._log(logging.INFO, message, context)

    def error(self, message: str, context: Optional[Dict[str, Any]] = None):
        self._log(logging.ERROR, message, context)

    def debug(self, message: str, context: Optional[Dict[str, Any]] = None):
        self._log(logging.DEBUG, message, context)

    def warning(self, message: str, context: Optional[Dict[str, Any]] = None):
        self._log(logging.WARNING, message, context)

    def _log(self, level: int, message: str, context: Optional[Dict[str, Any]]):
        if context:
            message = f"{message} | {_format_context(context)}"

        self._logger.log(level, message)


def get_logger(name: str) -> StructuredLogger:
    """Factory function to get a hierarchical logger"""
    return StructuredLogger(name)
