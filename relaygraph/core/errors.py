# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
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


"""Shared error base for relaygraph.

Every error raised by the engine is a RelayGraphError, so callers can catch
one type and still inspect what went wrong through ``category``, ``details``
and ``to_dict()``. The graph-level subclasses (build, schema, routing, step
limit, interrupts, checkpoints) are defined in relaygraph.framework.errors.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Which part of the engine an error came from."""

    GRAPH_BUILD = "graph_build"
    STATE_SCHEMA = "state_schema"
    ROUTING = "routing"
    STEP_LIMIT = "step_limit"
    INTERRUPT = "interrupt"
    CHECKPOINT = "checkpoint"
    CONFIG_INVALID = "config_invalid"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """How bad an error is for the thread that hit it."""

    WARNING = "warning"
    ERROR = "error"
    # Persisted state may be inconsistent
    CRITICAL = "critical"


def _short_id() -> str:
    return uuid.uuid4().hex[:8]


class RelayGraphError(Exception):
    """Base exception for all relaygraph errors.

    Attributes:
        message: Human-readable description
        category: Engine area the error belongs to
        severity: Impact on the affected thread
        details: Structured context (node ids, thread ids, keys)
        recovery_hint: What the caller can change to avoid the error
        correlation_id: Short id to match log lines with a raised error
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        recovery_hint: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.details: Dict[str, Any] = dict(details) if details else {}
        self.recovery_hint = recovery_hint
        self.correlation_id = correlation_id or _short_id()
        self.raised_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict form for logs and API responses."""
        payload: Dict[str, Any] = dict(
            error=self.message,
            type=type(self).__name__,
            category=self.category.value,
            severity=self.severity.value,
            details=self.details,
            recovery_hint=self.recovery_hint,
            correlation_id=self.correlation_id,
        )
        payload["raised_at"] = self.raised_at.isoformat()
        return payload

    def __str__(self) -> str:
        lines = [f"[{self.correlation_id}] {self.message}"]
        if self.recovery_hint:
            lines.append(f"Recovery hint: {self.recovery_hint}")
        return "\n".join(lines)


class ConfigurationError(RelayGraphError):
    """Settings could not be loaded or failed validation."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs: Any):
        kwargs.setdefault("category", ErrorCategory.CONFIG_INVALID)
        super().__init__(message, **kwargs)
        self.config_key = config_key
        if config_key is not None:
            self.details.setdefault("config_key", config_key)


__all__ = [
    "ErrorCategory",
    "ErrorSeverity",
    "RelayGraphError",
    "ConfigurationError",
]
