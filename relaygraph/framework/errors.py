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

"""Error types raised by the graph framework.

Build-time errors fail StateGraph.compile() and never surface during
execution. Runtime errors abort the current invocation and leave the
thread's checkpoint at the last successfully completed node, so a later
invoke on the same thread retries from known-good state.

An interrupt is not an error. GraphInterrupt (relaygraph.framework.hitl)
unwinds a handler and is converted into an Interrupt outcome before it can
reach callers.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from relaygraph.core.errors import ErrorCategory, ErrorSeverity, RelayGraphError


class GraphError(RelayGraphError):
    """Base class for every error raised by the graph engine."""


# =============================================================================
# Build-time errors
# =============================================================================


class GraphBuildError(GraphError):
    """Graph definition is invalid and cannot be compiled."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("category", ErrorCategory.GRAPH_BUILD)
        super().__init__(message, **kwargs)


class DuplicateNodeError(GraphBuildError):
    """A node name was registered twice."""

    def __init__(self, node_id: str, **kwargs: Any) -> None:
        super().__init__(f"Node '{node_id}' already exists", **kwargs)
        self.node_id = node_id
        self.details["node_id"] = node_id


class UnknownNodeError(GraphBuildError):
    """An edge, conditional target or entry point names an unregistered node."""

    def __init__(self, node_ids: Iterable[str], *, context: str = "", **kwargs: Any) -> None:
        self.node_ids = sorted(set(node_ids))
        names = ", ".join(f"'{n}'" for n in self.node_ids)
        message = f"Unknown node(s): {names}"
        if context:
            message = f"{message} ({context})"
        super().__init__(message, **kwargs)
        self.details["node_ids"] = self.node_ids


class UnreachableNodeError(GraphBuildError):
    """One or more nodes cannot be reached from the entry point."""

    def __init__(self, node_ids: Iterable[str], *, entry_point: str, **kwargs: Any) -> None:
        self.node_ids = sorted(set(node_ids))
        self.entry_point = entry_point
        names = ", ".join(f"'{n}'" for n in self.node_ids)
        super().__init__(
            f"Node(s) unreachable from entry point '{entry_point}': {names}",
            recovery_hint="Add an edge leading to each node or remove the dead branch.",
            **kwargs,
        )
        self.details["node_ids"] = self.node_ids
        self.details["entry_point"] = entry_point


class MissingEntryPointError(GraphBuildError):
    """compile() was called before an entry point was declared."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(
            "No entry point set",
            recovery_hint="Call set_entry_point(name) or add_edge(START, name).",
            **kwargs,
        )


class InvalidGraphError(GraphBuildError):
    """Structural problem not covered by a more specific build error."""


class NoTerminalPathError(GraphBuildError):
    """No path from the entry point ever reaches END."""

    def __init__(self, entry_point: str, **kwargs: Any) -> None:
        super().__init__(
            f"No path from entry point '{entry_point}' reaches END",
            recovery_hint="Add an edge to END or route a conditional branch to END.",
            **kwargs,
        )
        self.entry_point = entry_point
        self.details["entry_point"] = entry_point


# =============================================================================
# Runtime errors
# =============================================================================


class UnmappedRouteError(GraphError):
    """A router key has no mapped target.

    Raised by compile() when a router statically declares a key that the
    target map lacks, and at runtime when a router returns an unmapped key.
    """

    def __init__(
        self,
        source: str,
        key: Any,
        allowed: Iterable[str],
        **kwargs: Any,
    ) -> None:
        self.source = source
        self.key = key
        self.allowed = sorted(allowed)
        kwargs.setdefault("category", ErrorCategory.ROUTING)
        super().__init__(
            f"Router on '{source}' returned unmapped key {key!r} "
            f"(allowed: {', '.join(self.allowed)})",
            **kwargs,
        )
        self.details.update({"source": source, "key": repr(key), "allowed": self.allowed})


class SchemaError(GraphError):
    """A state update contains fields the schema does not declare."""

    def __init__(self, fields: Iterable[str], *, node_id: Optional[str] = None, **kwargs: Any):
        self.fields = sorted(fields)
        self.node_id = node_id
        message = f"Undeclared state field(s): {', '.join(self.fields)}"
        if node_id:
            message = f"{message} (returned by node '{node_id}')"
        super().__init__(message, category=ErrorCategory.STATE_SCHEMA, **kwargs)
        self.details["fields"] = self.fields
        self.details["node_id"] = node_id


class StepLimitExceededError(GraphError):
    """An invocation executed more nodes than the configured step cap."""

    def __init__(
        self,
        max_steps: int,
        *,
        thread_id: str,
        node_id: str,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            f"Step limit of {max_steps} exceeded before reaching END "
            f"(thread '{thread_id}', next node '{node_id}')",
            category=ErrorCategory.STEP_LIMIT,
            recovery_hint="Check conditional edges for cycles without an exit condition.",
            **kwargs,
        )
        self.max_steps = max_steps
        self.thread_id = thread_id
        self.node_id = node_id
        self.details.update({"max_steps": max_steps, "thread_id": thread_id, "node_id": node_id})


class NoPendingInterruptError(GraphError):
    """resume() was called on a thread that is not suspended."""

    def __init__(self, thread_id: str, **kwargs: Any) -> None:
        super().__init__(
            f"Thread '{thread_id}' has no pending interrupt to resume",
            category=ErrorCategory.INTERRUPT,
            recovery_hint="Call invoke() to start or continue the thread instead.",
            **kwargs,
        )
        self.thread_id = thread_id
        self.details["thread_id"] = thread_id


class InterruptOutsideNodeError(GraphError):
    """interrupt() was called outside of a running node handler."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(
            "interrupt() can only be called from inside a running graph node",
            category=ErrorCategory.INTERRUPT,
            **kwargs,
        )


class CheckpointError(GraphError):
    """Checkpoint persistence failed."""

    def __init__(self, message: str, *, thread_id: Optional[str] = None, **kwargs: Any):
        kwargs.setdefault("severity", ErrorSeverity.CRITICAL)
        super().__init__(message, category=ErrorCategory.CHECKPOINT, **kwargs)
        self.thread_id = thread_id
        self.details["thread_id"] = thread_id


__all__ = [
    "GraphError",
    "GraphBuildError",
    "DuplicateNodeError",
    "UnknownNodeError",
    "UnreachableNodeError",
    "MissingEntryPointError",
    "InvalidGraphError",
    "NoTerminalPathError",
    "UnmappedRouteError",
    "SchemaError",
    "StepLimitExceededError",
    "NoPendingInterruptError",
    "InterruptOutsideNodeError",
    "CheckpointError",
]
