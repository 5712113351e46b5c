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

"""Execution configuration for compiled graphs.

GraphConfig is a facade over focused config classes:
- ExecutionConfig: step cap and per-thread serialization
- CheckpointConfig: state persistence
- ObservabilityConfig: graph id and debug hook

Example:
    config = GraphConfig(execution=ExecutionConfig(max_steps=25))
    graph = builder.compile(checkpointer=MemoryCheckpointer(), config=config)

    # Or from process settings
    graph = builder.compile(config=GraphConfig.from_settings())
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from relaygraph.config.settings import RelayGraphSettings

DEFAULT_MAX_STEPS = 100


@dataclass(frozen=True)
class ExecutionConfig:
    """Execution limits.

    Attributes:
        max_steps: Maximum node executions per invoke/resume call
        serialize_threads: Serialize concurrent invocations of one thread id
    """

    max_steps: int = DEFAULT_MAX_STEPS
    serialize_threads: bool = True

    def __post_init__(self) -> None:
        if self.max_steps < 1:
            raise ValueError(f"max_steps must be >= 1, got {self.max_steps}")


@dataclass(frozen=True)
class CheckpointConfig:
    """State persistence.

    Attributes:
        checkpointer: Object implementing CheckpointerProtocol. None selects
            an in-memory checkpointer private to the compiled graph.
    """

    checkpointer: Optional[Any] = None


@dataclass(frozen=True)
class ObservabilityConfig:
    """Observability hooks.

    Attributes:
        graph_id: Name used in log lines and checkpoint metadata
        debug_hook: Object with async before_node/after_node methods
    """

    graph_id: str = "graph"
    debug_hook: Optional[Any] = None


@dataclass(frozen=True)
class GraphConfig:
    """Facade composing the focused config classes."""

    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    checkpoint: CheckpointConfig = field(default_factory=CheckpointConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @property
    def max_steps(self) -> int:
        return self.execution.max_steps

    @property
    def checkpointer(self) -> Optional[Any]:
        return self.checkpoint.checkpointer

    @property
    def debug_hook(self) -> Optional[Any]:
        return self.observability.debug_hook

    def with_overrides(
        self,
        *,
        max_steps: Optional[int] = None,
        checkpointer: Optional[Any] = None,
        debug_hook: Optional[Any] = None,
        graph_id: Optional[str] = None,
    ) -> "GraphConfig":
        """Return a copy with the given values replaced (None keeps the current one)."""
        execution = self.execution
        checkpoint = self.checkpoint
        observability = self.observability
        if max_steps is not None:
            execution = replace(execution, max_steps=max_steps)
        if checkpointer is not None:
            checkpoint = replace(checkpoint, checkpointer=checkpointer)
        if debug_hook is not None:
            observability = replace(observability, debug_hook=debug_hook)
        if graph_id is not None:
            observability = replace(observability, graph_id=graph_id)
        return GraphConfig(execution=execution, checkpoint=checkpoint, observability=observability)

    @classmethod
    def from_settings(
        cls,
        settings: Optional["RelayGraphSettings"] = None,
        *,
        with_checkpointer: bool = True,
    ) -> "GraphConfig":
        """Build a config from RelayGraphSettings (process settings if None).

        With ``with_checkpointer`` the configured checkpoint backend is
        instantiated as well.
        """
        from relaygraph.config.settings import load_settings

        settings = settings or load_settings()
        checkpointer = None
        if with_checkpointer:
            from relaygraph.framework.checkpoint import create_checkpointer

            checkpointer = create_checkpointer(settings)
        return cls(
            execution=ExecutionConfig(
                max_steps=settings.max_steps,
                serialize_threads=settings.serialize_threads,
            ),
            checkpoint=CheckpointConfig(checkpointer=checkpointer),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_steps": self.execution.max_steps,
            "serialize_threads": self.execution.serialize_threads,
            "checkpointer": type(self.checkpoint.checkpointer).__name__
            if self.checkpoint.checkpointer is not None
            else None,
            "graph_id": self.observability.graph_id,
        }


__all__ = [
    "DEFAULT_MAX_STEPS",
    "ExecutionConfig",
    "CheckpointConfig",
    "ObservabilityConfig",
    "GraphConfig",
]
