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

"""
relaygraph - stateful graph execution with checkpoints and human-in-the-loop interrupts.

Simple API:
    from relaygraph import END, START, StateGraph, interrupt

    graph = StateGraph(ReviewState)
    graph.add_node("draft", write_draft)
    graph.add_node("review", review)
    graph.add_edge(START, "draft")
    graph.add_edge("draft", "review")
    graph.add_edge("review", END)

    app = graph.compile()
    result = await app.invoke({"topic": "release notes"}, thread_id="t1")
    if result.interrupted:
        result = await app.resume("t1", "yes")

Durable threads:
    from relaygraph import GraphConfig, RelayGraphSettings

    settings = RelayGraphSettings.from_sources(settings_file="relaygraph.yaml")
    app = graph.compile(config=GraphConfig.from_settings(settings))
"""

__version__ = "0.1.0"
__author__ = "Vijaykumar Singh"
__email__ = "singhvjd@gmail.com"
__license__ = "Apache-2.0"

from relaygraph.config.settings import RelayGraphSettings
from relaygraph.core.errors import ConfigurationError, RelayGraphError

from relaygraph.framework import (
    END,
    START,
    Channel,
    CompiledGraph,
    ExecutionResult,
    GraphConfig,
    GraphError,
    JSONFileCheckpointer,
    MemoryCheckpointer,
    SQLiteCheckpointer,
    StateGraph,
    StateSchema,
    StepEvent,
    append,
    interrupt,
    merge_dicts,
    replace,
    request_approval,
    window,
)

__all__ = [
    # Build and run
    "StateGraph",
    "CompiledGraph",
    "END",
    "START",
    "ExecutionResult",
    "StepEvent",
    # State
    "StateSchema",
    "Channel",
    "replace",
    "append",
    "window",
    "merge_dicts",
    # Human in the loop
    "interrupt",
    "request_approval",
    # Persistence
    "MemoryCheckpointer",
    "SQLiteCheckpointer",
    "JSONFileCheckpointer",
    # Configuration
    "GraphConfig",
    "RelayGraphSettings",
    # Errors
    "RelayGraphError",
    "GraphError",
    "ConfigurationError",
]
