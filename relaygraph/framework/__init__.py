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

"""Graph engine: state schemas, the StateGraph builder, execution and persistence.

Quick Start:
    from relaygraph.framework import END, Channel, StateGraph, append

    graph = StateGraph({"messages": Channel(append, default=list)})
    graph.add_node("greet", lambda state: {"messages": "hello"})
    graph.set_entry_point("greet")
    graph.add_edge("greet", END)

    app = graph.compile()
    result = await app.invoke({}, thread_id="t1")
    result.state["messages"]  # ["hello"]

Human in the loop:
    def review(state):
        return {"approved": interrupt("approve?") == "yes"}

    result = await app.invoke({"draft": "..."}, thread_id="t2")
    if result.interrupted:
        result = await app.resume("t2", "yes")
"""

from relaygraph.framework.checkpoint import CheckpointBackend, create_checkpointer
from relaygraph.framework.checkpointer import JSONFileCheckpointer, SQLiteCheckpointer
from relaygraph.framework.config import (
    CheckpointConfig,
    ExecutionConfig,
    GraphConfig,
    ObservabilityConfig,
)
from relaygraph.framework.errors import (
    CheckpointError,
    DuplicateNodeError,
    GraphBuildError,
    GraphError,
    InterruptOutsideNodeError,
    InvalidGraphError,
    MissingEntryPointError,
    NoPendingInterruptError,
    NoTerminalPathError,
    SchemaError,
    StepLimitExceededError,
    UnknownNodeError,
    UnmappedRouteError,
    UnreachableNodeError,
)
from relaygraph.framework.graph import (
    END,
    START,
    CheckpointerProtocol,
    CompiledGraph,
    ExecutionResult,
    MemoryCheckpointer,
    StateGraph,
    StepEvent,
    StepEventKind,
    ThreadSnapshot,
    WorkflowCheckpoint,
    create_graph,
)
from relaygraph.framework.hitl import (
    ApprovalDecision,
    ApprovalRequest,
    ApprovalStatus,
    Interrupt,
    Update,
    interrupt,
    is_approval,
    request_approval,
)
from relaygraph.framework.state import (
    Channel,
    StateSchema,
    append,
    merge_dicts,
    replace,
    window,
)

__all__ = [
    # Builder and execution
    "StateGraph",
    "CompiledGraph",
    "create_graph",
    "END",
    "START",
    "ExecutionResult",
    "StepEvent",
    "StepEventKind",
    "ThreadSnapshot",
    # State
    "StateSchema",
    "Channel",
    "replace",
    "append",
    "window",
    "merge_dicts",
    # Human in the loop
    "interrupt",
    "Interrupt",
    "Update",
    "request_approval",
    "is_approval",
    "ApprovalRequest",
    "ApprovalDecision",
    "ApprovalStatus",
    # Persistence
    "WorkflowCheckpoint",
    "CheckpointerProtocol",
    "MemoryCheckpointer",
    "SQLiteCheckpointer",
    "JSONFileCheckpointer",
    "CheckpointBackend",
    "create_checkpointer",
    # Configuration
    "GraphConfig",
    "ExecutionConfig",
    "CheckpointConfig",
    "ObservabilityConfig",
    # Errors
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
