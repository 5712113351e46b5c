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

"""StateGraph: stateful, checkpointed graph execution.

Build a graph of named nodes over a reducer-merged state, compile it, and
invoke it per thread. Every completed node writes the thread's checkpoint,
so a thread survives across invocations (and across processes with a
durable checkpointer). Nodes may suspend a thread with interrupt() and the
caller continues it with resume().

Example:
    class SupportState(TypedDict):
        messages: Annotated[list, append]
        text: str
        assigned_team: str

    def route(state) -> Literal["technical", "general"]:
        return "technical" if "down" in state["text"] else "general"

    graph = StateGraph(SupportState)
    graph.add_node("classify", classify)
    graph.add_node("eng", handle_eng)
    graph.add_node("general", handle_general)
    graph.set_entry_point("classify")
    graph.add_conditional_edge("classify", route, {"technical": "eng", "general": "general"})
    graph.set_finish_point("eng")
    graph.set_finish_point("general")

    app = graph.compile(checkpointer=MemoryCheckpointer())
    result = await app.invoke({"text": "server is down"}, thread_id="ticket-1")
    result.state["assigned_team"]  # "eng"
"""

from __future__ import annotations

import asyncio
import builtins
import copy
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import (
    Any,
    Literal,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Union,
    get_args,
    get_origin,
    get_type_hints,
    runtime_checkable,
)
from collections.abc import AsyncIterator, Callable

from relaygraph.core.async_utils import maybe_await, run_sync
from relaygraph.framework.config import ExecutionConfig, GraphConfig, ObservabilityConfig
from relaygraph.framework.errors import (
    CheckpointError,
    DuplicateNodeError,
    InvalidGraphError,
    MissingEntryPointError,
    NoPendingInterruptError,
    NoTerminalPathError,
    StepLimitExceededError,
    UnknownNodeError,
    UnmappedRouteError,
    UnreachableNodeError,
)
from relaygraph.framework.hitl import (
    GraphInterrupt,
    Interrupt,
    NodeOutcome,
    Update,
    interrupt_scope,
)
from relaygraph.framework.state import Channel, StateSchema, resolve_reducer

logger = logging.getLogger(__name__)

# Sentinel for end of graph
END = "__end__"
START = "__start__"

_NO_RESUME: Any = object()


class EdgeType(Enum):
    """Types of edges in the graph."""

    NORMAL = "normal"
    CONDITIONAL = "conditional"


@runtime_checkable
class HandlerProtocol(Protocol):
    """Node capability: ``run(state) -> update``. Plain callables also work."""

    def run(self, state: dict[str, Any]) -> Any: ...


@runtime_checkable
class RouterProtocol(Protocol):
    """Router capability: ``route(state) -> key``. Plain callables also work."""

    def route(self, state: dict[str, Any]) -> Any: ...


def _bind(obj: Any, method: str, kind: str) -> Callable[..., Any]:
    bound = getattr(obj, method, None)
    if callable(bound):
        return bound
    if callable(obj):
        return obj
    raise TypeError(f"{kind} must be callable or define {method}(state), got {type(obj).__name__}")


def _declared_route_keys(router: Any) -> Optional[set[Any]]:
    """Keys a router statically declares via a ``keys`` attribute or Literal return type."""
    keys = getattr(router, "keys", None)
    if keys is not None and not callable(keys):
        return set(keys)

    target = getattr(router, "route", router)
    try:
        hints = get_type_hints(target)
    except (NameError, TypeError, AttributeError):
        return None
    rtn = hints.get("return")
    if rtn is None:
        return None
    if get_origin(rtn) is Literal:
        return set(get_args(rtn))
    if get_origin(rtn) is Union:
        members = get_args(rtn)
        if members and all(get_origin(m) is Literal for m in members):
            return {value for m in members for value in get_args(m)}
    return None


@dataclass
class Edge:
    """Represents an edge between nodes.

    Attributes:
        source: Source node ID
        target: Target node ID (or key -> target mapping for conditional edges)
        edge_type: Normal or conditional
        condition: Router for conditional edges
    """

    source: str
    target: Union[str, dict[Any, str]]
    edge_type: EdgeType = EdgeType.NORMAL
    condition: Optional[Any] = None

    def targets(self) -> list[str]:
        if isinstance(self.target, dict):
            return list(self.target.values())
        return [self.target]

    async def get_target(self, state: dict[str, Any]) -> str:
        """Resolve the target node for ``state``.

        Raises:
            UnmappedRouteError: If a conditional router returns a key with
                no mapped target
        """
        if self.edge_type == EdgeType.NORMAL:
            return self.target  # type: ignore[return-value]

        router = _bind(self.condition, "route", "Router")
        key = await maybe_await(router(copy.deepcopy(state)))
        try:
            return self.target[key]  # type: ignore[index]
        except (KeyError, TypeError):
            raise UnmappedRouteError(
                self.source, key, [str(k) for k in self.target]  # type: ignore[union-attr]
            ) from None


@dataclass
class Node:
    """Represents a node in the graph.

    Attributes:
        id: Unique node identifier
        handler: Object with run(state) or a callable
        metadata: Additional node metadata
    """

    id: str
    handler: Any
    metadata: dict[str, Any] = field(default_factory=dict)

    async def execute(self, state: dict[str, Any]) -> Any:
        """Run the handler, awaiting it if it is a coroutine function."""
        return await maybe_await(_bind(self.handler, "run", "Handler")(state))


# =============================================================================
# Checkpoints
# =============================================================================


@dataclass
class WorkflowCheckpoint:
    """Persisted snapshot of one thread.

    Attributes:
        checkpoint_id: Unique checkpoint identifier
        thread_id: Thread/execution identifier
        node_id: Node that runs next (the suspended node when interrupted),
            or END once the thread finished
        state: State at checkpoint
        timestamp: When checkpoint was created
        step: Nodes completed on this thread so far
        interrupted: Whether node_id is suspended in interrupt()
        interrupt_payload: Payload surfaced to the caller while suspended
        resume_values: Values recorded for node_id's interrupt() call sites
        metadata: Additional metadata
    """

    checkpoint_id: str
    thread_id: str
    node_id: str
    state: dict[str, Any]
    timestamp: float
    step: int = 0
    interrupted: bool = False
    interrupt_payload: Any = None
    resume_values: list[Any] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return self.node_id == END and not self.interrupted

    def to_dict(self) -> dict[str, Any]:
        """Serialize checkpoint to dictionary."""
        return {
            "checkpoint_id": self.checkpoint_id,
            "thread_id": self.thread_id,
            "node_id": self.node_id,
            "state": self.state,
            "timestamp": self.timestamp,
            "step": self.step,
            "interrupted": self.interrupted,
            "interrupt_payload": self.interrupt_payload,
            "resume_values": self.resume_values,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkflowCheckpoint":
        """Deserialize checkpoint from dictionary."""
        return cls(
            checkpoint_id=data["checkpoint_id"],
            thread_id=data["thread_id"],
            node_id=data["node_id"],
            state=data["state"],
            timestamp=data["timestamp"],
            step=data.get("step", 0),
            interrupted=data.get("interrupted", False),
            interrupt_payload=data.get("interrupt_payload"),
            resume_values=list(data.get("resume_values", [])),
            metadata=data.get("metadata", {}),
        )


class CheckpointerProtocol(Protocol):
    """Protocol for checkpoint persistence.

    ``save`` fully replaces the thread's current checkpoint (last write wins).
    """

    async def save(self, thread_id: str, checkpoint: WorkflowCheckpoint) -> None:
        """Save a checkpoint as the thread's current one."""
        ...

    async def load(self, thread_id: str) -> Optional[WorkflowCheckpoint]:
        """Load the current checkpoint for thread."""
        ...

    async def list(self, thread_id: str) -> builtins.list[WorkflowCheckpoint]:
        """List checkpoints for thread, newest first."""
        ...

    async def delete_thread(self, thread_id: str) -> int:
        """Delete everything stored for thread; returns records removed."""
        ...


def check_thread_id(thread_id: str, checkpoint: WorkflowCheckpoint) -> None:
    """Raise CheckpointError if ``checkpoint`` belongs to another thread."""
    if checkpoint.thread_id != thread_id:
        raise CheckpointError(
            f"Checkpoint belongs to thread '{checkpoint.thread_id}', "
            f"cannot save it under '{thread_id}'",
            thread_id=thread_id,
        )


class MemoryCheckpointer:
    """In-memory checkpoint storage.

    Lives as long as the object does; suitable for development, tests and
    single-process services. Checkpoints are deep-copied on the way in and
    out, so callers never alias stored state.
    """

    def __init__(self, keep_history: bool = False) -> None:
        self.keep_history = keep_history
        self._current: dict[str, WorkflowCheckpoint] = {}
        self._history: dict[str, builtins.list[WorkflowCheckpoint]] = {}

    async def save(self, thread_id: str, checkpoint: WorkflowCheckpoint) -> None:
        """Replace the thread's current checkpoint."""
        check_thread_id(thread_id, checkpoint)
        stored = copy.deepcopy(checkpoint)
        self._current[thread_id] = stored
        if self.keep_history:
            self._history.setdefault(thread_id, []).append(stored)

    async def load(self, thread_id: str) -> Optional[WorkflowCheckpoint]:
        """Load current checkpoint."""
        checkpoint = self._current.get(thread_id)
        return copy.deepcopy(checkpoint) if checkpoint is not None else None

    async def list(self, thread_id: str) -> builtins.list[WorkflowCheckpoint]:
        """List checkpoints, newest first."""
        if self.keep_history:
            return [copy.deepcopy(c) for c in reversed(self._history.get(thread_id, []))]
        current = self._current.get(thread_id)
        return [copy.deepcopy(current)] if current is not None else []

    async def delete_thread(self, thread_id: str) -> int:
        """Forget a thread."""
        removed = len(self._history.pop(thread_id, []))
        if self._current.pop(thread_id, None) is not None:
            removed = max(removed, 1)
        return removed

    def thread_ids(self) -> builtins.list[str]:
        return builtins.list(self._current)


# =============================================================================
# Results and events
# =============================================================================


@dataclass
class ExecutionResult:
    """Result from invoke()/resume().

    Attributes:
        thread_id: Thread that ran
        interrupted: True when a node suspended the thread
        payload: Interrupt payload (None unless interrupted)
        state: State at completion, or at suspension when interrupted
        interrupt_node: Node waiting for resume (None unless interrupted)
        iterations: Node executions during this call
        duration: Wall-clock seconds spent in this call
        node_history: Nodes that completed during this call, in order
    """

    thread_id: str
    interrupted: bool
    payload: Any = None
    state: Optional[dict[str, Any]] = None
    interrupt_node: Optional[str] = None
    iterations: int = 0
    duration: float = 0.0
    node_history: list[str] = field(default_factory=list)


class StepEventKind(str, Enum):
    """Kinds of events yielded by CompiledGraph.stream()."""

    NODE_COMPLETED = "node_completed"
    INTERRUPTED = "interrupted"
    COMPLETED = "completed"


@dataclass
class StepEvent:
    """One step of a streamed execution."""

    kind: StepEventKind
    node_id: str
    state: dict[str, Any]
    update: Optional[dict[str, Any]] = None
    payload: Any = None
    step: int = 0


@dataclass
class ThreadSnapshot:
    """Inspection view of a thread's current checkpoint."""

    thread_id: str
    state: dict[str, Any]
    next_node: str
    interrupted: bool
    payload: Any
    step: int
    updated_at: float


# =============================================================================
# Graph Execution Helpers
# =============================================================================


class IterationController:
    """Counts node executions within one invocation and enforces the step cap."""

    def __init__(self, max_steps: int):
        self.max_steps = max_steps
        self.iterations = 0

    def should_continue(self, current_node: str) -> bool:
        """Record an attempt to run ``current_node``; False once past the cap."""
        if self.iterations >= self.max_steps:
            return False
        self.iterations += 1
        return True

    def reset(self) -> None:
        self.iterations = 0


class NodeExecutor:
    """Executes individual graph nodes.

    Each handler receives a deep copy of the state and runs inside an
    interrupt scope holding the resume values recorded for it. The result
    is normalized to a NodeOutcome.
    """

    def __init__(self, nodes: Mapping[str, Node]):
        self.nodes = nodes

    async def execute(
        self,
        node_id: str,
        state: dict[str, Any],
        resume_values: Sequence[Any] = (),
    ) -> NodeOutcome:
        node = self.nodes[node_id]
        with interrupt_scope(node_id, resume_values):
            try:
                result = await node.execute(copy.deepcopy(state))
            except GraphInterrupt as gi:
                return Interrupt(gi.payload)
        return self._to_outcome(node_id, result)

    @staticmethod
    def _to_outcome(node_id: str, result: Any) -> NodeOutcome:
        if isinstance(result, (Update, Interrupt)):
            return result
        if result is None:
            return Update({})
        if isinstance(result, Mapping):
            return Update(dict(result))
        raise TypeError(
            f"Node '{node_id}' returned {type(result).__name__}; "
            "expected a mapping, None, Update or Interrupt"
        )


class GraphCheckpointManager:
    """Loads and writes thread checkpoints for the executor."""

    def __init__(self, checkpointer: CheckpointerProtocol, graph_id: str = "graph"):
        self.checkpointer = checkpointer
        self.graph_id = graph_id

    async def load(self, thread_id: str) -> Optional[WorkflowCheckpoint]:
        return await self.checkpointer.load(thread_id)

    async def save_checkpoint(
        self,
        thread_id: str,
        node_id: str,
        state: dict[str, Any],
        *,
        step: int,
        interrupted: bool = False,
        payload: Any = None,
        resume_values: Sequence[Any] = (),
    ) -> WorkflowCheckpoint:
        checkpoint = WorkflowCheckpoint(
            checkpoint_id=uuid.uuid4().hex,
            thread_id=thread_id,
            node_id=node_id,
            state=state,
            timestamp=time.time(),
            step=step,
            interrupted=interrupted,
            interrupt_payload=payload,
            resume_values=list(resume_values),
            metadata={"graph_id": self.graph_id},
        )
        await self.checkpointer.save(thread_id, checkpoint)
        return checkpoint


class ThreadLockRegistry:
    """Per-thread-id asyncio locks, dropped once nobody holds or awaits them."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, thread_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(thread_id)
        if lock is None:
            lock = self._locks[thread_id] = asyncio.Lock()
        self._users[thread_id] = self._users.get(thread_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[thread_id] -= 1
            if self._users[thread_id] == 0:
                del self._users[thread_id]
                del self._locks[thread_id]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class _RunTracker:
    thread_id: str
    started: float = field(default_factory=time.time)
    iterations: int = 0
    node_history: list[str] = field(default_factory=list)


# =============================================================================
# Compiled graph
# =============================================================================


class CompiledGraph:
    """Compiled graph ready for execution.

    Immutable view of the builder's registries. Thread state lives only in
    the checkpointer, so one CompiledGraph serves any number of threads.
    """

    def __init__(
        self,
        nodes: dict[str, Node],
        edges: dict[str, list[Edge]],
        entry_point: str,
        state_schema: StateSchema,
        config: Optional[GraphConfig] = None,
    ):
        self._nodes: Mapping[str, Node] = MappingProxyType(dict(nodes))
        self._edges: Mapping[str, tuple[Edge, ...]] = MappingProxyType(
            {k: tuple(v) for k, v in edges.items()}
        )
        self._entry_point = entry_point
        self._state_schema = state_schema
        self._config = config or GraphConfig()
        self._checkpointer: CheckpointerProtocol = (
            self._config.checkpointer
            if self._config.checkpointer is not None
            else MemoryCheckpointer()
        )
        self._debug_hook: Optional[Any] = self._config.debug_hook
        self._locks = ThreadLockRegistry()

    @property
    def entry_point(self) -> str:
        return self._entry_point

    @property
    def state_schema(self) -> StateSchema:
        return self._state_schema

    @property
    def checkpointer(self) -> CheckpointerProtocol:
        return self._checkpointer

    @property
    def config(self) -> GraphConfig:
        return self._config

    @property
    def nodes(self) -> tuple[str, ...]:
        return tuple(self._nodes)

    def set_debug_hook(self, hook: Optional[Any]) -> None:
        """Set debug hook for execution.

        Args:
            hook: Object with async before_node/after_node, or None to disable
        """
        self._debug_hook = hook

    # ------------------------------------------------------------------
    # Public execution API
    # ------------------------------------------------------------------

    async def invoke(
        self,
        input: Optional[Mapping[str, Any]] = None,
        *,
        thread_id: Optional[str] = None,
        resume: Any = _NO_RESUME,
        config: Optional[GraphConfig] = None,
    ) -> ExecutionResult:
        """Run the thread until it finishes or a node interrupts.

        Args:
            input: Partial state update merged before running. Ignored when
                ``resume`` continues a pending interrupt.
            thread_id: Thread to run; a new one is generated if None
            resume: Value for the pending interrupt, if any. Without a
                pending interrupt it is ignored with a warning.
            config: Execution overrides for this call (step cap, debug hook)

        Returns:
            ExecutionResult; ``interrupted`` tells a suspension from completion

        Raises:
            SchemaError: Input or a node update names an undeclared field
            UnmappedRouteError: A router returned an unmapped key
            StepLimitExceededError: More than max_steps nodes ran
            Exception: Anything a node handler or router raised, unchanged
        """
        tracker = _RunTracker(thread_id=thread_id or uuid.uuid4().hex)
        last: Optional[StepEvent] = None
        async for event in self._run(tracker, input, resume, config, strict_resume=False):
            last = event
        return self._result(tracker, last)

    async def resume(
        self,
        thread_id: str,
        value: Any,
        *,
        config: Optional[GraphConfig] = None,
    ) -> ExecutionResult:
        """Continue a suspended thread, handing ``value`` to its interrupt() call.

        Raises:
            NoPendingInterruptError: If the thread is not suspended
        """
        tracker = _RunTracker(thread_id=thread_id)
        last: Optional[StepEvent] = None
        async for event in self._run(tracker, None, value, config, strict_resume=True):
            last = event
        return self._result(tracker, last)

    async def stream(
        self,
        input: Optional[Mapping[str, Any]] = None,
        *,
        thread_id: Optional[str] = None,
        resume: Any = _NO_RESUME,
        config: Optional[GraphConfig] = None,
    ) -> AsyncIterator[StepEvent]:
        """Stream execution, yielding a StepEvent after each node.

        The final event is ``interrupted`` or ``completed``. Checkpoint
        semantics are identical to invoke().
        """
        tracker = _RunTracker(thread_id=thread_id or uuid.uuid4().hex)
        async for event in self._run(tracker, input, resume, config, strict_resume=False):
            yield event

    def invoke_sync(self, input: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> ExecutionResult:
        """Blocking invoke() for code without a running event loop."""
        return run_sync(self.invoke(input, **kwargs))

    def resume_sync(self, thread_id: str, value: Any, **kwargs: Any) -> ExecutionResult:
        """Blocking resume() for code without a running event loop."""
        return run_sync(self.resume(thread_id, value, **kwargs))

    async def get_state(self, thread_id: str) -> Optional[ThreadSnapshot]:
        """Current state of a thread, or None if it was never run."""
        checkpoint = await self._checkpointer.load(thread_id)
        if checkpoint is None:
            return None
        return ThreadSnapshot(
            thread_id=thread_id,
            state=checkpoint.state,
            next_node=checkpoint.node_id,
            interrupted=checkpoint.interrupted,
            payload=checkpoint.interrupt_payload,
            step=checkpoint.step,
            updated_at=checkpoint.timestamp,
        )

    async def clear_thread(self, thread_id: str) -> int:
        """Delete a thread's checkpoints. Returns the number removed."""
        removed = await self._checkpointer.delete_thread(thread_id)
        logger.info(f"Cleared thread '{thread_id}' ({removed} checkpoint(s))")
        return removed

    # ------------------------------------------------------------------
    # Execution loop
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _thread_guard(self, thread_id: str, execution: ExecutionConfig) -> AsyncIterator[None]:
        if not execution.serialize_threads:
            yield
            return
        async with self._locks.hold(thread_id):
            yield

    async def _run(
        self,
        tracker: _RunTracker,
        input: Optional[Mapping[str, Any]],
        resume: Any,
        config: Optional[GraphConfig],
        *,
        strict_resume: bool,
    ) -> AsyncIterator[StepEvent]:
        exec_config = config or self._config
        thread_id = tracker.thread_id
        hook = (
            config.debug_hook
            if config is not None and config.debug_hook is not None
            else self._debug_hook
        )

        async with self._thread_guard(thread_id, exec_config.execution):
            controller = IterationController(max_steps=exec_config.max_steps)
            executor = NodeExecutor(self._nodes)
            manager = GraphCheckpointManager(
                self._checkpointer, graph_id=self._config.observability.graph_id
            )

            state, current_node, resume_values, step = await self._prepare(
                manager, thread_id, input, resume, strict_resume
            )

            try:
                while True:
                    if not controller.should_continue(current_node):
                        logger.warning(
                            f"Step limit ({controller.max_steps}) reached on thread "
                            f"'{thread_id}' before node '{current_node}'"
                        )
                        raise StepLimitExceededError(
                            controller.max_steps, thread_id=thread_id, node_id=current_node
                        )

                    if hook:
                        await hook.before_node(current_node, state)

                    try:
                        outcome = await executor.execute(current_node, state, resume_values)
                        if isinstance(outcome, Interrupt):
                            next_node = current_node
                            new_state = state
                        else:
                            new_state = self._state_schema.merge(
                                state, outcome.values, node_id=current_node
                            )
                            next_node = await self._get_next_node(current_node, new_state)
                    except Exception as e:
                        logger.debug(f"Node '{current_node}' failed on thread '{thread_id}': {e}")
                        if hook:
                            await hook.after_node(current_node, state, e)
                        raise

                    if isinstance(outcome, Interrupt):
                        await manager.save_checkpoint(
                            thread_id,
                            current_node,
                            state,
                            step=step,
                            interrupted=True,
                            payload=outcome.payload,
                            resume_values=resume_values,
                        )
                        if hook:
                            await hook.after_node(current_node, state, None)
                        logger.info(f"Thread '{thread_id}' interrupted at node '{current_node}'")
                        yield StepEvent(
                            kind=StepEventKind.INTERRUPTED,
                            node_id=current_node,
                            state=copy.deepcopy(state),
                            payload=outcome.payload,
                            step=step,
                        )
                        return

                    step += 1
                    tracker.node_history.append(current_node)
                    await manager.save_checkpoint(thread_id, next_node, new_state, step=step)
                    if hook:
                        await hook.after_node(current_node, new_state, None)
                    logger.debug(f"Executed node: {current_node} -> {next_node}")

                    state = new_state
                    resume_values = []
                    yield StepEvent(
                        kind=StepEventKind.NODE_COMPLETED,
                        node_id=current_node,
                        state=copy.deepcopy(state),
                        update=copy.deepcopy(dict(outcome.values)),
                        step=step,
                    )

                    if next_node == END:
                        logger.info(
                            f"Thread '{thread_id}' completed after {controller.iterations} node(s)"
                        )
                        yield StepEvent(
                            kind=StepEventKind.COMPLETED,
                            node_id=END,
                            state=copy.deepcopy(state),
                            step=step,
                        )
                        return
                    current_node = next_node
            finally:
                tracker.iterations = controller.iterations

    async def _prepare(
        self,
        manager: GraphCheckpointManager,
        thread_id: str,
        input: Optional[Mapping[str, Any]],
        resume: Any,
        strict_resume: bool,
    ) -> tuple[dict[str, Any], str, list[Any], int]:
        """Resolve starting state, node, resume values and step count."""
        checkpoint = await manager.load(thread_id)

        if resume is not _NO_RESUME:
            if checkpoint is not None and checkpoint.interrupted:
                logger.info(f"Resuming thread '{thread_id}' at node '{checkpoint.node_id}'")
                return (
                    checkpoint.state,
                    checkpoint.node_id,
                    [*checkpoint.resume_values, resume],
                    checkpoint.step,
                )
            if strict_resume:
                raise NoPendingInterruptError(thread_id)
            logger.warning(
                f"Resume value supplied for thread '{thread_id}' without a pending "
                "interrupt; running as a normal invoke"
            )

        if checkpoint is None:
            state = self._state_schema.merge(self._state_schema.initial_state(), input)
            return state, self._entry_point, [], 0

        state = self._state_schema.merge(checkpoint.state, input)
        if checkpoint.is_complete:
            logger.debug(f"Thread '{thread_id}' finished earlier; restarting at entry point")
            return state, self._entry_point, [], checkpoint.step
        return state, checkpoint.node_id, [], checkpoint.step

    async def _get_next_node(self, current_node: str, state: dict[str, Any]) -> str:
        """Determine next node based on edges and state.

        An unconditional edge wins over a conditional one; a node without
        outgoing edges finishes the run.
        """
        edges = self._edges.get(current_node, ())
        if not edges:
            return END
        for edge in edges:
            if edge.edge_type == EdgeType.NORMAL:
                return await edge.get_target(state)
        return await edges[0].get_target(state)

    @staticmethod
    def _result(tracker: _RunTracker, last: Optional[StepEvent]) -> ExecutionResult:
        interrupted = last is not None and last.kind == StepEventKind.INTERRUPTED
        return ExecutionResult(
            thread_id=tracker.thread_id,
            interrupted=interrupted,
            payload=last.payload if interrupted and last else None,
            state=last.state if last else None,
            interrupt_node=last.node_id if interrupted and last else None,
            iterations=tracker.iterations,
            duration=time.time() - tracker.started,
            node_history=list(tracker.node_history),
        )

    def get_graph_schema(self) -> dict[str, Any]:
        """Get graph structure as dictionary.

        Returns:
            Dictionary describing nodes, edges, entry point and state fields
        """
        return {
            "nodes": list(self._nodes.keys()),
            "edges": {
                src: [
                    {
                        "target": dict(e.target) if isinstance(e.target, dict) else e.target,
                        "type": e.edge_type.value,
                    }
                    for e in edges
                ]
                for src, edges in self._edges.items()
            },
            "entry_point": self._entry_point,
            "state_fields": self._state_schema.fields,
        }


# =============================================================================
# Builder
# =============================================================================


class StateGraph:
    """Builder that wires nodes and edges over a state schema.

    Example:
        graph = StateGraph({"draft": Channel(), "notes": Channel(append, default=list)})
        graph.add_node("write", write_draft)
        graph.add_node("review", review_draft)
        graph.add_edge(START, "write")
        graph.add_edge("write", "review")
        graph.add_conditional_edge(
            "review",
            review_outcome,
            {"revise": "write", "accepted": END},
        )

        app = graph.compile()
        result = await app.invoke({"draft": ""}, thread_id="doc-7")
    """

    def __init__(self, state_schema: Any):
        """Initialize StateGraph.

        Args:
            state_schema: StateSchema, TypedDict class, or mapping of field
                name to Channel/reducer
        """
        self._state_schema = StateSchema.coerce(state_schema)
        self._nodes: dict[str, Node] = {}
        self._edges: dict[str, list[Edge]] = {}
        self._entry_point: Optional[str] = None

    @property
    def state_schema(self) -> StateSchema:
        return self._state_schema

    def add_node(self, node_id: str, handler: Any, **metadata: Any) -> "StateGraph":
        """Add a node to the graph.

        Args:
            node_id: Unique node identifier
            handler: Object with run(state) or a callable; sync or async
            **metadata: Additional metadata

        Returns:
            Self for chaining

        Raises:
            DuplicateNodeError: If node already exists
            ValueError: If the name is empty or reserved
        """
        if not node_id or not isinstance(node_id, str):
            raise ValueError(f"Invalid node name: {node_id!r}")
        if node_id in (END, START):
            raise ValueError(f"'{node_id}' is reserved and cannot be used as a node name")
        if node_id in self._nodes:
            raise DuplicateNodeError(node_id)
        _bind(handler, "run", "Handler")

        self._nodes[node_id] = Node(id=node_id, handler=handler, metadata=metadata)
        logger.debug(f"Added node: {node_id}")
        return self

    def _require_source(self, source: str) -> None:
        if source not in self._nodes:
            raise UnknownNodeError([source], context="edge source must be a registered node")

    def add_edge(self, source: str, target: str) -> "StateGraph":
        """Add a normal edge between nodes.

        ``add_edge(START, name)`` declares the entry point. Targets may be
        registered later; they are checked at compile time.

        Returns:
            Self for chaining

        Raises:
            UnknownNodeError: If source is not a registered node
        """
        if source == START:
            return self.set_entry_point(target)
        if target == START:
            raise ValueError("START cannot be an edge target")
        self._require_source(source)

        self._edges.setdefault(source, []).append(
            Edge(source=source, target=target, edge_type=EdgeType.NORMAL)
        )
        logger.debug(f"Added edge: {source} -> {target}")
        return self

    def add_conditional_edge(
        self,
        source: str,
        condition: Any,
        branches: Union[Mapping[Any, str], Sequence[str]],
    ) -> "StateGraph":
        """Add a conditional edge with multiple branches.

        Args:
            source: Source node ID
            condition: Router (callable or object with route(state)) returning a key
            branches: Mapping from router keys to target node IDs (or END).
                A list of node names maps each name to itself.

        Returns:
            Self for chaining

        Raises:
            UnknownNodeError: If source is not a registered node
            ValueError: If branches is empty
        """
        self._require_source(source)
        _bind(condition, "route", "Router")
        if isinstance(branches, Mapping):
            target_map = dict(branches)
        else:
            target_map = {name: name for name in branches}
        if not target_map:
            raise ValueError(f"Conditional edge from '{source}' needs at least one branch")

        self._edges.setdefault(source, []).append(
            Edge(
                source=source,
                target=target_map,
                edge_type=EdgeType.CONDITIONAL,
                condition=condition,
            )
        )
        logger.debug(f"Added conditional edge: {source} -> {list(target_map.values())}")
        return self

    add_conditional_edges = add_conditional_edge

    def set_entry_point(self, node_id: str) -> "StateGraph":
        """Set the entry point node (checked at compile time)."""
        self._entry_point = node_id
        return self

    def set_finish_point(self, node_id: str) -> "StateGraph":
        """Set a node as finish point (adds edge to END)."""
        return self.add_edge(node_id, END)

    def compile(
        self,
        checkpointer: Optional[CheckpointerProtocol] = None,
        *,
        config: Optional[GraphConfig] = None,
        max_steps: Optional[int] = None,
        debug_hook: Optional[Any] = None,
    ) -> CompiledGraph:
        """Compile the graph for execution.

        Args:
            checkpointer: Checkpointer for persistence (in-memory if None)
            config: Execution configuration
            max_steps: Step cap override
            debug_hook: Object with async before_node/after_node

        Returns:
            CompiledGraph ready for execution

        Raises:
            GraphBuildError: A subclass describing the first structural problem
        """
        self._validate()

        graph_config = (config or GraphConfig()).with_overrides(
            max_steps=max_steps, checkpointer=checkpointer, debug_hook=debug_hook
        )

        return CompiledGraph(
            nodes=self._nodes.copy(),
            edges={k: list(v) for k, v in self._edges.items()},
            entry_point=self._entry_point or "",
            state_schema=self._state_schema,
            config=graph_config,
        )

    def _validate(self) -> None:
        """Validate graph structure, raising on the first category of problem."""
        if not self._entry_point:
            raise MissingEntryPointError()

        unknown: list[str] = []
        if self._entry_point not in self._nodes:
            unknown.append(self._entry_point)
        for edges in self._edges.values():
            for edge in edges:
                unknown.extend(t for t in edge.targets() if t != END and t not in self._nodes)
        if unknown:
            raise UnknownNodeError(unknown, context="referenced by entry point or edges")

        for source, edges in self._edges.items():
            normal = sum(1 for e in edges if e.edge_type == EdgeType.NORMAL)
            conditional = len(edges) - normal
            if normal > 1 or conditional > 1:
                raise InvalidGraphError(
                    f"Node '{source}' has {normal} unconditional and {conditional} "
                    "conditional edges; at most one of each is allowed",
                    details={"node_id": source},
                )
            if normal and conditional:
                logger.warning(
                    f"Node '{source}' has both edge kinds; the unconditional edge always wins"
                )

        for source, edges in self._edges.items():
            for edge in edges:
                if edge.edge_type != EdgeType.CONDITIONAL:
                    continue
                declared = _declared_route_keys(edge.condition)
                if declared is None:
                    continue
                missing = [k for k in declared if k not in edge.target]  # type: ignore[operator]
                if missing:
                    raise UnmappedRouteError(
                        source, missing[0], [str(k) for k in edge.target]  # type: ignore[union-attr]
                    )

        reachable = self._find_reachable()
        unreachable = [n for n in self._nodes if n not in reachable]
        if unreachable:
            raise UnreachableNodeError(unreachable, entry_point=self._entry_point)

        if not any(self._is_terminal(n) for n in reachable):
            raise NoTerminalPathError(self._entry_point)

    def _is_terminal(self, node_id: str) -> bool:
        edges = self._edges.get(node_id, [])
        if not edges:
            return True
        return any(END in e.targets() for e in edges)

    def _find_reachable(self) -> set[str]:
        """Find all reachable nodes from entry point."""
        if not self._entry_point:
            return set()

        reachable: set[str] = set()
        to_visit = [self._entry_point]

        while to_visit:
            node_id = to_visit.pop()
            if node_id in reachable or node_id == END:
                continue
            reachable.add(node_id)
            for edge in self._edges.get(node_id, []):
                to_visit.extend(edge.targets())

        return reachable

    @classmethod
    def from_schema(
        cls,
        schema: Union[dict[str, Any], str],
        *,
        node_registry: Optional[dict[str, Any]] = None,
        condition_registry: Optional[dict[str, Any]] = None,
        state_schema: Any = None,
    ) -> "StateGraph":
        """Create StateGraph from schema dictionary or YAML string.

        Args:
            schema: Dictionary or YAML string containing:
                - nodes: List of {id, type: function|passthrough, func}
                - edges: List of {source, target, type: normal|conditional, condition}
                - entry_point: Starting node ID
                - state: Field declarations, unless ``state_schema`` is given
            node_registry: Maps node function names to handlers
            condition_registry: Maps condition names to routers
            state_schema: Overrides the ``state`` section

        Returns:
            StateGraph instance ready for compilation

        Raises:
            ValueError: If schema is invalid or names unknown registry entries
            TypeError: If node/edge types are unsupported

        Example with YAML:
            yaml_schema = \"""
            state:
              messages: {reducer: append, default: []}
              history: {reducer: window, window: 3}
              approved: {reducer: replace, default: false}
            nodes:
              - id: draft
                func: write_draft
              - id: review
                func: review_draft
            edges:
              - source: draft
                target: review
              - source: review
                type: conditional
                condition: review_outcome
                target:
                  revise: draft
                  done: __end__
            entry_point: draft
            \"""

            graph = StateGraph.from_schema(
                yaml_schema,
                node_registry={"write_draft": write_draft, "review_draft": review_draft},
                condition_registry={"review_outcome": review_outcome},
            )
        """
        import yaml

        if isinstance(schema, str):
            try:
                schema_dict = yaml.safe_load(schema)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML schema: {e}") from e
        else:
            schema_dict = schema
        if not isinstance(schema_dict, dict):
            raise ValueError("Graph schema must be a mapping")

        required_fields = ["nodes", "edges", "entry_point"]
        missing_fields = [f for f in required_fields if f not in schema_dict]
        if missing_fields:
            raise ValueError(f"Schema missing required fields: {missing_fields}")

        node_registry = node_registry or {}
        condition_registry = condition_registry or {}

        if state_schema is None:
            if "state" not in schema_dict:
                raise ValueError("Schema needs a 'state' section when state_schema is not given")
            state_schema = _state_schema_from_dict(schema_dict["state"])
        graph = cls(state_schema)

        for node_def in schema_dict["nodes"]:
            if not isinstance(node_def, dict):
                raise ValueError(f"Invalid node definition: {node_def}")

            node_id = node_def.get("id")
            if not node_id:
                raise ValueError("Node definition must have 'id' field")

            node_type = node_def.get("type", "function")

            if node_type == "function":
                func_name = node_def.get("func")
                if not func_name:
                    raise ValueError(f"Function node '{node_id}' must specify 'func'")
                if func_name not in node_registry:
                    raise ValueError(
                        f"Node function '{func_name}' not found in node_registry. "
                        f"Available: {list(node_registry.keys())}"
                    )
                metadata = {k: v for k, v in node_def.items() if k not in ["id", "type", "func"]}
                graph.add_node(node_id, node_registry[func_name], **metadata)

            elif node_type == "passthrough":

                def passthrough(state: dict[str, Any]) -> dict[str, Any]:
                    return {}

                metadata = {k: v for k, v in node_def.items() if k not in ["id", "type"]}
                graph.add_node(node_id, passthrough, **metadata)

            else:
                raise TypeError(f"Unsupported node type: {node_type}")

        for edge_def in schema_dict["edges"]:
            if not isinstance(edge_def, dict):
                raise ValueError(f"Invalid edge definition: {edge_def}")

            source = edge_def.get("source")
            if not source:
                raise ValueError("Edge definition must have 'source' field")

            target = edge_def.get("target")
            if target is None:
                raise ValueError("Edge definition must have 'target' field")

            edge_type = edge_def.get("type", "normal")

            if edge_type == "normal":
                graph.add_edge(source, target)

            elif edge_type == "conditional":
                condition_name = edge_def.get("condition")
                if not condition_name:
                    raise ValueError(f"Conditional edge from '{source}' must specify 'condition'")
                if condition_name not in condition_registry:
                    raise ValueError(
                        f"Condition function '{condition_name}' not found in "
                        f"condition_registry. Available: {list(condition_registry.keys())}"
                    )
                if not isinstance(target, dict):
                    raise ValueError(
                        f"Conditional edge target must be dict mapping branches to nodes, "
                        f"got: {type(target)}"
                    )
                graph.add_conditional_edge(source, condition_registry[condition_name], target)

            else:
                raise TypeError(f"Unsupported edge type: {edge_type}")

        entry_point = schema_dict["entry_point"]
        if entry_point not in graph._nodes:
            raise ValueError(
                f"Entry point '{entry_point}' not found in nodes. "
                f"Available nodes: {list(graph._nodes.keys())}"
            )
        graph.set_entry_point(entry_point)

        return graph


def _state_schema_from_dict(fields: Any) -> StateSchema:
    if not isinstance(fields, dict) or not fields:
        raise ValueError("'state' section must map field names to declarations")
    channels: dict[str, Channel] = {}
    for name, decl in fields.items():
        decl = decl or {}
        if isinstance(decl, str):
            decl = {"reducer": decl}
        if not isinstance(decl, dict):
            raise ValueError(f"Invalid declaration for state field '{name}': {decl!r}")
        reducer = resolve_reducer(decl.get("reducer", "replace"), decl.get("window"))
        channels[name] = Channel(reducer=reducer, default=decl.get("default"))
    return StateSchema(channels)


def create_graph(state_schema: Any) -> StateGraph:
    """Create a new StateGraph."""
    return StateGraph(state_schema)


__all__ = [
    # Core types
    "StateGraph",
    "CompiledGraph",
    "Node",
    "Edge",
    "EdgeType",
    "HandlerProtocol",
    "RouterProtocol",
    # Execution
    "ExecutionResult",
    "StepEvent",
    "StepEventKind",
    "ThreadSnapshot",
    "IterationController",
    "NodeExecutor",
    "GraphCheckpointManager",
    "ThreadLockRegistry",
    "GraphConfig",
    "ObservabilityConfig",
    # Checkpointing
    "WorkflowCheckpoint",
    "CheckpointerProtocol",
    "MemoryCheckpointer",
    "check_thread_id",
    # Constants
    "END",
    "START",
    # Factory
    "create_graph",
]
