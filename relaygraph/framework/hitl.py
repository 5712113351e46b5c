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

"""Human-in-the-Loop (HITL) interrupt protocol for graph nodes.

A node suspends its thread by calling interrupt(payload). The first time
the call is reached it unwinds the handler; the executor checkpoints the
thread and hands the payload to the caller. When the caller resumes the
thread with a value, the node runs again from the top and the same
interrupt() call returns that value instead of suspending.

Example:
    from relaygraph.framework.hitl import interrupt, request_approval

    def review(state):
        answer = interrupt({"question": "approve?", "draft": state["draft"]})
        return {"approved": answer == "yes"}

    def publish(state):
        decision = request_approval("Publish this post?", details=state["draft"])
        return {"status": "published" if decision.approved else "rejected"}

    result = await graph.invoke({"draft": "..."}, thread_id="t1")
    assert result.interrupted
    result = await graph.resume("t1", "yes")

A node may call interrupt() several times. Calls are matched to recorded
resume values by order: the n-th call returns the n-th value once the
caller has supplied it. Handlers should therefore be deterministic up to
their interrupt() calls; side effects before an interrupt() run again on
every resume.
"""

from __future__ import annotations

import contextvars
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from relaygraph.framework.errors import InterruptOutsideNodeError

logger = logging.getLogger(__name__)


# =============================================================================
# Node outcomes
# =============================================================================


@dataclass(frozen=True)
class Update:
    """Node outcome carrying a partial state update."""

    values: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Interrupt:
    """Node outcome that suspends the thread and surfaces ``payload``."""

    payload: Any = None


NodeOutcome = Union[Update, Interrupt]


class GraphInterrupt(Exception):
    """Unwinds a handler at an interrupt() call site.

    Raised only inside a running node and converted into an Interrupt
    outcome by the executor. It never reaches graph callers.
    """

    def __init__(self, payload: Any, node_id: Optional[str] = None):
        super().__init__(f"Interrupted in node '{node_id}'")
        self.payload = payload
        self.node_id = node_id


# =============================================================================
# Interrupt scope
# =============================================================================


@dataclass
class InterruptScope:
    """Per-execution view of the resume values recorded for one node."""

    node_id: str
    resume_values: List[Any] = field(default_factory=list)
    calls: int = 0

    def next_call(self, payload: Any) -> Any:
        index = self.calls
        self.calls += 1
        if index < len(self.resume_values):
            logger.debug(f"interrupt #{index} in '{self.node_id}' resumed with recorded value")
            return self.resume_values[index]
        raise GraphInterrupt(payload, node_id=self.node_id)


_current_scope: contextvars.ContextVar[Optional[InterruptScope]] = contextvars.ContextVar(
    "relaygraph_interrupt_scope", default=None
)


@contextmanager
def interrupt_scope(node_id: str, resume_values: Sequence[Any] = ()) -> Iterator[InterruptScope]:
    """Install the interrupt scope for one node execution."""
    scope = InterruptScope(node_id=node_id, resume_values=list(resume_values))
    token = _current_scope.set(scope)
    try:
        yield scope
    finally:
        _current_scope.reset(token)


def interrupt(payload: Any = None) -> Any:
    """Suspend the running node, or return its recorded resume value.

    Raises:
        InterruptOutsideNodeError: If no graph node is currently running
    """
    scope = _current_scope.get()
    if scope is None:
        raise InterruptOutsideNodeError()
    return scope.next_call(payload)


# =============================================================================
# Approval helper
# =============================================================================


class ApprovalStatus(str, Enum):
    """Status of an approval request.

    Attributes:
        PENDING: Request is awaiting human response
        APPROVED: Request was approved by human
        REJECTED: Request was rejected by human
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


APPROVAL_WORDS = frozenset({"yes", "y", "approve", "approved"})


@dataclass
class ApprovalRequest:
    """Interrupt payload asking a human to approve or reject something.

    Attributes:
        question: What the reviewer is asked
        details: Context shown alongside the question
        options: Answers the reviewer may give
        id: Unique identifier for this request
        created_at: Unix timestamp when request was created
    """

    question: str
    details: Any = None
    options: Sequence[str] = ("approve", "reject")
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "type": "approval_request",
            "id": self.id,
            "question": self.question,
            "details": self.details,
            "options": list(self.options),
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class ApprovalDecision:
    """Reviewer's answer to an ApprovalRequest."""

    approved: bool
    value: Any = None

    @property
    def status(self) -> ApprovalStatus:
        return ApprovalStatus.APPROVED if self.approved else ApprovalStatus.REJECTED


def is_approval(value: Any) -> bool:
    """Interpret a resume value as approve (True) or reject (False)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in APPROVAL_WORDS
    if isinstance(value, Mapping):
        return is_approval(value.get("approved", value.get("decision", False)))
    return False


def request_approval(
    question: str,
    *,
    details: Any = None,
    options: Sequence[str] = ("approve", "reject"),
) -> ApprovalDecision:
    """Interrupt with an approval request and return the reviewer's decision."""
    request = ApprovalRequest(question=question, details=details, options=tuple(options))
    value = interrupt(request.to_dict())
    decision = ApprovalDecision(approved=is_approval(value), value=value)
    logger.info(f"Approval '{question}': {decision.status.value}")
    return decision


__all__ = [
    "Update",
    "Interrupt",
    "NodeOutcome",
    "GraphInterrupt",
    "InterruptScope",
    "interrupt_scope",
    "interrupt",
    "ApprovalStatus",
    "ApprovalRequest",
    "ApprovalDecision",
    "is_approval",
    "request_approval",
]
