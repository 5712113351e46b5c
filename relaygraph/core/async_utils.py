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

"""Async/Sync Bridging Utilities.

The graph engine is async-first: handlers, routers and checkpointers are
awaited. Sync wrappers exist only at public API boundaries
(CompiledGraph.invoke_sync / resume_sync).

Example usage:
    from relaygraph.core.async_utils import run_sync

    result = run_sync(graph.invoke({"messages": ["hi"]}, thread_id="t1"))
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_sync(coro: Awaitable[T]) -> T:
    """Run an async coroutine from sync context safely.

    Args:
        coro: The coroutine to run

    Returns:
        The result of the coroutine

    Raises:
        RuntimeError: If called from within a running event loop
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop - safe to use asyncio.run()
        return asyncio.run(coro)  # type: ignore[arg-type]

    if inspect.iscoroutine(coro):
        coro.close()
    raise RuntimeError("Cannot use run_sync() from within an async context. Use 'await' instead.")


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it unchanged.

    Lets handlers and routers be written either as plain functions or as
    coroutine functions.
    """
    if inspect.isawaitable(value):
        return await value
    return value


__all__ = ["run_sync", "maybe_await"]
