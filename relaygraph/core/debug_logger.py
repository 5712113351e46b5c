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

"""Logging setup and a graph debug hook.

Logging Levels (relaygraph convention):
- TRACE (5): Per-merge and per-checkpoint detail
- DEBUG (10): Node execution and routing decisions
- INFO (20): Interrupts, resumes and completed runs
- WARNING (30): Step limit hits, resume without a pending interrupt
- ERROR (40): Handler failures
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

# Custom TRACE level for very verbose logging (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def trace(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
    """Log at TRACE level (5)."""
    if self.isEnabledFor(TRACE):
        self._log(TRACE, message, args, **kwargs)


logging.Logger.trace = trace  # type: ignore[attr-defined]

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# Third-party loggers to silence
NOISY_LOGGERS = [
    "asyncio",
]


def _resolve_level(log_level: str) -> int:
    level_upper = log_level.upper()
    if level_upper == "TRACE":
        return TRACE
    return getattr(logging, level_upper, logging.INFO)


def configure_logging_levels(log_level: str = "INFO", file_logging_enabled: bool = False) -> None:
    """Configure logging levels, silencing noisy third-party loggers.

    Args:
        log_level: Desired level for relaygraph loggers.
            Supported: TRACE (5), DEBUG, INFO, WARNING, ERROR, CRITICAL
        file_logging_enabled: If True, keeps the relaygraph logger at INFO
            minimum so a file handler can capture INFO+ messages.
    """
    level = _resolve_level(log_level)
    effective_level = min(level, logging.INFO) if file_logging_enabled else level
    logging.getLogger("relaygraph").setLevel(effective_level)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Attach handlers to the relaygraph logger and set its level.

    Safe to call more than once; handlers installed by a previous call are
    replaced rather than duplicated.
    """
    root = logging.getLogger("relaygraph")
    for handler in list(root.handlers):
        if getattr(handler, "_relaygraph_handler", False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(DEFAULT_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console.setLevel(_resolve_level(log_level))
    console._relaygraph_handler = True  # type: ignore[attr-defined]
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.INFO)
        file_handler._relaygraph_handler = True  # type: ignore[attr-defined]
        root.addHandler(file_handler)

    configure_logging_levels(log_level, file_logging_enabled=bool(log_file))


@dataclass
class RunStats:
    """Counters collected by GraphDebugLogger."""

    nodes_started: int = 0
    nodes_failed: int = 0
    per_node: Dict[str, int] = field(default_factory=dict)
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time

    def summary(self) -> str:
        """One-line summary of stats."""
        return (
            f"nodes={self.nodes_started} | failed={self.nodes_failed} | "
            f"{self.elapsed_seconds:.1f}s"
        )


class GraphDebugLogger:
    """Debug hook that writes one line per node transition.

    Pass as ``debug_hook`` to StateGraph.compile() (or via ObservabilityConfig).
    """

    def __init__(
        self,
        name: str = "relaygraph.debug",
        max_preview: int = 80,
        enabled: bool = True,
    ):
        self.logger = logging.getLogger(name)
        self.max_preview = max_preview
        self.enabled = enabled
        self.stats = RunStats()

    def reset(self) -> None:
        self.stats = RunStats()

    def _truncate(self, text: str) -> str:
        text = text.replace("\n", " ").strip()
        if len(text) <= self.max_preview:
            return text
        return f"{text[: self.max_preview]}..."

    async def before_node(self, node_id: str, state: Dict[str, Any]) -> None:
        if not self.enabled:
            return
        self.stats.nodes_started += 1
        self.stats.per_node[node_id] = self.stats.per_node.get(node_id, 0) + 1
        self.logger.debug(f"-> {node_id} keys={sorted(state)}")

    async def after_node(
        self,
        node_id: str,
        state: Dict[str, Any],
        error: Optional[BaseException] = None,
    ) -> None:
        if not self.enabled:
            return
        if error is not None:
            self.stats.nodes_failed += 1
            self.logger.error(f"x  {node_id}: {self._truncate(repr(error))}")
            return
        self.logger.debug(f"<- {node_id} {self._truncate(repr(state))}")


__all__ = [
    "TRACE",
    "configure_logging",
    "configure_logging_levels",
    "GraphDebugLogger",
    "RunStats",
]
