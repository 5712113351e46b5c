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

"""Durable checkpointer implementations for StateGraph persistence.

Implementations:
    - SQLiteCheckpointer: One row per thread in a SQLite database file
    - JSONFileCheckpointer: One JSON file per thread

Both keep exactly one current checkpoint per thread (last write wins) and
can optionally retain superseded checkpoints for debugging. State,
interrupt payloads and resume values must be JSON-serializable; anything
else raises CheckpointError on save. Tuples come back as lists.

Example:
    from relaygraph.framework.checkpointer import SQLiteCheckpointer

    checkpointer = SQLiteCheckpointer("~/.relaygraph/checkpoints.db")
    app = graph.compile(checkpointer=checkpointer)
    result = await app.invoke({"text": "hi"}, thread_id="my-thread")

    # In a later process, the same thread picks up where it stopped
    result = await app.resume("my-thread", "yes")
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import sqlite3
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, List, Optional, TypeVar
from urllib.parse import quote

from relaygraph.framework.errors import CheckpointError
from relaygraph.framework.graph import WorkflowCheckpoint, check_thread_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def _dumps(value: Any, *, thread_id: str, what: str) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as e:
        raise CheckpointError(
            f"Checkpoint {what} for thread '{thread_id}' is not JSON-serializable: {e}",
            thread_id=thread_id,
        ) from e


def _loads(raw: str, *, thread_id: str, what: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as e:
        raise CheckpointError(
            f"Stored checkpoint {what} for thread '{thread_id}' is corrupt: {e}",
            thread_id=thread_id,
        ) from e


def _restore(data: Any, *, thread_id: str) -> WorkflowCheckpoint:
    try:
        return WorkflowCheckpoint.from_dict(data)
    except (KeyError, TypeError) as e:
        raise CheckpointError(
            f"Stored checkpoint for thread '{thread_id}' is malformed: {e!r}",
            thread_id=thread_id,
        ) from e


async def _in_executor(func: Callable[..., T], *args: Any) -> T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)


class SQLiteCheckpointer:
    """SQLite-based checkpointer for graph state persistence.

    Blocking sqlite3 calls run in the default executor. One connection is
    shared and every statement runs under a per-instance lock, so
    concurrent writers to the same thread never interleave.

    Attributes:
        db_path: Path to SQLite database file
        table_name: Name of the current-checkpoint table
        keep_history: Also append every checkpoint to ``<table_name>_history``

    Example:
        checkpointer = SQLiteCheckpointer("~/.relaygraph/checkpoints.db")
        await checkpointer.save("thread-123", checkpoint)
        latest = await checkpointer.load("thread-123")
    """

    def __init__(
        self,
        db_path: str = "~/.relaygraph/checkpoints.db",
        table_name: str = "checkpoints",
        keep_history: bool = False,
    ):
        """Initialize SQLite checkpointer.

        Args:
            db_path: Path to database file (created if missing), or ":memory:"
            table_name: Name for the checkpoints table
            keep_history: Retain superseded checkpoints for list()
        """
        if not _IDENTIFIER.fullmatch(table_name):
            raise ValueError(f"Invalid table name: {table_name!r}")
        self.db_path = db_path if db_path == ":memory:" else Path(os.path.expanduser(db_path))
        self.table_name = table_name
        self.history_table = f"{table_name}_history"
        self.keep_history = keep_history
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection. Caller holds the lock."""
        if self._conn is None:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._init_schema(self._conn)
        return self._conn

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        """Initialize database schema."""
        with conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table_name} (
                    thread_id TEXT PRIMARY KEY,
                    checkpoint_id TEXT NOT NULL,
                    node_id TEXT NOT NULL,
                    state TEXT NOT NULL,
                    timestamp REAL NOT NULL,
                    step INTEGER NOT NULL DEFAULT 0,
                    interrupted INTEGER NOT NULL DEFAULT 0,
                    interrupt_payload TEXT,
                    resume_values TEXT NOT NULL DEFAULT '[]',
                    metadata TEXT
                )
            """)
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.history_table} (
                    checkpoint_id TEXT PRIMARY KEY,
                    thread_id TEXT NOT NULL,
                    timestamp REAL NOT NULL,
                    data TEXT NOT NULL
                )
            """)
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{self.history_table}_thread_timestamp
                ON {self.history_table}(thread_id, timestamp DESC)
            """)
        logger.debug(f"Initialized checkpoint schema: {self.db_path}")

    async def save(self, thread_id: str, checkpoint: WorkflowCheckpoint) -> None:
        """Replace the thread's current checkpoint."""
        check_thread_id(thread_id, checkpoint)
        await _in_executor(self._save_sync, checkpoint)

    def _save_sync(self, checkpoint: WorkflowCheckpoint) -> None:
        tid = checkpoint.thread_id
        row = (
            tid,
            checkpoint.checkpoint_id,
            checkpoint.node_id,
            _dumps(checkpoint.state, thread_id=tid, what="state"),
            checkpoint.timestamp,
            checkpoint.step,
            int(checkpoint.interrupted),
            _dumps(checkpoint.interrupt_payload, thread_id=tid, what="interrupt payload"),
            _dumps(checkpoint.resume_values, thread_id=tid, what="resume values"),
            _dumps(checkpoint.metadata, thread_id=tid, what="metadata"),
        )
        with self._lock:
            conn = self._get_connection()
            with conn:
                conn.execute(
                    f"""
                    INSERT INTO {self.table_name}
                    (thread_id, checkpoint_id, node_id, state, timestamp, step,
                     interrupted, interrupt_payload, resume_values, metadata)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(thread_id) DO UPDATE SET
                        checkpoint_id = excluded.checkpoint_id,
                        node_id = excluded.node_id,
                        state = excluded.state,
                        timestamp = excluded.timestamp,
                        step = excluded.step,
                        interrupted = excluded.interrupted,
                        interrupt_payload = excluded.interrupt_payload,
                        resume_values = excluded.resume_values,
                        metadata = excluded.metadata
                    """,
                    row,
                )
                if self.keep_history:
                    conn.execute(
                        f"""
                        INSERT OR REPLACE INTO {self.history_table}
                        (checkpoint_id, thread_id, timestamp, data)
                        VALUES (?, ?, ?, ?)
                        """,
                        (
                            checkpoint.checkpoint_id,
                            tid,
                            checkpoint.timestamp,
                            json.dumps(checkpoint.to_dict()),
                        ),
                    )
        logger.debug(
            f"Saved checkpoint: {checkpoint.checkpoint_id} "
            f"(thread: {tid}, node: {checkpoint.node_id})"
        )

    async def load(self, thread_id: str) -> Optional[WorkflowCheckpoint]:
        """Load the current checkpoint for a thread."""
        return await _in_executor(self._load_sync, thread_id)

    def _load_sync(self, thread_id: str) -> Optional[WorkflowCheckpoint]:
        with self._lock:
            row = (
                self._get_connection()
                .execute(f"SELECT * FROM {self.table_name} WHERE thread_id = ?", (thread_id,))
                .fetchone()
            )
        if row is None:
            return None
        return WorkflowCheckpoint(
            checkpoint_id=row["checkpoint_id"],
            thread_id=row["thread_id"],
            node_id=row["node_id"],
            state=_loads(row["state"], thread_id=thread_id, what="state"),
            timestamp=row["timestamp"],
            step=row["step"],
            interrupted=bool(row["interrupted"]),
            interrupt_payload=_loads(row["interrupt_payload"], thread_id=thread_id, what="payload")
            if row["interrupt_payload"]
            else None,
            resume_values=_loads(row["resume_values"], thread_id=thread_id, what="resume values"),
            metadata=_loads(row["metadata"], thread_id=thread_id, what="metadata")
            if row["metadata"]
            else {},
        )

    async def list(self, thread_id: str) -> List[WorkflowCheckpoint]:
        """List checkpoints for a thread, newest first.

        Without history only the current checkpoint is returned.
        """
        if not self.keep_history:
            current = await self.load(thread_id)
            return [current] if current is not None else []
        return await _in_executor(self._list_sync, thread_id)

    def _list_sync(self, thread_id: str) -> List[WorkflowCheckpoint]:
        with self._lock:
            rows = (
                self._get_connection()
                .execute(
                    f"""
                    SELECT data FROM {self.history_table}
                    WHERE thread_id = ?
                    ORDER BY timestamp DESC, rowid DESC
                    """,
                    (thread_id,),
                )
                .fetchall()
            )
        return [
            _restore(_loads(row["data"], thread_id=thread_id, what="history"), thread_id=thread_id)
            for row in rows
        ]

    async def delete_thread(self, thread_id: str) -> int:
        """Delete all checkpoints for a thread.

        Returns:
            Number of checkpoints deleted
        """
        return await _in_executor(self._delete_thread_sync, thread_id)

    def _delete_thread_sync(self, thread_id: str) -> int:
        with self._lock:
            conn = self._get_connection()
            with conn:
                current = conn.execute(
                    f"DELETE FROM {self.table_name} WHERE thread_id = ?", (thread_id,)
                ).rowcount
                history = conn.execute(
                    f"DELETE FROM {self.history_table} WHERE thread_id = ?", (thread_id,)
                ).rowcount
        return max(current, history)

    async def cleanup(self, max_age_hours: float = 24, max_per_thread: int = 10) -> int:
        """Prune history rows. Current checkpoints are never touched.

        Args:
            max_age_hours: Delete history older than this
            max_per_thread: Keep only this many history rows per thread

        Returns:
            Number of history rows deleted
        """
        return await _in_executor(self._cleanup_sync, max_age_hours, max_per_thread)

    def _cleanup_sync(self, max_age_hours: float, max_per_thread: int) -> int:
        cutoff = time.time() - (max_age_hours * 3600)
        with self._lock:
            conn = self._get_connection()
            with conn:
                deleted = conn.execute(
                    f"DELETE FROM {self.history_table} WHERE timestamp < ?", (cutoff,)
                ).rowcount
                threads = conn.execute(
                    f"SELECT DISTINCT thread_id FROM {self.history_table}"
                ).fetchall()
                for row in threads:
                    thread_id = row[0]
                    deleted += conn.execute(
                        f"""
                        DELETE FROM {self.history_table}
                        WHERE thread_id = ? AND checkpoint_id NOT IN (
                            SELECT checkpoint_id FROM {self.history_table}
                            WHERE thread_id = ?
                            ORDER BY timestamp DESC, rowid DESC
                            LIMIT ?
                        )
                        """,
                        (thread_id, thread_id, max_per_thread),
                    ).rowcount
        logger.info(f"Cleaned up {deleted} checkpoints")
        return deleted

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None


class JSONFileCheckpointer:
    """JSON file-based checkpointer.

    Stores each thread's current checkpoint in ``<base_dir>/<thread>.json``,
    written atomically through a temporary file and os.replace(). With
    ``keep_history`` every checkpoint is also appended to
    ``<thread>.history.jsonl``.

    Attributes:
        base_dir: Directory to store checkpoint files
    """

    def __init__(self, base_dir: str = "~/.relaygraph/checkpoints", keep_history: bool = False):
        self.base_dir = Path(os.path.expanduser(base_dir))
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.keep_history = keep_history
        self._lock = threading.Lock()

    def _stem(self, thread_id: str) -> str:
        return quote(thread_id, safe="")

    def _current_path(self, thread_id: str) -> Path:
        return self.base_dir / f"{self._stem(thread_id)}.json"

    def _history_path(self, thread_id: str) -> Path:
        return self.base_dir / f"{self._stem(thread_id)}.history.jsonl"

    async def save(self, thread_id: str, checkpoint: WorkflowCheckpoint) -> None:
        """Replace the thread's checkpoint file."""
        check_thread_id(thread_id, checkpoint)
        data = _dumps(checkpoint.to_dict(), thread_id=thread_id, what="data")
        await _in_executor(self._save_sync, thread_id, data)
        logger.debug(f"Saved checkpoint to: {self._current_path(thread_id)}")

    def _save_sync(self, thread_id: str, data: str) -> None:
        target = self._current_path(thread_id)
        with self._lock:
            fd, tmp_name = tempfile.mkstemp(dir=self.base_dir, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(data)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
            if self.keep_history:
                with open(self._history_path(thread_id), "a", encoding="utf-8") as f:
                    f.write(data + "\n")

    async def load(self, thread_id: str) -> Optional[WorkflowCheckpoint]:
        """Load current checkpoint for thread."""
        return await _in_executor(self._load_sync, thread_id)

    def _load_sync(self, thread_id: str) -> Optional[WorkflowCheckpoint]:
        path = self._current_path(thread_id)
        with self._lock:
            if not path.exists():
                return None
            raw = path.read_text(encoding="utf-8")
        return _restore(_loads(raw, thread_id=thread_id, what="file"), thread_id=thread_id)

    async def list(self, thread_id: str) -> List[WorkflowCheckpoint]:
        """List checkpoints for thread, newest first."""
        if not self.keep_history:
            current = await self.load(thread_id)
            return [current] if current is not None else []
        return await _in_executor(self._list_sync, thread_id)

    def _list_sync(self, thread_id: str) -> List[WorkflowCheckpoint]:
        path = self._history_path(thread_id)
        with self._lock:
            if not path.exists():
                return []
            with open(path, encoding="utf-8") as f:
                lines = [line for line in f if line.strip()]
        return [
            _restore(_loads(line, thread_id=thread_id, what="history"), thread_id=thread_id)
            for line in reversed(lines)
        ]

    async def delete_thread(self, thread_id: str) -> int:
        """Delete a thread's files. Returns checkpoints removed."""
        return await _in_executor(self._delete_thread_sync, thread_id)

    def _delete_thread_sync(self, thread_id: str) -> int:
        current_path = self._current_path(thread_id)
        history_path = self._history_path(thread_id)
        with self._lock:
            current = 1 if current_path.exists() else 0
            history = 0
            if history_path.exists():
                with open(history_path, encoding="utf-8") as f:
                    history = sum(1 for line in f if line.strip())
                history_path.unlink()
            current_path.unlink(missing_ok=True)
        return max(current, history)


__all__ = [
    "SQLiteCheckpointer",
    "JSONFileCheckpointer",
]
