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

"""Checkpoint backend selection.

Maps the ``checkpoint_backend`` setting onto a checkpointer instance.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from relaygraph.config.settings import RelayGraphSettings
    from relaygraph.framework.graph import CheckpointerProtocol

logger = logging.getLogger(__name__)


class CheckpointBackend(Enum):
    """Available checkpoint backend types.

    Attributes:
        MEMORY: In-memory checkpointing (ephemeral, lost on restart)
        SQLITE: SQLite database for persistent checkpointing
        JSON: JSON file-based checkpointing
    """

    MEMORY = "memory"
    SQLITE = "sqlite"
    JSON = "json"

    @classmethod
    def is_persistent(cls, backend: "CheckpointBackend") -> bool:
        """True if the backend keeps data across process restarts."""
        return backend is not cls.MEMORY


def create_checkpointer(
    settings: Optional["RelayGraphSettings"] = None,
    *,
    backend: Optional[Union[str, CheckpointBackend]] = None,
) -> "CheckpointerProtocol":
    """Instantiate the checkpointer named by settings.

    Args:
        settings: Settings to read (process settings if None)
        backend: Override for ``settings.checkpoint_backend``

    Returns:
        A new checkpointer. For the json backend the checkpoint path is
        the directory holding the per-thread files.
    """
    from relaygraph.framework.checkpointer import JSONFileCheckpointer, SQLiteCheckpointer
    from relaygraph.framework.graph import MemoryCheckpointer

    if settings is None:
        from relaygraph.config.settings import load_settings

        settings = load_settings()

    if isinstance(backend, CheckpointBackend):
        chosen = backend
    else:
        chosen = CheckpointBackend((backend or settings.checkpoint_backend).lower())
    keep_history = settings.keep_checkpoint_history
    logger.debug(f"Creating {chosen.value} checkpointer (history={keep_history})")

    if chosen is CheckpointBackend.SQLITE:
        return SQLiteCheckpointer(
            settings.resolve_checkpoint_path(chosen.value), keep_history=keep_history
        )
    if chosen is CheckpointBackend.JSON:
        return JSONFileCheckpointer(
            settings.resolve_checkpoint_path(chosen.value), keep_history=keep_history
        )
    return MemoryCheckpointer(keep_history=keep_history)


__all__ = ["CheckpointBackend", "create_checkpointer"]
