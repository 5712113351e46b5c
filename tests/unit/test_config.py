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

"""Tests for GraphConfig composition."""

import pytest

from relaygraph.config.settings import RelayGraphSettings
from relaygraph.framework.checkpointer import SQLiteCheckpointer
from relaygraph.framework.config import (
    DEFAULT_MAX_STEPS,
    CheckpointConfig,
    ExecutionConfig,
    GraphConfig,
    ObservabilityConfig,
)
from relaygraph.framework.graph import END, MemoryCheckpointer, StateGraph


class TestGraphConfig:
    def test_defaults(self):
        config = GraphConfig()
        assert config.max_steps == DEFAULT_MAX_STEPS
        assert config.execution.serialize_threads is True
        assert config.checkpointer is None
        assert config.debug_hook is None
        assert config.observability.graph_id == "graph"

    def test_max_steps_must_be_positive(self):
        with pytest.raises(ValueError, match="max_steps must be >= 1"):
            ExecutionConfig(max_steps=0)

    def test_with_overrides_keeps_unset_values(self):
        saver = MemoryCheckpointer()
        base = GraphConfig(
            execution=ExecutionConfig(max_steps=9, serialize_threads=False),
            checkpoint=CheckpointConfig(checkpointer=saver),
        )

        updated = base.with_overrides(max_steps=3, graph_id="support")

        assert updated.max_steps == 3
        assert updated.execution.serialize_threads is False
        assert updated.checkpointer is saver
        assert updated.observability == ObservabilityConfig(graph_id="support")
        assert base.max_steps == 9

    def test_from_settings(self, tmp_path):
        settings = RelayGraphSettings(
            max_steps=12,
            serialize_threads=False,
            checkpoint_backend="sqlite",
            checkpoint_path=str(tmp_path / "cp.db"),
        )

        config = GraphConfig.from_settings(settings)

        assert config.max_steps == 12
        assert config.execution.serialize_threads is False
        assert isinstance(config.checkpointer, SQLiteCheckpointer)
        assert config.to_dict() == {
            "max_steps": 12,
            "serialize_threads": False,
            "checkpointer": "SQLiteCheckpointer",
            "graph_id": "graph",
        }
        config.checkpointer.close()

    def test_from_settings_without_checkpointer(self):
        config = GraphConfig.from_settings(RelayGraphSettings(), with_checkpointer=False)
        assert config.checkpointer is None
        assert config.to_dict()["checkpointer"] is None

    @pytest.mark.asyncio
    async def test_compile_with_config(self, counter_schema):
        saver = MemoryCheckpointer()
        config = GraphConfig(
            checkpoint=CheckpointConfig(checkpointer=saver),
            observability=ObservabilityConfig(graph_id="counter"),
        )
        graph = StateGraph(counter_schema)
        graph.add_node("a", lambda s: {"count": 1})
        graph.set_entry_point("a")
        graph.add_edge("a", END)

        await graph.compile(config=config).invoke(thread_id="t1")

        checkpoint = await saver.load("t1")
        assert checkpoint.metadata == {"graph_id": "counter"}
