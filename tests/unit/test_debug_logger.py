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

"""Tests for logging configuration and GraphDebugLogger."""

import logging

import pytest

from relaygraph.core.debug_logger import (
    TRACE,
    GraphDebugLogger,
    configure_logging,
    configure_logging_levels,
)
from relaygraph.config.settings import RelayGraphSettings
from relaygraph.framework.graph import StateGraph


@pytest.fixture
def relaygraph_logger():
    logger = logging.getLogger("relaygraph")
    yield logger
    for handler in list(logger.handlers):
        if getattr(handler, "_relaygraph_handler", False):
            logger.removeHandler(handler)
            handler.close()


class TestLoggingConfiguration:
    def test_trace_level_registered(self):
        assert logging.getLevelName(TRACE) == "TRACE"
        assert hasattr(logging.getLogger("relaygraph"), "trace")

    @pytest.mark.parametrize(
        "level,expected",
        [("TRACE", TRACE), ("debug", logging.DEBUG), ("WARNING", logging.WARNING)],
    )
    def test_configure_logging_levels(self, relaygraph_logger, level, expected):
        configure_logging_levels(level)
        assert relaygraph_logger.level == expected
        assert logging.getLogger("asyncio").level == logging.WARNING

    def test_file_logging_keeps_info(self, relaygraph_logger):
        configure_logging_levels("ERROR", file_logging_enabled=True)
        assert relaygraph_logger.level == logging.INFO

    def test_configure_logging_replaces_own_handlers(self, relaygraph_logger, tmp_path):
        log_file = tmp_path / "relaygraph.log"

        configure_logging("DEBUG")
        configure_logging("INFO", log_file=str(log_file))

        owned = [h for h in relaygraph_logger.handlers if getattr(h, "_relaygraph_handler", False)]
        assert len(owned) == 2
        assert any(isinstance(h, logging.FileHandler) for h in owned)

        logging.getLogger("relaygraph.test").info("written to file")
        for handler in owned:
            handler.flush()
        assert "written to file" in log_file.read_text()


class TestGraphDebugLogger:
    @pytest.mark.asyncio
    async def test_counts_nodes_and_failures(self, counter_schema, caplog):
        def fails(state):
            raise RuntimeError("bad node")

        hook = GraphDebugLogger(max_preview=20)
        graph = StateGraph(counter_schema)
        graph.add_node("ok", lambda s: {"count": 1})
        graph.add_node("fails", fails)
        graph.set_entry_point("ok")
        graph.add_edge("ok", "fails")
        app = graph.compile(debug_hook=hook)

        with caplog.at_level(logging.DEBUG, logger="relaygraph.debug"):
            with pytest.raises(RuntimeError):
                await app.invoke(thread_id="t1")

        assert hook.stats.nodes_started == 2
        assert hook.stats.nodes_failed == 1
        assert hook.stats.per_node == {"ok": 1, "fails": 1}
        assert "-> ok" in caplog.text
        assert "x  fails" in caplog.text
        assert "nodes=2 | failed=1" in hook.stats.summary()

    @pytest.mark.asyncio
    async def test_disabled_hook_records_nothing(self):
        hook = GraphDebugLogger(enabled=False)
        await hook.before_node("a", {})
        await hook.after_node("a", {}, RuntimeError("x"))
        assert hook.stats.nodes_started == 0
        assert hook.stats.nodes_failed == 0

    @pytest.mark.asyncio
    async def test_preview_is_truncated(self, caplog):
        hook = GraphDebugLogger(max_preview=10)
        with caplog.at_level(logging.DEBUG, logger="relaygraph.debug"):
            await hook.after_node("a", {"text": "x" * 100})
        assert "..." in caplog.text

    def test_reset(self):
        hook = GraphDebugLogger()
        hook.stats.nodes_started = 3
        hook.reset()
        assert hook.stats.nodes_started == 0


def test_settings_apply_logging(relaygraph_logger, tmp_path):
    log_file = tmp_path / "from-settings.log"
    settings = RelayGraphSettings(log_level="WARNING", log_file=str(log_file))

    settings.apply_logging()

    owned = [h for h in relaygraph_logger.handlers if getattr(h, "_relaygraph_handler", False)]
    assert {type(h) for h in owned} == {logging.StreamHandler, logging.FileHandler}
    assert relaygraph_logger.level == logging.INFO
