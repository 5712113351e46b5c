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

"""Tests for StateGraph construction and compile-time validation."""

import logging
from typing import Literal

import pytest

from relaygraph.framework.errors import (
    DuplicateNodeError,
    GraphBuildError,
    InvalidGraphError,
    MissingEntryPointError,
    NoTerminalPathError,
    UnknownNodeError,
    UnmappedRouteError,
    UnreachableNodeError,
)
from relaygraph.framework.graph import (
    END,
    START,
    CompiledGraph,
    EdgeType,
    MemoryCheckpointer,
    StateGraph,
    create_graph,
)


def noop(state):
    return {}


def route_team(state) -> Literal["technical", "general"]:
    return "technical"


class KeyedRouter:
    keys = ("left", "right")

    def route(self, state):
        return "left"


class EchoHandler:
    def run(self, state):
        return {"count": state["count"]}


@pytest.fixture
def graph(counter_schema):
    return StateGraph(counter_schema)


class TestAddNode:
    def test_returns_self_for_chaining(self, graph):
        assert graph.add_node("a", noop).add_node("b", noop) is graph

    def test_duplicate_name(self, graph):
        graph.add_node("a", noop)
        with pytest.raises(DuplicateNodeError) as exc_info:
            graph.add_node("a", noop)
        assert exc_info.value.node_id == "a"
        assert isinstance(exc_info.value, GraphBuildError)

    @pytest.mark.parametrize("name", [END, START, ""])
    def test_reserved_or_empty_name(self, graph, name):
        with pytest.raises(ValueError):
            graph.add_node(name, noop)

    def test_handler_object_accepted(self, graph):
        graph.add_node("echo", EchoHandler())
        graph.set_entry_point("echo")
        assert graph.compile().nodes == ("echo",)

    def test_non_callable_handler(self, graph):
        with pytest.raises(TypeError, match="Handler must be callable"):
            graph.add_node("a", 42)


class TestAddEdge:
    def test_unknown_source(self, graph):
        with pytest.raises(UnknownNodeError) as exc_info:
            graph.add_edge("missing", "a")
        assert exc_info.value.node_ids == ["missing"]

    def test_forward_reference_allowed_until_compile(self, graph):
        graph.add_node("a", noop)
        graph.add_edge("a", "b")
        graph.add_node("b", noop)
        graph.set_entry_point("a")
        assert isinstance(graph.compile(), CompiledGraph)

    def test_start_edge_sets_entry_point(self, graph):
        graph.add_node("a", noop)
        graph.add_edge(START, "a")
        assert graph.compile().entry_point == "a"

    def test_start_is_not_a_target(self, graph):
        graph.add_node("a", noop)
        with pytest.raises(ValueError, match="START"):
            graph.add_edge("a", START)

    def test_conditional_edge_requires_branches(self, graph):
        graph.add_node("a", noop)
        with pytest.raises(ValueError, match="at least one branch"):
            graph.add_conditional_edge("a", lambda s: "x", {})

    def test_conditional_edge_branch_list_maps_to_itself(self, graph):
        graph.add_node("a", noop).add_node("b", noop).add_node("c", noop)
        graph.add_conditional_edges("a", lambda s: "b", ["b", "c"])
        graph.set_entry_point("a")
        schema = graph.compile().get_graph_schema()
        assert schema["edges"]["a"] == [
            {"target": {"b": "b", "c": "c"}, "type": EdgeType.CONDITIONAL.value}
        ]

    def test_conditional_edge_unknown_source(self, graph):
        with pytest.raises(UnknownNodeError):
            graph.add_conditional_edge("nope", lambda s: "x", {"x": END})


class TestCompileValidation:
    def test_missing_entry_point(self, graph):
        graph.add_node("a", noop)
        with pytest.raises(MissingEntryPointError):
            graph.compile()

    def test_unknown_entry_point(self, graph):
        graph.add_node("a", noop)
        graph.set_entry_point("ghost")
        with pytest.raises(UnknownNodeError) as exc_info:
            graph.compile()
        assert exc_info.value.node_ids == ["ghost"]

    def test_unknown_targets_are_all_listed(self, graph):
        graph.add_node("a", noop).add_node("b", noop)
        graph.set_entry_point("a")
        graph.add_edge("a", "x")
        graph.add_conditional_edge("b", lambda s: "k", {"k": "y", "done": END})
        with pytest.raises(UnknownNodeError) as exc_info:
            graph.compile()
        assert exc_info.value.node_ids == ["x", "y"]

    def test_two_unconditional_edges(self, graph):
        graph.add_node("a", noop).add_node("b", noop).add_node("c", noop)
        graph.set_entry_point("a")
        graph.add_edge("a", "b").add_edge("a", "c")
        with pytest.raises(InvalidGraphError):
            graph.compile()

    def test_mixed_edge_kinds_warn(self, graph, caplog):
        graph.add_node("a", noop).add_node("b", noop)
        graph.set_entry_point("a")
        graph.add_edge("a", "b")
        graph.add_conditional_edge("a", lambda s: "end", {"end": END})
        with caplog.at_level(logging.WARNING, logger="relaygraph.framework.graph"):
            graph.compile()
        assert "unconditional edge always wins" in caplog.text

    def test_literal_router_missing_key(self, graph):
        graph.add_node("classify", noop).add_node("eng", noop)
        graph.set_entry_point("classify")
        graph.add_conditional_edge("classify", route_team, {"technical": "eng"})
        graph.set_finish_point("eng")
        with pytest.raises(UnmappedRouteError) as exc_info:
            graph.compile()
        assert exc_info.value.key == "general"
        assert exc_info.value.source == "classify"

    def test_keys_attribute_router_missing_key(self, graph):
        graph.add_node("a", noop).add_node("l", noop)
        graph.set_entry_point("a")
        graph.add_conditional_edge("a", KeyedRouter(), {"left": "l"})
        with pytest.raises(UnmappedRouteError) as exc_info:
            graph.compile()
        assert exc_info.value.key == "right"

    def test_undeclared_router_keys_pass(self, graph):
        graph.add_node("a", noop).add_node("b", noop)
        graph.set_entry_point("a")
        graph.add_conditional_edge("a", lambda s: "b", {"b": "b", "stop": END})
        graph.compile()

    def test_unreachable_nodes_listed(self, graph):
        graph.add_node("a", noop).add_node("orphan", noop).add_node("island", noop)
        graph.set_entry_point("a")
        graph.set_finish_point("a")
        graph.add_edge("orphan", "island")
        with pytest.raises(UnreachableNodeError) as exc_info:
            graph.compile()
        assert exc_info.value.node_ids == ["island", "orphan"]
        assert exc_info.value.entry_point == "a"

    def test_no_terminal_path(self, graph):
        graph.add_node("a", noop).add_node("b", noop)
        graph.set_entry_point("a")
        graph.add_edge("a", "b").add_edge("b", "a")
        with pytest.raises(NoTerminalPathError):
            graph.compile()

    def test_conditional_end_branch_is_terminal(self, graph):
        graph.add_node("a", noop).add_node("b", noop)
        graph.set_entry_point("a")
        graph.add_edge("a", "b")
        graph.add_conditional_edge("b", lambda s: "again", {"again": "a", "done": END})
        graph.compile()

    def test_node_without_edges_is_terminal(self, graph):
        graph.add_node("only", noop)
        graph.set_entry_point("only")
        graph.compile()

    def test_errors_serialize(self, graph):
        with pytest.raises(MissingEntryPointError) as exc_info:
            graph.compile()
        data = exc_info.value.to_dict()
        assert data["type"] == "MissingEntryPointError"
        assert data["category"] == "graph_build"
        assert data["recovery_hint"]


class TestCompiledGraph:
    def test_compiled_graph_is_isolated_from_builder(self, graph):
        graph.add_node("a", noop)
        graph.set_entry_point("a")
        compiled = graph.compile()
        graph.add_node("b", noop)
        assert compiled.nodes == ("a",)

    def test_registries_are_read_only(self, graph):
        graph.add_node("a", noop)
        graph.set_entry_point("a")
        compiled = graph.compile()
        with pytest.raises(TypeError):
            compiled._nodes["b"] = None  # type: ignore[index]

    def test_checkpointer_and_step_cap_overrides(self, graph):
        graph.add_node("a", noop)
        graph.set_entry_point("a")
        saver = MemoryCheckpointer()
        compiled = graph.compile(checkpointer=saver, max_steps=7)
        assert compiled.checkpointer is saver
        assert compiled.config.max_steps == 7

    def test_default_checkpointer_is_private_memory(self, graph):
        graph.add_node("a", noop)
        graph.set_entry_point("a")
        assert isinstance(graph.compile().checkpointer, MemoryCheckpointer)
        assert graph.compile().checkpointer is not graph.compile().checkpointer

    def test_graph_schema(self, graph):
        graph.add_node("a", noop).add_node("b", noop)
        graph.add_edge(START, "a")
        graph.add_edge("a", "b")
        graph.set_finish_point("b")
        schema = graph.compile().get_graph_schema()
        assert schema == {
            "nodes": ["a", "b"],
            "edges": {
                "a": [{"target": "b", "type": "normal"}],
                "b": [{"target": END, "type": "normal"}],
            },
            "entry_point": "a",
            "state_fields": ["count", "log"],
        }

    def test_create_graph(self, counter_schema):
        assert isinstance(create_graph(counter_schema), StateGraph)
