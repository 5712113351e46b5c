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

"""Human-in-the-loop approval workflows, including resume after a restart.

Markers: integration
"""

from typing import Annotated, List, Literal, TypedDict

import pytest

from relaygraph import END, SQLiteCheckpointer, StateGraph, append, interrupt, request_approval
from relaygraph.framework.checkpointer import JSONFileCheckpointer


class PostState(TypedDict):
    topic: str
    draft: str
    approved: bool
    revisions: int
    feedback: Annotated[List[str], append]


def write_draft(state: PostState) -> dict:
    revision = state["revisions"] + 1
    return {"draft": f"{state['topic']} (v{revision})", "revisions": revision}


def human_review(state: PostState) -> dict:
    answer = interrupt({"question": "approve?", "draft": state["draft"]})
    if answer == "yes":
        return {"approved": True}
    return {"approved": False, "feedback": answer}


def after_review(state: PostState) -> Literal["publish", "revise"]:
    return "publish" if state["approved"] else "revise"


def publish(state: PostState) -> dict:
    return {"feedback": f"published {state['draft']}"}


def build_post_graph() -> StateGraph:
    graph = StateGraph(PostState)
    graph.add_node("write", write_draft)
    graph.add_node("review", human_review)
    graph.add_node("publish", publish)
    graph.set_entry_point("write")
    graph.add_edge("write", "review")
    graph.add_conditional_edge("review", after_review, {"publish": "publish", "revise": "write"})
    graph.set_finish_point("publish")
    return graph


@pytest.mark.integration
class TestApprovalWorkflow:
    @pytest.mark.asyncio
    async def test_approve_on_first_review(self):
        app = build_post_graph().compile()

        pending = await app.invoke({"topic": "release notes"}, thread_id="post-1")

        assert pending.interrupted is True
        assert pending.payload == {"question": "approve?", "draft": "release notes (v1)"}

        result = await app.resume("post-1", "yes")

        assert result.interrupted is False
        assert result.state["approved"] is True
        assert result.node_history == ["review", "publish"]

    @pytest.mark.asyncio
    async def test_revision_loop(self):
        app = build_post_graph().compile()
        await app.invoke({"topic": "roadmap"}, thread_id="post-2")

        second = await app.resume("post-2", "too vague")
        assert second.interrupted is True
        assert second.payload["draft"] == "roadmap (v2)"
        assert second.node_history == ["review", "write"]

        final = await app.resume("post-2", "yes")
        assert final.state["feedback"] == ["too vague", "published roadmap (v2)"]
        assert final.state["revisions"] == 2

    @pytest.mark.asyncio
    async def test_resume_after_restart_with_sqlite(self, tmp_path):
        db_path = str(tmp_path / "checkpoints.db")

        first_process = SQLiteCheckpointer(db_path)
        pending = await build_post_graph().compile(first_process).invoke(
            {"topic": "launch"}, thread_id="post-3"
        )
        assert pending.interrupted
        first_process.close()

        second_process = SQLiteCheckpointer(db_path)
        try:
            app = build_post_graph().compile(second_process)
            snapshot = await app.get_state("post-3")
            assert snapshot.interrupted is True
            assert snapshot.next_node == "review"

            result = await app.resume("post-3", "yes")
            assert result.state["approved"] is True
            assert result.state["draft"] == "launch (v1)"
        finally:
            second_process.close()

    @pytest.mark.asyncio
    async def test_resume_after_restart_with_json_files(self, tmp_path):
        pending = await build_post_graph().compile(JSONFileCheckpointer(str(tmp_path))).invoke(
            {"topic": "faq"}, thread_id="post-4"
        )
        assert pending.interrupted

        app = build_post_graph().compile(JSONFileCheckpointer(str(tmp_path)))
        result = await app.resume("post-4", "yes")

        assert result.state["feedback"] == ["published faq (v1)"]

    @pytest.mark.asyncio
    async def test_request_approval_workflow(self):
        def gate(state: PostState) -> dict:
            decision = request_approval("Ship it?", details={"draft": state["draft"]})
            return {"approved": decision.approved}

        graph = StateGraph(PostState)
        graph.add_node("write", write_draft)
        graph.add_node("gate", gate)
        graph.set_entry_point("write")
        graph.add_edge("write", "gate")
        graph.add_edge("gate", END)
        app = graph.compile()

        pending = await app.invoke({"topic": "blog"}, thread_id="post-5")
        assert pending.payload["type"] == "approval_request"
        assert pending.payload["details"] == {"draft": "blog (v1)"}

        result = await app.resume("post-5", {"decision": "reject"})
        assert result.state["approved"] is False
