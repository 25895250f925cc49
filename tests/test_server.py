"""Tests for the HTTP surface."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from storyedit import server
from storyedit.agents import FALLBACK_EXPLANATION, ReviewAgent, ScriptEditingAgent
from storyedit.errors import GenerationError
from storyedit.pipeline import EditPipeline
from storyedit.transport import FrameType, decode_stream, decode_story_header
from tests.conftest import FakeGateway, as_response


def make_client(edit_gateway: FakeGateway, review_gateway: FakeGateway) -> TestClient:
    pipeline = EditPipeline(
        editor=ScriptEditingAgent(client=edit_gateway),
        reviewer=ReviewAgent(client=review_gateway),
    )
    return TestClient(server.create_app(pipeline))


def chat_body(story_data: dict, text: str = "remove the last scene") -> dict:
    return {
        "messages": [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "What should I change?"},
            {"role": "user", "content": text},
        ],
        "storyDraft": story_data,
    }


class TestChatEndpoint:
    """Tests for POST /api/chat."""

    def test_streams_frames_with_original_story_header(self, story, story_data, edited_data):
        client = make_client(FakeGateway(as_response(edited_data)), FakeGateway("Removed: scene 4."))

        response = client.post("/api/chat", json=chat_body(story_data))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["x-story-draft-encoding"] == "base64"
        assert decode_story_header(response.headers) == story

        frames = decode_stream(response.text)
        assert [f.type for f in frames] == [
            FrameType.TOOL_CALL, FrameType.TOOL_RESULT, FrameType.TEXT, FrameType.FINISH,
        ]
        result = frames[1].payload["result"]
        assert result["scenesRemoved"] == 1
        assert [s["id"] for s in result["updatedStory"]["scenes"]] == ["scene-1", "scene-2", "scene-3"]
        assert frames[2].payload == "Removed: scene 4."

    def test_uses_latest_user_message(self, story_data, edited_data):
        edit = FakeGateway(as_response(edited_data))
        client = make_client(edit, FakeGateway("ok"))

        client.post("/api/chat", json=chat_body(story_data, "swap scene 2 and 3"))

        assert '"swap scene 2 and 3"' in edit.requests[0].prompt

    def test_accepts_text_parts(self, story_data, edited_data):
        edit = FakeGateway(as_response(edited_data))
        client = make_client(edit, FakeGateway("ok"))
        body = chat_body(story_data)
        body["messages"][-1]["content"] = [{"type": "text", "text": "remove the last scene"}]

        assert client.post("/api/chat", json=body).status_code == 200

    def test_missing_story_is_400(self):
        edit = FakeGateway()
        client = make_client(edit, FakeGateway())

        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "x"}]})

        assert response.status_code == 400
        assert response.text == "Invalid or missing story draft"
        assert edit.requests == []

    def test_last_message_not_from_user_is_400(self, story_data):
        client = make_client(FakeGateway(), FakeGateway())
        body = chat_body(story_data)
        body["messages"].append({"role": "assistant", "content": "done"})

        assert client.post("/api/chat", json=body).status_code == 400

    def test_invalid_story_is_400(self, story_data):
        story_data["scenes"] = []
        client = make_client(FakeGateway(), FakeGateway())

        response = client.post("/api/chat", json=chat_body(story_data))

        assert response.status_code == 400
        assert "scenes" in response.text

    def test_generation_failure_emits_no_frames(self, story_data):
        client = make_client(FakeGateway(GenerationError("service down")), FakeGateway())

        response = client.post("/api/chat", json=chat_body(story_data))

        assert response.status_code == 502
        assert response.text == "service down"
        assert "x-story-draft" not in response.headers
        assert decode_stream(response.text) == []

    def test_malformed_model_output_is_error(self, story_data):
        client = make_client(FakeGateway('{"projectMetadata": '), FakeGateway())

        response = client.post("/api/chat", json=chat_body(story_data))

        assert response.status_code == 502
        assert "malformed JSON" in response.text

    def test_review_failure_still_succeeds(self, story_data, edited_data):
        client = make_client(FakeGateway(as_response(edited_data)), FakeGateway(GenerationError("down")))

        response = client.post("/api/chat", json=chat_body(story_data))

        assert response.status_code == 200
        assert decode_stream(response.text)[2].payload == FALLBACK_EXPLANATION


class TestRefineChatEndpoint:
    """Tests for POST /api/story/refine-chat."""

    def test_header_carries_updated_story(self, story_data, edited_data):
        client = make_client(FakeGateway(as_response(edited_data)), FakeGateway("Trimmed the ending."))

        response = client.post("/api/story/refine-chat", json=chat_body(story_data))

        assert response.status_code == 200
        updated = decode_story_header(response.headers)
        assert updated.scene_ids == ["scene-1", "scene-2", "scene-3"]
        assert len(updated.generation_metadata.refinements) == 1
        frames = decode_stream(response.text)
        assert frames[0].type == FrameType.TEXT
        assert frames[0].payload == "Trimmed the ending."


class TestEditEndpoint:
    """Tests for POST /api/story/edit."""

    def test_single_shot_edit(self, story_data, edited_data):
        client = make_client(FakeGateway(as_response(edited_data)), FakeGateway("Done."))

        response = client.post(
            "/api/story/edit",
            json={"storyDraft": story_data, "editRequest": "remove the last scene"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["response"] == "Done."
        assert body["changesSummary"]["scenesRemoved"] == 1
        assert len(body["updatedStory"]["scenes"]) == 3

    @pytest.mark.parametrize("edit_request", ["", "   ", None, 5])
    def test_bad_edit_request_is_400(self, story_data, edit_request):
        edit = FakeGateway()
        client = make_client(edit, FakeGateway())

        response = client.post(
            "/api/story/edit", json={"storyDraft": story_data, "editRequest": edit_request}
        )

        assert response.status_code == 400
        assert "error" in response.json()
        assert edit.requests == []

    def test_invalid_json_body_is_400(self):
        client = make_client(FakeGateway(), FakeGateway())
        response = client.post(
            "/api/story/edit", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400

    def test_timeout_is_504(self, story_data):
        error = GenerationError("The editing call timed out after 120s", timed_out=True)
        client = make_client(FakeGateway(error), FakeGateway())

        response = client.post(
            "/api/story/edit", json={"storyDraft": story_data, "editRequest": "x"}
        )

        assert response.status_code == 504
        assert "timed out" in response.json()["error"]


def test_health():
    client = TestClient(server.create_app(EditPipeline(
        editor=ScriptEditingAgent(client=FakeGateway()),
        reviewer=ReviewAgent(client=FakeGateway()),
    )))
    assert client.get("/health").json()["status"] == "ok"


class _DisconnectedRequest:
    async def is_disconnected(self) -> bool:
        return True


@pytest.mark.asyncio
async def test_disconnect_cancels_pipeline(monkeypatch, story, edited_data):
    monkeypatch.setattr(server, "DISCONNECT_POLL_INTERVAL", 0.01)
    edit = FakeGateway(as_response(edited_data), delay=5.0)
    pipeline = EditPipeline(
        editor=ScriptEditingAgent(client=edit),
        reviewer=ReviewAgent(client=FakeGateway("ok")),
    )

    with pytest.raises(server.ClientDisconnected):
        await server._run_while_connected(_DisconnectedRequest(), pipeline.run(story, "x"))
    await asyncio.sleep(0.05)

    assert edit.cancelled
