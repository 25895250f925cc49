"""Pytest fixtures for story editor tests."""

import asyncio
import copy
import json
from typing import Any, List, Optional

import pytest

from storyedit.models import StoryDraft
from storyedit.services.anthropic import CompletionRequest


def make_scene(n: int, **overrides: Any) -> dict:
    scene = {
        "id": f"scene-{n}",
        "title": f"Scene {n} Title",
        "duration": 8,
        "prompt": f"Sofia walks through the market, shot {n}",
        "cameraAngle": "Medium shot",
        "voiceover": f'Sofia says, "This is moment {n}." (no subtitles)',
        "generated": False,
        "settings": {"model": "Veo 3.1", "resolution": "720p", "isLooping": False},
    }
    scene.update(overrides)
    return scene


def make_story_data(scene_count: int = 4) -> dict:
    return {
        "projectMetadata": {
            "id": "proj-42",
            "title": "Sofia's Last Summer",
            "description": "Sofia says goodbye to the seaside town of Señora Luz.",
            "type": "short",
            "character": "Sofia, a 17-year-old photographer",
            "aspectRatio": "9:16",
            "defaultModel": "Veo 3.1",
            "defaultResolution": "720p",
        },
        "scenes": [make_scene(n) for n in range(1, scene_count + 1)],
        "generationMetadata": {
            "mode": "quick",
            "timestamp": "2025-01-01T00:00:00+00:00",
            "aiPrompt": "Generate a 4-scene story",
            "refinements": [],
        },
    }


class FakeGateway:
    """Completion gateway that replays canned responses and records requests."""

    def __init__(self, *responses: Any, delay: float = 0.0) -> None:
        self.responses: List[Any] = list(responses)
        self.requests: List[CompletionRequest] = []
        self.delay = delay
        self.cancelled = False

    async def complete(self, request: CompletionRequest) -> str:
        self.requests.append(request)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def story_data() -> dict:
    return make_story_data()


@pytest.fixture
def story(story_data) -> StoryDraft:
    return StoryDraft.model_validate(story_data)


@pytest.fixture
def edited_data(story_data) -> dict:
    """The story with the last scene removed, as the editing model returns it."""
    data = copy.deepcopy(story_data)
    data.pop("generationMetadata")
    data["scenes"] = data["scenes"][:3]
    return data


def as_response(data: dict) -> str:
    return json.dumps(data, ensure_ascii=False)
