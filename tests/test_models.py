"""Tests for the story data models."""

import copy

import pytest
from pydantic import ValidationError

from storyedit.models import StoryDraft
from tests.conftest import make_scene


class TestStoryDraft:
    """Tests for StoryDraft validation and serialization."""

    def test_accepts_camel_case_wire_format(self, story_data):
        """Should read the camelCase wire format."""
        story = StoryDraft.model_validate(story_data)
        assert story.project_metadata.aspect_ratio == "9:16"
        assert story.scenes[0].camera_angle == "Medium shot"
        assert story.scenes[0].settings.is_looping is False

    def test_round_trips_to_wire(self, story_data):
        """Should serialize back to the same camelCase shape."""
        story = StoryDraft.model_validate(story_data)
        assert story.to_wire() == story_data

    def test_rejects_empty_scene_list(self, story_data):
        """A story must have at least one scene."""
        story_data["scenes"] = []
        with pytest.raises(ValidationError):
            StoryDraft.model_validate(story_data)

    def test_rejects_duplicate_scene_ids(self, story_data):
        """Scene ids must be unique."""
        story_data["scenes"][1]["id"] = "scene-1"
        with pytest.raises(ValidationError, match="duplicate scene id"):
            StoryDraft.model_validate(story_data)

    def test_rejects_scene_missing_field(self, story_data):
        """Every scene needs all structural fields."""
        del story_data["scenes"][2]["cameraAngle"]
        with pytest.raises(ValidationError):
            StoryDraft.model_validate(story_data)

    @pytest.mark.parametrize(
        "path",
        [
            ("scenes", 0, "generated"),
            ("scenes", 1, "settings", "isLooping"),
            ("projectMetadata", "description"),
        ],
    )
    def test_flags_and_description_have_no_default(self, story_data, path):
        """generated, isLooping and description must be given explicitly."""
        target = story_data
        for key in path[:-1]:
            target = target[key]
        del target[path[-1]]
        with pytest.raises(ValidationError, match=path[-1]):
            StoryDraft.model_validate(story_data)

    def test_rejects_bad_scene_id_format(self, story_data):
        """Scene ids follow the scene-N pattern."""
        story_data["scenes"][0]["id"] = "opening"
        with pytest.raises(ValidationError):
            StoryDraft.model_validate(story_data)

    def test_allows_empty_voiceover(self, story_data):
        """Voiceover may be an empty string."""
        story_data["scenes"][0]["voiceover"] = ""
        story = StoryDraft.model_validate(story_data)
        assert story.scenes[0].voiceover == ""

    def test_rejects_unknown_project_type(self, story_data):
        story_data["projectMetadata"]["type"] = "documentary"
        with pytest.raises(ValidationError):
            StoryDraft.model_validate(story_data)

    def test_to_json_keeps_non_ascii(self, story):
        assert "Señora" in story.to_json()


class TestRefinementHistory:
    """Tests for appending refinement records."""

    def test_appends_record_without_touching_original(self, story):
        refined = story.with_refinement("remove the last scene", "PROMPT")

        assert story.generation_metadata.refinements == []
        assert len(refined.generation_metadata.refinements) == 1
        record = refined.generation_metadata.refinements[0]
        assert record.feedback == "remove the last scene"
        assert record.ai_prompt == "PROMPT"
        assert refined.generation_metadata.mode == "quick"

    def test_extends_existing_history(self, story):
        once = story.with_refinement("first")
        twice = once.with_refinement("second")
        assert [r.feedback for r in twice.generation_metadata.refinements] == ["first", "second"]

    def test_story_without_history_is_unchanged(self, story_data):
        story_data.pop("generationMetadata")
        story = StoryDraft.model_validate(story_data)
        assert story.with_refinement("anything").generation_metadata is None


class TestStoryFiles:
    """Tests for JSON/YAML persistence."""

    @pytest.mark.parametrize("suffix", [".json", ".yaml"])
    def test_save_and_load(self, tmp_path, story, suffix):
        path = tmp_path / f"story{suffix}"
        story.to_file(path)
        assert StoryDraft.from_file(path) == story

    def test_scene_lookup(self, story_data):
        story_data["scenes"].append(make_scene(9, title="Epilogue"))
        story = StoryDraft.model_validate(copy.deepcopy(story_data))
        assert story.scene("scene-9").title == "Epilogue"
        assert story.scene("scene-99") is None
        assert story.scene_ids == ["scene-1", "scene-2", "scene-3", "scene-4", "scene-9"]
