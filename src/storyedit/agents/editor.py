"""Script editing agent: applies a natural-language edit to a story draft."""

import json
import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from ..config import config
from ..errors import SerializationError, StructuralValidationError
from ..models import StoryDraft
from .base import BaseAgent, CompletionGateway

logger = logging.getLogger(__name__)

SCENE_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "title": {"type": "string"},
        "duration": {"type": "number"},
        "prompt": {"type": "string"},
        "cameraAngle": {"type": "string"},
        "voiceover": {"type": "string"},
        "generated": {"type": "boolean"},
        "settings": {
            "type": "object",
            "properties": {
                "model": {"type": "string"},
                "resolution": {"type": "string"},
                "isLooping": {"type": "boolean"},
            },
            "required": ["model", "resolution", "isLooping"],
        },
    },
    "required": ["id", "title", "duration", "prompt", "cameraAngle", "voiceover", "generated", "settings"],
}

STORY_DRAFT_SCHEMA = {
    "type": "object",
    "properties": {
        "projectMetadata": {
            "type": "object",
            "properties": {
                "id": {"type": "string"},
                "title": {"type": "string"},
                "description": {"type": "string"},
                "type": {"type": "string", "enum": ["movie", "short", "commercial"]},
                "character": {"type": "string"},
                "aspectRatio": {"type": "string", "enum": ["16:9", "9:16"]},
                "defaultModel": {"type": "string"},
                "defaultResolution": {"type": "string"},
            },
            "required": ["title", "description", "type", "aspectRatio", "defaultModel", "defaultResolution"],
        },
        "scenes": {"type": "array", "minItems": 1, "items": SCENE_SCHEMA},
    },
    "required": ["projectMetadata", "scenes"],
}

# Known defect: a voiceover value opened with a stray single quote and
# carrying unescaped dialogue quotes, e.g. "voiceover":"'Mia says, "Run!"'"
VOICEOVER_DEFECT = re.compile(r'"voiceover"\s*:\s*"\'(.*?)\'?"(?=\s*[,}\]])')
_UNESCAPED_QUOTE = re.compile(r'(?<!\\)"')


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json / ``` fence, if present."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def _fix_voiceover(match: re.Match) -> str:
    dialogue = _UNESCAPED_QUOTE.sub(r'\\"', match.group(1))
    return f'"voiceover":"{dialogue}"'


def repair_story_json(text: str) -> str:
    """Apply the bounded repair pass: strip fences, then fix voiceover quoting."""
    return VOICEOVER_DEFECT.sub(_fix_voiceover, strip_code_fences(text))


def load_story_payload(raw: str) -> dict:
    """Parse completion output, with exactly one repair attempt.

    Raises:
        StructuralValidationError: If neither the raw nor the repaired text parses
            to a JSON object.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as first_error:
        logger.warning(f"Initial JSON parse failed ({first_error}), attempting repair")
        try:
            data = json.loads(repair_story_json(raw))
        except json.JSONDecodeError as e:
            logger.error(f"Repaired JSON still invalid: {e}")
            raise StructuralValidationError(
                f"Editing model returned malformed JSON: {first_error}", raw=raw
            ) from e

    if not isinstance(data, dict):
        raise StructuralValidationError("Editing model did not return a JSON object", raw=raw)
    return data


def _summarize_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors()[:5]:
        location = ".".join(str(p) for p in item["loc"]) or "story"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


@dataclass
class EditInput:
    """Input data for the script editing agent."""

    story: StoryDraft
    instruction: str


@dataclass
class EditOutput:
    """A validated edit plus the prompt that produced it."""

    story: StoryDraft
    prompt: str


class ScriptEditingAgent(BaseAgent[EditInput, EditOutput]):
    """Agent that rewrites a story draft according to a user request.

    The whole story is sent with the request and a complete new story is
    expected back, constrained to the story schema and validated before it
    is returned. The input story is never modified.
    """

    def __init__(
        self,
        client: Optional[CompletionGateway] = None,
        model: Optional[str] = None,
        lock_duration: Optional[bool] = None,
    ) -> None:
        super().__init__(client=client, model=model, timeout=config.edit_timeout)
        self._lock_duration = config.lock_duration if lock_duration is None else lock_duration

    @property
    def name(self) -> str:
        """Return the agent's name."""
        return "ScriptEditingAgent"

    async def run(self, input_data: EditInput) -> EditOutput:
        """Apply the edit and return the validated new story.

        Raises:
            SerializationError: If the input story cannot be serialized.
            GenerationError: If the completion service fails or times out.
            StructuralValidationError: If the output is not a valid story.
        """
        prompt, raw = await self.generate(input_data)
        story = self.parse(raw, input_data.story)
        return EditOutput(story=story, prompt=prompt)

    async def generate(self, input_data: EditInput) -> tuple[str, str]:
        """Build the prompt and fetch the raw edited story text.

        Returns:
            The prompt sent and the raw response text.
        """
        self._logger.info(f"Processing edit request: {input_data.instruction!r}")
        prompt = self.build_prompt(input_data)
        raw = await self._complete(
            prompt=prompt,
            max_tokens=config.edit_max_tokens,
            temperature=config.edit_temperature,
            schema=STORY_DRAFT_SCHEMA,
        )
        return prompt, raw

    def build_prompt(self, input_data: EditInput) -> str:
        """Build the editing prompt for the story and instruction."""
        story_json = self.serialize_story(input_data.story)
        duration = _prevailing_duration(input_data.story)

        if self._lock_duration:
            duration_rule = (
                f"- Scene duration is fixed at {duration:g} seconds. Keep every existing duration "
                f"and give new scenes {duration:g} seconds, even if asked otherwise"
            )
        else:
            duration_rule = (
                f"- Keep every scene duration as it is unless the user asks to change timing; "
                f"new scenes default to {duration:g} seconds"
            )

        return "\n".join([
            "You are a precise script editing agent. Your job is to modify a story structure based on user feedback.",
            "",
            "CURRENT STORY:",
            story_json,
            "",
            "USER FEEDBACK:",
            f'"{input_data.instruction}"',
            "",
            "INSTRUCTIONS:",
            "1. Apply ONLY the changes explicitly requested by the user",
            "2. Preserve the story structure with projectMetadata and scenes array",
            "3. Keep all scene IDs unchanged unless adding/removing scenes",
            "4. When adding scenes, generate new unique IDs (scene-N format) that no existing scene uses",
            "5. When removing scenes, delete them from the array completely",
            "6. When modifying scenes, only change the requested properties",
            "7. Keep scene order unless the user asks to reorder",
            "8. If the request is ambiguous about which scene it means, change only the single scene it most plausibly refers to",
            "",
            "IMPORTANT RULES:",
            "- If the user renames a character, update the name everywhere: title, description, "
            "projectMetadata.character, every scene prompt and every voiceover",
            "- Keep projectMetadata.id and all original scene IDs unless creating new scenes",
            duration_rule,
            "- The story must always have at least one scene",
            "- Voiceover is dialogue in the form: Character says, \"dialogue\" (no subtitles), or an empty string",
            "- New scenes use generated=false and the project's default model and resolution in settings",
            "",
            "Return the complete modified story.",
        ])

    def serialize_story(self, story: StoryDraft) -> str:
        """Serialize the story for the prompt.

        Raises:
            SerializationError: If the story cannot be serialized.
        """
        try:
            # History is carried over separately and never shown to the model.
            data = story.model_dump(by_alias=True, mode="json", exclude_none=True, exclude={"generation_metadata"})
            return json.dumps(data, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            self._logger.error(f"Error serializing story: {e}")
            raise SerializationError("Invalid story format - unable to serialize story data") from e

    def parse(self, raw: str, original: StoryDraft) -> StoryDraft:
        """Turn raw completion output into a validated story.

        Args:
            raw: Raw response text.
            original: The story the edit was applied to.

        Returns:
            The new story, carrying the original's history and project id.

        Raises:
            StructuralValidationError: If the output is not a valid story.
        """
        data = load_story_payload(raw)
        data.pop("generationMetadata", None)
        data.pop("generation_metadata", None)

        metadata = data.get("projectMetadata")
        original_id = original.project_metadata.id
        if isinstance(metadata, dict) and original_id is None:
            # An edit never assigns an id to a story that had none.
            metadata.pop("id", None)
        elif isinstance(metadata, dict):
            returned_id = metadata.get("id")
            if returned_id in (None, ""):
                metadata["id"] = original_id
            elif returned_id != original_id:
                raise StructuralValidationError(
                    f"Editing model changed the project id ({original_id!r} -> {returned_id!r})", raw=raw
                )

        try:
            story = StoryDraft.model_validate(data)
        except ValidationError as e:
            summary = _summarize_validation_error(e)
            self._logger.error(f"Edited story failed validation: {summary}")
            raise StructuralValidationError(f"Invalid story structure returned by editing agent: {summary}", raw=raw) from e

        if self._lock_duration:
            story = self._restore_durations(story, original)

        story.generation_metadata = original.generation_metadata
        self._logger.info(f"Edit complete: {len(story.scenes)} scenes, title {story.project_metadata.title!r}")
        return story

    def _restore_durations(self, story: StoryDraft, original: StoryDraft) -> StoryDraft:
        for scene in story.scenes:
            before = original.scene(scene.id)
            if before is not None and scene.duration != before.duration:
                self._logger.warning(
                    f"Restoring duration of {scene.id} to {before.duration:g}s (model returned {scene.duration:g}s)"
                )
                scene.duration = before.duration
        return story


def _prevailing_duration(story: StoryDraft) -> float:
    counts = Counter(scene.duration for scene in story.scenes)
    return counts.most_common(1)[0][0]
