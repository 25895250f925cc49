"""Story draft data model."""

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from .scene import Scene


class ProjectType(str, Enum):
    """Narrative type of a story."""
    MOVIE = "movie"
    SHORT = "short"
    COMMERCIAL = "commercial"


class AspectRatio(str, Enum):
    """Supported output aspect ratios."""
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"


class _WireModel(BaseModel):
    """Base for models exchanged as camelCase JSON."""

    class Config:
        """Pydantic config."""
        alias_generator = to_camel
        populate_by_name = True
        use_enum_values = True
        frozen = False


class ProjectMetadata(_WireModel):
    """Story-level metadata."""

    id: Optional[str] = Field(None, description="Stable opaque project id")
    title: str = Field(..., min_length=1, description="Story title")
    description: str = Field(..., description="One sentence description")
    type: ProjectType = Field(..., description="Narrative type")
    character: str = Field(default="", description="Main character name and description")
    aspect_ratio: AspectRatio = Field(..., description="Output aspect ratio")
    default_model: str = Field(..., min_length=1, description="Default video model")
    default_resolution: str = Field(..., min_length=1, description="Default resolution")


class RefinementRecord(_WireModel):
    """One applied edit in a story's history."""

    timestamp: str = Field(..., description="ISO-8601 time the edit was applied")
    feedback: str = Field(..., description="The user's edit instruction")
    ai_prompt: Optional[str] = Field(None, description="Prompt sent to the editing model")


class GenerationMetadata(_WireModel):
    """Provenance of a story. Only ever extended, never rewritten."""

    mode: Optional[str] = Field(None, description="Origin mode, e.g. 'quick' or 'custom'")
    timestamp: Optional[str] = Field(None, description="ISO-8601 creation time")
    ai_prompt: Optional[str] = Field(None, description="Prompt that produced the story")
    original_params: Optional[Dict[str, Any]] = Field(None, description="Creation parameters")
    refinements: List[RefinementRecord] = Field(default_factory=list)


class StoryDraft(_WireModel):
    """A multi-scene story: metadata plus ordered scenes."""

    project_metadata: ProjectMetadata
    scenes: List[Scene] = Field(..., min_length=1, description="Scenes in narrative order")
    generation_metadata: Optional[GenerationMetadata] = None

    @field_validator("scenes")
    @classmethod
    def _unique_scene_ids(cls, scenes: List[Scene]) -> List[Scene]:
        seen = set()
        for scene in scenes:
            if scene.id in seen:
                raise ValueError(f"duplicate scene id: {scene.id}")
            seen.add(scene.id)
        return scenes

    @property
    def scene_ids(self) -> List[str]:
        """Scene ids in narrative order."""
        return [scene.id for scene in self.scenes]

    def scene(self, scene_id: str) -> Optional[Scene]:
        """Return the scene with the given id, if present."""
        for scene in self.scenes:
            if scene.id == scene_id:
                return scene
        return None

    def to_wire(self) -> dict:
        """Return the camelCase JSON-compatible form."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    def to_json(self, indent: Optional[int] = None) -> str:
        """Serialize to JSON, keeping non-ASCII text as is."""
        return json.dumps(self.to_wire(), indent=indent, ensure_ascii=False)

    def with_refinement(self, feedback: str, ai_prompt: Optional[str] = None) -> "StoryDraft":
        """Return a copy whose history records one more refinement.

        Stories without generation metadata are returned unchanged.
        """
        if self.generation_metadata is None:
            return self
        record = RefinementRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            feedback=feedback,
            ai_prompt=ai_prompt,
        )
        history = self.generation_metadata.model_copy(
            update={"refinements": [*self.generation_metadata.refinements, record]}
        )
        return self.model_copy(update={"generation_metadata": history})

    @classmethod
    def from_file(cls, path: Path) -> "StoryDraft":
        """Load a story from a JSON or YAML file."""
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
        return cls.model_validate(data)

    def to_file(self, path: Path) -> None:
        """Save the story as JSON or YAML, chosen by file suffix."""
        with open(path, "w", encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                yaml.safe_dump(self.to_wire(), f, default_flow_style=False, allow_unicode=True, sort_keys=False)
            else:
                f.write(self.to_json(indent=2))
                f.write("\n")
