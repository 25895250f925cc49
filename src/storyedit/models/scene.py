"""Scene data model."""

from enum import Enum
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

SCENE_ID_PATTERN = r"^scene-\d+$"


class Resolution(str, Enum):
    """Supported render resolutions."""
    P720 = "720p"
    P1080 = "1080p"


class SceneSettings(BaseModel):
    """Per-scene video generation settings."""

    model: str = Field(..., min_length=1, description="Video generation model name")
    resolution: Resolution = Field(..., description="Render resolution")
    is_looping: bool = Field(..., description="Whether the clip loops")

    class Config:
        """Pydantic config."""
        alias_generator = to_camel
        populate_by_name = True
        use_enum_values = True


class Scene(BaseModel):
    """Represents a single scene in the story."""

    id: str = Field(..., pattern=SCENE_ID_PATTERN, description="Unique scene identifier (scene-N)")
    title: str = Field(..., min_length=1, description="Scene title")
    duration: float = Field(..., description="Scene duration in seconds", gt=0)
    prompt: str = Field(..., min_length=1, description="Visual generation prompt")
    camera_angle: str = Field(..., min_length=1, description="Camera angle, e.g. 'Close-up'")
    voiceover: str = Field(..., description="Spoken dialogue, may be empty")
    generated: bool = Field(..., description="Whether a render exists")
    settings: SceneSettings = Field(..., description="Generation settings")

    class Config:
        """Pydantic config."""
        alias_generator = to_camel
        populate_by_name = True
        frozen = False
