"""Data models for the story editor."""

from .scene import Resolution, Scene, SceneSettings
from .story import (
    AspectRatio,
    GenerationMetadata,
    ProjectMetadata,
    ProjectType,
    RefinementRecord,
    StoryDraft,
)
from .changes import ChangeSet, ModifiedScene

__all__ = [
    "AspectRatio",
    "ChangeSet",
    "GenerationMetadata",
    "ModifiedScene",
    "ProjectMetadata",
    "ProjectType",
    "RefinementRecord",
    "Resolution",
    "Scene",
    "SceneSettings",
    "StoryDraft",
]
