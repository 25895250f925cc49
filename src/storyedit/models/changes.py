"""Change set data model."""

from typing import List
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class ModifiedScene(BaseModel):
    """A scene present in both versions whose content differs."""

    id: str
    title: str

    class Config:
        """Pydantic config."""
        frozen = True


class ChangeSet(BaseModel):
    """Structural differences between two versions of a story."""

    scenes_added: int = Field(default=0, ge=0)
    scenes_removed: int = Field(default=0, ge=0)
    scenes_modified: int = Field(default=0, ge=0)
    title_changed: bool = False
    character_changed: bool = False
    modified_scenes: List[ModifiedScene] = Field(default_factory=list)

    class Config:
        """Pydantic config."""
        alias_generator = to_camel
        populate_by_name = True
        frozen = True

    @property
    def is_empty(self) -> bool:
        """True when nothing changed."""
        return not (
            self.scenes_added
            or self.scenes_removed
            or self.scenes_modified
            or self.title_changed
            or self.character_changed
        )

    def to_wire(self) -> dict:
        """Return the camelCase JSON-compatible form."""
        return self.model_dump(by_alias=True, mode="json")
