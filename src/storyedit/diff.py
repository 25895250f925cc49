"""Structural diff between two versions of a story."""

from .models import ChangeSet, ModifiedScene, Scene, StoryDraft

# Scene fields whose change marks a scene as modified
TRACKED_SCENE_FIELDS = ("title", "prompt", "voiceover", "camera_angle")


def _scene_changed(before: Scene, after: Scene) -> bool:
    return any(getattr(before, name) != getattr(after, name) for name in TRACKED_SCENE_FIELDS)


def analyze_changes(before: StoryDraft, after: StoryDraft) -> ChangeSet:
    """Compute what changed between two story versions.

    Scenes are matched by id. Added and removed counts come from the id
    sets; a scene present in both is modified when any tracked field
    differs exactly. Modified scenes are listed in ``after``'s order.
    """
    before_scenes = {scene.id: scene for scene in before.scenes}
    after_ids = {scene.id for scene in after.scenes}

    modified = [
        ModifiedScene(id=scene.id, title=scene.title)
        for scene in after.scenes
        if scene.id in before_scenes and _scene_changed(before_scenes[scene.id], scene)
    ]

    return ChangeSet(
        scenes_added=len(after_ids - before_scenes.keys()),
        scenes_removed=len(before_scenes.keys() - after_ids),
        scenes_modified=len(modified),
        title_changed=before.project_metadata.title != after.project_metadata.title,
        character_changed=before.project_metadata.character != after.project_metadata.character,
        modified_scenes=modified,
    )
