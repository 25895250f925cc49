"""Error taxonomy for the story editing pipeline."""

from typing import Optional


class StoryEditError(Exception):
    """Base class for all story editing failures."""

    status_code = 500


class InvalidInputError(StoryEditError):
    """The caller sent a malformed story or an empty instruction.

    Raised before any completion request is made.
    """

    status_code = 400


class SerializationError(StoryEditError):
    """A story could not be serialized into the editing prompt."""

    status_code = 500


class GenerationError(StoryEditError):
    """The completion service was unreachable, failed, or timed out."""

    status_code = 502

    def __init__(self, message: str, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out
        if timed_out:
            self.status_code = 504


class StructuralValidationError(StoryEditError):
    """Completion output could not be turned into a valid story."""

    status_code = 502

    def __init__(self, message: str, raw: Optional[str] = None) -> None:
        super().__init__(message)
        # Kept for logs only, never sent to clients.
        self.raw_excerpt = raw[:500] if raw else None
