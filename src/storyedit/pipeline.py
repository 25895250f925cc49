"""Edit pipeline: mutate, validate, diff and review one edit request."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, List, Optional, TypeVar

from .agents import EditInput, FALLBACK_EXPLANATION, ReviewAgent, ReviewInput, ScriptEditingAgent
from .config import config
from .diff import analyze_changes
from .errors import GenerationError, InvalidInputError
from .models import ChangeSet, StoryDraft

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PipelineState(str, Enum):
    """Stages of a single edit."""
    PENDING = "pending"
    MUTATING = "mutating"
    VALIDATING = "validating"
    DIFFING = "diffing"
    REVIEWING = "reviewing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class EditResult:
    """Outcome of a successful edit."""

    original: StoryDraft
    updated: StoryDraft
    changes: ChangeSet
    explanation: str
    instruction: str
    review_fallback: bool = False
    states: List[PipelineState] = field(default_factory=list)

    def to_wire(self) -> dict:
        """Single-shot response body."""
        return {
            "updatedStory": self.updated.to_wire(),
            "response": self.explanation,
            "changesSummary": self.changes.to_wire(),
        }


class EditPipeline:
    """Runs one edit request end to end.

    The pipeline keeps no state between runs; each call carries the full
    story. The two completion calls are the only suspension points and
    each has its own deadline. A failed review falls back to a fixed
    explanation; every other failure aborts the edit.
    """

    def __init__(
        self,
        editor: Optional[ScriptEditingAgent] = None,
        reviewer: Optional[ReviewAgent] = None,
        edit_timeout: Optional[float] = None,
        review_timeout: Optional[float] = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            editor: Script editing agent. Created if not provided.
            reviewer: Review agent. Created if not provided.
            edit_timeout: Overall deadline for the editing call, retries included.
            review_timeout: Overall deadline for the review call, retries included.
        """
        attempts = config.max_retries + 1
        self._editor = editor or ScriptEditingAgent()
        self._reviewer = reviewer or ReviewAgent()
        self._edit_timeout = edit_timeout or _overall_deadline(config.edit_timeout, attempts)
        self._review_timeout = review_timeout or _overall_deadline(config.review_timeout, attempts)

    async def aclose(self) -> None:
        """Release the agents' clients."""
        await self._editor.aclose()
        await self._reviewer.aclose()

    async def run(self, story: StoryDraft, instruction: str) -> EditResult:
        """Apply ``instruction`` to ``story``.

        Returns:
            The edit result. ``story`` itself is left untouched.

        Raises:
            InvalidInputError: If the instruction is empty.
            SerializationError: If the story cannot be sent to the editing model.
            GenerationError: If the editing call fails or times out.
            StructuralValidationError: If the edited story is invalid.
        """
        instruction = (instruction or "").strip()
        if not instruction:
            raise InvalidInputError("Invalid or missing edit request")

        states: List[PipelineState] = [PipelineState.PENDING]
        try:
            self._enter(states, PipelineState.MUTATING)
            edit_input = EditInput(story=story, instruction=instruction)
            prompt, raw = await self._with_deadline(
                self._editor.generate(edit_input), self._edit_timeout, "editing"
            )

            self._enter(states, PipelineState.VALIDATING)
            updated = self._editor.parse(raw, story).with_refinement(instruction, prompt)

            self._enter(states, PipelineState.DIFFING)
            changes = analyze_changes(story, updated)
            logger.info(
                f"Changes: +{changes.scenes_added} -{changes.scenes_removed} "
                f"~{changes.scenes_modified} title={changes.title_changed} "
                f"character={changes.character_changed}"
            )

            self._enter(states, PipelineState.REVIEWING)
            explanation, fallback = await self._review(changes, story, updated, instruction)

        except asyncio.CancelledError:
            logger.info(f"Edit cancelled while {states[-1].value}")
            raise
        except Exception as e:
            logger.error(f"Edit failed while {states[-1].value}: {e}")
            states.append(PipelineState.FAILED)
            raise

        self._enter(states, PipelineState.DONE)
        return EditResult(
            original=story,
            updated=updated,
            changes=changes,
            explanation=explanation,
            instruction=instruction,
            review_fallback=fallback,
            states=states,
        )

    async def _review(
        self,
        changes: ChangeSet,
        before: StoryDraft,
        after: StoryDraft,
        instruction: str,
    ) -> tuple[str, bool]:
        review_input = ReviewInput(changes=changes, before=before, after=after, instruction=instruction)
        try:
            explanation = await self._with_deadline(
                self._reviewer.run(review_input), self._review_timeout, "review"
            )
            return explanation, False
        except GenerationError as e:
            logger.warning(f"Review failed, using fallback explanation: {e}")
            return FALLBACK_EXPLANATION, True

    async def _with_deadline(self, call: Awaitable[T], timeout: float, label: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise GenerationError(f"The {label} call timed out after {timeout:.0f}s", timed_out=True) from e

    @staticmethod
    def _enter(states: List[PipelineState], state: PipelineState) -> None:
        logger.info(f"Pipeline: {states[-1].value} -> {state.value}")
        states.append(state)


def _overall_deadline(per_attempt: float, attempts: int) -> float:
    # Per-attempt timeouts plus worst-case backoff between attempts.
    backoff = sum(config.retry_delay * (2**i + 1) for i in range(attempts - 1))
    return per_attempt * attempts + backoff
