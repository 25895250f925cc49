"""Review agent: explains an applied edit in plain language."""

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import config
from ..models import ChangeSet, StoryDraft
from .base import BaseAgent, CompletionGateway

logger = logging.getLogger(__name__)

FALLBACK_EXPLANATION = "I've updated your story based on your feedback!"


@dataclass
class ReviewInput:
    """Input data for the review agent."""

    changes: ChangeSet
    before: StoryDraft
    after: StoryDraft
    instruction: str


class ReviewAgent(BaseAgent[ReviewInput, str]):
    """Agent that turns a change set into a short, friendly explanation."""

    def __init__(
        self,
        client: Optional[CompletionGateway] = None,
        model: Optional[str] = None,
    ) -> None:
        super().__init__(
            client=client,
            model=model or config.review_model,
            timeout=config.review_timeout,
        )

    @property
    def name(self) -> str:
        """Return the agent's name."""
        return "ReviewAgent"

    async def run(self, input_data: ReviewInput) -> str:
        """Generate the explanation.

        Raises:
            GenerationError: If the completion service fails or times out.
                Callers substitute FALLBACK_EXPLANATION.
        """
        self._logger.info("Explaining changes")
        response = await self._complete(
            prompt=self.build_prompt(input_data),
            max_tokens=config.review_max_tokens,
            temperature=config.review_temperature,
        )
        explanation = response.strip()
        self._logger.debug(f"Generated explanation: {explanation[:100]}")
        return explanation or FALLBACK_EXPLANATION

    def build_prompt(self, input_data: ReviewInput) -> str:
        """Build the review prompt from the change summary."""
        changes = input_data.changes
        before = input_data.before
        after = input_data.after

        prompt_parts = [
            "You are a friendly review agent explaining story changes to a user.",
            "",
            "USER REQUEST:",
            f'"{input_data.instruction}"',
            "",
            "CHANGES MADE:",
            f"- Scenes added: {changes.scenes_added}",
            f"- Scenes removed: {changes.scenes_removed}",
            f"- Scenes modified: {changes.scenes_modified}",
            f"- Title changed: {str(changes.title_changed).lower()}",
            f"- Character changed: {str(changes.character_changed).lower()}",
            "",
            f'ORIGINAL STORY TITLE: "{before.project_metadata.title}"',
            f'REFINED STORY TITLE: "{after.project_metadata.title}"',
            f"ORIGINAL SCENE COUNT: {len(before.scenes)}",
            f"REFINED SCENE COUNT: {len(after.scenes)}",
        ]

        if changes.modified_scenes:
            prompt_parts.extend(["", "MODIFIED SCENES:"])
            prompt_parts.extend(f"- {scene.title}" for scene in changes.modified_scenes)

        prompt_parts.extend([
            "",
            "INSTRUCTIONS:",
            "Write a brief, conversational response (2-3 sentences) that acknowledges the request,",
            "explains the specific changes made, and names scene titles or numbers where relevant.",
            "",
            'Example: "I\'ve removed Scene 4 \'The Empty Walls\' as requested. '
            'The story now ends with Scene 3 for a more impactful conclusion."',
            "",
            "Return ONLY the response text, no JSON or markdown.",
        ])

        return "\n".join(prompt_parts)
