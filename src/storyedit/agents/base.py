"""Base agent abstraction."""

import logging
from abc import ABC, abstractmethod
from typing import Generic, Optional, Protocol, TypeVar

from ..services.anthropic import AnthropicClient, CompletionRequest
from ..config import config

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class CompletionGateway(Protocol):
    """Anything that can turn a completion request into text."""

    async def complete(self, request: CompletionRequest) -> str:
        ...


class BaseAgent(ABC, Generic[InputT, OutputT]):
    """Abstract base class for AI agents.

    Provides shared functionality for agents that use Claude for generation.
    Subclasses must implement the `run` method and define their prompts.
    """

    def __init__(
        self,
        client: Optional[CompletionGateway] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """Initialize the agent.

        Args:
            client: Completion gateway. An AnthropicClient is created if not provided.
            model: Model to use. Defaults to config.default_model.
            timeout: Per-attempt timeout for a created client.
        """
        self._model = model or config.default_model
        self._owns_client = client is None
        self._client = client or AnthropicClient(model=self._model, timeout=timeout)
        self._logger = logging.getLogger(f"{__name__}.{self.name}")

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the agent's name."""
        ...

    @property
    def system_prompt(self) -> Optional[str]:
        """Return the system prompt for this agent, if any."""
        return None

    @property
    def model(self) -> str:
        """Return the model being used."""
        return self._model

    async def aclose(self) -> None:
        """Close the client if this agent created it."""
        if self._owns_client:
            await self._client.aclose()

    @abstractmethod
    async def run(self, input_data: InputT) -> OutputT:
        """Execute the agent's main task.

        Args:
            input_data: Input data for the agent.

        Returns:
            Structured output from the agent.
        """
        ...

    async def _complete(
        self,
        prompt: str,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        schema: Optional[dict] = None,
    ) -> str:
        """Send a prompt through the agent's gateway.

        Args:
            prompt: The user prompt to send.
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature.
            schema: Optional JSON schema the output must follow.

        Returns:
            The raw text of the response.
        """
        self._logger.debug(f"Creating message with prompt length: {len(prompt)}")

        try:
            response = await self._client.complete(
                CompletionRequest(
                    prompt=prompt,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    schema=schema,
                    system=self.system_prompt,
                )
            )
            self._logger.debug(f"Received response of length: {len(response)}")
            return response

        except Exception as e:
            self._logger.error(f"Error creating message: {e}")
            raise
