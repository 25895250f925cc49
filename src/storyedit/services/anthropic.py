"""Anthropic Claude completion gateway."""

import asyncio
import json
import logging
import random
from dataclasses import dataclass
from typing import Any, Optional

from anthropic import (
    AsyncAnthropic,
    APIConnectionError,
    APIError,
    APITimeoutError,
    InternalServerError,
    RateLimitError,
)

from ..config import config
from ..errors import GenerationError

logger = logging.getLogger(__name__)

STRUCTURED_TOOL_NAME = "submit_result"

# Transient failures worth another attempt
_RETRYABLE = (RateLimitError, APIConnectionError, InternalServerError)


@dataclass
class CompletionRequest:
    """A single completion call.

    When ``schema`` is set the model is forced to answer through a tool
    whose input schema is ``schema``, so the output is generated to that
    shape rather than checked against it afterwards.
    """

    prompt: str
    temperature: float = 0.7
    max_tokens: int = 4096
    schema: Optional[dict] = None
    system: Optional[str] = None


class AnthropicClient:
    """Async client wrapper for the Anthropic Claude API with timeout and retry."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ) -> None:
        """Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key. Defaults to ANTHROPIC_API_KEY env var.
            model: Model to use. Defaults to config.default_model.
            timeout: Seconds allowed per attempt. Defaults to config.edit_timeout.
            max_retries: Retries after the first attempt for transient failures.
            retry_delay: Base delay between retries in seconds (exponential backoff plus jitter).
        """
        self._api_key = api_key or config.anthropic_api_key
        if not self._api_key:
            raise ValueError(
                "Anthropic API key not provided. Set ANTHROPIC_API_KEY env var."
            )

        # Retries are handled here so the timeout covers each attempt.
        self._client = AsyncAnthropic(api_key=self._api_key, max_retries=0)
        self._model = model or config.default_model
        self._timeout = timeout if timeout is not None else config.edit_timeout
        self._max_retries = max_retries if max_retries is not None else config.max_retries
        self._retry_delay = retry_delay if retry_delay is not None else config.retry_delay

    @property
    def model(self) -> str:
        """Return the model being used."""
        return self._model

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.close()

    async def complete(self, request: CompletionRequest) -> str:
        """Run a completion and return its text.

        Args:
            request: Prompt, sampling settings and optional output schema.

        Returns:
            Response text, or the tool input serialized as JSON when a
            schema was supplied.

        Raises:
            GenerationError: If the request fails or times out after all retries.
        """
        attempts = self._max_retries + 1

        for attempt in range(attempts):
            try:
                logger.debug(
                    f"Sending request to Claude (attempt {attempt + 1}/{attempts})"
                )
                response = await asyncio.wait_for(
                    self._client.messages.create(**self._build_kwargs(request)),
                    timeout=self._timeout,
                )
                return self._extract_output(response, structured=request.schema is not None)

            except (asyncio.TimeoutError, APITimeoutError) as e:
                if attempt == attempts - 1:
                    raise GenerationError(
                        f"Completion timed out after {self._timeout:.0f}s", timed_out=True
                    ) from e
                await self._backoff(attempt, "Timed out")

            except _RETRYABLE as e:
                if attempt == attempts - 1:
                    raise GenerationError(f"Completion service unavailable: {e}") from e
                await self._backoff(attempt, f"{type(e).__name__}: {e}")

            except APIError as e:
                logger.error(f"API error: {e}")
                raise GenerationError(f"Completion request failed: {e}") from e

        raise GenerationError("Max retries exceeded")

    def _build_kwargs(self, request: CompletionRequest) -> dict:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": request.max_tokens,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": request.temperature,
        }
        if request.system:
            kwargs["system"] = request.system
        if request.schema is not None:
            kwargs["tools"] = [{
                "name": STRUCTURED_TOOL_NAME,
                "description": "Submit the result. The input must be the complete result object.",
                "input_schema": request.schema,
            }]
            kwargs["tool_choice"] = {"type": "tool", "name": STRUCTURED_TOOL_NAME}
        return kwargs

    def _extract_output(self, response: Any, structured: bool) -> str:
        """Validate the response shape once and pull out the payload."""
        blocks = getattr(response, "content", None) or []

        if structured:
            for block in blocks:
                if getattr(block, "type", None) == "tool_use":
                    return json.dumps(block.input, ensure_ascii=False)

        text = "".join(
            block.text for block in blocks if getattr(block, "type", None) == "text"
        )
        if not text.strip():
            raise GenerationError(
                f"Completion returned no usable content (stop_reason={getattr(response, 'stop_reason', None)})"
            )
        return text

    async def _backoff(self, attempt: int, reason: str) -> None:
        delay = self._retry_delay * (2**attempt) + random.uniform(0, self._retry_delay)
        logger.warning(f"{reason}. Retrying in {delay:.1f}s...")
        await asyncio.sleep(delay)
