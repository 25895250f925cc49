"""External service integrations."""

from .anthropic import AnthropicClient, CompletionRequest

__all__ = [
    "AnthropicClient",
    "CompletionRequest",
]
