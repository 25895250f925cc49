"""AI agents for story editing and review."""

from .base import BaseAgent, CompletionGateway
from .editor import EditInput, EditOutput, ScriptEditingAgent
from .review import FALLBACK_EXPLANATION, ReviewAgent, ReviewInput

__all__ = [
    "BaseAgent",
    "CompletionGateway",
    "EditInput",
    "EditOutput",
    "FALLBACK_EXPLANATION",
    "ReviewAgent",
    "ReviewInput",
    "ScriptEditingAgent",
]
