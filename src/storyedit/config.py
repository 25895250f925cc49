"""Configuration management."""

import os
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config(BaseModel):
    """Application configuration."""

    # API Keys
    anthropic_api_key: str = Field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""),
        description="Anthropic API key"
    )

    # Model settings
    default_model: str = Field(
        default_factory=lambda: os.getenv("STORYEDIT_EDIT_MODEL", "claude-sonnet-4-20250514"),
        description="Claude model used by the script editing agent"
    )
    review_model: str = Field(
        default_factory=lambda: os.getenv("STORYEDIT_REVIEW_MODEL", "claude-3-5-haiku-20241022"),
        description="Claude model used by the review agent"
    )
    edit_temperature: float = Field(default=0.2, ge=0.0, le=1.0)
    review_temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    edit_max_tokens: int = Field(default=8192, gt=0)
    review_max_tokens: int = Field(default=200, gt=0)

    # Gateway timeouts and retries
    edit_timeout: float = Field(
        default_factory=lambda: float(os.getenv("STORYEDIT_EDIT_TIMEOUT", "120")),
        description="Seconds before an editing completion is abandoned"
    )
    review_timeout: float = Field(
        default_factory=lambda: float(os.getenv("STORYEDIT_REVIEW_TIMEOUT", "30")),
        description="Seconds before a review completion is abandoned"
    )
    max_retries: int = Field(
        default_factory=lambda: int(os.getenv("STORYEDIT_MAX_RETRIES", "1")),
        description="Retries for transient gateway failures",
        ge=0,
    )
    retry_delay: float = Field(default=1.0, description="Base retry delay in seconds")

    # Editing policy
    lock_duration: bool = Field(
        default_factory=lambda: _env_bool("STORYEDIT_LOCK_DURATION", True),
        description="Keep existing scene durations fixed across edits"
    )

    # Server
    host: str = Field(default_factory=lambda: os.getenv("STORYEDIT_HOST", "127.0.0.1"))
    port: int = Field(default_factory=lambda: int(os.getenv("STORYEDIT_PORT", "8000")))

    class Config:
        """Pydantic config."""
        frozen = False

    def validate_required(self) -> None:
        """Validate that required credentials are set."""
        if not self.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY not set")


# Global config instance
config = Config()
