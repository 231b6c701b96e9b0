"""Responder configuration using pydantic-settings.

This module defines the ResponderSettings class that reads configuration
from environment variables with the RESPONDER_ prefix. Settings are
frozen after loading: the same instance is passed to the orchestrator
and its collaborators and is never mutated for the process lifetime.
"""

from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SYSTEM_INSTRUCTION_TEMPLATE = (
    "Given the information that user '{author}' opened an issue titled "
    "'{title}', your task is to deeply analyze the content of the issue "
    "posts. Distill the crux of the issue, the potential solutions suggested."
)


class ResponderSettings(BaseSettings):
    """Issue responder configuration from environment variables.

    All environment variables are prefixed with RESPONDER_ (e.g.,
    RESPONDER_GITHUB_TOKEN).

    Required fields (must be set via environment variables):
    - github_token: GitHub API token for posting comments and labels
    - llm_api_key: Credential for the language-model service
    """

    model_config = SettingsConfigDict(
        env_prefix="RESPONDER_",
        case_sensitive=False,
        frozen=True,
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    github_token: str

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # Comments containing this phrase trigger a response. Empty string
    # means every new comment is answered.
    trigger_phrase: str = "@flows_summarize"

    # Labels a classification completion may apply. Empty disables labelling.
    allowed_labels: list[str] = []

    # Fetch prior issue comments and include them in the prompt
    include_history: bool = True

    # -------------------------------------------------------------------------
    # LLM Configuration
    # -------------------------------------------------------------------------
    llm_api_key: str

    # OpenAI-compatible endpoint
    llm_url: str = "https://api.openai.com/v1"

    llm_model: str = "gpt-4"

    # Upper bound on completion length
    llm_max_tokens: int = 192

    llm_temperature: float = 0.7

    system_instruction_template: str = DEFAULT_SYSTEM_INSTRUCTION_TEMPLATE

    # -------------------------------------------------------------------------
    # Pipeline Budgets
    # -------------------------------------------------------------------------
    # Word budget for the prompt content
    max_prompt_length: int = 2000

    # Maximum attempts (including the first) for LLM and GitHub calls
    max_retries: int = 3

    # Per-attempt timeout in seconds
    request_timeout: float = 30.0

    # Deadline in seconds spanning every stage of one event
    processing_deadline: float = 120.0

    backoff_base_delay: float = 1.0

    backoff_max_delay: float = 30.0

    # -------------------------------------------------------------------------
    # Delivery Store Configuration
    # -------------------------------------------------------------------------
    # PostgreSQL connection string; in-memory store when unset
    database_url: Optional[str] = None

    # Seconds after which an unfinished delivery claim may be taken over.
    # Must exceed processing_deadline so a live claim never goes stale.
    claim_ttl: float = 600.0

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"

    port: int = 8080

    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_token", "llm_api_key")
    @classmethod
    def validate_secret(cls, v: str) -> str:
        """Validate that secrets are not empty."""
        if not v or not v.strip():
            raise ValueError("credential cannot be empty")
        return v

    @field_validator("llm_url", "github_base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate that endpoint URLs have an http(s) scheme."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate the PostgreSQL connection string when present."""
        if v is None or not v.strip():
            return None
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError(
                "database_url must start with postgresql:// or postgres://"
            )
        return v

    @field_validator("max_prompt_length", "max_retries", "llm_max_tokens")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate that counts and budgets are at least 1."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("request_timeout", "processing_deadline", "claim_ttl")
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Validate that durations are positive."""
        if v <= 0:
            raise ValueError("duration must be positive")
        return v

    @field_validator("backoff_base_delay", "backoff_max_delay")
    @classmethod
    def validate_non_negative_delay(cls, v: float) -> float:
        """Validate that backoff delays are not negative."""
        if v < 0:
            raise ValueError("delay cannot be negative")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level names a standard logging level."""
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(
                "log_level must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL"
            )
        return level

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @model_validator(mode="after")
    def validate_claim_ttl(self) -> "ResponderSettings":
        """Validate that claims outlive the processing deadline."""
        if self.claim_ttl <= self.processing_deadline:
            raise ValueError(
                "claim_ttl must be greater than processing_deadline"
            )
        return self


def get_settings() -> ResponderSettings:
    """Create and return a ResponderSettings instance.

    Returns:
        ResponderSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return ResponderSettings()
