"""Configuration management for grounded."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Runtime
    environment: str = Field(default="development", description="development, test or production")
    allowed_origins: str = Field(default="", description="Comma-separated CORS origins for the mobile client")

    # SQLite Configuration
    sqlite_db_path: str = Field(default="data/grounded.db", description="SQLite database file path")

    # OpenRouter Configuration
    openrouter_api_key: str | None = Field(default=None, description="OpenRouter API key for LLM access")

    # Firebase Configuration
    firebase_project_id: str | None = Field(default=None, description="Firebase project ID")
    firebase_client_email: str | None = Field(default=None, description="Firebase service account email")
    firebase_private_key: str | None = Field(default=None, description="Firebase service account private key")
    firebase_credentials_path: str | None = Field(
        default=None, description="Path to a Firebase service account JSON file (overrides the inline fields)"
    )

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # AI Model Configuration
    model_id: str = Field(
        default="openai/gpt-oss-120b",
        description="Model ID for OpenRouter",
    )
    model_provider: str | None = Field(
        default=None, description="Restrict OpenRouter routing to a single upstream provider (e.g. 'groq')"
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # Agent Loop
    MAX_AGENT_ITERATIONS: int = 10
    MAX_MODEL_ATTEMPTS: int = 3
    INITIAL_TEMPERATURE: float = 0.5
    TEMPERATURE_STEP: float = 0.2
    MAX_TEMPERATURE: float = 1.0
    MAX_TOKENS: int = 4096
    CHAT_HISTORY_LIMIT: int = 20  # Prior messages replayed to the model

    # Task Search
    SEARCH_RESULT_LIMIT: int = 10

    # Task Defaults
    DEFAULT_START_TIME: str = "09:00"
    DEFAULT_DURATION_MINUTES: int = 60

    # Chat
    DEFAULT_SESSION_TITLE: str = "New Chat"
    SESSION_TITLE_MAX_LENGTH: int = 30
    RECENT_CHATS_LIMIT: int = 10

    # Streaks
    STREAK_LOOKBACK_MAX_DAYS: int = 3650


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
