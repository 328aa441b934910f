"""Tests for configuration validation."""

import pytest

from grounded.core.config import Settings


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_require_credential_with_valid_value() -> None:
    """require_credential returns the value when the credential is set."""
    settings = _settings(openrouter_api_key="sk-or-123")

    assert settings.require_credential("openrouter_api_key", "OpenRouter API key") == "sk-or-123"


def test_require_credential_with_none_raises_error() -> None:
    settings = _settings(firebase_project_id=None)

    with pytest.raises(ValueError, match="Firebase project ID credential not configured"):
        settings.require_credential("firebase_project_id", "Firebase project ID")


def test_require_credential_with_empty_string_raises_error() -> None:
    settings = _settings(openrouter_api_key="")

    with pytest.raises(ValueError, match="OpenRouter API key credential not configured"):
        settings.require_credential("openrouter_api_key", "OpenRouter API key")


def test_require_credential_error_message_includes_field_name() -> None:
    """The error names the environment variable to set."""
    settings = _settings(firebase_private_key=None)

    with pytest.raises(ValueError, match="FIREBASE_PRIVATE_KEY"):
        settings.require_credential("firebase_private_key", "Firebase private key")


def test_cors_origins_are_split_and_trimmed() -> None:
    settings = _settings(allowed_origins=" https://a.example , ,https://b.example")

    assert settings.cors_origins == ["https://a.example", "https://b.example"]


def test_cors_origins_default_to_empty() -> None:
    assert _settings().cors_origins == []


def test_is_production() -> None:
    assert _settings(environment="production").is_production is True
    assert _settings(environment="development").is_production is False
