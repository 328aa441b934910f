"""Tests for startup validation."""

import pytest
from pydantic_ai.models.function import FunctionModel

from grounded.core.config import Settings
from grounded.main import validate_startup_configuration
from tests.mocks import FakeIdentityVerifier, ScriptedModel


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, environment="test", **overrides)


def test_startup_fails_without_openrouter_key() -> None:
    """Startup exits when the model cannot be built."""
    with pytest.raises(SystemExit) as exc_info:
        validate_startup_configuration(
            _settings(openrouter_api_key=None), model=None, identity_verifier=FakeIdentityVerifier()
        )

    assert exc_info.value.code == 1


def test_startup_fails_without_firebase_credentials() -> None:
    """Startup exits when no Firebase service account is configured."""
    with pytest.raises(SystemExit):
        validate_startup_configuration(
            _settings(firebase_project_id=None, firebase_client_email=None, firebase_private_key=None),
            model=FunctionModel(ScriptedModel()),
            identity_verifier=None,
        )


def test_injected_collaborators_are_kept() -> None:
    model = FunctionModel(ScriptedModel())
    verifier = FakeIdentityVerifier()

    result = validate_startup_configuration(_settings(), model=model, identity_verifier=verifier)

    assert result == (model, verifier)


def test_model_is_built_from_settings() -> None:
    model, _ = validate_startup_configuration(
        _settings(openrouter_api_key="sk-or-test", model_id="openai/gpt-oss-120b"),
        model=None,
        identity_verifier=FakeIdentityVerifier(),
    )

    assert model.model_name == "openai/gpt-oss-120b"
