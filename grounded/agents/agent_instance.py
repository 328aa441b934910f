"""Language model construction.

The model is built once at startup and handed to request handlers, so tests
can substitute a scripted pydantic-ai model.
"""

import logging

from pydantic_ai.models import Model
from pydantic_ai.models.openrouter import OpenRouterModel, OpenRouterModelSettings
from pydantic_ai.providers.openrouter import OpenRouterProvider

from grounded.core.config import Settings


logger = logging.getLogger(__name__)


def create_model(app_settings: Settings) -> Model:
    """Create the OpenRouter-backed chat model.

    Raises:
        ValueError: If the OpenRouter API key is not configured
    """
    api_key = app_settings.require_credential("openrouter_api_key", "OpenRouter API key")
    provider = OpenRouterProvider(api_key=api_key)

    # Configure provider routing if specified
    model_settings: OpenRouterModelSettings | None = None
    if app_settings.model_provider:
        model_settings = OpenRouterModelSettings(openrouter_provider={"only": [app_settings.model_provider]})

    model = OpenRouterModel(
        model_name=app_settings.model_id,
        provider=provider,
        settings=model_settings,
    )
    logger.info(
        "model_created",
        extra={"model_id": app_settings.model_id, "model_provider": app_settings.model_provider},
    )
    return model
