"""grounded - productivity backend with a confirmation-gated task assistant."""

import logging
import sys
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic_ai.models import Model

from grounded.agents.agent_instance import create_model
from grounded.core.config import Settings, settings
from grounded.core.db_client import DBClient
from grounded.core.logging import configure_logfire, instrument_fastapi
from grounded.core.schema import init_db
from grounded.interface import ai_router, chat_router, health_router, task_router, user_router
from grounded.interface.auth import FirebaseIdentityVerifier, IdentityVerifier
from grounded.interface.error_handlers import register_error_handlers


logger = logging.getLogger(__name__)


def validate_startup_configuration(
    app_settings: Settings,
    *,
    model: Model | None,
    identity_verifier: IdentityVerifier | None,
) -> tuple[Model, IdentityVerifier]:
    """Build the collaborators that were not injected, failing fast on missing credentials."""
    logger.info("startup_validation_begin")

    try:
        if model is None:
            model = create_model(app_settings)
        if identity_verifier is None:
            identity_verifier = FirebaseIdentityVerifier.from_settings(app_settings)
        logger.info("startup_validation", extra={"stage": "credentials", "status": "ok"})
    except ValueError as e:
        logger.error("startup_validation_failed", extra={"error": str(e)})
        print(f"\nStartup validation failed: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    return model, identity_verifier


def create_app(
    app_settings: Settings | None = None,
    *,
    model: Model | None = None,
    identity_verifier: IdentityVerifier | None = None,
) -> FastAPI:
    """Assemble the application.

    ``model`` and ``identity_verifier`` replace the OpenRouter model and the
    Firebase verifier; tests pass scripted fakes here.
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Configure logging first so validation logs are captured
        configure_logfire(app_settings)

        app.state.model, app.state.identity_verifier = validate_startup_configuration(
            app_settings, model=model, identity_verifier=identity_verifier
        )

        db = DBClient(app_settings.sqlite_db_path)
        await db.connect()
        await init_db(db)
        app.state.db = db
        logger.info("Database initialized", extra={"db_path": app_settings.sqlite_db_path})

        yield

        await db.close()

    app = FastAPI(
        title="grounded",
        description="Task planning backend with a confirmation-gated AI assistant",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins or ["*"],
        allow_credentials=bool(app_settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    instrument_fastapi(app)
    register_error_handlers(app)

    app.include_router(health_router.router)
    app.include_router(user_router.auth_router)
    app.include_router(user_router.router)
    app.include_router(task_router.router)
    app.include_router(ai_router.router)
    app.include_router(chat_router.router)

    return app


app = create_app()
