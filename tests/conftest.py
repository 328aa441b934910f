"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator, Generator
from datetime import date
from pathlib import Path

import logfire
import pytest
from fastapi.testclient import TestClient
from pydantic_ai.models.function import FunctionModel

from grounded.core.config import Settings
from grounded.core.db_client import DBClient
from grounded.core.schema import init_db
from grounded.domain.task import TaskCreate
from grounded.domain.user import User
from grounded.main import create_app
from grounded.services import task_service, user_service
from tests.mocks import OTHER_USER_ID, USER_ID, FakeIdentityVerifier, ScriptedModel


@pytest.fixture(autouse=True, scope="session")
def _configure_logfire() -> None:
    """Keep spans local during tests."""
    logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway database file."""
    return Settings(
        _env_file=None,
        environment="test",
        sqlite_db_path=str(tmp_path / "grounded-test.db"),
        openrouter_api_key="test_key",
        logfire_token=None,
    )


@pytest.fixture
async def db(test_settings: Settings) -> AsyncGenerator[DBClient]:
    """Connected database with the schema applied."""
    client = DBClient(test_settings.sqlite_db_path)
    await client.connect()
    await init_db(client)
    yield client
    await client.close()


@pytest.fixture
async def alice(db: DBClient) -> User:
    return await user_service.upsert_user(
        db=db, firebase_uid=USER_ID, email="alice@example.com", display_name="Alice"
    )


@pytest.fixture
async def bob(db: DBClient) -> User:
    return await user_service.upsert_user(db=db, firebase_uid=OTHER_USER_ID, email="bob@example.com", display_name="Bob")


async def add_task(
    db: DBClient,
    *,
    title: str,
    day: date | str,
    user_id: str = USER_ID,
    start_time: str | None = None,
    is_completed: bool = False,
):
    """Insert a task for a user and return it."""
    return await task_service.create_task(
        db=db,
        user_id=user_id,
        task=TaskCreate(title=title, date=str(day), start_time=start_time, is_completed=is_completed),
    )


@pytest.fixture
def identity_verifier() -> FakeIdentityVerifier:
    return FakeIdentityVerifier()


@pytest.fixture
def scripted_model() -> ScriptedModel:
    return ScriptedModel()


@pytest.fixture
def client(
    test_settings: Settings, scripted_model: ScriptedModel, identity_verifier: FakeIdentityVerifier
) -> Generator[TestClient]:
    """HTTP client for an app wired to a scripted model and fake token verifier."""
    app = create_app(
        test_settings,
        model=FunctionModel(scripted_model),
        identity_verifier=identity_verifier,
    )
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


def auth_headers(token: str = "token-alice") -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
