"""
tests/conftest.py -- Shared test fixtures for stormstarter.

This module provides:
  - settings: Settings for an in-memory database and a generous login limit
  - user_store: isolated in-memory UserStore, closed after the test
  - ids / tokens: a snowflake generator and token codec
  - make_user(): create a persisted user with a password
  - make_client(): build an app from create_app() and wrap it in a TestClient
  - api_client: TestClient over the api/routes directory shipped with the repo

Design: "sqlite:///:memory:" works across TestClient worker threads because
UserStore pins in-memory databases to a single StaticPool connection.

Every app is built per test. Route constructors keep state in closures (the
test/1 hit counter, login rate-limit windows), so a fresh app means fresh
state and tests do not depend on execution order.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from contextlib import ExitStack
from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.credentials import create_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import Settings
from core.snowflake import IdGenerator

MEMORY_DB = "sqlite:///:memory:"


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url=MEMORY_DB, login_rate_limit="100/minute", guard_timeout_seconds=5)


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore(db_url=MEMORY_DB)
    yield store
    store.close()


@pytest.fixture
def ids() -> IdGenerator:
    return IdGenerator(node_id=7)


@pytest.fixture
def tokens() -> TokenCodec:
    return TokenCodec()


@pytest.fixture
def make_user(user_store: UserStore, ids: IdGenerator) -> Callable[..., User]:
    def _make(username: str = "ada", password: Optional[str] = "lovelace-1815") -> User:
        return create_user(user_store, ids, username, password)

    return _make


@pytest.fixture
def make_client(settings: Settings, user_store: UserStore) -> Generator[Callable[..., TestClient], None, None]:
    """Factory: make_client(routes_dir=None, **setting_overrides) -> TestClient.

    Clients are entered (lifespan started) and closed at teardown.
    """
    with ExitStack() as stack:

        def _make(routes_dir: Optional[str | Path] = None, **overrides) -> TestClient:
            app_settings = settings.model_copy(update=overrides) if overrides else settings
            app = create_app(settings=app_settings, user_store=user_store, routes_dir=routes_dir)
            return stack.enter_context(TestClient(app, raise_server_exceptions=True))

        yield _make


@pytest.fixture
def api_client(make_client) -> TestClient:
    """TestClient over the routes shipped in api/routes."""
    return make_client()
