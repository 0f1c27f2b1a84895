"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It ensures that the TESTING environment variable is set to prevent
loading the .env file during tests.
"""

import os

# CRITICAL: Set this before any imports that might load settings
# This prevents Pydantic from loading the .env file in tests
os.environ["TESTING"] = "true"

# Set default env vars that all tests might need
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault(
    "APP_API_KEYS",
    "test-admin-key:admin-1:admin,test-user-key:user-1,test-user2-key:user-2",
)
os.environ.setdefault("APP_RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Iterator  # noqa: E402

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.adapters.rate_limit.in_memory import InMemoryWindowStore  # noqa: E402
from app.core.rate_limit import use_window_store  # noqa: E402

class FakeClock:
    """Deterministic clock returning UNIX seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryWindowStore:
    return InMemoryWindowStore(retention_seconds=3600, clock=clock)


@pytest.fixture
def installed_store(store: InMemoryWindowStore) -> Iterator[InMemoryWindowStore]:
    """Route every rate limited endpoint through ``store``."""
    use_window_store(store)
    try:
        yield store
    finally:
        use_window_store(None)


@pytest.fixture
def app(installed_store: InMemoryWindowStore) -> FastAPI:
    from app.core.app_factory import create_app

    return create_app()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
