# tests/conftest.py

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from server import app, provider_factory, store_factory

from .fakes import FakeCompletionProvider, FakeTodoStore


@pytest.fixture()
def provider() -> FakeCompletionProvider:
    return FakeCompletionProvider()


@pytest.fixture()
def store() -> FakeTodoStore:
    return FakeTodoStore()


@pytest.fixture()
def client(provider: FakeCompletionProvider, store: FakeTodoStore):
    """
    TestClient with the provider and store swapped for fakes.

    Server errors are answered by the app's handlers instead of re-raised,
    so tests see what a real caller would.
    """
    app.dependency_overrides[provider_factory] = lambda: (lambda: provider)
    app.dependency_overrides[store_factory] = lambda: (lambda: store)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()
