"""Shared pytest fixtures."""

import pytest

from birdwatch.core.credential_store import InMemoryCredentialStore
from birdwatch.core.oauth_manager import SessionManager

from tests.fakes import NOW, FakeOAuthClient


@pytest.fixture
def oauth_client() -> FakeOAuthClient:
    return FakeOAuthClient()


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def session_manager(store: InMemoryCredentialStore, oauth_client: FakeOAuthClient) -> SessionManager:
    return SessionManager(store=store, oauth_client=oauth_client, clock=lambda: NOW)
