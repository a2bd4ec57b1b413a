"""Pytest configuration and fixtures."""

from __future__ import annotations

import os

from typing import TYPE_CHECKING, Any

import pytest

from oauth1flow.auth.credential_store import reset_credential_store
from oauth1flow.config import clear_settings
from oauth1flow.types import AuthenticationState, EndpointConfig
from tests.constants import (
    ACCESS_TOKEN_URL,
    AUTHORIZE_TOKEN_URL,
    CALLBACK_URL,
    CONSUMER_KEY,
    CONSUMER_SECRET,
    REQUEST_TOKEN_URL,
)
from tests.fakes import FakeScheduler, FakeSurface


if TYPE_CHECKING:
    from collections.abc import Generator


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(
    tmp_path: Any, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    """Run every test without user config files, OAUTH1FLOW_* vars or cached singletons."""
    for key in list(os.environ):
        if key.startswith("OAUTH1FLOW_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("APPDATA", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    clear_settings()
    reset_credential_store()
    yield
    clear_settings()
    reset_credential_store()


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def auth() -> AuthenticationState:
    """An unauthorized HMAC-SHA1 state with a callback URL."""
    return AuthenticationState(
        consumer_key=CONSUMER_KEY,
        consumer_secret=CONSUMER_SECRET,
        callback_url=CALLBACK_URL,
        service_provider_name="Example",
    )


@pytest.fixture
def endpoints() -> EndpointConfig:
    """Endpoints of the fictional provider."""
    return EndpointConfig(
        request_token_url=REQUEST_TOKEN_URL,
        authorize_token_url=AUTHORIZE_TOKEN_URL,
        access_token_url=ACCESS_TOKEN_URL,
    )


@pytest.fixture
def surface() -> FakeSurface:
    """A recording interactive surface."""
    return FakeSurface()


@pytest.fixture
def scheduler() -> FakeScheduler:
    """A virtual-clock scheduler."""
    return FakeScheduler()
