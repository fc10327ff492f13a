"""Shared fixtures for the FloHub test suite."""

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest

from flohub.config.settings import FloHubSettings
from flohub.providers.base import FetchContext
from flohub.settings.persistence import UserSettingsStore
from flohub.sources.models import CalendarSource, OAuthCredentials, SourceType
from flohub.sources.registry import SourceRegistry

USER_ID = "user@example.com"


@pytest.fixture
def test_settings(tmp_path: Path) -> FloHubSettings:
    """Settings isolated in a temporary data directory, no YAML file, no retries."""
    return FloHubSettings(
        data_dir=tmp_path / "data",
        config_file=tmp_path / "missing.yaml",
        max_retries=0,
        retry_backoff_factor=0.0,
        source_timeout=2.0,
        log_level="DEBUG",
        google_client_id="google-id",
        google_client_secret="google-secret",
        microsoft_client_id="ms-id",
        microsoft_client_secret="ms-secret",
    )


@pytest.fixture
def settings_store(test_settings: FloHubSettings) -> UserSettingsStore:
    return UserSettingsStore(test_settings.users_dir)


@pytest.fixture
def registry(settings_store: UserSettingsStore) -> SourceRegistry:
    return SourceRegistry(settings_store)


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def window() -> tuple[datetime, datetime]:
    """A one-day UTC window on 2025-06-02."""
    return (
        datetime(2025, 6, 2, 0, 0, tzinfo=timezone.utc),
        datetime(2025, 6, 3, 0, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def fetch_context() -> FetchContext:
    return FetchContext(user_id=USER_ID)


@pytest.fixture
def webhook_source() -> CalendarSource:
    return CalendarSource(
        id="o365-work",
        name="Work",
        type=SourceType.O365,
        source_id="o365",
        connection_data="https://flows.example.com/api/calendar?sig=abc",
        tags=["work"],
    )


@pytest.fixture
def google_source() -> CalendarSource:
    return CalendarSource(
        id="google-primary",
        name="Personal",
        type=SourceType.GOOGLE,
        source_id="primary",
        connection_data="oauth:me@gmail.com",
        tags=["personal"],
        credentials=OAuthCredentials(
            access_token="google-access",
            refresh_token="google-refresh",
            expires_at=datetime(2099, 1, 1, tzinfo=timezone.utc),
        ),
    )


@pytest.fixture
def make_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an httpx client whose requests are answered by ``handler``."""

    def _make(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make
