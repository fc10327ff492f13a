"""Unit tests for flohub.sources.models."""

from datetime import datetime, timedelta, timezone

import pytest

from flohub.sources.models import CalendarSource, OAuthCredentials, SourceStatus, SourceType

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def test_calendar_source_when_built_from_camel_case_then_fields_populated() -> None:
    source = CalendarSource.model_validate(
        {
            "id": "url-1",
            "name": "Team",
            "type": "url",
            "sourceId": "https://example.com/hook",
            "isEnabled": False,
            "tags": ["work"],
        }
    )

    assert source.source_id == "https://example.com/hook"
    assert source.is_enabled is False
    assert source.type == SourceType.URL
    assert source.status == SourceStatus.UNKNOWN


def test_calendar_source_when_tags_repeat_then_deduplicated_in_order() -> None:
    source = CalendarSource(
        id="g", name="G", type=SourceType.GOOGLE, source_id="primary", tags=["work", " work", "x"]
    )

    assert source.tags == ["work", "x"]


def test_webhook_url_when_connection_data_is_url_then_preferred_over_source_id() -> None:
    source = CalendarSource(
        id="o",
        name="O",
        type=SourceType.O365,
        source_id="https://fallback.example.com",
        connection_data="https://primary.example.com",
    )

    assert source.webhook_url == "https://primary.example.com"


def test_is_oauth_when_connection_data_has_marker_then_true() -> None:
    source = CalendarSource(
        id="o", name="O", type=SourceType.O365, source_id="primary", connection_data="oauth:me@corp"
    )

    assert source.is_oauth is True
    assert source.webhook_url is None


def test_to_api_dict_when_credentials_stored_then_omitted_and_url_exposed() -> None:
    source = CalendarSource(
        id="u",
        name="Hook",
        type=SourceType.URL,
        source_id="https://example.com/hook",
        credentials=OAuthCredentials(access_token="secret"),
    )

    data = source.to_api_dict()

    assert "credentials" not in data
    assert data["sourceId"] == "https://example.com/hook"
    assert data["url"] == "https://example.com/hook"
    assert data["isEnabled"] is True


def test_oauth_credentials_is_expired_when_within_skew_then_true() -> None:
    now = datetime(2025, 6, 2, 12, 0, tzinfo=timezone.utc)
    credentials = OAuthCredentials(access_token="a", expires_at=now + timedelta(seconds=30))

    assert credentials.is_expired(skew_seconds=60, now=now) is True
    assert credentials.is_expired(skew_seconds=10, now=now) is False


def test_oauth_credentials_is_expired_when_no_expiry_then_false() -> None:
    assert OAuthCredentials(access_token="a").is_expired() is False
