"""Unit tests for flohub.providers.oauth.TokenRefresher."""

from collections.abc import Callable
from datetime import datetime, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from flohub.providers.oauth import OAuthClientConfig, TokenRefresher
from flohub.sources.exceptions import AuthExpiredError, SourceFetchError
from flohub.sources.models import OAuthCredentials

pytestmark = [pytest.mark.unit, pytest.mark.fast]

TOKEN_URL = "https://oauth2.example.com/token"

CONFIG = OAuthClientConfig(
    provider="Google", token_url=TOKEN_URL, client_id="cid", client_secret="secret"
)


@pytest.fixture
def stale() -> OAuthCredentials:
    return OAuthCredentials(
        access_token="old",
        refresh_token="refresh-1",
        expires_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
        scope="calendar",
    )


class TestTokenRefresher:
    @pytest.mark.asyncio
    async def test_refresh_when_provider_accepts_then_new_token_and_old_refresh_kept(
        self, stale: OAuthCredentials, make_client: Callable[..., httpx.AsyncClient]
    ) -> None:
        forms: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            forms.append(parse_qs(request.content.decode()))
            return httpx.Response(200, json={"access_token": "new", "expires_in": 3600})

        async with make_client(handler) as client:
            refreshed = await TokenRefresher(client, CONFIG, max_retries=0).refresh(stale)

        assert refreshed.access_token == "new"
        assert refreshed.refresh_token == "refresh-1"
        assert refreshed.scope == "calendar"
        assert refreshed.expires_at is not None
        assert not refreshed.is_expired()
        assert forms[0]["grant_type"] == ["refresh_token"]
        assert forms[0]["client_id"] == ["cid"]

    @pytest.mark.asyncio
    async def test_refresh_when_provider_rotates_refresh_token_then_new_one_kept(
        self, stale: OAuthCredentials, make_client: Callable[..., httpx.AsyncClient]
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"access_token": "new", "refresh_token": "refresh-2"})

        async with make_client(handler) as client:
            refreshed = await TokenRefresher(client, CONFIG, max_retries=0).refresh(stale)

        assert refreshed.refresh_token == "refresh-2"
        assert refreshed.expires_at is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401])
    async def test_refresh_when_grant_rejected_then_auth_expired(
        self,
        stale: OAuthCredentials,
        make_client: Callable[..., httpx.AsyncClient],
        status: int,
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={"error": "invalid_grant"})

        async with make_client(handler) as client:
            with pytest.raises(AuthExpiredError):
                await TokenRefresher(client, CONFIG, max_retries=0).refresh(stale, source_id="g")

    @pytest.mark.asyncio
    async def test_refresh_when_no_refresh_token_then_auth_expired_without_request(
        self, make_client: Callable[..., httpx.AsyncClient]
    ) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={})

        async with make_client(handler) as client:
            with pytest.raises(AuthExpiredError):
                await TokenRefresher(client, CONFIG).refresh(OAuthCredentials(access_token="t"))

        assert calls == []

    @pytest.mark.asyncio
    async def test_refresh_when_client_not_configured_then_fetch_error(
        self, stale: OAuthCredentials, make_client: Callable[..., httpx.AsyncClient]
    ) -> None:
        config = OAuthClientConfig(
            provider="Microsoft", token_url=TOKEN_URL, client_id=None, client_secret=None
        )

        async with make_client(lambda request: httpx.Response(200, json={})) as client:
            with pytest.raises(SourceFetchError):
                await TokenRefresher(client, config).refresh(stale)

    @pytest.mark.asyncio
    async def test_refresh_when_response_lacks_token_then_fetch_error(
        self, stale: OAuthCredentials, make_client: Callable[..., httpx.AsyncClient]
    ) -> None:
        async with make_client(lambda request: httpx.Response(200, json={"ok": True})) as client:
            with pytest.raises(SourceFetchError):
                await TokenRefresher(client, CONFIG, max_retries=0).refresh(stale)
