"""OAuth token refresh and the shared base for OAuth-backed adapters."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from flohub.sources.exceptions import AuthExpiredError, SourceFetchError
from flohub.sources.models import CalendarSource, OAuthCredentials

from .base import FetchContext, ProviderAdapter
from .http import parse_json_body, raise_for_status, request_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OAuthClientConfig:
    """Client registration for one OAuth provider."""

    provider: str
    token_url: str
    client_id: Optional[str]
    client_secret: Optional[str]
    scope: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


class TokenRefresher:
    """Exchanges a refresh token for a new access token."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: OAuthClientConfig,
        max_retries: int = 1,
        backoff_factor: float = 1.5,
    ) -> None:
        self.client = client
        self.config = config
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor

    async def refresh(
        self, credentials: OAuthCredentials, source_id: Optional[str] = None
    ) -> OAuthCredentials:
        """Run the refresh-token grant.

        Returns:
            New credentials; the old refresh token is kept when the provider
            does not rotate it

        Raises:
            AuthExpiredError: If there is no refresh token or the provider rejects it
            SourceFetchError: If the client is not configured or the provider is unreachable
        """
        if not credentials.refresh_token:
            raise AuthExpiredError(
                f"{self.config.provider} access token expired and no refresh token is stored",
                source_id=source_id,
            )
        if not self.config.is_configured:
            raise SourceFetchError(
                f"{self.config.provider} OAuth client is not configured", source_id=source_id
            )

        form = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "refresh_token": credentials.refresh_token,
            "grant_type": "refresh_token",
        }
        if self.config.scope:
            form["scope"] = self.config.scope

        response = await request_with_retry(
            self.client,
            "POST",
            self.config.token_url,
            data=form,
            max_retries=self.max_retries,
            backoff_factor=self.backoff_factor,
            source_id=source_id,
        )

        if response.status_code in (400, 401):
            logger.warning(
                "%s rejected refresh token (HTTP %s)", self.config.provider, response.status_code
            )
            raise AuthExpiredError(
                f"{self.config.provider} refresh token was rejected; reconnect the account",
                source_id=source_id,
            )
        raise_for_status(response, source_id)

        body = parse_json_body(response, source_id)
        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise SourceFetchError(
                f"{self.config.provider} token response has no access_token", source_id=source_id
            )

        expires_at = None
        if body.get("expires_in") is not None:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(body["expires_in"]))

        logger.info("Refreshed %s access token", self.config.provider)
        return OAuthCredentials(
            access_token=access_token,
            refresh_token=body.get("refresh_token") or credentials.refresh_token,
            expires_at=expires_at,
            scope=body.get("scope") or credentials.scope,
        )


class OAuthProviderAdapter(ProviderAdapter):
    """Adapter base that performs bearer-authenticated GETs with one refresh on 401."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        refresher: TokenRefresher,
        max_retries: int = 1,
        backoff_factor: float = 1.5,
    ) -> None:
        self.client = client
        self.refresher = refresher
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor

    def resolve_credentials(
        self, source: CalendarSource, context: FetchContext
    ) -> Optional[OAuthCredentials]:
        return source.credentials

    async def _refresh(
        self, source: CalendarSource, credentials: OAuthCredentials, context: FetchContext
    ) -> OAuthCredentials:
        refreshed = await self.refresher.refresh(credentials, source_id=source.id)
        if source.credentials is not None:
            source.credentials = refreshed
        else:
            context.account_credentials = refreshed
        if context.save_credentials is not None:
            context.save_credentials(source, refreshed)
        return refreshed

    async def get_json(
        self,
        url: str,
        source: CalendarSource,
        context: FetchContext,
        params: Optional[dict[str, str]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """GET ``url`` with the source's bearer token and decode the JSON body.

        Raises:
            AuthExpiredError: If no usable token can be obtained
            SourceFetchError: For other non-2xx responses or an undecodable body
        """
        credentials = self.resolve_credentials(source, context)
        if credentials is None:
            raise AuthExpiredError(
                f"Source '{source.name}' has no connected {self.name} account",
                source_id=source.id,
            )

        refreshed = False
        if credentials.is_expired():
            credentials = await self._refresh(source, credentials, context)
            refreshed = True

        while True:
            request_headers = {"Authorization": f"Bearer {credentials.access_token}"}
            request_headers.update(headers or {})
            response = await request_with_retry(
                self.client,
                "GET",
                url,
                params=params,
                headers=request_headers,
                max_retries=self.max_retries,
                backoff_factor=self.backoff_factor,
                source_id=source.id,
            )

            if response.status_code == 401:
                if refreshed:
                    raise AuthExpiredError(
                        f"{self.name} rejected the refreshed token for '{source.name}'",
                        source_id=source.id,
                    )
                logger.debug("%s returned 401 for %s, refreshing token", self.name, source.id)
                credentials = await self._refresh(source, credentials, context)
                refreshed = True
                continue

            raise_for_status(response, source.id)
            return parse_json_body(response, source.id)
