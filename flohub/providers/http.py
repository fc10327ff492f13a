"""Shared outbound HTTP helpers for provider adapters."""

import asyncio
import ipaddress
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlsplit

import httpx

from flohub import __version__
from flohub.config.settings import FloHubSettings
from flohub.sources.exceptions import SourceFetchError, SourceTimeoutError
from flohub.utils.logging import mask_url

logger = logging.getLogger(__name__)

USER_AGENT = f"FloHub/{__version__}"

_BLOCKED_HOSTNAMES = frozenset({"localhost", "localhost.localdomain", "ip6-localhost", "0.0.0.0"})


def create_http_client(settings: FloHubSettings) -> httpx.AsyncClient:
    """Create the application's shared HTTP client."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.request_timeout),
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=50),
    )


def format_timestamp(value: datetime) -> str:
    """Render an instant as RFC 3339 UTC (``2025-06-02T09:00:00Z``).

    Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def is_url_allowed(url: str, allow_private: bool = False) -> bool:
    """Validate a user-supplied URL before fetching it.

    Only http(s) URLs with a hostname pass. Unless ``allow_private`` is set,
    literal loopback, private, link-local and reserved addresses are refused,
    including decimal and hex encodings of an IPv4 address.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return False

    if parts.scheme not in ("http", "https") or not parts.hostname:
        return False
    if allow_private:
        return True

    hostname = parts.hostname.lower()
    if hostname in _BLOCKED_HOSTNAMES or hostname.endswith((".localhost", ".local", ".internal")):
        return False

    candidate: Any = hostname
    if hostname.isdigit():
        candidate = int(hostname)
    elif hostname.startswith("0x"):
        try:
            candidate = int(hostname, 16)
        except ValueError:
            return True

    try:
        address = ipaddress.ip_address(candidate)
    except ValueError:
        # Regular DNS name
        return True

    return not (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_multicast
        or address.is_unspecified
    )


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int = 1,
    backoff_factor: float = 1.5,
    source_id: Optional[str] = None,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying transient network failures with backoff.

    HTTP error statuses are returned to the caller untouched; only timeouts
    and connection failures are retried.

    Raises:
        SourceTimeoutError: If every attempt timed out
        SourceFetchError: If every attempt failed at the network level
    """
    last_exception: Optional[Exception] = None

    for attempt in range(max_retries + 1):
        try:
            response = await client.request(method, url, **kwargs)
            logger.debug(
                "%s %s -> %s (attempt %d)", method, mask_url(url), response.status_code, attempt + 1
            )
            return response

        except (httpx.TimeoutException, httpx.NetworkError) as e:
            last_exception = e

            if attempt < max_retries:
                backoff_time = backoff_factor**attempt
                logger.warning(
                    "Request failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1,
                    max_retries + 1,
                    backoff_time,
                    type(e).__name__,
                )
                await asyncio.sleep(backoff_time)
            else:
                logger.warning(
                    "Request to %s failed after %s attempts", mask_url(url), max_retries + 1
                )

        except httpx.HTTPError as e:
            raise SourceFetchError(f"HTTP error: {e}", source_id=source_id) from e

    if isinstance(last_exception, httpx.TimeoutException):
        raise SourceTimeoutError(
            f"Request timed out: {mask_url(url)}", source_id=source_id
        ) from last_exception
    raise SourceFetchError(
        f"Network error: {last_exception}", source_id=source_id
    ) from last_exception


def parse_json_body(response: httpx.Response, source_id: Optional[str] = None) -> Any:
    """Decode a JSON body, mapping decode failures to ``SourceFetchError``."""
    try:
        return response.json()
    except ValueError as e:
        raise SourceFetchError(
            "Response body is not valid JSON",
            source_id=source_id,
            status_code=response.status_code,
        ) from e


def raise_for_status(response: httpx.Response, source_id: Optional[str] = None) -> None:
    """Map a non-2xx response to ``SourceFetchError``."""
    if response.is_success:
        return
    raise SourceFetchError(
        f"HTTP {response.status_code}: {response.reason_phrase}",
        source_id=source_id,
        status_code=response.status_code,
    )
