"""Data models for calendar sources."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

OAUTH_MARKER = "oauth:"


class SourceType(str, Enum):
    """Kinds of calendar source a user can connect."""

    GOOGLE = "google"
    O365 = "o365"
    URL = "url"
    ICAL = "ical"
    OTHER = "other"


class SourceStatus(str, Enum):
    """Outcome of the most recent sync of a source."""

    UNKNOWN = "unknown"
    OK = "ok"
    ERROR = "error"
    RECONNECT_REQUIRED = "reconnect_required"


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OAuthCredentials(CamelModel):
    """OAuth token state for one connected account."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None

    def is_expired(self, skew_seconds: int = 60, now: Optional[datetime] = None) -> bool:
        """Check whether the access token is expired or about to expire.

        Tokens without a known expiry are treated as valid; a 401 from the
        provider triggers a refresh for those.
        """
        if self.expires_at is None:
            return False
        current = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return current + timedelta(seconds=skew_seconds) >= expires_at


class CalendarSource(CamelModel):
    """A user-registered calendar source.

    ``source_id`` is provider-specific: a calendar id for Google/Microsoft or
    the webhook URL for URL-type sources. ``connection_data`` carries an
    optional webhook URL or an ``oauth:<account>`` marker for OAuth sources.
    """

    id: str
    name: str
    type: SourceType
    source_id: str
    connection_data: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    is_enabled: bool = True

    # Sync bookkeeping written back by the aggregator
    status: SourceStatus = SourceStatus.UNKNOWN
    last_error: Optional[str] = None
    last_sync_time: Optional[datetime] = None

    # Never returned by the API
    credentials: Optional[OAuthCredentials] = None

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for tag in v:
            tag = tag.strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    @property
    def is_oauth(self) -> bool:
        """True when the source is backed by an OAuth account rather than a URL."""
        if self.credentials is not None:
            return True
        return bool(self.connection_data and self.connection_data.startswith(OAUTH_MARKER))

    @property
    def webhook_url(self) -> Optional[str]:
        """The HTTP(S) URL this source is fetched from, if it has one."""
        for candidate in (self.connection_data, self.source_id):
            if candidate and candidate.lower().startswith(("http://", "https://")):
                return candidate
        return None

    def to_api_dict(self) -> dict[str, Any]:
        """Serialise for API responses, without stored credentials."""
        data = self.model_dump(mode="json", by_alias=True, exclude={"credentials"})
        url = self.webhook_url
        if url:
            data["url"] = url
        return data


class SourceCreate(CamelModel):
    """Payload accepted when registering a new source."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    name: str
    type: SourceType
    source_id: str
    connection_data: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    is_enabled: bool = True
    credentials: Optional[OAuthCredentials] = None


class SourceUpdate(CamelModel):
    """Partial update payload; unset fields are left untouched."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    type: Optional[SourceType] = None
    source_id: Optional[str] = None
    connection_data: Optional[str] = None
    tags: Optional[list[str]] = None
    is_enabled: Optional[bool] = None
    credentials: Optional[OAuthCredentials] = None
