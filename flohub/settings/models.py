"""Pydantic models for the per-user settings document."""

from datetime import datetime
from typing import Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from flohub.sources.models import CalendarSource, CamelModel, OAuthCredentials

SCHEMA_VERSION = 1


class SettingsMetadata(CamelModel):
    """Bookkeeping stored alongside each settings document."""

    version: int = SCHEMA_VERSION
    last_modified: datetime = Field(default_factory=datetime.now)


class UserSettings(CamelModel):
    """Everything FloHub persists for one user.

    ``selected_cals`` and ``power_automate_url`` are the legacy single-account
    settings; they are only read for migration and back-compat fallback.
    ``google_account`` holds the tokens of the account the user signed in
    with, used by legacy Google calendars that carry no tokens of their own.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    calendar_sources: list[CalendarSource] = Field(default_factory=list)
    selected_cals: list[str] = Field(default_factory=list)
    power_automate_url: Optional[str] = None
    google_account: Optional[OAuthCredentials] = None
    timezone: Optional[str] = None
    metadata: SettingsMetadata = Field(default_factory=SettingsMetadata)

    @property
    def has_legacy_settings(self) -> bool:
        return bool(self.selected_cals or self.power_automate_url)

    def find_source(self, source_id: str) -> Optional[CalendarSource]:
        for source in self.calendar_sources:
            if source.id == source_id:
                return source
        return None
