"""Per-user registry of calendar sources."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from flohub.settings import UserSettings, UserSettingsStore

from .exceptions import AuthExpiredError, SourceNotFoundError, ValidationError
from .models import (
    CalendarSource,
    OAuthCredentials,
    SourceCreate,
    SourceStatus,
    SourceType,
    SourceUpdate,
)

logger = logging.getLogger(__name__)

LEGACY_O365_SOURCE_ID = "o365-legacy"
LEGACY_O365_NAME = "Work Calendar (O365)"

_URL_REQUIRED_TYPES = (SourceType.URL, SourceType.ICAL)


def build_legacy_sources(
    selected_cals: Iterable[str],
    power_automate_url: Optional[str] = None,
    calendars: Optional[Iterable[Mapping[str, Any]]] = None,
) -> list[CalendarSource]:
    """Synthesize sources from legacy single-account settings.

    Args:
        selected_cals: Legacy Google calendar ids
        power_automate_url: Legacy Power Automate webhook URL
        calendars: Optional provider calendar list (``id``, ``summary``,
            ``primary``) used for names and the personal tag

    Returns:
        Sources with deterministic ids, so repeated synthesis yields the same set
    """
    calendar_info = {
        str(c["id"]): c for c in calendars or [] if isinstance(c, Mapping) and c.get("id")
    }
    sources: list[CalendarSource] = []
    seen: set[str] = set()

    for index, cal_id in enumerate(selected_cals):
        if not cal_id or cal_id in seen:
            continue
        seen.add(cal_id)
        info = calendar_info.get(cal_id, {})
        is_primary = bool(info.get("primary")) or cal_id == "primary"
        sources.append(
            CalendarSource(
                id=f"google-{cal_id}",
                name=info.get("summary") or f"Google Calendar {index + 1}",
                type=SourceType.GOOGLE,
                source_id=cal_id,
                tags=["personal"] if is_primary else [],
                is_enabled=True,
            )
        )

    if power_automate_url:
        sources.append(
            CalendarSource(
                id=LEGACY_O365_SOURCE_ID,
                name=LEGACY_O365_NAME,
                type=SourceType.O365,
                source_id="o365",
                connection_data=power_automate_url,
                tags=["work"],
                is_enabled=True,
            )
        )

    return sources


def _validation_error_from(error: PydanticValidationError) -> ValidationError:
    first = error.errors()[0] if error.errors() else {}
    location = first.get("loc") or ()
    field_name = str(location[0]) if location else None
    return ValidationError(
        f"Invalid source: {first.get('msg', str(error))}", field_name=field_name
    )


def _validate_source(source: CalendarSource) -> None:
    """Check cross-field rules pydantic cannot express on its own."""
    if not source.name.strip():
        raise ValidationError("Source name is required", field_name="name", source_id=source.id)
    if not source.source_id.strip():
        raise ValidationError(
            "Source identifier is required", field_name="sourceId", source_id=source.id
        )

    needs_url = source.type in _URL_REQUIRED_TYPES or (
        source.type == SourceType.O365 and not source.is_oauth
    )
    if needs_url and not source.webhook_url:
        raise ValidationError(
            "Webhook URL must start with http:// or https://",
            field_name="connectionData",
            source_id=source.id,
        )


class SourceRegistry:
    """CRUD over a user's calendar sources, backed by ``UserSettingsStore``.

    The registry is the only writer of ``calendarSources``. Legacy settings are
    migrated on the first ``list`` of a user that has no sources yet.
    """

    def __init__(self, store: UserSettingsStore) -> None:
        self.store = store

    def list(self, user_id: str, migrate: bool = True) -> list[CalendarSource]:
        settings = self.store.load(user_id)
        if migrate and not settings.calendar_sources and settings.has_legacy_settings:
            return self.migrate_legacy(user_id)
        return list(settings.calendar_sources)

    def get(self, user_id: str, source_id: str) -> CalendarSource:
        source = self.store.load(user_id).find_source(source_id)
        if source is None:
            raise SourceNotFoundError(f"Source not found: {source_id}", source_id=source_id)
        return source

    def legacy_sources(self, user_id: str) -> list[CalendarSource]:
        """Transient sources built from the user's legacy settings, not persisted."""
        settings = self.store.load(user_id)
        return build_legacy_sources(settings.selected_cals, settings.power_automate_url)

    def create(
        self, user_id: str, payload: Union[SourceCreate, Mapping[str, Any]]
    ) -> CalendarSource:
        """Register a new source.

        Raises:
            ValidationError: If the payload is missing or has invalid fields
        """
        try:
            data = (
                payload if isinstance(payload, SourceCreate) else SourceCreate.model_validate(payload)
            )
            source = CalendarSource(
                id=f"{data.type.value}-{uuid.uuid4().hex[:12]}",
                **data.model_dump(exclude_none=True),
            )
        except PydanticValidationError as e:
            raise _validation_error_from(e) from e

        _validate_source(source)

        def _append(settings: UserSettings) -> CalendarSource:
            settings.calendar_sources.append(source)
            return source

        created = self.store.update(user_id, _append)
        logger.info("Created %s source %s for user", created.type.value, created.id)
        return created

    def update(
        self, user_id: str, source_id: str, payload: Union[SourceUpdate, Mapping[str, Any]]
    ) -> CalendarSource:
        """Apply a partial update to an existing source.

        Raises:
            ValidationError: If the merged source is invalid
            SourceNotFoundError: If no source has ``source_id``
        """
        try:
            changes = (
                payload if isinstance(payload, SourceUpdate) else SourceUpdate.model_validate(payload)
            )
        except PydanticValidationError as e:
            raise _validation_error_from(e) from e

        update_data = changes.model_dump(exclude_unset=True)

        def _apply(settings: UserSettings) -> CalendarSource:
            for index, existing in enumerate(settings.calendar_sources):
                if existing.id != source_id:
                    continue
                try:
                    merged = CalendarSource.model_validate(
                        {**existing.model_dump(), **update_data, "id": existing.id}
                    )
                except PydanticValidationError as e:
                    raise _validation_error_from(e) from e
                _validate_source(merged)
                settings.calendar_sources[index] = merged
                return merged
            raise SourceNotFoundError(f"Source not found: {source_id}", source_id=source_id)

        updated = self.store.update(user_id, _apply)
        logger.info("Updated source %s", source_id)
        return updated

    def delete(self, user_id: str, source_id: str) -> bool:
        """Remove a source.

        Returns:
            True if the source existed and was removed
        """

        def _remove(settings: UserSettings) -> bool:
            remaining = [s for s in settings.calendar_sources if s.id != source_id]
            if len(remaining) == len(settings.calendar_sources):
                return False
            settings.calendar_sources = remaining
            return True

        removed = self.store.update(user_id, _remove)
        if removed:
            logger.info("Deleted source %s", source_id)
        return removed

    def migrate_legacy(
        self,
        user_id: str,
        selected_cals: Optional[Iterable[str]] = None,
        power_automate_url: Optional[str] = None,
        calendars: Optional[Iterable[Mapping[str, Any]]] = None,
    ) -> list[CalendarSource]:
        """Convert legacy settings into sources when the user has none yet.

        Explicit arguments override the stored legacy fields. Running this
        again once sources exist is a no-op, which makes it idempotent.
        """

        def _migrate(settings: UserSettings) -> list[CalendarSource]:
            if settings.calendar_sources:
                return list(settings.calendar_sources)

            cals = list(selected_cals) if selected_cals is not None else settings.selected_cals
            url = power_automate_url if power_automate_url is not None else settings.power_automate_url
            settings.calendar_sources = build_legacy_sources(cals, url, calendars)
            if settings.calendar_sources:
                logger.info(
                    "Migrated %d legacy calendar(s) to sources", len(settings.calendar_sources)
                )
            return list(settings.calendar_sources)

        return self.store.update(user_id, _migrate)

    def save_credentials(
        self, user_id: str, source: CalendarSource, credentials: OAuthCredentials
    ) -> None:
        """Write refreshed tokens back to the source, or to the account for legacy sources."""

        def _store(settings: UserSettings) -> None:
            stored = settings.find_source(source.id)
            if stored is not None and stored.credentials is not None:
                stored.credentials = credentials
            else:
                settings.google_account = credentials

        self.store.update(user_id, _store)
        logger.debug("Stored refreshed OAuth credentials for source %s", source.id)

    def account_credentials(self, user_id: str) -> Optional[OAuthCredentials]:
        return self.store.load(user_id).google_account

    def set_account_credentials(self, user_id: str, credentials: OAuthCredentials) -> None:
        def _store(settings: UserSettings) -> None:
            settings.google_account = credentials

        self.store.update(user_id, _store)

    def record_sync_results(
        self,
        user_id: str,
        outcomes: Mapping[str, Optional[Exception]],
        synced_at: Optional[datetime] = None,
    ) -> None:
        """Stamp status fields on registered sources after an aggregation cycle.

        Sources not in the registry (legacy fallback) are ignored.
        """
        if not outcomes:
            return
        timestamp = synced_at or datetime.now(timezone.utc)

        def _stamp(settings: UserSettings) -> None:
            for source in settings.calendar_sources:
                if source.id not in outcomes:
                    continue
                error = outcomes[source.id]
                if error is None:
                    source.status = SourceStatus.OK
                    source.last_error = None
                    source.last_sync_time = timestamp
                elif isinstance(error, AuthExpiredError):
                    source.status = SourceStatus.RECONNECT_REQUIRED
                    source.last_error = str(error)
                else:
                    source.status = SourceStatus.ERROR
                    source.last_error = str(error)

        with self.store.lock(user_id):
            settings = self.store.load(user_id)
            if not any(source.id in outcomes for source in settings.calendar_sources):
                return
            _stamp(settings)
            self.store.save(user_id, settings)
