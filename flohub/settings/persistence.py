"""
Per-user settings persistence backed by JSON files.

Each user owns one document under ``<data_dir>/users``. Writes are atomic
(temp file then rename) and serialised per user, so concurrent requests for
the same user resolve as last-writer-wins without ever leaving a torn file.
"""

import contextlib
import hashlib
import json
import logging
import re
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from .exceptions import SettingsPersistenceError
from .models import SCHEMA_VERSION, UserSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SAFE_USER_ID = re.compile(r"^[A-Za-z0-9_.@-]{1,128}$")


class UserSettingsStore:
    """Loads and saves ``UserSettings`` documents, one JSON file per user.

    Example:
        >>> store = UserSettingsStore(Path("/var/lib/flohub/users"))
        >>> settings = store.load("alice@example.com")
        >>> store.update("alice@example.com", lambda s: s.selected_cals.append("primary"))
    """

    def __init__(self, users_dir: Path) -> None:
        """Initialize the store.

        Args:
            users_dir: Directory holding the per-user documents

        Raises:
            SettingsPersistenceError: If the directory cannot be created
        """
        self.users_dir = users_dir
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        try:
            self.users_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SettingsPersistenceError(
                f"Failed to create settings directory: {users_dir}",
                operation="initialize",
                file_path=str(users_dir),
                original_error=e,
            ) from e

        logger.debug("User settings store initialized at %s", self.users_dir)

    def path_for(self, user_id: str) -> Path:
        """Map a user id to its document path without allowing path traversal."""
        if not user_id:
            raise ValueError("user_id must not be empty")
        if _SAFE_USER_ID.match(user_id) and not user_id.startswith("."):
            filename = user_id
        else:
            digest = hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:32]
            filename = f"u-{digest}"
        return self.users_dir / f"{filename}.json"

    def exists(self, user_id: str) -> bool:
        return self.path_for(user_id).exists()

    def load(self, user_id: str) -> UserSettings:
        """Load a user's settings, returning an empty document when none exists.

        A document that cannot be parsed is moved aside and replaced by an
        empty one so that one bad file never takes the user's requests down.
        """
        file_path = self.path_for(user_id)
        if not file_path.exists():
            return UserSettings()

        try:
            with file_path.open(encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.exception("Invalid JSON in settings file %s", file_path)
            self._quarantine(file_path)
            return UserSettings()
        except OSError as e:
            raise SettingsPersistenceError(
                "Failed to read settings",
                operation="load",
                file_path=str(file_path),
                original_error=e,
            ) from e

        try:
            return UserSettings.model_validate(self._migrate_schema(data))
        except (PydanticValidationError, TypeError):
            logger.exception("Settings file %s does not match the schema", file_path)
            self._quarantine(file_path)
            return UserSettings()

    def save(self, user_id: str, settings: UserSettings) -> None:
        """Persist a user's settings with an atomic write.

        Raises:
            SettingsPersistenceError: If the write fails
        """
        file_path = self.path_for(user_id)
        settings.metadata.version = SCHEMA_VERSION
        settings.metadata.last_modified = datetime.now()

        try:
            self._atomic_write(file_path, settings)
        except OSError as e:
            raise SettingsPersistenceError(
                "Failed to save settings",
                operation="save",
                file_path=str(file_path),
                original_error=e,
            ) from e

        logger.debug("Settings saved for user file %s", file_path.name)

    def update(self, user_id: str, mutator: Callable[[UserSettings], T]) -> T:
        """Load, mutate and save a user's document under the user's lock.

        Args:
            user_id: Owner of the document
            mutator: Function applied to the loaded document; its return
                value is passed through

        Returns:
            Whatever ``mutator`` returned
        """
        with self.lock(user_id):
            settings = self.load(user_id)
            result = mutator(settings)
            self.save(user_id, settings)
            return result

    def delete(self, user_id: str) -> bool:
        file_path = self.path_for(user_id)
        with self.lock(user_id):
            if not file_path.exists():
                return False
            try:
                file_path.unlink()
            except OSError as e:
                raise SettingsPersistenceError(
                    "Failed to delete settings",
                    operation="delete",
                    file_path=str(file_path),
                    original_error=e,
                ) from e
        return True

    def lock(self, user_id: str) -> threading.Lock:
        """Per-user lock serialising read-modify-write cycles."""
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    def _migrate_schema(self, data: dict[str, Any]) -> dict[str, Any]:
        """Upgrade older document layouts to the current schema.

        Version 0 documents have no metadata block and may use snake_case
        keys; model aliases accept both spellings, so only the defaults need
        filling in here.
        """
        if not isinstance(data, dict):
            raise TypeError(f"Settings document must be an object, got {type(data).__name__}")

        metadata = data.get("metadata") or {}
        version = metadata.get("version", 0)

        if version < 1:
            logger.info("Migrating settings document from schema v%s to v1", version)
            data.setdefault("calendarSources", data.pop("calendar_sources", []) or [])
            data.setdefault("selectedCals", data.pop("selected_cals", []) or [])
            if "power_automate_url" in data:
                data.setdefault("powerAutomateUrl", data.pop("power_automate_url"))
            data["metadata"] = {"version": SCHEMA_VERSION}

        return data

    def _atomic_write(self, file_path: Path, settings: UserSettings) -> None:
        temp_file = file_path.with_suffix(".tmp")

        try:
            with temp_file.open("w", encoding="utf-8") as f:
                json.dump(
                    settings.model_dump(mode="json", by_alias=True),
                    f,
                    indent=2,
                    ensure_ascii=False,
                )
                f.flush()

            temp_file.replace(file_path)

        except Exception:
            if temp_file.exists():
                with contextlib.suppress(OSError):
                    temp_file.unlink()
            raise

    def _quarantine(self, file_path: Path) -> Optional[Path]:
        """Move an unreadable document aside, keeping it for inspection."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        target = file_path.with_name(f"{file_path.stem}.corrupt-{timestamp}.json")
        try:
            file_path.replace(target)
        except OSError:
            logger.exception("Could not move corrupt settings file %s aside", file_path)
            return None
        logger.warning("Corrupt settings file moved to %s", target)
        return target
