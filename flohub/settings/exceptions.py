"""Errors raised by the per-user settings store."""

from pathlib import Path
from typing import Any, Optional, Union


class SettingsError(Exception):
    """Base class for settings storage failures.

    ``context`` carries structured details for logging; it is never returned
    to API callers.
    """

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})

    def __str__(self) -> str:
        if not self.context:
            return self.message
        extra = ", ".join(f"{key}={value}" for key, value in sorted(self.context.items()))
        return f"{self.message} ({extra})"


class SettingsPersistenceError(SettingsError):
    """A settings document could not be read, written or removed.

    Example:
        >>> raise SettingsPersistenceError(
        ...     "Failed to save settings",
        ...     operation="save",
        ...     file_path=Path("/var/lib/flohub/users/alice.json"),
        ...     original_error=PermissionError("Permission denied"),
        ... )
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        file_path: Optional[Union[str, Path]] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        self.operation = operation
        self.file_path = str(file_path) if file_path is not None else None
        self.original_error = original_error

        context: dict[str, Any] = {}
        if operation:
            context["operation"] = operation
        if self.file_path:
            context["file"] = Path(self.file_path).name
        if original_error is not None:
            context["cause"] = type(original_error).__name__

        super().__init__(message, context)
