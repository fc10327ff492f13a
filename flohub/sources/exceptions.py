"""Source-specific exceptions.

Every failure that can be pinned on one calendar source derives from
``SourceError`` so that the aggregator can record it against that source and
carry on with the others.
"""

from typing import Optional


class SourceError(Exception):
    """Base exception for source-related errors."""

    def __init__(self, message: str, source_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source_id = source_id


class ValidationError(SourceError):
    """Exception raised when a source create/update payload is rejected."""

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        source_id: Optional[str] = None,
    ):
        super().__init__(message, source_id)
        self.field_name = field_name


class SourceNotFoundError(SourceError):
    """Exception raised when a source id does not exist in the user's registry."""


class AuthExpiredError(SourceError):
    """Exception raised when an OAuth token cannot be refreshed.

    The user has to reconnect the account before the source can sync again.
    """


class SourceFetchError(SourceError):
    """Exception raised when a provider call fails or returns an unusable body."""

    def __init__(
        self,
        message: str,
        source_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, source_id)
        self.status_code = status_code


class SourceTimeoutError(SourceFetchError):
    """Exception raised when a source does not answer within its time budget."""


class NormalizationWarning(SourceError):
    """A raw provider event that had to be dropped during normalization.

    Logged and counted, never raised out of the normalizer.
    """
