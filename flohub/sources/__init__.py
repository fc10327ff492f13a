"""Calendar sources: models and error taxonomy.

The per-user CRUD layer lives in ``flohub.sources.registry``.
"""

from .exceptions import (
    AuthExpiredError,
    NormalizationWarning,
    SourceError,
    SourceFetchError,
    SourceNotFoundError,
    SourceTimeoutError,
    ValidationError,
)
from .models import CalendarSource, OAuthCredentials, SourceStatus, SourceType

__all__ = [
    "AuthExpiredError",
    "CalendarSource",
    "NormalizationWarning",
    "OAuthCredentials",
    "SourceError",
    "SourceFetchError",
    "SourceNotFoundError",
    "SourceStatus",
    "SourceTimeoutError",
    "SourceType",
    "ValidationError",
]
