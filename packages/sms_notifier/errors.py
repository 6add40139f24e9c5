"""Exception taxonomy for ``sms_notifier``.

Only two of these ever cross a public boundary as raised exceptions:
``ConfigurationError`` (constructors, settings loading) and
``ConnectivityError`` (relay collaborator calls). Format failures are carried
as data on :class:`~sms_notifier.models.Transaction` and presentation failures
are logged by the notification manager.
"""

from __future__ import annotations


class NotifierError(Exception):
    """Base class for all package errors."""


class FormatError(NotifierError):
    """Text does not match a known bank grammar or fails the validity gate.

    :func:`sms_notifier.parser.parse` never raises this; callers that prefer
    exceptions over ``is_valid`` checks use :func:`sms_notifier.parser.require_valid`.
    """

    def __init__(self, message: str, *, raw_content: str | None = None) -> None:
        super().__init__(message)
        self.raw_content = raw_content


class ConnectivityError(NotifierError):
    """Relay unreachable, stream closed, or credential rejected."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PresentationError(NotifierError):
    """A windowing collaborator call failed (e.g., surface already destroyed)."""


class ConfigurationError(NotifierError):
    """Missing or invalid configuration; raised before any I/O is attempted."""


__all__ = [
    "NotifierError",
    "FormatError",
    "ConnectivityError",
    "PresentationError",
    "ConfigurationError",
]
