"""Exception types shared across the relay.

Only :class:`ConfigError` is fatal; everything else is caught at the boundary
that detected it and turned into a chat message or an HTTP status code.
"""

from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    """Base class for all relay errors."""


class ConfigError(RelayError):
    """A required setting is missing or invalid."""


class GatewayError(RelayError):
    """The messaging gateway rejected a request or could not be reached."""

    def __init__(self, method: str, detail: str, status: Optional[int] = None) -> None:
        self.method = method
        self.detail = detail
        self.status = status
        super().__init__(f"{method} failed: {detail}")


class RecordSourceError(RelayError):
    """The remote record store returned an error or a malformed response."""


class MissingRecordError(RelayError):
    """A notification arrived without a ``record`` object."""
