"""Error types shared by the admin clients and the plugin server.

- TransportError: the request never completed (DNS, refused, timeout).
  The message is the transport failure's own text.
- ServerError: a non-2xx response. The message comes from the body's
  ``error`` (or ``message``) field when present.
- ProviderError: the Bugsnag REST API rejected a server-side call.
"""

from __future__ import annotations

from typing import Any


class AdminApiError(Exception):
    """Base class for every failure surfaced by an admin I/O operation."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportError(AdminApiError):
    """The request did not reach the server or no response came back."""


class ServerError(AdminApiError):
    """The server answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        status_code: int,
        body: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body or {}


class ProviderError(Exception):
    """A Bugsnag API call failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
