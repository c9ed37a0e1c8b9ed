"""Error taxonomy for the session layer.

Every failure a caller can observe is one of these types. Timeouts also
derive from the builtin TimeoutError so ``except TimeoutError`` keeps
working for callers that do not care which wait expired.
"""

from __future__ import annotations

from typing import Any


class XSWDError(Exception):
    """Base class for all session layer errors."""


class TransportError(XSWDError):
    """Low-level connect or I/O failure."""


class SessionClosed(TransportError):
    """The session reached the closed state while an operation was in flight."""


class AuthRefused(XSWDError):
    """The wallet explicitly rejected the authorization handshake."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthTimeout(XSWDError, TimeoutError):
    """No handshake reply arrived within the authorization timeout."""


class RequestTimeout(XSWDError, TimeoutError):
    """No reply to a specific request arrived in time."""

    def __init__(self, request_id: int, timeout: float | None) -> None:
        super().__init__(f"request {request_id} timed out after {timeout}s")
        self.request_id = request_id
        self.timeout = timeout


class EventTimeout(XSWDError, TimeoutError):
    """No published event satisfied the waiter in time."""

    def __init__(self, category: str, timeout: float | None) -> None:
        super().__init__(f"no '{category}' event after {timeout}s")
        self.category = category
        self.timeout = timeout


class NotSubscribed(XSWDError):
    """A wait was requested on a category that is not subscribed."""

    def __init__(self, category: str) -> None:
        super().__init__(f"not subscribed to '{category}'")
        self.category = category


class UnsupportedInFallback(XSWDError):
    """The operation needs the authorized primary session."""


class ProtocolError(XSWDError):
    """A payload was parseable but not a message this layer understands."""


class RemoteError(XSWDError):
    """Well-formed error reply from the far end."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        request_id: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.request_id = request_id

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"{self.message} (code {self.code})"
