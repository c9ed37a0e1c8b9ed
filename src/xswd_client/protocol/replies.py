"""Reply definitions for the protocol layer.

Everything the wallet sends back is one of:
- Handshake reply: ``{"accepted": bool, "message": str}``, no id
- Result reply: response to a request (has ``id`` and ``result``)
- Error reply: failed request (has ``id`` and ``error``)
- Event push: unsolicited, shaped like a result reply whose result is
  ``{"event": <category>, "value": <any>}``

Replies are kept as plain decoded JSON; the models below validate the
parts the session layer acts on.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel


class EventType(str, Enum):
    """Event categories the wallet pushes."""

    NEW_TOPOHEIGHT = "new_topoheight"
    NEW_BALANCE = "new_balance"
    NEW_ENTRY = "new_entry"


class ReplyKind(str, Enum):
    """Dispatch classification of an inbound message."""

    AUTH = "auth"
    ERROR = "error"
    EVENT = "event"
    RESULT = "result"
    UNKNOWN = "unknown"


class AuthReply(BaseModel):
    """Handshake reply from the wallet."""

    accepted: bool
    message: str = ""


class RPCErrorBody(BaseModel):
    """The ``error`` member of an error reply."""

    message: str = "Unknown error"
    code: int | None = None


class EventPush(BaseModel):
    """The ``result`` member of an event push."""

    event: str
    value: Any = None


def is_event_payload(result: Any) -> bool:
    """Check if a result value is structurally an event push."""
    return isinstance(result, dict) and "event" in result and "value" in result


def classify(message: Any, events_supported: bool = True) -> ReplyKind:
    """Decide where an inbound message should be routed."""
    if not isinstance(message, dict):
        return ReplyKind.UNKNOWN
    if "accepted" in message:
        return ReplyKind.AUTH
    if "error" in message:
        return ReplyKind.ERROR
    if "result" in message:
        if events_supported and is_event_payload(message["result"]):
            return ReplyKind.EVENT
        return ReplyKind.RESULT
    return ReplyKind.UNKNOWN


def reply_id(message: Any) -> int | None:
    """Extract the integer request id of a reply.

    Servers may echo the id as a string; non-numeric ids never match a
    pending request.
    """
    if not isinstance(message, dict):
        return None
    raw = message.get("id")
    if isinstance(raw, bool) or raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None
