"""Wire protocol layer.

Defines the JSON-RPC envelopes exchanged with an XSWD wallet (or a
public daemon in fallback mode):
- Requests: client -> server calls with integer ids
- Replies: results, errors, handshake answers and event pushes
- Identity: the application descriptor sent once at handshake time
"""

from .identity import AppInfo, generate_app_id
from .replies import (
    AuthReply,
    EventPush,
    EventType,
    ReplyKind,
    RPCErrorBody,
    classify,
    is_event_payload,
    reply_id,
)
from .requests import Entity, RPCRequest

__all__ = [
    "AppInfo",
    "generate_app_id",
    "AuthReply",
    "EventPush",
    "EventType",
    "ReplyKind",
    "RPCErrorBody",
    "classify",
    "is_event_payload",
    "reply_id",
    "Entity",
    "RPCRequest",
]
