"""XSWD client - session layer for wallet JSON-RPC over XSWD.

Provides:
- PrimarySession: authorized WebSocket session with event delivery
- FallbackSession: daemon-only JSON-RPC over HTTP
- SessionManager: failover between the two
- XSWDClient: wallet/node call namespaces on top of the manager
"""

import logging

from .client import DaemonAPI, WalletAPI, XSWDClient
from .config import SessionConfig
from .errors import (
    AuthRefused,
    AuthTimeout,
    EventTimeout,
    NotSubscribed,
    ProtocolError,
    RemoteError,
    RequestTimeout,
    SessionClosed,
    TransportError,
    UnsupportedInFallback,
    XSWDError,
)
from .manager import SessionManager
from .protocol import AppInfo, Entity, EventType, generate_app_id
from .reassembly import INCOMPLETE, MessageReassembler
from .registry import EventRegistry, RequestRegistry
from .session import BaseSession, FallbackSession, PrimarySession, Session, SessionState
from .transport import (
    DuplexTransport,
    ExchangeTransport,
    HTTPExchangeTransport,
    MockDuplexTransport,
    MockExchangeTransport,
    WebSocketTransport,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Client
    "XSWDClient",
    "WalletAPI",
    "DaemonAPI",
    # Sessions
    "SessionManager",
    "Session",
    "BaseSession",
    "PrimarySession",
    "FallbackSession",
    "SessionState",
    "SessionConfig",
    # Protocol
    "AppInfo",
    "Entity",
    "EventType",
    "generate_app_id",
    # Building blocks
    "MessageReassembler",
    "INCOMPLETE",
    "RequestRegistry",
    "EventRegistry",
    # Transports
    "DuplexTransport",
    "ExchangeTransport",
    "WebSocketTransport",
    "HTTPExchangeTransport",
    "MockDuplexTransport",
    "MockExchangeTransport",
    # Errors
    "XSWDError",
    "TransportError",
    "SessionClosed",
    "AuthRefused",
    "AuthTimeout",
    "RequestTimeout",
    "EventTimeout",
    "NotSubscribed",
    "UnsupportedInFallback",
    "ProtocolError",
    "RemoteError",
]
