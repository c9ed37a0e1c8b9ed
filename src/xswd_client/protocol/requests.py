"""Request definitions for the protocol layer.

Requests are JSON-RPC 2.0 calls from the application to the wallet.
Each request carries an integer ID assigned by the session so the reply
can be correlated with the caller that is waiting for it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel


class Entity(str, Enum):
    """Who ultimately serves a call.

    Wallet calls need an authorized XSWD session. Daemon calls are relayed
    by the wallet, or answered directly by a public daemon in fallback mode.
    """

    WALLET = "wallet"
    DAEMON = "daemon"


class RPCRequest(BaseModel):
    """A JSON-RPC request from client to server.

    Example:
        {
            "jsonrpc": "2.0",
            "id": 3,
            "method": "DERO.GetInfo"
        }

    ``params`` is omitted from the wire form when there are none.
    """

    jsonrpc: Literal["2.0"] = "2.0"
    id: int
    method: str
    params: dict[str, Any] | list[Any] | None = None

    def to_json(self) -> str:
        """Serialize to the wire form."""
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def create(
        cls,
        request_id: int,
        method: str,
        params: dict[str, Any] | list[Any] | None = None,
    ) -> RPCRequest:
        """Factory method for creating requests."""
        return cls(id=request_id, method=method, params=params)

    @classmethod
    def subscribe(cls, request_id: int, event: str) -> RPCRequest:
        """Create a wallet Subscribe request for an event category."""
        return cls.create(request_id, "Subscribe", {"event": event})
