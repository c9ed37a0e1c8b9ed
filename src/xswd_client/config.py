"""Session configuration.

One SessionConfig describes one endpoint. The primary endpoint is the
wallet's XSWD WebSocket; the fallback endpoint is a daemon's plain
JSON-RPC HTTP endpoint.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

DEFAULT_PRIMARY_PORT = 44326
DEFAULT_FALLBACK_PORT = 10102
PRIMARY_PATH = "/xswd"
FALLBACK_PATH = "/json_rpc"

_TRUE = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SessionConfig:
    """Configuration for one session endpoint.

    Timeouts are in seconds; ``None`` waits forever.
    """

    # Addressing
    address: str = "localhost"
    port: int = DEFAULT_PRIMARY_PORT
    secure: bool = False
    path: str = PRIMARY_PATH

    # Timeouts
    auth_timeout: float | None = 40.0
    request_timeout: float | None = 20.0
    event_wait_timeout: float | None = 30.0

    # Base delay of linearly growing retry intervals (base * attempt)
    poll_interval: float = 0.1

    # Reassembly buffer cap, None for unbounded
    max_buffer_bytes: int | None = 16 * 1024 * 1024

    def url_for(self, scheme: str) -> str:
        """Build the endpoint URL for a plain scheme ("ws" or "http")."""
        if self.secure:
            scheme += "s"
        path = self.path if self.path.startswith("/") else f"/{self.path}"
        return f"{scheme}://{self.address}:{self.port}{path}"

    @property
    def websocket_url(self) -> str:
        return self.url_for("ws")

    @property
    def http_url(self) -> str:
        return self.url_for("http")

    def with_overrides(self, **changes: object) -> SessionConfig:
        """Copy with some fields replaced (the original stays untouched)."""
        return replace(self, **changes)  # type: ignore[arg-type]

    @classmethod
    def primary(cls, **kwargs: object) -> SessionConfig:
        """Config for the wallet's XSWD endpoint."""
        return cls(**kwargs)  # type: ignore[arg-type]

    @classmethod
    def fallback(cls, **kwargs: object) -> SessionConfig:
        """Config for a daemon JSON-RPC endpoint."""
        kwargs.setdefault("port", DEFAULT_FALLBACK_PORT)
        kwargs.setdefault("path", FALLBACK_PATH)
        return cls(**kwargs)  # type: ignore[arg-type]

    @classmethod
    def from_env(cls, prefix: str = "XSWD_", fallback: bool = False) -> SessionConfig:
        """Build a config from environment variables.

        Recognized (with the default prefix): XSWD_ADDRESS, XSWD_PORT,
        XSWD_SECURE, XSWD_AUTH_TIMEOUT, XSWD_REQUEST_TIMEOUT,
        XSWD_EVENT_TIMEOUT, XSWD_POLL_INTERVAL. Unset variables keep the
        defaults.
        """
        base = cls.fallback() if fallback else cls.primary()
        changes: dict[str, object] = {}

        if address := os.getenv(f"{prefix}ADDRESS"):
            changes["address"] = address
        if port := os.getenv(f"{prefix}PORT"):
            changes["port"] = int(port)
        if secure := os.getenv(f"{prefix}SECURE"):
            changes["secure"] = secure.lower() in _TRUE

        timeouts = {
            "auth_timeout": "AUTH_TIMEOUT",
            "request_timeout": "REQUEST_TIMEOUT",
            "event_wait_timeout": "EVENT_TIMEOUT",
        }
        for field_name, env_key in timeouts.items():
            value = os.getenv(f"{prefix}{env_key}")
            if value is None:
                continue
            # "none" or "0" disables the timeout
            seconds = None if value.lower() == "none" else float(value)
            changes[field_name] = seconds or None

        if interval := os.getenv(f"{prefix}POLL_INTERVAL"):
            changes["poll_interval"] = float(interval)

        return base.with_overrides(**changes)
