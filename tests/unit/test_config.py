"""Tests for SessionConfig."""

from __future__ import annotations

import dataclasses

import pytest

from xswd_client.config import (
    DEFAULT_FALLBACK_PORT,
    DEFAULT_PRIMARY_PORT,
    SessionConfig,
)


class TestDefaults:
    def test_primary_defaults(self) -> None:
        config = SessionConfig.primary()

        assert config.port == DEFAULT_PRIMARY_PORT
        assert config.websocket_url == "ws://localhost:44326/xswd"
        assert config.auth_timeout == 40.0
        assert config.request_timeout == 20.0

    def test_fallback_defaults(self) -> None:
        config = SessionConfig.fallback(address="node.example")

        assert config.port == DEFAULT_FALLBACK_PORT
        assert config.http_url == "http://node.example:10102/json_rpc"

    def test_secure_schemes(self) -> None:
        config = SessionConfig.primary(secure=True)

        assert config.websocket_url.startswith("wss://")
        assert config.http_url.startswith("https://")

    def test_path_without_slash(self) -> None:
        config = SessionConfig.primary(path="xswd")
        assert config.websocket_url == "ws://localhost:44326/xswd"

    def test_frozen(self) -> None:
        config = SessionConfig.primary()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.port = 1  # type: ignore[misc]

    def test_with_overrides(self) -> None:
        config = SessionConfig.primary()
        changed = config.with_overrides(port=1234)

        assert changed.port == 1234
        assert config.port == DEFAULT_PRIMARY_PORT


class TestFromEnv:
    """Tests for environment loading."""

    def test_unset_keeps_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("ADDRESS", "PORT", "SECURE", "AUTH_TIMEOUT", "REQUEST_TIMEOUT"):
            monkeypatch.delenv(f"XSWD_{name}", raising=False)
        monkeypatch.delenv("XSWD_EVENT_TIMEOUT", raising=False)
        monkeypatch.delenv("XSWD_POLL_INTERVAL", raising=False)

        assert SessionConfig.from_env() == SessionConfig.primary()

    def test_reads_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("XSWD_ADDRESS", "wallet.local")
        monkeypatch.setenv("XSWD_PORT", "5000")
        monkeypatch.setenv("XSWD_SECURE", "true")
        monkeypatch.setenv("XSWD_REQUEST_TIMEOUT", "2.5")
        monkeypatch.setenv("XSWD_EVENT_TIMEOUT", "none")
        monkeypatch.setenv("XSWD_AUTH_TIMEOUT", "0")

        config = SessionConfig.from_env()

        assert config.address == "wallet.local"
        assert config.port == 5000
        assert config.secure is True
        assert config.request_timeout == 2.5
        assert config.event_wait_timeout is None
        assert config.auth_timeout is None

    def test_custom_prefix_for_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NODE_ADDRESS", "node.example")

        config = SessionConfig.from_env(prefix="NODE_", fallback=True)

        assert config.address == "node.example"
        assert config.port == DEFAULT_FALLBACK_PORT
        assert config.path == "/json_rpc"
