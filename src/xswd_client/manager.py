"""Session manager: primary/fallback selection and failover.

The manager tries the authorized XSWD session first. When the wallet
refuses, does not answer, or cannot be reached, and a fallback endpoint
is configured, it switches to a FallbackSession (daemon calls only) and
can keep retrying the primary in the background.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from .config import SessionConfig
from .errors import AuthRefused, AuthTimeout, TransportError, UnsupportedInFallback
from .protocol.identity import AppInfo
from .protocol.replies import EventType
from .protocol.requests import Entity
from .registry import EventCallback, EventPredicate
from .session import FallbackSession, Params, PrimarySession, Session, SessionState
from .transport import DuplexTransport, ExchangeTransport

logger = logging.getLogger(__name__)

PrimaryTransportFactory = Callable[[SessionConfig], DuplexTransport]
FallbackTransportFactory = Callable[[SessionConfig], ExchangeTransport]

# Errors that make the manager fall back instead of failing
FAILOVER_ERRORS = (AuthRefused, AuthTimeout, TransportError)


class SessionManager:
    """Chooses the active session and exposes the caller-facing surface.

    Provides:
    - Primary authorization with failover to a fallback endpoint
    - Optional background retry of the primary while in fallback mode
    - Routing of requests, subscriptions and event waits
    """

    def __init__(
        self,
        app_info: AppInfo,
        config: SessionConfig | None = None,
        fallback_config: SessionConfig | None = None,
        *,
        log: logging.Logger | None = None,
        retry_primary: bool = False,
        max_retry_delay: float = 30.0,
        primary_transport_factory: PrimaryTransportFactory | None = None,
        fallback_transport_factory: FallbackTransportFactory | None = None,
    ) -> None:
        """Initialize session manager.

        Args:
            app_info: Identity shown to the wallet user at handshake time
            config: Primary (XSWD) endpoint configuration
            fallback_config: Fallback (daemon JSON-RPC) endpoint, or None to
                disable failover
            log: Logger for diagnostics (silent by default)
            retry_primary: Keep retrying the primary while in fallback mode
            max_retry_delay: Upper bound of the retry interval in seconds
            primary_transport_factory: Builds the primary transport (tests)
            fallback_transport_factory: Builds the fallback transport (tests)
        """
        self.app_info = app_info
        self.config = config or SessionConfig.primary()
        self.fallback_config = fallback_config
        self.retry_primary = retry_primary
        self.max_retry_delay = max_retry_delay
        self._log = log or logger
        self._primary_factory = primary_transport_factory
        self._fallback_factory = fallback_transport_factory

        self._primary: PrimarySession | None = None
        self._fallback: FallbackSession | None = None
        self._fallback_mode = False
        self._retry_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    @property
    def primary(self) -> PrimarySession | None:
        """The most recent primary session (possibly refused or closed)."""
        return self._primary

    @property
    def fallback(self) -> FallbackSession | None:
        return self._fallback

    @property
    def fallback_mode(self) -> bool:
        """True while requests go to the fallback session."""
        return self._fallback_mode

    @property
    def active(self) -> Session | None:
        """The session requests are currently routed to."""
        return self._fallback if self._fallback_mode else self._primary

    @property
    def state(self) -> SessionState | None:
        session = self.active
        return session.state if session else None

    async def initialize(self) -> Session:
        """Authorize the primary session, falling back if configured.

        Calling it again closes the sessions from the previous call first.

        Returns:
            The active session

        Raises:
            AuthRefused, AuthTimeout, TransportError: Primary failed and no
                fallback is configured (or the fallback failed too)
        """
        async with self._lock:
            await self._release()

            primary = self._new_primary()
            self._primary = primary
            try:
                await primary.initialize()
            except FAILOVER_ERRORS as e:
                if self.fallback_config is None:
                    raise
                self._log.warning(f"Primary session unavailable ({e}), using fallback")
                fallback = await self._activate_fallback(self.fallback_config)
                if self.retry_primary:
                    self._retry_task = asyncio.create_task(self._retry_primary_loop())
                return fallback

            return primary

    async def send(self, entity: Entity | str, method: str, params: Params = None) -> Any:
        """Send a request through the active session and return its result.

        Raises:
            UnsupportedInFallback: Wallet call while in fallback mode (the
                transport is not touched)
        """
        session = self._require_active()
        if self._fallback_mode and Entity(entity) == Entity.WALLET:
            raise UnsupportedInFallback(f"{method} needs an authorized XSWD session")
        return await session.send(entity, method, params)

    async def subscribe(
        self,
        category: str | EventType,
        callback: EventCallback | None = None,
        replace_callback: bool = False,
    ) -> bool:
        """Subscribe to an event category (primary only)."""
        session = self._require_active()
        if self._fallback_mode:
            raise UnsupportedInFallback("Events need an authorized XSWD session")
        return await session.subscribe(category, callback, replace_callback=replace_callback)

    async def wait_for(
        self,
        category: str | EventType,
        predicate: EventPredicate | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Wait for the next matching event (primary only)."""
        session = self._require_active()
        if self._fallback_mode:
            raise UnsupportedInFallback("Events need an authorized XSWD session")
        return await session.wait_for(category, predicate, timeout=timeout)

    async def close(self) -> None:
        """Stop retrying and close every session held."""
        await self._release()
        self._log.debug("Session manager closed")

    def _require_active(self) -> Session:
        session = self.active
        if session is None:
            raise TransportError("Session manager is not initialized")
        return session

    async def _release(self) -> None:
        """Cancel the retry task and close both sessions."""
        retry_task, self._retry_task = self._retry_task, None
        if retry_task is not None:
            retry_task.cancel()
            # Cancellation of the caller itself still propagates out of gather
            await asyncio.gather(retry_task, return_exceptions=True)

        sessions = (self._primary, self._fallback)
        self._primary = None
        self._fallback = None
        self._fallback_mode = False
        for session in sessions:
            if session is not None:
                await session.close()

    def _new_primary(self) -> PrimarySession:
        transport = self._primary_factory(self.config) if self._primary_factory else None
        return PrimarySession(self.app_info, self.config, transport=transport, log=self._log)

    async def _activate_fallback(self, config: SessionConfig) -> FallbackSession:
        transport = self._fallback_factory(config) if self._fallback_factory else None
        fallback = FallbackSession(config, transport=transport, log=self._log)
        await fallback.initialize()
        self._fallback = fallback
        self._fallback_mode = True
        return fallback

    async def _retry_primary_loop(self) -> None:
        """Background task retrying the primary until it authorizes.

        Waits ``poll_interval * attempt`` seconds (capped) between tries.
        Stops as soon as the task is cancelled.
        """
        attempt = 0
        while self._fallback_mode:
            attempt += 1
            await asyncio.sleep(min(self.config.poll_interval * attempt, self.max_retry_delay))

            primary = self._new_primary()
            try:
                await primary.initialize()
            except FAILOVER_ERRORS as e:
                self._log.debug(f"Primary retry {attempt} failed: {e}")
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise asyncio.CancelledError from e
                continue

            try:
                async with self._lock:
                    fallback = self._fallback
                    self._primary = primary
                    self._fallback = None
                    self._fallback_mode = False
            except asyncio.CancelledError:
                await primary.close()
                raise
            self._log.info(f"Primary session authorized after {attempt} retries")
            if fallback is not None:
                await fallback.close()

    async def __aenter__(self) -> SessionManager:
        await self.initialize()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
