"""Session lifecycle and message dispatch.

A session owns one transport, its reassembly buffer and its registries.
Two variants share the same surface:
- PrimarySession: XSWD WebSocket with authorization handshake and events
- FallbackSession: plain JSON-RPC over HTTP, no handshake, no events

State machine:
    initializing -> waiting_auth -> accepted
                                 -> refused
    any non-terminal state -> closed

``refused`` and ``closed`` are terminal; build a new session to retry.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Coroutine
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from .config import SessionConfig
from .errors import (
    AuthRefused,
    AuthTimeout,
    ProtocolError,
    RemoteError,
    SessionClosed,
    TransportError,
    UnsupportedInFallback,
    XSWDError,
)
from .protocol.identity import AppInfo
from .protocol.replies import (
    AuthReply,
    EventPush,
    EventType,
    ReplyKind,
    RPCErrorBody,
    classify,
    reply_id,
)
from .protocol.requests import Entity, RPCRequest
from .reassembly import INCOMPLETE, MessageReassembler
from .registry import EventCallback, EventPredicate, EventRegistry, RequestRegistry
from .transport import (
    DuplexTransport,
    ExchangeTransport,
    create_http_transport,
    create_websocket_transport,
)

logger = logging.getLogger(__name__)

Params = dict[str, Any] | list[Any] | None


class SessionState(str, Enum):
    """Session state machine."""

    INITIALIZING = "initializing"
    WAITING_AUTH = "waiting_auth"
    ACCEPTED = "accepted"
    REFUSED = "refused"
    CLOSED = "closed"


TERMINAL_STATES = frozenset({SessionState.REFUSED, SessionState.CLOSED})


@runtime_checkable
class Session(Protocol):
    """Protocol shared by primary and fallback sessions."""

    @property
    def state(self) -> SessionState: ...

    @property
    def supports_events(self) -> bool: ...

    async def initialize(self) -> None: ...

    async def send(self, entity: Entity | str, method: str, params: Params = None) -> Any: ...

    async def subscribe(
        self,
        category: str | EventType,
        callback: EventCallback | None = None,
        replace_callback: bool = False,
    ) -> bool: ...

    async def wait_for(
        self,
        category: str | EventType,
        predicate: EventPredicate | None = None,
        timeout: float | None = None,
    ) -> Any: ...

    async def close(self) -> None: ...


class BaseSession(ABC):
    """Base class for sessions with common functionality.

    Provides:
    - State tracking
    - Request id assignment and reply correlation
    - Frame reassembly and dispatch
    - Background task tracking so close() can cancel everything
    """

    supports_events = False

    def __init__(self, config: SessionConfig, log: logging.Logger | None = None) -> None:
        self.config = config
        self._log = log or logger
        self._state = SessionState.INITIALIZING
        self._reassembler = MessageReassembler(config.max_buffer_bytes)
        self.requests = RequestRegistry(self._log)
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def state(self) -> SessionState:
        """Current session state."""
        return self._state

    @property
    def is_accepted(self) -> bool:
        return self._state == SessionState.ACCEPTED

    async def send(self, entity: Entity | str, method: str, params: Params = None) -> Any:
        """Send a request and wait for its result.

        Returns:
            The ``result`` member of the reply

        Raises:
            RemoteError: The server answered with an error reply
            RequestTimeout: No reply within the request timeout
            SessionClosed: The session closed before the reply arrived
            UnsupportedInFallback: Wallet call on a fallback session
        """
        entity = Entity(entity)
        self._check_entity(entity)
        self._ensure_accepted()

        request_id = self.requests.next_id()
        self.requests.register(request_id)
        request = RPCRequest.create(request_id, method, params)
        self._log.debug(f"Request {request_id}: {entity.value} {method}")

        try:
            await self._transmit(request_id, request.to_json())
        except BaseException:
            self.requests.discard(request_id)
            raise

        reply = await self.requests.await_result(request_id, self.config.request_timeout)
        self._log.debug(f"Response {request_id}: {reply}")
        return _unwrap(reply, request_id)

    async def close(self) -> None:
        """Close the session, cancel its tasks and release the transport.

        In-flight requests and waiters fail with SessionClosed.
        """
        self._mark_closed(SessionClosed("Session closed"))

        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        for task in tasks:
            task.cancel()
        try:
            # Cancellation of the caller itself still propagates out of gather
            await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            self._tasks.clear()
            self._reassembler.reset()
            await self._close_transport()

    def _check_entity(self, entity: Entity) -> None:
        """Reject entities this session cannot serve."""

    def _ensure_accepted(self) -> None:
        if self._state in TERMINAL_STATES:
            raise SessionClosed(f"Session is {self._state.value}")
        if self._state != SessionState.ACCEPTED:
            raise TransportError("Sending without being connected")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _mark_closed(self, reason: XSWDError) -> None:
        """Enter the closed state and fail everything still waiting."""
        if self._state == SessionState.CLOSED:
            return
        if self._state != SessionState.REFUSED:
            self._state = SessionState.CLOSED
        self._log.debug(f"{self.__class__.__name__} closed: {reason}")
        self._fail_pending(reason)

    def _fail_pending(self, reason: XSWDError) -> None:
        self.requests.fail_all(reason)

    def _on_frame(self, frame: str | bytes) -> None:
        """Handle one inbound transport payload."""
        try:
            message = self._reassembler.feed(frame)
        except ProtocolError as e:
            self._log.warning(str(e))
            return
        if message is INCOMPLETE:
            self._log.debug(f"Buffered partial message ({self._reassembler.pending} chars)")
            return
        self._dispatch(message)

    def _dispatch(self, message: Any) -> None:
        kind = classify(message, events_supported=self.supports_events)

        if kind == ReplyKind.AUTH:
            self._on_auth_reply(message)
        elif kind in (ReplyKind.RESULT, ReplyKind.ERROR):
            self.requests.resolve(reply_id(message), message)
        elif kind == ReplyKind.EVENT:
            try:
                push = EventPush.model_validate(message["result"])
            except ValidationError as e:
                self._log.warning(f"Invalid event push: {e}")
                return
            self._on_event(push)
        else:
            error = ProtocolError(f"Message has no result, error or accepted field: {message!r}")
            if not self.requests.fail(reply_id(message), error):
                self._log.warning(str(error))

    def _on_auth_reply(self, message: dict[str, Any]) -> None:
        self._log.debug(f"Ignoring unexpected authorization reply: {message}")

    def _on_event(self, push: EventPush) -> None:
        self._log.debug(f"Ignoring event {push.event}")

    @abstractmethod
    async def initialize(self) -> None:
        """Open the transport and bring the session to ``accepted``."""
        ...

    @abstractmethod
    async def _transmit(self, request_id: int, text: str) -> None:
        """Implementation-specific send logic."""
        ...

    @abstractmethod
    async def _close_transport(self) -> None:
        """Implementation-specific transport release."""
        ...

    async def __aenter__(self) -> BaseSession:
        await self.initialize()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


class PrimarySession(BaseSession):
    """Authorized XSWD session over a duplex transport.

    Usage:
        session = PrimarySession(AppInfo.create("My app", "Does things"))
        await session.initialize()
        height = await session.send(Entity.WALLET, "GetHeight")

        await session.subscribe(EventType.NEW_TOPOHEIGHT)
        topoheight = await session.wait_for(EventType.NEW_TOPOHEIGHT)
    """

    supports_events = True

    def __init__(
        self,
        app_info: AppInfo,
        config: SessionConfig | None = None,
        *,
        transport: DuplexTransport | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        super().__init__(config or SessionConfig.primary(), log)
        self.app_info = app_info
        self.transport = transport or create_websocket_transport(self.config)
        self.events = EventRegistry(self._log)
        self._auth: asyncio.Future[None] | None = None

    async def initialize(self) -> None:
        """Connect and authorize.

        Raises:
            TransportError: The transport could not be opened or failed
            AuthRefused: The wallet user rejected the application
            AuthTimeout: No answer within the authorization timeout
        """
        if self._state != SessionState.INITIALIZING:
            raise TransportError(f"Session is already {self._state.value}")

        try:
            await self.transport.open()
        except TransportError as e:
            self._mark_closed(e)
            raise

        self._auth = asyncio.get_running_loop().create_future()
        self._state = SessionState.WAITING_AUTH
        self._spawn(self._read_loop())

        self._log.debug(f"Sending authorization for {self.app_info.name}")
        try:
            await self.transport.send(self.app_info.to_json())
            await asyncio.wait_for(self._auth, timeout=self.config.auth_timeout)
        except TimeoutError:
            await self.close()
            raise AuthTimeout(
                f"No authorization reply within {self.config.auth_timeout}s"
            ) from None
        except (XSWDError, asyncio.CancelledError):
            await self.close()
            raise

        self._log.info(f"Connection accepted for {self.app_info.name}")

    async def subscribe(
        self,
        category: str | EventType,
        callback: EventCallback | None = None,
        replace_callback: bool = False,
    ) -> bool:
        """Ask the wallet to push a category of events.

        The category is only enabled locally once the wallet confirms.

        Args:
            category: Event category (e.g. "new_topoheight")
            callback: Called synchronously with every pushed value
            replace_callback: Clear the stored callback when none is given
        """
        key = category.value if isinstance(category, EventType) else category
        result = await self.send(Entity.WALLET, "Subscribe", {"event": key})
        if result:
            self.events.enable(key, callback, replace_callback=replace_callback)
        return bool(result)

    async def wait_for(
        self,
        category: str | EventType,
        predicate: EventPredicate | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Wait for the next event of a subscribed category.

        Args:
            category: Event category
            predicate: Only values for which this returns True resolve the wait
            timeout: Seconds to wait (defaults to the event wait timeout)

        Raises:
            NotSubscribed: The category is not subscribed
            EventTimeout: Nothing matching arrived in time
        """
        if self._state in TERMINAL_STATES:
            raise SessionClosed(f"Session is {self._state.value}")
        return await self.events.wait_for(
            category,
            predicate,
            timeout=timeout if timeout is not None else self.config.event_wait_timeout,
        )

    async def _read_loop(self) -> None:
        """Background task feeding inbound frames to the dispatcher."""
        reason: TransportError = SessionClosed("Connection closed by remote")
        try:
            async for frame in self.transport.frames():
                self._on_frame(frame)
        except asyncio.CancelledError:
            return
        except Exception as e:
            self._log.error(f"Read loop error: {e}")
            reason = e if isinstance(e, TransportError) else TransportError(f"Transport error: {e}")

        self._mark_closed(reason)
        await self._close_transport()

    async def _transmit(self, request_id: int, text: str) -> None:
        await self.transport.send(text)

    async def _close_transport(self) -> None:
        await self.transport.close()

    def _fail_pending(self, reason: XSWDError) -> None:
        super()._fail_pending(reason)
        self.events.fail_all(reason)
        if self._auth is not None and not self._auth.done():
            self._auth.set_exception(reason)

    def _on_auth_reply(self, message: dict[str, Any]) -> None:
        if self._state != SessionState.WAITING_AUTH or self._auth is None or self._auth.done():
            super()._on_auth_reply(message)
            return

        try:
            reply = AuthReply.model_validate(message)
        except ValidationError as e:
            self._auth.set_exception(ProtocolError(f"Invalid authorization reply: {e}"))
            return

        if reply.accepted:
            self._state = SessionState.ACCEPTED
            self._auth.set_result(None)
        else:
            self._state = SessionState.REFUSED
            self._log.warning(f"Connection refused: {reply.message}")
            self._auth.set_exception(AuthRefused(reply.message))

    def _on_event(self, push: EventPush) -> None:
        delivered = self.events.publish(push.event, push.value)
        self._log.debug(f"Event {push.event} delivered to {delivered} waiter(s)")


class FallbackSession(BaseSession):
    """Unauthenticated JSON-RPC session over a request/response transport.

    Only daemon calls are available; there is no handshake and no event
    delivery.
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        *,
        transport: ExchangeTransport | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        super().__init__(config or SessionConfig.fallback(), log)
        self.transport = transport or create_http_transport(self.config)

    async def initialize(self) -> None:
        if self._state != SessionState.INITIALIZING:
            raise TransportError(f"Session is already {self._state.value}")
        try:
            await self.transport.open()
        except TransportError as e:
            self._mark_closed(e)
            raise
        self._state = SessionState.ACCEPTED
        self._log.info(f"Fallback session ready on {self.config.http_url}")

    async def subscribe(
        self,
        category: str | EventType,
        callback: EventCallback | None = None,
        replace_callback: bool = False,
    ) -> bool:
        raise UnsupportedInFallback("Events need an authorized XSWD session")

    async def wait_for(
        self,
        category: str | EventType,
        predicate: EventPredicate | None = None,
        timeout: float | None = None,
    ) -> Any:
        raise UnsupportedInFallback("Events need an authorized XSWD session")

    def _check_entity(self, entity: Entity) -> None:
        if entity == Entity.WALLET:
            raise UnsupportedInFallback("Wallet calls need an authorized XSWD session")

    async def _transmit(self, request_id: int, text: str) -> None:
        self._spawn(self._exchange(request_id, text))

    async def _exchange(self, request_id: int, text: str) -> None:
        try:
            reply = await self.transport.exchange(text)
        except TransportError as e:
            self.requests.fail(request_id, e)
            return

        # One exchange carries one complete message
        try:
            message = self._reassembler.feed(reply)
        except ProtocolError as e:
            self.requests.fail(request_id, e)
            return
        if message is INCOMPLETE:
            self._reassembler.reset()
            self.requests.fail(request_id, ProtocolError(f"Unparseable reply: {reply[:80]!r}"))
            return

        # The reply belongs to this exchange whatever id it echoes
        if classify(message, events_supported=False) in (ReplyKind.RESULT, ReplyKind.ERROR):
            self.requests.resolve(request_id, message)
        else:
            self.requests.fail(
                request_id, ProtocolError(f"Message has no result or error field: {message!r}")
            )

    async def _close_transport(self) -> None:
        await self.transport.close()


def _unwrap(reply: dict[str, Any], request_id: int) -> Any:
    """Return the result of a reply or raise its error."""
    if "error" in reply:
        error = reply["error"]
        if isinstance(error, dict):
            try:
                body = RPCErrorBody.model_validate(error)
            except ValidationError:
                # Malformed body: keep a readable message, drop the code
                message = error.get("message")
                body = RPCErrorBody(message=message if isinstance(message, str) else str(error))
        else:
            body = RPCErrorBody(message=str(error))
        raise RemoteError(body.message, code=body.code, request_id=request_id)
    return reply.get("result")
