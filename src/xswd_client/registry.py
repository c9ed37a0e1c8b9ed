"""Correlation state owned by one session.

RequestRegistry maps request ids to result slots. EventRegistry tracks
subscribed event categories, their callbacks and one-shot waiters.

Both resolve asyncio futures straight from the transport read loop, so
a waiting caller wakes up as soon as its reply is dispatched.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import EventTimeout, NotSubscribed, RequestTimeout
from .protocol.replies import EventType

logger = logging.getLogger(__name__)

EventCallback = Callable[[Any], Any]
EventPredicate = Callable[[Any], bool]


class RequestRegistry:
    """Assigns request ids and tracks one pending slot per id."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger
        self._next_id = 1
        self._pending: dict[int, asyncio.Future[Any]] = {}

    @property
    def pending(self) -> list[int]:
        """Ids still waiting for a reply."""
        return list(self._pending)

    def next_id(self) -> int:
        """Issue the next id (1, 2, 3, ... never reused)."""
        request_id = self._next_id
        self._next_id += 1
        return request_id

    def register(self, request_id: int) -> asyncio.Future[Any]:
        """Create an empty slot for a request about to be sent."""
        if request_id in self._pending:
            raise ValueError(f"Request {request_id} is already pending")
        slot: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = slot
        return slot

    def resolve(self, request_id: int | None, message: Any) -> bool:
        """Fill a slot with its reply.

        Returns False (and drops the reply) if the id is unknown, already
        resolved, or was removed by a timeout.
        """
        slot = self._pending.get(request_id) if request_id is not None else None
        if slot is None or slot.done():
            self._log.debug(f"Dropping reply for unknown request {request_id}")
            return False
        slot.set_result(message)
        return True

    def fail(self, request_id: int | None, error: BaseException) -> bool:
        """Fail a slot instead of resolving it."""
        slot = self._pending.get(request_id) if request_id is not None else None
        if slot is None or slot.done():
            return False
        slot.set_exception(error)
        return True

    def fail_all(self, error: BaseException) -> None:
        """Fail every pending slot (session closed)."""
        for slot in self._pending.values():
            if not slot.done():
                slot.set_exception(error)

    def discard(self, request_id: int) -> None:
        """Drop a slot whose request never left (send failed)."""
        slot = self._pending.pop(request_id, None)
        if slot is not None and not slot.done():
            slot.cancel()

    async def await_result(self, request_id: int, timeout: float | None) -> Any:
        """Wait for the reply to ``request_id``.

        The slot is removed whichever way this ends.

        Raises:
            RequestTimeout: If no reply arrives within ``timeout`` seconds
        """
        slot = self._pending.get(request_id)
        if slot is None:
            raise KeyError(f"Request {request_id} is not pending")
        try:
            return await asyncio.wait_for(slot, timeout=timeout)
        except TimeoutError:
            raise RequestTimeout(request_id, timeout) from None
        finally:
            self._pending.pop(request_id, None)


@dataclass(eq=False)
class _Waiter:
    future: asyncio.Future[Any]
    predicate: EventPredicate | None = None


@dataclass
class EventSubscription:
    """Per-category subscription state."""

    category: str
    enabled: bool = False
    callback: EventCallback | None = None
    waiters: list[_Waiter] = field(default_factory=list)


class EventRegistry:
    """Subscriptions, callbacks and blocking waiters per event category."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger
        self._subscriptions: dict[str, EventSubscription] = {
            event.value: EventSubscription(category=event.value) for event in EventType
        }

    def get(self, category: str | EventType) -> EventSubscription:
        """Get (creating if needed) the subscription for a category."""
        key = _category(category)
        if key not in self._subscriptions:
            self._subscriptions[key] = EventSubscription(category=key)
        return self._subscriptions[key]

    def is_enabled(self, category: str | EventType) -> bool:
        sub = self._subscriptions.get(_category(category))
        return sub is not None and sub.enabled

    def enable(
        self,
        category: str | EventType,
        callback: EventCallback | None = None,
        replace_callback: bool = False,
    ) -> None:
        """Mark a category subscribed.

        A missing callback keeps the previously stored one unless
        ``replace_callback`` is set.
        """
        sub = self.get(category)
        sub.enabled = True
        if callback is not None or replace_callback:
            sub.callback = callback

    def waiter_count(self, category: str | EventType) -> int:
        sub = self._subscriptions.get(_category(category))
        return len(sub.waiters) if sub else 0

    def publish(self, category: str, value: Any) -> int:
        """Deliver a pushed value.

        Invokes the callback, then hands an independent copy to every
        waiter it satisfies. Satisfied waiters are removed; the others keep
        waiting.

        Returns:
            Number of waiters resolved
        """
        sub = self._subscriptions.get(category)
        if sub is None or not sub.enabled:
            self._log.debug(f"Ignoring event for unsubscribed category {category}")
            return 0

        if sub.callback is not None:
            try:
                sub.callback(copy.deepcopy(value))
            except Exception:
                self._log.exception(f"Error in event callback for {category}")

        resolved = 0
        remaining: list[_Waiter] = []
        for waiter in sub.waiters:
            if waiter.future.done():
                continue
            try:
                matches = waiter.predicate is None or waiter.predicate(value)
            except Exception as e:
                waiter.future.set_exception(e)
                continue
            if matches:
                waiter.future.set_result(copy.deepcopy(value))
                resolved += 1
            else:
                remaining.append(waiter)
        sub.waiters = remaining
        return resolved

    async def wait_for(
        self,
        category: str | EventType,
        predicate: EventPredicate | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Wait for the next published value satisfying ``predicate``.

        Raises:
            NotSubscribed: If the category is not enabled
            EventTimeout: If nothing matching arrives within ``timeout``
        """
        key = _category(category)
        if not self.is_enabled(key):
            raise NotSubscribed(key)

        sub = self._subscriptions[key]
        waiter = _Waiter(
            future=asyncio.get_running_loop().create_future(),
            predicate=predicate,
        )
        sub.waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter.future, timeout=timeout)
        except TimeoutError:
            raise EventTimeout(key, timeout) from None
        finally:
            if waiter in sub.waiters:
                sub.waiters.remove(waiter)

    def fail_all(self, error: BaseException) -> None:
        """Fail every waiter of every category (session closed)."""
        for sub in self._subscriptions.values():
            for waiter in sub.waiters:
                if not waiter.future.done():
                    waiter.future.set_exception(error)
            sub.waiters = []


def _category(category: str | EventType) -> str:
    return category.value if isinstance(category, EventType) else category
