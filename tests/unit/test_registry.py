"""Tests for RequestRegistry and EventRegistry."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest

from xswd_client.errors import EventTimeout, NotSubscribed, RequestTimeout, SessionClosed
from xswd_client.protocol import EventType
from xswd_client.registry import EventRegistry, RequestRegistry

# =============================================================================
# RequestRegistry Tests
# =============================================================================


class TestRequestIds:
    """Tests for id assignment."""

    def test_ids_are_sequential_from_one(self) -> None:
        registry = RequestRegistry()
        assert [registry.next_id() for _ in range(5)] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_duplicate_register_rejected(self) -> None:
        registry = RequestRegistry()
        registry.register(1)

        with pytest.raises(ValueError):
            registry.register(1)


class TestRequestResolution:
    """Tests for resolving and awaiting slots."""

    @pytest.mark.asyncio
    async def test_resolve_then_await(self) -> None:
        """A reply resolves its slot to the exact message."""
        registry = RequestRegistry()
        message = {"jsonrpc": "2.0", "id": 1, "result": {"status": "OK"}}
        registry.register(1)

        assert registry.resolve(1, message) is True
        assert await registry.await_result(1, timeout=1.0) == message
        assert registry.pending == []

    @pytest.mark.asyncio
    async def test_await_then_resolve(self) -> None:
        """A waiting caller wakes when the reply is dispatched."""
        registry = RequestRegistry()
        registry.register(3)
        waiter = asyncio.create_task(registry.await_result(3, timeout=1.0))
        await asyncio.sleep(0)

        registry.resolve(3, {"id": 3, "result": "done"})

        assert await waiter == {"id": 3, "result": "done"}

    @pytest.mark.asyncio
    async def test_resolution_is_exactly_once(self) -> None:
        registry = RequestRegistry()
        registry.register(1)

        assert registry.resolve(1, {"result": "first"}) is True
        assert registry.resolve(1, {"result": "second"}) is False
        assert await registry.await_result(1, timeout=1.0) == {"result": "first"}

    @pytest.mark.asyncio
    async def test_unknown_id_dropped(self) -> None:
        registry = RequestRegistry()
        assert registry.resolve(42, {"result": 1}) is False
        assert registry.resolve(None, {"result": 1}) is False

    @pytest.mark.asyncio
    async def test_timeout_leaves_other_requests_alone(self) -> None:
        """A timed-out id is removed; other ids keep waiting."""
        registry = RequestRegistry()
        registry.register(5)
        registry.register(6)

        with pytest.raises(RequestTimeout) as exc_info:
            await registry.await_result(5, timeout=0.02)

        assert exc_info.value.request_id == 5
        assert registry.pending == [6]

        # Late reply for the timed-out id is ignored
        assert registry.resolve(5, {"id": 5, "result": "late"}) is False
        assert registry.resolve(6, {"id": 6, "result": "ok"}) is True
        assert await registry.await_result(6, timeout=1.0) == {"id": 6, "result": "ok"}

    @pytest.mark.asyncio
    async def test_request_timeout_is_timeout_error(self) -> None:
        registry = RequestRegistry()
        registry.register(1)

        with pytest.raises(TimeoutError):
            await registry.await_result(1, timeout=0.01)

    @pytest.mark.asyncio
    async def test_fail_all(self) -> None:
        registry = RequestRegistry()
        registry.register(1)
        registry.register(2)

        registry.fail_all(SessionClosed("gone"))

        for request_id in (1, 2):
            with pytest.raises(SessionClosed):
                await registry.await_result(request_id, timeout=1.0)
        assert registry.pending == []

    @pytest.mark.asyncio
    async def test_discard(self) -> None:
        registry = RequestRegistry()
        registry.register(1)
        registry.discard(1)

        assert registry.pending == []
        assert registry.resolve(1, {"result": 1}) is False


# =============================================================================
# EventRegistry Tests
# =============================================================================


class TestEventSubscriptions:
    """Tests for subscription bookkeeping."""

    def test_known_categories_start_disabled(self) -> None:
        registry = EventRegistry()
        for event in EventType:
            assert registry.get(event).enabled is False

    def test_enable_unknown_category(self) -> None:
        """Categories outside the built-in set are created lazily."""
        registry = EventRegistry()
        registry.enable("new_custom")
        assert registry.is_enabled("new_custom")

    def test_callback_kept_when_resubscribing(self) -> None:
        registry = EventRegistry()

        def callback(value: Any) -> None:
            pass

        registry.enable(EventType.NEW_BALANCE, callback)
        registry.enable(EventType.NEW_BALANCE)
        assert registry.get(EventType.NEW_BALANCE).callback is callback

        registry.enable(EventType.NEW_BALANCE, replace_callback=True)
        assert registry.get(EventType.NEW_BALANCE).callback is None


class TestEventDelivery:
    """Tests for publish and wait_for."""

    @pytest.mark.asyncio
    async def test_wait_requires_subscription(self) -> None:
        registry = EventRegistry()
        with pytest.raises(NotSubscribed):
            await registry.wait_for("new_topoheight", timeout=1.0)

    @pytest.mark.asyncio
    async def test_fan_out_to_all_waiters(self, wait_until: Any) -> None:
        """One published value resolves every waiter with its own copy."""
        registry = EventRegistry()
        registry.enable("new_entry")
        waiters = [
            asyncio.create_task(registry.wait_for("new_entry", timeout=1.0)) for _ in range(3)
        ]
        await wait_until(lambda: registry.waiter_count("new_entry") == 3)

        value = {"txid": "abc", "amount": 5}
        assert registry.publish("new_entry", value) == 3

        results = await asyncio.gather(*waiters)
        assert all(result == value for result in results)
        assert len({id(result) for result in results}) == 3
        assert registry.waiter_count("new_entry") == 0

    @pytest.mark.asyncio
    async def test_predicate_filters_values(self, wait_until: Any) -> None:
        """Rejected values are skipped; the first accepted one resolves."""
        registry = EventRegistry()
        registry.enable("new_topoheight")
        waiter = asyncio.create_task(
            registry.wait_for("new_topoheight", lambda height: height >= 12, timeout=1.0)
        )
        await wait_until(lambda: registry.waiter_count("new_topoheight") == 1)

        assert registry.publish("new_topoheight", 10) == 0
        assert registry.publish("new_topoheight", 11) == 0
        assert registry.waiter_count("new_topoheight") == 1
        assert registry.publish("new_topoheight", 12) == 1

        assert await waiter == 12

    @pytest.mark.asyncio
    async def test_values_delivered_in_order(self, wait_until: Any) -> None:
        registry = EventRegistry()
        registry.enable("new_topoheight")
        first = asyncio.create_task(registry.wait_for("new_topoheight", timeout=1.0))
        await wait_until(lambda: registry.waiter_count("new_topoheight") == 1)

        registry.publish("new_topoheight", 1)
        second = asyncio.create_task(registry.wait_for("new_topoheight", timeout=1.0))
        await wait_until(lambda: registry.waiter_count("new_topoheight") == 1)
        registry.publish("new_topoheight", 2)

        assert await first == 1
        assert await second == 2

    @pytest.mark.asyncio
    async def test_timeout_removes_waiter(self) -> None:
        registry = EventRegistry()
        registry.enable("new_balance")

        with pytest.raises(EventTimeout) as exc_info:
            await registry.wait_for("new_balance", timeout=0.02)

        assert exc_info.value.category == "new_balance"
        assert registry.waiter_count("new_balance") == 0

    def test_publish_ignored_when_not_enabled(self) -> None:
        registry = EventRegistry()
        calls: list[Any] = []
        registry.get("new_balance").callback = calls.append

        assert registry.publish("new_balance", 100) == 0
        assert calls == []

    @pytest.mark.asyncio
    async def test_callback_runs_before_waiters(self, wait_until: Any) -> None:
        registry = EventRegistry()
        order: list[str] = []
        registry.enable("new_balance", lambda value: order.append(f"callback:{value}"))
        waiter = asyncio.create_task(registry.wait_for("new_balance", timeout=1.0))
        await wait_until(lambda: registry.waiter_count("new_balance") == 1)

        registry.publish("new_balance", 7)
        order.append(f"waiter:{await waiter}")

        assert order == ["callback:7", "waiter:7"]

    @pytest.mark.asyncio
    async def test_callback_error_does_not_block_waiters(
        self, wait_until: Any, caplog: pytest.LogCaptureFixture
    ) -> None:
        registry = EventRegistry()

        def broken(value: Any) -> None:
            raise RuntimeError("callback failed")

        registry.enable("new_entry", broken)
        waiter = asyncio.create_task(registry.wait_for("new_entry", timeout=1.0))
        await wait_until(lambda: registry.waiter_count("new_entry") == 1)

        with caplog.at_level(logging.ERROR):
            registry.publish("new_entry", "entry")

        assert await waiter == "entry"
        assert "Error in event callback" in caplog.text

    @pytest.mark.asyncio
    async def test_predicate_error_fails_only_its_waiter(self, wait_until: Any) -> None:
        registry = EventRegistry()
        registry.enable("new_topoheight")

        def bad_predicate(value: Any) -> bool:
            raise ValueError("bad predicate")

        failing = asyncio.create_task(
            registry.wait_for("new_topoheight", bad_predicate, timeout=1.0)
        )
        healthy = asyncio.create_task(registry.wait_for("new_topoheight", timeout=1.0))
        await wait_until(lambda: registry.waiter_count("new_topoheight") == 2)

        registry.publish("new_topoheight", 5)

        with pytest.raises(ValueError):
            await failing
        assert await healthy == 5

    @pytest.mark.asyncio
    async def test_fail_all(self, wait_until: Any) -> None:
        registry = EventRegistry()
        registry.enable("new_entry")
        waiter = asyncio.create_task(registry.wait_for("new_entry", timeout=1.0))
        await wait_until(lambda: registry.waiter_count("new_entry") == 1)

        registry.fail_all(SessionClosed("gone"))

        with pytest.raises(SessionClosed):
            await waiter
        assert registry.waiter_count("new_entry") == 0
