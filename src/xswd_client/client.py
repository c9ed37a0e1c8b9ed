"""High-level XSWD client.

Wraps a SessionManager and groups the wallet and daemon calls into
namespaces. Parameters are passed through to the server unvalidated.

Usage:
    app = AppInfo.create("My app", "Reads the chain height")
    async with XSWDClient(app, fallback_config=SessionConfig.fallback()) as client:
        info = await client.node.get_info()
        if not client.fallback_mode:
            balance = await client.wallet.get_balance()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from .config import SessionConfig
from .errors import RemoteError
from .manager import SessionManager
from .protocol.identity import AppInfo
from .protocol.replies import EventType
from .protocol.requests import Entity
from .registry import EventCallback, EventPredicate
from .session import Params, Session


@dataclass
class WalletAPI:
    """Wallet calls (need an authorized XSWD session)."""

    _client: XSWDClient

    async def _call(self, method: str, params: Params = None) -> Any:
        return await self._client.call(Entity.WALLET, method, params)

    async def echo(self, *words: str) -> Any:
        return await self._call("Echo", list(words))

    async def get_address(self) -> Any:
        return await self._call("GetAddress")

    async def get_balance(self, params: dict[str, Any] | None = None) -> Any:
        return await self._call("GetBalance", params or {})

    async def get_height(self) -> Any:
        return await self._call("GetHeight")

    async def get_transfer_by_txid(self, params: dict[str, Any]) -> Any:
        return await self._call("GetTransferbyTXID", params)

    async def get_transfers(self, params: dict[str, Any] | None = None) -> Any:
        return await self._call("GetTransfers", params or {})

    async def make_integrated_address(self, params: dict[str, Any]) -> Any:
        return await self._call("MakeIntegratedAddress", params)

    async def split_integrated_address(self, params: dict[str, Any]) -> Any:
        return await self._call("SplitIntegratedAddress", params)

    async def query_key(self, params: dict[str, Any]) -> Any:
        return await self._call("QueryKey", params)

    async def transfer(self, params: dict[str, Any], wait_for_entry: bool = False) -> Any:
        """Send a transfer.

        Args:
            params: Transfer parameters
            wait_for_entry: Also wait for the wallet to report a new entry
                (requires a ``new_entry`` subscription)
        """
        if wait_for_entry:
            return await self._call_awaiting_entry("transfer", params)
        return await self._call("transfer", params)

    async def scinvoke(self, params: dict[str, Any], wait_for_entry: bool = False) -> Any:
        """Invoke a smart contract.

        Raises:
            RemoteError: The invocation was rejected
        """
        try:
            if wait_for_entry:
                return await self._call_awaiting_entry("scinvoke", params)
            return await self._call("scinvoke", params)
        except RemoteError as e:
            raise RemoteError(
                f"Could not scinvoke: {e.message}", code=e.code, request_id=e.request_id
            ) from e

    async def _call_awaiting_entry(self, method: str, params: Params) -> Any:
        """Make a call, then wait for the new entry the wallet reports for it.

        The event waiter is registered before the call goes out, so an entry
        pushed right behind the reply is not lost.
        """
        entry = asyncio.ensure_future(self._client.wait_for(EventType.NEW_ENTRY))
        try:
            # One step registers the waiter or fails with NotSubscribed
            await asyncio.sleep(0)
            if entry.done() and entry.exception() is not None:
                raise entry.exception()
            result = await self._call(method, params)
        except BaseException:
            entry.cancel()
            await asyncio.gather(entry, return_exceptions=True)
            raise
        await entry
        return result


@dataclass
class DaemonAPI:
    """Daemon calls (relayed by the wallet, or direct in fallback mode)."""

    _client: XSWDClient

    async def _call(self, method: str, params: Params = None) -> Any:
        return await self._client.call(Entity.DAEMON, f"DERO.{method}", params)

    async def echo(self, *words: str) -> Any:
        return await self._call("Echo", list(words))

    async def ping(self) -> Any:
        return await self._call("Ping")

    async def get_info(self) -> Any:
        return await self._call("GetInfo")

    async def get_block(self, params: dict[str, Any] | None = None) -> Any:
        return await self._call("GetBlock", params or {})

    async def get_block_header_by_topoheight(self, topoheight: int) -> Any:
        return await self._call("GetBlockHeaderByTopoHeight", {"topoheight": topoheight})

    async def get_block_header_by_hash(self, block_hash: str) -> Any:
        return await self._call("GetBlockHeaderByHash", {"hash": block_hash})

    async def get_tx_pool(self) -> Any:
        return await self._call("GetTxPool")

    async def get_random_address(self, params: dict[str, Any] | None = None) -> Any:
        return await self._call("GetRandomAddress", params or {})

    async def get_transaction(self, params: dict[str, Any]) -> Any:
        return await self._call("GetTransaction", params)

    async def get_height(self) -> Any:
        return await self._call("GetHeight")

    async def get_block_count(self) -> Any:
        return await self._call("GetBlockCount")

    async def get_last_block_header(self) -> Any:
        return await self._call("GetLastBlockHeader")

    async def get_block_template(self, params: dict[str, Any]) -> Any:
        return await self._call("GetBlockTemplate", params)

    async def get_encrypted_balance(self, params: dict[str, Any]) -> Any:
        return await self._call("GetEncryptedBalance", params)

    async def get_sc(self, params: dict[str, Any], wait_after_new_block: bool = False) -> Any:
        """Fetch smart contract state.

        Args:
            params: GetSC parameters (scid, code, variables, ...)
            wait_after_new_block: Wait for the next block first, so state
                changed by a just-sent transaction is visible
        """
        if wait_after_new_block:
            await self._client.subscribe(EventType.NEW_TOPOHEIGHT)
            await self._client.wait_for(EventType.NEW_TOPOHEIGHT)
        return await self._call("GetSC", params)

    async def get_gas_estimate(self, params: dict[str, Any]) -> Any:
        return await self._call("GetGasEstimate", params)

    async def name_to_address(self, name: str, topoheight: int = -1) -> Any:
        return await self._call("NameToAddress", {"name": name, "topoheight": topoheight})


class XSWDClient:
    """XSWD client built on a SessionManager."""

    def __init__(
        self,
        app_info: AppInfo,
        config: SessionConfig | None = None,
        fallback_config: SessionConfig | None = None,
        **manager_kwargs: Any,
    ) -> None:
        self.manager = SessionManager(app_info, config, fallback_config, **manager_kwargs)

    @property
    def wallet(self) -> WalletAPI:
        """Wallet operations."""
        return WalletAPI(_client=self)

    @property
    def node(self) -> DaemonAPI:
        """Daemon operations."""
        return DaemonAPI(_client=self)

    @property
    def fallback_mode(self) -> bool:
        return self.manager.fallback_mode

    async def initialize(self) -> Session:
        return await self.manager.initialize()

    async def call(self, entity: Entity | str, method: str, params: Params = None) -> Any:
        """Send any method and return its result."""
        return await self.manager.send(entity, method, params)

    async def subscribe(
        self,
        category: str | EventType,
        callback: EventCallback | None = None,
        replace_callback: bool = False,
    ) -> bool:
        return await self.manager.subscribe(category, callback, replace_callback=replace_callback)

    async def wait_for(
        self,
        category: str | EventType,
        predicate: EventPredicate | None = None,
        timeout: float | None = None,
    ) -> Any:
        return await self.manager.wait_for(category, predicate, timeout=timeout)

    async def close(self) -> None:
        await self.manager.close()

    async def __aenter__(self) -> XSWDClient:
        await self.initialize()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
