"""
Chain RPC - JSON-RPC 2.0 over WebSocket.

============================================================
PURPOSE
============================================================
Minimal node client used as the guardian connection context
transport.

FEATURES:
- Request/response with per-request timeout
- Subscriptions exposed as async iterators
- Unsubscribe sent when the iterator is closed or cancelled
- Connection loss fails every pending request and subscription

Reconnection is left to the caller; a closed connection ends
every live subscription with SourceError.

============================================================
"""

import asyncio
import itertools
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp

from guardian.exceptions import SourceError


logger = logging.getLogger(__name__)


class ConnectionClosed:
    """Queue marker ending a subscription."""

    def __init__(self, error: SourceError) -> None:
        self.error = error


class RpcClient:
    """
    WebSocket JSON-RPC client.

    Usage:
        client = RpcClient(["ws://localhost:9944"])
        await client.connect()
        head = await client.request("chain_getHeader")
        async for header in client.subscribe(
            "chain_subscribeNewHeads", [], "chain_unsubscribeNewHeads"
        ):
            ...
        await client.close()
    """

    DEFAULT_TIMEOUT = 30.0
    HEARTBEAT_SECONDS = 20.0

    def __init__(
        self,
        endpoints: List[str],
        request_timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        if not endpoints:
            raise ValueError("At least one endpoint is required")

        self._endpoints = list(endpoints)
        self._request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._endpoint: Optional[str] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._ids = itertools.count(1)

        self._pending: Dict[int, asyncio.Future] = {}
        self._subscriptions: Dict[str, asyncio.Queue] = {}
        # Notifications that arrive before the subscribe response,
        # kept only while a subscribe request is in flight
        self._early: Dict[str, List[Any]] = {}
        self._subscribing = 0

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    @property
    def endpoint(self) -> Optional[str]:
        return self._endpoint

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        """
        Connect to the first reachable endpoint.

        Raises:
            SourceError: If no endpoint accepts the connection
        """
        if self.is_connected:
            return

        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        last_error: Optional[Exception] = None
        for endpoint in self._endpoints:
            try:
                self._ws = await self._session.ws_connect(
                    endpoint,
                    heartbeat=self.HEARTBEAT_SECONDS,
                )
                self._endpoint = endpoint
                self._receive_task = asyncio.create_task(self._receive_loop())
                logger.info(f"Connected to node {endpoint}")
                return
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                logger.warning(f"Connection to {endpoint} failed: {e}")
                last_error = e

        if self._owns_session:
            await self._session.close()
            self._session = None

        raise SourceError(
            "No reachable node endpoint",
            source="rpc",
            original_error=last_error,
            context={"endpoints": self._endpoints},
        )

    async def close(self) -> None:
        """Close the connection and end all subscriptions."""
        if self._receive_task:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None

        if self._ws and not self._ws.closed:
            await self._ws.close()
        self._ws = None

        self._fail_all(SourceError("Connection closed", source="rpc"))

        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

        logger.info(f"Disconnected from node {self._endpoint}")

    # --------------------------------------------------------
    # REQUESTS
    # --------------------------------------------------------

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Send a request and wait for its result.

        Raises:
            SourceError: Not connected, timeout, or node error
        """
        if not self.is_connected:
            raise SourceError("Not connected", source=method)

        request_id = next(self._ids)
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self._ws.send_json({
                "jsonrpc": "2.0",
                "id": request_id,
                "method": method,
                "params": params or [],
            })
            return await asyncio.wait_for(future, timeout=self._request_timeout)
        except asyncio.TimeoutError as e:
            raise SourceError(
                f"Request timed out after {self._request_timeout}s",
                source=method,
                original_error=e,
            )
        except (aiohttp.ClientError, ConnectionResetError) as e:
            raise SourceError(
                f"Send failed: {e}",
                source=method,
                original_error=e,
            )
        finally:
            self._pending.pop(request_id, None)

    async def subscribe(
        self,
        method: str,
        params: List[Any],
        unsubscribe_method: str,
    ) -> AsyncIterator[Any]:
        """
        Subscribe and yield every notification result.

        Raises:
            SourceError: Subscribe rejected or connection lost
        """
        self._subscribing += 1
        try:
            subscription_id = str(await self.request(method, params))
        finally:
            self._subscribing -= 1

        queue: asyncio.Queue = asyncio.Queue()
        self._subscriptions[subscription_id] = queue

        for result in self._early.pop(subscription_id, []):
            queue.put_nowait(result)
        if not self._subscribing:
            self._early.clear()

        logger.debug(f"Subscribed {method} -> {subscription_id}")

        try:
            while True:
                item = await queue.get()
                if isinstance(item, ConnectionClosed):
                    raise item.error
                yield item
        finally:
            self._subscriptions.pop(subscription_id, None)
            if self.is_connected:
                try:
                    await self.request(unsubscribe_method, [subscription_id])
                except SourceError as e:
                    logger.debug(f"Unsubscribe {subscription_id} failed: {e}")

    # --------------------------------------------------------
    # MESSAGE HANDLING
    # --------------------------------------------------------

    async def _receive_loop(self) -> None:
        """Route responses and notifications until the socket closes."""
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_message(msg.json())
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"WebSocket error: {self._ws.exception()}")
                    break
                elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED):
                    break
        except asyncio.CancelledError:
            raise
        except ValueError as e:
            logger.error(f"Malformed message from {self._endpoint}: {e}")

        logger.warning(f"Connection to {self._endpoint} lost")
        self._fail_all(SourceError("Connection lost", source="rpc"))

    def _handle_message(self, data: Dict[str, Any]) -> None:
        if "id" in data and data["id"] in self._pending:
            future = self._pending[data["id"]]
            if future.done():
                return
            if "error" in data:
                error = data["error"] or {}
                future.set_exception(SourceError(
                    error.get("message", "RPC error"),
                    source="rpc",
                    code=error.get("code"),
                    context={"data": error.get("data")},
                ))
            else:
                future.set_result(data.get("result"))
            return

        params = data.get("params")
        if isinstance(params, dict) and "subscription" in params:
            subscription_id = str(params["subscription"])
            result = params.get("result")
            queue = self._subscriptions.get(subscription_id)
            if queue is not None:
                queue.put_nowait(result)
            elif self._subscribing:
                self._early.setdefault(subscription_id, []).append(result)
            else:
                logger.debug(f"Dropped notification for inactive subscription {subscription_id}")

    def _fail_all(self, error: SourceError) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

        for queue in self._subscriptions.values():
            queue.put_nowait(ConnectionClosed(error))
        self._early.clear()

    def __repr__(self) -> str:
        return f"<RpcClient(endpoint={self._endpoint}, connected={self.is_connected})>"
