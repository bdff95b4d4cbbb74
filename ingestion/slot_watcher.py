"""Slot Watcher - Live slot subscription over the Solana PubSub WebSocket."""

import asyncio
import json
import logging
from typing import Any, Callable, Optional

import backoff
from websockets import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .errors import SubscriptionError

logger = logging.getLogger(__name__)

CONFIRM_TIMEOUT_SECONDS = 10.0


class SlotSubscription:
    """
    One open ``slotSubscribe`` stream.

    Use as an async context manager and iterate it to receive root slots
    in delivery order:

        async with watcher.subscribe() as slots:
            async for slot in slots:
                ...

    Leaving the context sends ``slotUnsubscribe`` and closes the socket.
    """

    def __init__(
        self,
        ws_url: str,
        connect_attempts: int = 3,
        connector: Callable[..., Any] = connect,
    ):
        self.ws_url = ws_url
        self.connect_attempts = connect_attempts
        self._connector = connector
        self._ws = None
        self._subscription_id: Optional[int] = None
        self._closed = False
        self._request_id = 0

    async def __aenter__(self) -> "SlotSubscription":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.unsubscribe()

    def __aiter__(self) -> "SlotSubscription":
        return self

    async def __anext__(self) -> int:
        if self._ws is None or self._closed:
            raise StopAsyncIteration

        while True:
            try:
                message = await self._ws.recv()
            except ConnectionClosed as e:
                if self._closed:
                    raise StopAsyncIteration
                raise SubscriptionError(f"slot stream lost: {e}") from e

            try:
                data = json.loads(message)
            except (TypeError, ValueError):
                logger.warning(f"Invalid JSON received: {str(message)[:100]}")
                continue

            if not isinstance(data, dict):
                logger.warning(f"Unexpected message shape: {str(message)[:100]}")
                continue
            if data.get("method") != "slotNotification":
                logger.debug(f"Ignoring message: {str(message)[:100]}")
                continue

            params = data.get("params")
            result = params.get("result") if isinstance(params, dict) else None
            if not isinstance(result, dict):
                logger.warning(f"Slot notification without result: {str(message)[:100]}")
                continue
            root = result.get("root")
            if not isinstance(root, int):
                logger.warning(f"Slot notification without root: {result}")
                continue
            return root

    @property
    def subscription_id(self) -> Optional[int]:
        return self._subscription_id

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closed

    async def _connect(self):
        @backoff.on_exception(
            backoff.expo,
            (OSError, asyncio.TimeoutError, WebSocketException),
            max_tries=self.connect_attempts,
            on_backoff=lambda details: logger.warning(
                f"WebSocket connect failed, retrying... attempt {details['tries']}"
            ),
        )
        async def _open():
            return await self._connector(self.ws_url, ping_interval=30, ping_timeout=10)

        return await _open()

    async def open(self) -> None:
        """
        Connect and subscribe.

        Raises:
            SubscriptionError: the connection or the subscription request failed
        """
        logger.info(f"Connecting to Solana WebSocket: {self.ws_url[:50]}...")
        try:
            self._ws = await self._connect()
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise SubscriptionError(f"cannot connect to {self.ws_url}: {e}") from e

        try:
            self._subscription_id = await asyncio.wait_for(
                self._request_subscription(), timeout=CONFIRM_TIMEOUT_SECONDS
            )
        except (SubscriptionError, ConnectionClosed, asyncio.TimeoutError,
                ValueError, KeyError, TypeError, AttributeError) as e:
            await self._close_socket()
            if isinstance(e, SubscriptionError):
                raise
            raise SubscriptionError(f"slot subscription not confirmed: {e}") from e

        logger.info(f"Subscribed to slots (subscription {self._subscription_id})")

    async def _request_subscription(self) -> int:
        self._request_id += 1
        request_id = self._request_id
        await self._ws.send(json.dumps({
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "slotSubscribe",
        }))

        while True:
            data = json.loads(await self._ws.recv())
            if not isinstance(data, dict):
                raise SubscriptionError(f"unexpected slotSubscribe reply: {str(data)[:100]}")
            if data.get("id") != request_id:
                continue
            if "error" in data:
                raise SubscriptionError(f"slotSubscribe rejected: {data['error']}")
            return data["result"]

    async def unsubscribe(self) -> None:
        """Send ``slotUnsubscribe`` and close the connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        if self._ws is None:
            return

        if self._subscription_id is not None:
            self._request_id += 1
            try:
                await self._ws.send(json.dumps({
                    "jsonrpc": "2.0",
                    "id": self._request_id,
                    "method": "slotUnsubscribe",
                    "params": [self._subscription_id],
                }))
                logger.info(f"Unsubscribed from slots (subscription {self._subscription_id})")
            except ConnectionClosed:
                logger.debug("Connection already closed before unsubscribe")

        await self._close_socket()

    async def _close_socket(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
            logger.info("WebSocket connection closed")


class SlotWatcher:
    """Opens slot subscriptions against one PubSub endpoint."""

    def __init__(
        self,
        ws_url: str,
        connect_attempts: int = 3,
        connector: Callable[..., Any] = connect,
    ):
        """
        Args:
            ws_url: ws:// or wss:// PubSub endpoint
            connect_attempts: Handshake attempts before giving up
            connector: WebSocket connect function, replaceable in tests
        """
        self.ws_url = ws_url
        self.connect_attempts = connect_attempts
        self._connector = connector

    def subscribe(self) -> SlotSubscription:
        """Return a new, not yet opened, slot subscription."""
        return SlotSubscription(self.ws_url, self.connect_attempts, self._connector)
