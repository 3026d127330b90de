"""
WebSocket block subscriber.
Subscribes to newHeads on the node and reports each new block number.
"""

import asyncio
import json
import time
from typing import Any, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed


class BlockSubscriber:
    """Streams new block numbers from an Ethereum node over WebSocket."""

    def __init__(
        self,
        ws_url: str = "ws://127.0.0.1:8546",
        reconnect_delay: int = 5,
        ping_interval: int = 30,
    ):
        self.ws_url = ws_url
        self.reconnect_delay = reconnect_delay
        self.ping_interval = ping_interval

        self._ws: Optional[Any] = None
        self._running = False
        self._connected = False
        self._subscription_id: Optional[str] = None

        # Callbacks
        self._on_block: Optional[Callable[[int], None]] = None
        self._on_error: Optional[Callable[[Exception], None]] = None
        self._on_connected: Optional[Callable[[], None]] = None
        self._on_disconnected: Optional[Callable[[], None]] = None

        self._last_message_time = 0.0
        self._last_block: Optional[int] = None

    def on_block(self, callback: Callable[[int], None]) -> None:
        """Register callback for new block numbers."""
        self._on_block = callback

    def on_error(self, callback: Callable[[Exception], None]) -> None:
        """Register callback for errors."""
        self._on_error = callback

    def on_connected(self, callback: Callable[[], None]) -> None:
        """Register callback for connection established."""
        self._on_connected = callback

    def on_disconnected(self, callback: Callable[[], None]) -> None:
        """Register callback for disconnection."""
        self._on_disconnected = callback

    async def connect(self) -> None:
        """Connect, subscribe, and keep reconnecting until disconnect() is called."""
        self._running = True

        while self._running:
            try:
                await self._connect_and_subscribe()
                await self._message_loop()
            except ConnectionClosed:
                self._connected = False
                if self._on_disconnected:
                    self._on_disconnected()
                if self._running:
                    await asyncio.sleep(self.reconnect_delay)
            except Exception as e:
                self._connected = False
                if self._on_error:
                    self._on_error(e)
                if self._running:
                    await asyncio.sleep(self.reconnect_delay)

    async def _connect_and_subscribe(self) -> None:
        """Establish connection and send the newHeads subscription."""
        self._ws = await websockets.connect(
            self.ws_url,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_interval * 2,
        )

        await self._ws.send(json.dumps({
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_subscribe",
            "params": ["newHeads"],
        }))
        self._connected = True

        if self._on_connected:
            self._on_connected()

    async def _message_loop(self) -> None:
        """Process incoming messages."""
        async for message in self._ws:
            self._last_message_time = time.time()

            try:
                data = json.loads(message)
                self.handle_message(data)
            except json.JSONDecodeError:
                continue
            except Exception as e:
                if self._on_error:
                    self._on_error(e)

        # Server closed the stream without an error frame
        raise ConnectionClosed(None, None)

    def handle_message(self, data: dict[str, Any]) -> None:
        """Route a decoded message: subscription ack or newHeads notification."""
        if data.get("id") == 1 and "result" in data:
            self._subscription_id = data["result"]
            return

        if "error" in data:
            raise RuntimeError(f"Subscription error: {data['error']}")

        if data.get("method") != "eth_subscription":
            return

        header = data.get("params", {}).get("result", {})
        number = header.get("number")
        if number is None:
            return

        block_number = int(number, 16)
        # Reorgs replay heights already seen
        if self._last_block is not None and block_number <= self._last_block:
            return
        self._last_block = block_number

        if self._on_block:
            self._on_block(block_number)

    async def disconnect(self) -> None:
        """Disconnect from WebSocket."""
        self._running = False

        if self._ws is not None and self._connected:
            await self._ws.close()
        self._connected = False

        if self._on_disconnected:
            self._on_disconnected()

    @property
    def is_connected(self) -> bool:
        """Check if WebSocket is connected."""
        return self._connected

    @property
    def last_message_age(self) -> float:
        """Seconds since last message received."""
        if self._last_message_time == 0:
            return float("inf")
        return time.time() - self._last_message_time
