"""
WebSocket pub/sub transport client.

Connects to a broker, subscribes to one channel and exchanges binary payloads.
Text frames from the broker are control frames (acks, errors) and are only
logged. Delivery and ordering are not guaranteed.
"""

import asyncio
import json
from typing import Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from common.errors import TransportError
from common.logging import get_logger

logger = get_logger(__name__)


class PubSubClient:
    """Publishes to and receives from a single broker channel."""

    def __init__(
        self,
        url: str,
        channel: str,
        token: Optional[str] = None,
        connect_timeout: float = 10.0,
    ):
        self.url = url
        self.channel = channel
        self.token = token
        self.connect_timeout = connect_timeout
        self.inbound: asyncio.Queue = asyncio.Queue()
        self._websocket = None
        self._reader_task: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return (
            self._websocket is not None
            and self._reader_task is not None
            and not self._reader_task.done()
        )

    async def connect(self) -> None:
        """
        Open the connection and subscribe.

        Raises:
            TransportError: the broker is unreachable or refused the subscription.
        """
        try:
            self._websocket = await asyncio.wait_for(
                websockets.connect(self.url), timeout=self.connect_timeout
            )
            subscribe = {"type": "subscribe", "channel": self.channel}
            if self.token:
                subscribe["token"] = self.token
            await self._websocket.send(json.dumps(subscribe))
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self._websocket = None
            raise TransportError(f"Cannot connect to {self.url}: {e}") from e

        self._reader_task = asyncio.create_task(self._read_loop())

        logger.info(event="transport_connected", url=self.url, channel=self.channel)

    async def _read_loop(self) -> None:
        try:
            async for frame in self._websocket:
                if isinstance(frame, bytes):
                    self.inbound.put_nowait(frame)
                else:
                    self._handle_control_frame(frame)
        except ConnectionClosed as e:
            logger.warning(event="transport_disconnected", url=self.url, reason=str(e))

    def _handle_control_frame(self, frame: str) -> None:
        try:
            control = json.loads(frame)
        except ValueError:
            logger.warning(event="transport_control_frame_invalid", frame=frame[:200])
            return

        if isinstance(control, dict) and control.get("type") == "error":
            logger.error(event="transport_broker_error", detail=control.get("message"))
        else:
            logger.debug(event="transport_control_frame", frame=control)

    async def publish(self, payload: bytes) -> None:
        """
        Send one payload to the channel.

        Raises:
            TransportError: not connected, or the send failed.
        """
        if not self.is_connected:
            raise TransportError("Transport not connected")

        try:
            await self._websocket.send(payload)
        except (OSError, WebSocketException) as e:
            raise TransportError(f"Publish failed: {e}") from e

    async def close(self) -> None:
        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        if self._websocket is not None:
            await self._websocket.close()
            self._websocket = None

        logger.info(event="transport_closed", url=self.url)
