"""
Frame Consumer
==============

WebSocket client that ingests camera frames for the effect service.

Wire format (one JSON text message per frame):
    {"frame_id": 12, "timestamp": 0.4, "duration": 0.033, "image": "<b64 jpeg>"}

    `duration` is optional.

This module:
    - Connects to the capture source's WebSocket endpoint
    - Decodes each message into an RGBA Frame
    - Pushes frames into a drop-oldest FrameBuffer
    - Reconnects with a fixed backoff
    - Reports connect/disconnect through callbacks; the service treats every
      new connection as a new capture track (device switch) and every
      disconnect as the end of the current track

Design Rules:
    - Invalid messages are logged, counted and skipped
    - Ordering violations are logged but frames are still delivered
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from backdrop_fx.stream.buffer import FrameBuffer
from backdrop_fx.stream.frame import Frame
from backdrop_fx.stream.image_codec import ImageDecodeError, decode_rgba


logger = logging.getLogger(__name__)


ConnectionCallback = Callable[[], Awaitable[None]]


class FrameConsumerMetrics:
    """Metrics for FrameConsumer observability."""

    __slots__ = (
        "frames_received",
        "reconnect_count",
        "last_frame_id",
        "last_timestamp",
        "validation_warnings",
        "parse_errors",
    )

    def __init__(self) -> None:
        self.frames_received: int = 0
        self.reconnect_count: int = 0
        self.last_frame_id: int = -1
        self.last_timestamp: float = -1.0
        self.validation_warnings: int = 0
        self.parse_errors: int = 0

    def to_dict(self) -> dict:
        return {
            "frames_received": self.frames_received,
            "reconnect_count": self.reconnect_count,
            "last_frame_id": self.last_frame_id,
            "last_timestamp": self.last_timestamp,
            "validation_warnings": self.validation_warnings,
            "parse_errors": self.parse_errors,
        }


class FrameConsumer:
    """
    WebSocket consumer feeding a FrameBuffer.

    Example:
        consumer = FrameConsumer(
            url="ws://localhost:8000/ws/camera",
            buffer=buffer,
            on_connected=track_started,
            on_disconnected=track_ended,
        )
        task = asyncio.create_task(consumer.run())
        ...
        await consumer.stop()
    """

    def __init__(
        self,
        url: str,
        buffer: FrameBuffer,
        reconnect_backoff_ms: int = 500,
        max_reconnect_attempts: int = 0,
        on_connected: Optional[ConnectionCallback] = None,
        on_disconnected: Optional[ConnectionCallback] = None,
    ) -> None:
        """
        Args:
            url: Capture source WebSocket URL
            buffer: Destination for decoded frames
            reconnect_backoff_ms: Delay between reconnect attempts
            max_reconnect_attempts: 0 = unlimited
            on_connected: Awaited after each successful connection
            on_disconnected: Awaited after each connection ends
        """
        self.url = url
        self.buffer = buffer
        self.reconnect_backoff_ms = reconnect_backoff_ms
        self.max_reconnect_attempts = max_reconnect_attempts
        self.on_connected = on_connected
        self.on_disconnected = on_disconnected

        self._websocket = None
        self._connected: bool = False
        self._running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()

        self.metrics = FrameConsumerMetrics()

    @property
    def connected(self) -> bool:
        return self._connected

    async def run(self) -> None:
        """Consume until stop() is called or reconnect attempts run out."""
        self._running = True
        self._stop_event.clear()
        logger.info(f"FrameConsumer starting, connecting to {self.url}")

        while self._running:
            try:
                await self._connect_and_consume()
            except (OSError, ConnectionClosed, websockets.exceptions.InvalidHandshake) as e:
                if not self._running:
                    break
                logger.error(f"Connection error: {e}")

            if not self._running:
                break

            if (
                self.max_reconnect_attempts > 0
                and self.metrics.reconnect_count >= self.max_reconnect_attempts
            ):
                logger.error(f"Max reconnect attempts ({self.max_reconnect_attempts}) exceeded")
                break

            self.metrics.reconnect_count += 1
            backoff_sec = self.reconnect_backoff_ms / 1000.0
            logger.info(
                f"Reconnecting in {backoff_sec:.1f}s (attempt {self.metrics.reconnect_count})"
            )
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=backoff_sec)
                break
            except asyncio.TimeoutError:
                pass

        logger.info("FrameConsumer stopped")

    async def stop(self) -> None:
        logger.info("FrameConsumer stopping...")
        self._running = False
        self._stop_event.set()
        if self._websocket is not None:
            await self._websocket.close()
        self._connected = False

    async def _connect_and_consume(self) -> None:
        async with websockets.connect(
            self.url,
            ping_interval=20,
            ping_timeout=10,
            close_timeout=5,
            max_size=None,
        ) as ws:
            self._websocket = ws
            self._connected = True
            self.metrics.last_frame_id = -1
            self.metrics.last_timestamp = -1.0
            logger.info(f"Connected to capture source: {self.url}")
            if self.on_connected is not None:
                await self.on_connected()

            try:
                async for message in ws:
                    if not self._running:
                        break
                    frame = self.parse_message(message)
                    if frame is not None:
                        self.buffer.put(frame)
            except ConnectionClosedOK:
                logger.info("Connection closed normally")
            finally:
                self._connected = False
                self._websocket = None
                if self.on_disconnected is not None:
                    await self.on_disconnected()

    def parse_message(self, raw) -> Optional[Frame]:
        """
        Decode one wire message into a Frame.

        Returns:
            The Frame, or None if the message is malformed
        """
        try:
            data = json.loads(raw)
            frame_id = int(data["frame_id"])
            timestamp = float(data["timestamp"])
            duration = data.get("duration")
            duration = float(duration) if duration is not None else None
            pixels = decode_rgba(str(data["image"]))
        except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
            # ImageDecodeError is a ValueError
            self.metrics.parse_errors += 1
            level = "decode" if isinstance(e, ImageDecodeError) else "structure"
            logger.error(f"Invalid frame message ({level}): {e}")
            return None

        if self.metrics.last_frame_id >= 0 and frame_id != self.metrics.last_frame_id + 1:
            self.metrics.validation_warnings += 1
            logger.warning(
                f"Frame ID discontinuity: got {frame_id}, "
                f"expected {self.metrics.last_frame_id + 1}"
            )
        if timestamp < self.metrics.last_timestamp:
            self.metrics.validation_warnings += 1
            logger.warning(
                f"Timestamp went backwards: got {timestamp:.3f}, "
                f"previous was {self.metrics.last_timestamp:.3f}"
            )

        self.metrics.frames_received += 1
        self.metrics.last_frame_id = frame_id
        self.metrics.last_timestamp = timestamp
        return Frame(frame_id=frame_id, timestamp=timestamp, duration=duration, pixels=pixels)
