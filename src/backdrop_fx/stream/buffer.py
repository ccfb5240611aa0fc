"""
Frame Buffer
============

Bounded async queue between frame ingestion and the effect loop.

Design Rules:
    - Fixed maximum size, drops the OLDEST frame on overflow so the effect
      loop always works on the freshest image
    - Single event loop producer/consumer
    - Never inspects or modifies frames
"""

import asyncio
import logging
from typing import Optional

from backdrop_fx.stream.frame import Frame


logger = logging.getLogger(__name__)


class FrameBuffer:
    """
    Drop-oldest frame queue.

    Attributes:
        maxsize: Maximum number of frames held
        dropped_count: Frames discarded because the buffer was full

    Example:
        buffer = FrameBuffer(maxsize=4)

        # Producer
        buffer.put(frame)

        # Consumer
        frame = await buffer.get(timeout=1.0)
    """

    def __init__(self, maxsize: int = 4) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._queue: asyncio.Queue[Frame] = asyncio.Queue(maxsize=maxsize)
        self._dropped_count: int = 0
        self._total_put: int = 0

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def size(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped_count

    @property
    def total_put(self) -> int:
        return self._total_put

    def put(self, frame: Frame) -> bool:
        """
        Add a frame, evicting the oldest one if the buffer is full.

        Returns:
            False if a frame had to be dropped to make room
        """
        self._total_put += 1
        dropped = False

        if self._queue.full():
            self._queue.get_nowait()
            self._dropped_count += 1
            dropped = True
            if self._dropped_count % 100 == 1:
                logger.warning(
                    f"Frame buffer full, dropping oldest "
                    f"(total dropped: {self._dropped_count})"
                )

        self._queue.put_nowait(frame)
        return not dropped

    async def get(self, timeout: Optional[float] = None) -> Optional[Frame]:
        """
        Wait for the next frame.

        Args:
            timeout: Seconds to wait, None waits forever

        Returns:
            Next frame, or None on timeout
        """
        try:
            if timeout is None:
                return await self._queue.get()
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def get_nowait(self) -> Optional[Frame]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def clear(self) -> int:
        """Discard all buffered frames. Returns the number discarded."""
        cleared = 0
        while self.get_nowait() is not None:
            cleared += 1
        return cleared

    def metrics(self) -> dict:
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "dropped_count": self._dropped_count,
            "total_put": self._total_put,
        }
