"""
Stream Module
=============

Frame ingestion for BackdropFX:
    - Frame: RGBA frame with timing metadata
    - FrameBuffer: Drop-oldest async queue
    - FrameConsumer: WebSocket client with reconnection
    - decode_rgba / encode_jpeg_b64: wire image codec

Example:
    buffer = FrameBuffer(maxsize=4)
    consumer = FrameConsumer(url="ws://localhost:8000/ws/camera", buffer=buffer)
    task = asyncio.create_task(consumer.run())

    frame = await buffer.get()
"""

from backdrop_fx.stream.frame import Frame
from backdrop_fx.stream.buffer import FrameBuffer
from backdrop_fx.stream.image_codec import ImageDecodeError, decode_rgba, encode_jpeg_b64
from backdrop_fx.stream.consumer import FrameConsumer, FrameConsumerMetrics


__all__ = [
    "Frame",
    "FrameBuffer",
    "FrameConsumer",
    "FrameConsumerMetrics",
    "ImageDecodeError",
    "decode_rgba",
    "encode_jpeg_b64",
]
