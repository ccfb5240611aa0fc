"""
Image Codec
===========

The only place that converts between wire images (base64 JPEG) and RGBA
pixel buffers.

Design Rules:
    - Decoding validates shape and dtype and fails fast on corrupt input
    - Encoding drops the alpha channel (JPEG has none)
"""

import base64
import binascii
import logging

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class ImageDecodeError(ValueError):
    """Raised when a wire image cannot be decoded."""
    pass


def decode_rgba(image_b64: str) -> np.ndarray:
    """
    Decode a base64 JPEG/PNG image to RGBA.

    Returns:
        Pixels, shape (H, W, 4), uint8, alpha fully opaque

    Raises:
        ImageDecodeError: If the payload is not a decodable image
    """
    try:
        raw = base64.b64decode(image_b64, validate=True)
    except binascii.Error as e:
        raise ImageDecodeError(f"Base64 decode failed: {e}") from e

    bgr = cv2.imdecode(np.frombuffer(raw, np.uint8), cv2.IMREAD_COLOR)
    if bgr is None:
        raise ImageDecodeError("cv2.imdecode returned None")
    if bgr.ndim != 3 or bgr.shape[2] != 3 or bgr.dtype != np.uint8:
        raise ImageDecodeError(f"Unexpected decoded image: {bgr.shape} {bgr.dtype}")

    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA)


def encode_jpeg_b64(pixels: np.ndarray, quality: int = 80) -> str:
    """Encode RGBA or RGB pixels as a base64 JPEG string."""
    if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
        raise ValueError(f"Expected (H, W, 3|4) pixels, got {pixels.shape}")

    code = cv2.COLOR_RGBA2BGR if pixels.shape[2] == 4 else cv2.COLOR_RGB2BGR
    bgr = cv2.cvtColor(pixels, code)
    ok, buf = cv2.imencode(".jpg", bgr, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return base64.b64encode(buf.tobytes()).decode("ascii")
