"""Frame downsampling and JPEG encoding helpers."""

from __future__ import annotations

import base64
import io
from typing import Tuple

import numpy as np
from PIL import Image


def frame_size(frame) -> Tuple[int, int]:
    """Return (width, height) of an HxW[xC] frame, or (0, 0) when empty."""
    if frame is None:
        return 0, 0
    shape = getattr(frame, "shape", None)
    if not shape or len(shape) < 2:
        return 0, 0
    return int(shape[1]), int(shape[0])


def downsample(frame, scale: float) -> Image.Image:
    """Resize an RGB frame to ``scale`` of its native width and height."""
    width, height = frame_size(frame)
    target = (max(1, int(width * scale)), max(1, int(height * scale)))
    image = Image.fromarray(np.asarray(frame, dtype=np.uint8))
    if image.mode != "RGB":
        image = image.convert("RGB")
    return image.resize(target, Image.BILINEAR)


def encode_jpeg_base64(image: Image.Image, quality: int) -> str:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return base64.b64encode(buffer.getvalue()).decode("ascii")
