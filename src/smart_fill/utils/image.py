from __future__ import annotations

from io import BytesIO
from pathlib import Path

import cv2
from loguru import logger
import numpy as np
from PIL import Image, UnidentifiedImageError


SUPPORTED_EXTENSIONS = {"jpg", "jpeg", "png", "webp"}


def read_size(path: Path) -> tuple[int, int] | None:
    try:
        with Image.open(path) as image:
            return image.size
    except (OSError, UnidentifiedImageError) as exc:
        logger.warning("Failed to open image {path}: {error}", path=path, error=str(exc))
        return None


def decode_rgba(data: bytes) -> np.ndarray:
    """Decode encoded image bytes into an RGBA uint8 array (H, W, 4).

    Raises ``OSError`` (or ``UnidentifiedImageError``) when the bytes are not a
    readable image.
    """
    with Image.open(BytesIO(data)) as image:
        return np.asarray(image.convert("RGBA"), dtype=np.uint8)


def downscale(image: np.ndarray, max_size: int) -> np.ndarray:
    h, w = image.shape[:2]
    scale = min(1.0, max_size / max(h, w))
    if scale >= 1.0:
        return image
    new_w = max(1, int(w * scale))
    new_h = max(1, int(h * scale))
    return cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)
