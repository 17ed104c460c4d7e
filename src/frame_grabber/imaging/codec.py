from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
JPEG_SOI = b"\xff\xd8"

_EXTENSIONS = {"png": ".png", "jpeg": ".jpg", "webp": ".webp"}


def sniff_kind(data: bytes) -> Optional[str]:
    """Return ``"png"`` or ``"jpeg"`` from the container signature, else None."""
    if data.startswith(PNG_SIGNATURE):
        return "png"
    if data.startswith(JPEG_SOI):
        return "jpeg"
    return None


def decode_image(data: bytes) -> Optional[np.ndarray]:
    """Decode *data* to a uint8 BGR or BGRA array, or None if undecodable."""
    if not data:
        return None
    img = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    if img is None:
        return None
    if img.dtype != np.uint8:
        # 16-bit PNGs
        img = (img // 257).astype(np.uint8)
    if img.ndim == 2:
        img = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    return img


def encode_image(img: np.ndarray, kind: str, quality: float = 0.92) -> bytes:
    """Encode *img* as ``png``, ``jpeg`` or ``webp``.

    *quality* is a 0..1 factor used by the lossy formats.  Raises
    ValueError when OpenCV refuses the image.
    """
    ext = _EXTENSIONS.get(kind)
    if ext is None:
        raise ValueError(f"unsupported image format: {kind}")

    params: list[int] = []
    q = int(round(max(0.0, min(1.0, quality)) * 100))
    if kind == "jpeg":
        if img.ndim == 3 and img.shape[2] == 4:
            img = cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
        params = [cv2.IMWRITE_JPEG_QUALITY, q]
    elif kind == "webp":
        params = [cv2.IMWRITE_WEBP_QUALITY, max(1, q)]

    ok, buf = cv2.imencode(ext, img, params)
    if not ok:
        raise ValueError(f"could not encode image as {kind}")
    return buf.tobytes()
