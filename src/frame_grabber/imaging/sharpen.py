from __future__ import annotations

import logging

import cv2
import numpy as np

from frame_grabber.frames.models import SharpeningLevel

log = logging.getLogger("frame_grabber")

# level -> (center weight, up/down/left/right weight)
SHARPEN_WEIGHTS = {
    "low": (3.0, -0.5),
    "medium": (5.0, -1.0),
    "high": (7.0, -1.5),
}


def sharpen_kernel(level: SharpeningLevel) -> np.ndarray:
    center, side = SHARPEN_WEIGHTS[level]
    return np.array(
        [
            [0.0, side, 0.0],
            [side, center, side],
            [0.0, side, 0.0],
        ],
        dtype=np.float32,
    )


def sharpen(img: np.ndarray, level: SharpeningLevel) -> np.ndarray:
    """Cross-kernel sharpen of a uint8 BGR/BGRA image.

    The outermost rows and columns and the alpha channel are copied
    through untouched; interior colour values are rounded and clamped.
    """
    if level == "off":
        return img
    if level not in SHARPEN_WEIGHTS:
        log.warning("Unknown sharpening level %r; leaving the image unsharpened", level)
        return img

    out = img.copy()
    h, w = img.shape[:2]
    if h < 3 or w < 3:
        return out

    color = img[..., :3].astype(np.float32)
    conv = cv2.filter2D(color, -1, sharpen_kernel(level), borderType=cv2.BORDER_REPLICATE)
    out[1:-1, 1:-1, :3] = np.clip(np.rint(conv[1:-1, 1:-1]), 0, 255).astype(np.uint8)
    return out
