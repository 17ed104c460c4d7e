"""Combined tone mapping.

Brightness, contrast, saturation, grayscale and sepia are all affine
colour transforms, so they are folded into one 3x4 matrix and applied
in a single ``cv2.transform`` pass.  Blur runs afterwards on the clamped
result.  Matrices follow the CSS filter-effects definitions and are
built in RGB order, then permuted to OpenCV's BGR order.
"""
from __future__ import annotations

import cv2
import numpy as np

from frame_grabber.frames.models import FilterConfig

_MID = 127.5

# Swaps R and B while leaving the homogeneous row alone
_RGB_TO_BGR = np.array(
    [
        [0, 0, 1, 0],
        [0, 1, 0, 0],
        [1, 0, 0, 0],
        [0, 0, 0, 1],
    ],
    dtype=np.float64,
)


def _affine(m3: np.ndarray, offset: float = 0.0) -> np.ndarray:
    m = np.eye(4)
    m[:3, :3] = m3
    m[:3, 3] = offset
    return m


def brightness_matrix(amount: float) -> np.ndarray:
    return _affine(np.eye(3) * amount)


def contrast_matrix(amount: float) -> np.ndarray:
    return _affine(np.eye(3) * amount, _MID * (1.0 - amount))


def saturation_matrix(amount: float) -> np.ndarray:
    s = amount
    return _affine(np.array([
        [0.213 + 0.787 * s, 0.715 - 0.715 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 + 0.285 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 - 0.715 * s, 0.072 + 0.928 * s],
    ]))


def grayscale_matrix(amount: float) -> np.ndarray:
    a = 1.0 - min(max(amount, 0.0), 1.0)
    return _affine(np.array([
        [0.2126 + 0.7874 * a, 0.7152 - 0.7152 * a, 0.0722 - 0.0722 * a],
        [0.2126 - 0.2126 * a, 0.7152 + 0.2848 * a, 0.0722 - 0.0722 * a],
        [0.2126 - 0.2126 * a, 0.7152 - 0.7152 * a, 0.0722 + 0.9278 * a],
    ]))


def sepia_matrix(amount: float) -> np.ndarray:
    a = 1.0 - min(max(amount, 0.0), 1.0)
    return _affine(np.array([
        [0.393 + 0.607 * a, 0.769 - 0.769 * a, 0.189 - 0.189 * a],
        [0.349 - 0.349 * a, 0.686 + 0.314 * a, 0.168 - 0.168 * a],
        [0.272 - 0.272 * a, 0.534 - 0.534 * a, 0.131 + 0.869 * a],
    ]))


def tone_matrix(filters: FilterConfig) -> np.ndarray:
    """Return the 3x4 BGR affine matrix equivalent to the filter chain."""
    rgb = (
        sepia_matrix(filters.sepia / 100.0)
        @ grayscale_matrix(filters.grayscale / 100.0)
        @ saturation_matrix(filters.saturation / 100.0)
        @ contrast_matrix(filters.contrast / 100.0)
        @ brightness_matrix(filters.brightness / 100.0)
    )
    bgr = _RGB_TO_BGR @ rgb @ _RGB_TO_BGR
    return bgr[:3, :]


def is_neutral(filters: FilterConfig) -> bool:
    return filters.blur <= 0 and np.allclose(tone_matrix(filters), np.eye(3, 4))


def apply_tone(img: np.ndarray, filters: FilterConfig) -> np.ndarray:
    """Apply the combined tone pass to a uint8 BGR/BGRA image.

    Alpha is carried through unchanged.
    """
    if is_neutral(filters):
        return img.copy()

    color = img[..., :3].astype(np.float32)
    out = cv2.transform(color, tone_matrix(filters).astype(np.float32))
    np.clip(out, 0.0, 255.0, out=out)

    if filters.blur > 0:
        out = cv2.GaussianBlur(out, (0, 0), sigmaX=float(filters.blur))

    result = img.copy()
    result[..., :3] = np.clip(np.rint(out), 0, 255).astype(np.uint8)
    return result
