from __future__ import annotations

import logging
from typing import Optional

import cv2
import numpy as np

log = logging.getLogger("frame_grabber")

MAX_THRESHOLD = 30.0
THRESHOLD_SPAN = 28.0
# 3 of 4 RGBA channels are sampled
CHANNEL_RATIO = 0.75
DEFAULT_SCALE = 0.1


def sensitivity_threshold(sensitivity: float) -> float:
    """Average-difference threshold for a 1..100 sensitivity (higher fires sooner)."""
    return MAX_THRESHOLD - (sensitivity / 100.0 * THRESHOLD_SPAN)


def downsample(frame: np.ndarray, scale: float = DEFAULT_SCALE) -> np.ndarray:
    """Shrink *frame* to roughly *scale* of its linear size for comparison."""
    h, w = frame.shape[:2]
    size = (max(1, int(w * scale)), max(1, int(h * scale)))
    return cv2.resize(frame, size, interpolation=cv2.INTER_AREA)


def average_difference(prev: np.ndarray, curr: np.ndarray) -> float:
    """Summed |dR|+|dG|+|dB| over all pixels, normalised per RGBA sample."""
    a = prev[..., :3].astype(np.int32)
    b = curr[..., :3].astype(np.int32)
    total = float(np.abs(b - a).sum())
    pixel_count = curr.shape[0] * curr.shape[1]
    return total / (pixel_count * 4 * CHANNEL_RATIO)


def has_changed(prev: np.ndarray, curr: np.ndarray, sensitivity: float) -> bool:
    return average_difference(prev, curr) > sensitivity_threshold(sensitivity)


class SceneChangeDetector:
    """Stateful comparison of successive downsampled samples.

    The first sample only seeds the baseline.  By default every sample
    becomes the next baseline; with ``rebase_on_change=True`` the
    baseline only moves when a change fires, so slow drifts accumulate.
    """

    def __init__(self, sensitivity: float = 25, scale: float = DEFAULT_SCALE) -> None:
        self.sensitivity = sensitivity
        self.scale = scale
        self._baseline: Optional[np.ndarray] = None

    @property
    def baseline(self) -> Optional[np.ndarray]:
        return self._baseline

    def reset(self) -> None:
        self._baseline = None

    def observe(self, surface: np.ndarray, rebase_on_change: bool = False) -> bool:
        sample = downsample(surface, self.scale)
        prev = self._baseline

        if prev is None or prev.shape != sample.shape:
            if prev is not None:
                log.debug("Sample size changed %s -> %s; reseeding baseline", prev.shape, sample.shape)
            self._baseline = sample
            return False

        changed = has_changed(prev, sample, self.sensitivity)
        if changed or not rebase_on_change:
            self._baseline = sample
        return changed
