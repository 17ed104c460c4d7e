from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Callable, Optional, Protocol

import cv2
import numpy as np

log = logging.getLogger("frame_grabber")

_DEFAULT_FPS = 30.0


class VideoSource(Protocol):
    """What the capture core needs from a player."""

    @property
    def is_ready(self) -> bool: ...

    @property
    def is_live(self) -> bool: ...

    @property
    def position_s(self) -> float: ...

    @property
    def duration_s(self) -> float: ...

    @property
    def paused(self) -> bool: ...

    @property
    def ended(self) -> bool: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    async def seek(self, position_s: float) -> None:
        """Move to *position_s*; returns once the frame there is decoded."""
        ...

    def surface(self) -> Optional[np.ndarray]:
        """The BGR frame at the current position, or None if unavailable."""
        ...


class OpenCvVideoSource:
    """File-backed player over ``cv2.VideoCapture``.

    Playback is a virtual clock: while playing, the position advances
    with wall time scaled by *playback_rate*.  Frames are decoded lazily
    for whatever position is current when :meth:`surface` is called.
    """

    is_live = False

    def __init__(
        self,
        path: Path,
        playback_rate: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.path = Path(path)
        self._cap = cv2.VideoCapture(str(self.path))
        if not self._cap.isOpened():
            raise RuntimeError(f"Could not open video: {self.path}")

        fps = self._cap.get(cv2.CAP_PROP_FPS)
        if not fps or fps <= 0:
            log.warning("Could not read fps for %s, falling back to %.0f", self.path.name, _DEFAULT_FPS)
            fps = _DEFAULT_FPS
        self.fps = float(fps)
        self.frame_count = int(self._cap.get(cv2.CAP_PROP_FRAME_COUNT))
        self.playback_rate = playback_rate
        self._clock = clock

        self._base_s = 0.0
        self._started_at: Optional[float] = None
        self._last_index = -1
        self._last_frame: Optional[np.ndarray] = None

        log.info(
            "Opened %s: %d frames @ %.2f fps (%.1f s)",
            self.path.name, self.frame_count, self.fps, self.duration_s,
        )

    def __enter__(self) -> "OpenCvVideoSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._cap.release()

    # ── Playback state ──────────────────────────────────────────────

    @property
    def is_ready(self) -> bool:
        return self.frame_count > 0

    @property
    def duration_s(self) -> float:
        return self.frame_count / self.fps

    @property
    def position_s(self) -> float:
        if self._started_at is None:
            return self._base_s
        elapsed = (self._clock() - self._started_at) * self.playback_rate
        return min(self.duration_s, self._base_s + elapsed)

    @property
    def paused(self) -> bool:
        return self._started_at is None

    @property
    def ended(self) -> bool:
        return self.is_ready and self.position_s >= self.duration_s

    def play(self) -> None:
        if self.ended:
            self._base_s = 0.0
        if self._started_at is None:
            self._started_at = self._clock()

    def pause(self) -> None:
        self._base_s = self.position_s
        self._started_at = None

    async def seek(self, position_s: float) -> None:
        target = max(0.0, min(float(position_s), self.duration_s))
        self._base_s = target
        if self._started_at is not None:
            self._started_at = self._clock()
        await asyncio.to_thread(self._decode_at, target)

    def surface(self) -> Optional[np.ndarray]:
        if not self.is_ready:
            return None
        return self._decode_at(self.position_s)

    def _decode_at(self, position_s: float) -> Optional[np.ndarray]:
        index = min(int(position_s * self.fps), self.frame_count - 1)
        if index == self._last_index:
            return self._last_frame
        if index != self._last_index + 1:
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, index)
        ok, frame = self._cap.read()
        if not ok:
            log.debug("Decode failed at frame %d of %s", index, self.path.name)
            # Stream position is unknown now; force a seek on the next read
            self._last_index = -2
            return self._last_frame
        self._last_index = index
        self._last_frame = frame
        return frame
