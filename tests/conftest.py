"""Shared helpers for frame-grabber tests."""
from __future__ import annotations

import asyncio
import heapq
import itertools
import struct
from typing import Callable, List, Optional

import cv2
import numpy as np

from frame_grabber.frames.models import CapturedFrame, FilterConfig


# ---------------------------------------------------------------------------
# Image builders
# ---------------------------------------------------------------------------

def solid(color: tuple = (128, 128, 128), size: tuple = (40, 40)) -> np.ndarray:
    """Solid BGR image of *size* (h, w)."""
    return np.full((size[0], size[1], 3), color, dtype=np.uint8)


def noise(seed: int = 0, size: tuple = (40, 40)) -> np.ndarray:
    rng = np.random.RandomState(seed)
    return rng.randint(0, 256, (size[0], size[1], 3), dtype=np.uint8)


def png_bytes(img: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


def jpeg_bytes(img: np.ndarray, quality: int = 92) -> bytes:
    ok, buf = cv2.imencode(".jpg", img, [cv2.IMWRITE_JPEG_QUALITY, quality])
    assert ok
    return buf.tobytes()


def decode(data: bytes) -> np.ndarray:
    return cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)


def make_frame(
    frame_id: str = "frame-000000000001",
    img: Optional[np.ndarray] = None,
    timestamp: float = 1.5,
    filters: Optional[FilterConfig] = None,
    filename: str = "frame_1000.png",
) -> CapturedFrame:
    data = png_bytes(img if img is not None else noise())
    return CapturedFrame(
        id=frame_id,
        data=data,
        file_extension="png",
        filename=filename,
        timestamp=timestamp,
        filters=filters,
    )


# ---------------------------------------------------------------------------
# Virtual clock
# ---------------------------------------------------------------------------

class _ManualHandle:
    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimers:
    """Deterministic ``Timers``: callbacks fire only inside :meth:`advance`."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(callback)
        heapq.heappush(self._queue, (self._now + delay_s, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = when
            handle.callback()
        self._now = target


# ---------------------------------------------------------------------------
# Scripted video source
# ---------------------------------------------------------------------------

class FakeVideoSource:
    """Scripted ``VideoSource``: *frame_at(position)* supplies the pixels.

    While playing, the position follows *clock* (a ``ManualTimers.now``).
    """

    def __init__(
        self,
        frame_at: Callable[[float], Optional[np.ndarray]],
        clock: Callable[[], float],
        duration_s: float = 10.0,
        is_live: bool = False,
        is_ready: bool = True,
    ) -> None:
        self.frame_at = frame_at
        self.clock = clock
        self.duration_s = duration_s
        self.is_live = is_live
        self.is_ready = is_ready
        self.seeks: List[float] = []
        self.closed = False
        self._base_s = 0.0
        self._started_at: Optional[float] = None

    def __enter__(self) -> "FakeVideoSource":
        return self

    def __exit__(self, *exc) -> None:
        self.closed = True

    @property
    def position_s(self) -> float:
        if self._started_at is None:
            return self._base_s
        return min(self.duration_s, self._base_s + self.clock() - self._started_at)

    @property
    def paused(self) -> bool:
        return self._started_at is None

    @property
    def ended(self) -> bool:
        return not self.is_live and self.position_s >= self.duration_s

    def play(self) -> None:
        if self._started_at is None:
            self._started_at = self.clock()

    def pause(self) -> None:
        self._base_s = self.position_s
        self._started_at = None

    async def seek(self, position_s: float) -> None:
        self.seeks.append(position_s)
        await asyncio.sleep(0)
        self._base_s = max(0.0, min(self.duration_s, position_s))
        if self._started_at is not None:
            self._started_at = self.clock()

    def surface(self) -> Optional[np.ndarray]:
        return self.frame_at(self.position_s)


def noise_by_position(position_s: float) -> np.ndarray:
    """A different bitmap for every centisecond of video."""
    return noise(seed=int(round(position_s * 100)))


def steps(*edges: float) -> Callable[[float], np.ndarray]:
    """Piecewise-constant video: the colour flips at every edge in *edges*."""
    shades = [0, 255, 96, 200, 32, 160]

    def frame_at(position_s: float) -> np.ndarray:
        idx = sum(1 for e in edges if position_s >= e)
        v = shades[idx % len(shades)]
        return solid((v, v, v))
    return frame_at


# ---------------------------------------------------------------------------
# Scripted visual comparator
# ---------------------------------------------------------------------------

class FakeComparator:
    """Returns scripted verdicts; raises when a verdict is an exception."""

    def __init__(self, verdicts: List[object], gate: Optional[asyncio.Event] = None) -> None:
        self.verdicts = list(verdicts)
        self.gate = gate
        self.calls: List[tuple] = []

    async def compare(self, baseline: bytes, current: bytes, instruction: str) -> str:
        self.calls.append((baseline, current, instruction))
        if self.gate is not None:
            await self.gate.wait()
        verdict = self.verdicts.pop(0) if self.verdicts else "NO"
        if isinstance(verdict, BaseException):
            raise verdict
        return verdict


def read_png_chunks(data: bytes) -> List[tuple]:
    """(type, body) pairs of a PNG chunk stream."""
    chunks = []
    pos = 8
    while pos + 8 <= len(data):
        (length,) = struct.unpack_from(">I", data, pos)
        ctype = data[pos + 4:pos + 8]
        chunks.append((ctype, data[pos + 8:pos + 8 + length]))
        pos += 12 + length
    return chunks

