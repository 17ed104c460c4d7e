from __future__ import annotations

import logging
import math
import time
from typing import Any, Optional

import cv2
import numpy as np

log = logging.getLogger("frame_grabber")


class ScreenVideoSource:
    """Live desktop capture through ``mss``.

    A live stream is always playing, never ends and cannot seek.  Its
    position is wall-clock seconds.
    """

    is_live = True
    is_ready = True
    paused = False
    ended = False
    duration_s = math.inf

    def __init__(self, monitor: int = 1) -> None:
        import mss

        self._sct = mss.mss()
        try:
            self._monitor: dict[str, Any] = self._sct.monitors[monitor]
        except IndexError:
            available = len(self._sct.monitors) - 1
            self._sct.close()
            raise ValueError(f"No monitor {monitor}; {available} available") from None
        log.info(
            "Capturing monitor %d (%dx%d)",
            monitor, self._monitor["width"], self._monitor["height"],
        )

    def __enter__(self) -> "ScreenVideoSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._sct.close()

    @property
    def position_s(self) -> float:
        return time.time()

    def play(self) -> None:
        pass

    def pause(self) -> None:
        pass

    async def seek(self, position_s: float) -> None:
        raise RuntimeError("a live screen stream cannot seek")

    def surface(self) -> Optional[np.ndarray]:
        shot = self._sct.grab(self._monitor)
        return cv2.cvtColor(np.asarray(shot), cv2.COLOR_BGRA2BGR)
