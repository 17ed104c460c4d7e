from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from frame_grabber.config import CaptureConfig
from frame_grabber.frames.models import CapturedFrame, capture_filters
from frame_grabber.frames.store import FrameStore
from frame_grabber.imaging.codec import encode_image
from frame_grabber.imaging.dpi import inject_dpi
from frame_grabber.media.source import VideoSource
from frame_grabber.output.naming import capture_filename
from frame_grabber.session_id import new_frame_id

log = logging.getLogger("frame_grabber")


class CaptureError(RuntimeError):
    """The current video surface could not be turned into an image."""


class FrameGrabber:
    """Encodes the live surface of a video source and files it in a store.

    Every grab is DPI-tagged at capture time.  With ``dedupe=True`` a
    bitmap identical to the previously captured one is dropped.
    """

    def __init__(
        self,
        source: VideoSource,
        store: FrameStore,
        cfg: CaptureConfig,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.source = source
        self.store = store
        self.cfg = cfg
        self._wall_clock = wall_clock
        self._last_data: Optional[bytes] = None
        self._sequence = 1

    def reset(self) -> None:
        """Forget the previous bitmap and restart the filename sequence."""
        self._last_data = None
        self._sequence = 1

    def grab(self, dedupe: bool = False, position_s: Optional[float] = None) -> Optional[CapturedFrame]:
        """Capture the current surface; returns None when dropped as a duplicate.

        *position_s* overrides the position recorded for a recorded source,
        for callers that already checked it against a window.
        """
        surface = self.source.surface()
        if surface is None:
            raise CaptureError("no frame available from the video source")

        ext = self.cfg.file_extension
        try:
            data = encode_image(surface, ext, self.cfg.jpeg_quality)
        except ValueError as exc:
            raise CaptureError(str(exc)) from exc
        data = inject_dpi(data, self.cfg.dpi)

        if dedupe and data == self._last_data:
            log.debug("Dropping capture identical to the previous frame")
            return None
        self._last_data = data

        now = self._wall_clock()
        position = self.source.position_s if position_s is None else position_s
        timestamp = now if self.source.is_live else position

        frame = CapturedFrame(
            id=new_frame_id(),
            data=data,
            file_extension=ext,
            filename=self._next_filename(ext, position, now),
            timestamp=timestamp,
            filters=capture_filters(self.cfg.dpi),
        )
        self.store.add(frame)
        log.info("Captured %s at %.3f s", frame.filename, timestamp)
        return frame

    def snapshot(self, quality: float = 0.2) -> Optional[bytes]:
        """Low-fidelity JPEG of the current surface, not stored."""
        surface = self.source.surface()
        if surface is None:
            return None
        try:
            return encode_image(surface, "jpeg", quality)
        except ValueError as exc:
            log.warning("Could not encode snapshot: %s", exc)
            return None

    def _next_filename(self, ext: str, position: float, now: float) -> str:
        name = capture_filename(
            self.cfg.filename_format,
            ext,
            video_name=self.cfg.video_name,
            sequence=self._sequence,
            position_s=position,
            now_ms=int(now * 1000),
        )
        if self.cfg.filename_format == "sequence":
            self._sequence += 1
        return name
