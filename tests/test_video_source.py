"""OpenCvVideoSource against a small MJPG clip written to disk."""
from __future__ import annotations

import asyncio
from pathlib import Path

import cv2
import numpy as np
import pytest

from frame_grabber.media.source import OpenCvVideoSource

FPS = 10.0
FRAMES = 20


def _write_clip(path: Path) -> Path:
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), FPS, (64, 48))
    if not writer.isOpened():
        pytest.skip("MJPG writer unavailable in this OpenCV build")
    for i in range(FRAMES):
        # brightness encodes the frame index
        writer.write(np.full((48, 64, 3), i * 10, dtype=np.uint8))
    writer.release()
    return path


class _Clock:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


@pytest.fixture
def clip(tmp_path):
    return _write_clip(tmp_path / "clip.avi")


def _index_of(frame):
    return int(round(float(frame.mean()) / 10))


class TestOpenCvVideoSource:
    def test_metadata(self, clip):
        with OpenCvVideoSource(clip) as src:
            assert src.is_ready
            assert not src.is_live
            assert src.duration_s == pytest.approx(FRAMES / FPS)
            assert src.paused
            assert src.position_s == 0.0

    def test_virtual_clock_playback(self, clip):
        clock = _Clock()
        with OpenCvVideoSource(clip, playback_rate=2.0, clock=clock) as src:
            src.play()
            clock.t = 0.5
            assert src.position_s == pytest.approx(1.0)
            src.pause()
            clock.t = 5.0
            assert src.position_s == pytest.approx(1.0)
            assert _index_of(src.surface()) == 10

    def test_seek_decodes_target(self, clip):
        with OpenCvVideoSource(clip, clock=_Clock()) as src:
            asyncio.run(src.seek(0.55))
            assert src.position_s == pytest.approx(0.55)
            assert _index_of(src.surface()) == 5
            asyncio.run(src.seek(99))
            assert src.position_s == pytest.approx(src.duration_s)
            assert src.ended

    def test_play_after_end_restarts(self, clip):
        clock = _Clock()
        with OpenCvVideoSource(clip, clock=clock) as src:
            asyncio.run(src.seek(src.duration_s))
            src.play()
            assert src.position_s == 0.0

    def test_missing_file(self, tmp_path):
        with pytest.raises(RuntimeError):
            OpenCvVideoSource(tmp_path / "missing.mp4")
