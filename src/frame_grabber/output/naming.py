from __future__ import annotations

import math
import re
from pathlib import Path

from frame_grabber.config import FilenameFormat, NamingPattern
from frame_grabber.frames.models import CapturedFrame


def safe_slug(text: str, max_len: int = 200) -> str:
    """Convert *text* to a filesystem-safe slug.

    Unsafe characters are replaced with underscores, consecutive underscores
    are collapsed, and the result is truncated to *max_len* characters.
    Returns ``"video"`` for empty / whitespace-only input.
    """
    slug = re.sub(r'[^\w\-.]', '_', text)
    slug = re.sub(r'_+', '_', slug)
    slug = slug.strip('_')
    slug = slug[:max_len]
    return slug or "video"


def video_name_for(path: Path) -> str:
    return safe_slug(Path(path).stem)


def format_video_time(seconds: float) -> str:
    """``MM-SS-mmm`` for capture filenames."""
    if math.isnan(seconds) or seconds < 0:
        return "00-00-000"
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    millis = int((seconds * 1000) % 1000)
    return f"{minutes:02d}-{secs:02d}-{millis:03d}"


def format_frame_timestamp(seconds: float) -> str:
    """``M:SS.cc`` as shown next to a frame."""
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    centis = int((seconds % 1) * 100)
    return f"{minutes}:{secs:02d}.{centis:02d}"


def capture_filename(
    fmt: FilenameFormat,
    ext: str,
    *,
    video_name: str = "video",
    sequence: int = 1,
    position_s: float = 0.0,
    now_ms: int = 0,
) -> str:
    if fmt == "sequence":
        base = f"{video_name}_frame_{sequence:04d}"
    elif fmt == "video-time":
        base = f"{video_name}_{format_video_time(position_s)}"
    else:
        base = f"frame_{now_ms}"
    return f"{base}.{ext}"


def export_filename(pattern: NamingPattern, frame: CapturedFrame, index: int, ext: str) -> str:
    """Name for the *index*-th (0-based) exported frame."""
    if pattern == "timestamp-index":
        stamp = re.sub(r"[:.]", "-", format_frame_timestamp(frame.timestamp))
        return f"frame_{stamp}_{index + 1:03d}.{ext}"
    if pattern == "scene-index":
        return f"scene_{index + 1:03d}.{ext}"
    return f"{Path(frame.filename).stem}.{ext}"
