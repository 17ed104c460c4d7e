from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from frame_grabber.config import Config
from frame_grabber.frames.models import CapturedFrame
from frame_grabber.output.exporter import ExportedImage


def build_manifest(
    session_id: str,
    cfg: Config,
    frames: Sequence[CapturedFrame],
    exported: Sequence[ExportedImage],
    session_duration_s: Optional[float] = None,
    stop_reason: Optional[str] = None,
) -> Dict[str, Any]:
    export_names = {image.frame_id: image.name for image in exported}
    return {
        "session_id": session_id,
        "created_utc": datetime.now(timezone.utc).isoformat(),
        "params": {
            "mode": cfg.mode,
            "fps": cfg.automation.fps,
            "scene_sensitivity": cfg.automation.scene_sensitivity,
            "slide_mode": cfg.automation.slide_mode,
            "fast_scan": cfg.automation.fast_scan,
            "dpi": cfg.capture.dpi,
            "quality": cfg.capture.quality,
            "export_format": cfg.export.export_format,
            "export_preset": cfg.export.preset,
            "export_naming": cfg.export.naming,
        },
        "frames": [
            {
                "id": frame.id,
                "filename": frame.filename,
                "export_name": export_names.get(frame.id),
                "timestamp": round(frame.timestamp, 3),
                "filters": frame.filters.as_dict() if frame.filters else None,
            }
            for frame in frames
        ],
        "totals": {
            "captured": len(frames),
            "exported": len(exported),
            "session_duration_s": (
                round(session_duration_s, 3) if session_duration_s is not None else None
            ),
            "stop_reason": stop_reason,
        },
    }


def write_manifest(path: Path, manifest: Dict[str, Any]) -> None:
    """Serialise *manifest* as pretty-printed JSON to *path*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(manifest, indent=2, ensure_ascii=False), encoding="utf-8")
