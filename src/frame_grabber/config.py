from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Literal, Optional

log = logging.getLogger("frame_grabber")

CaptureMode = Literal["off", "interval", "time-range", "pixel-detect", "ai-detect"]
CaptureQuality = Literal["high", "low"]
FilenameFormat = Literal["timestamp", "sequence", "video-time"]
ExportFormat = Literal["jpeg", "png", "webp"]
ExportPreset = Literal["original", "web", "print"]
NamingPattern = Literal["original", "timestamp-index", "scene-index"]

CAPTURE_MODES = ("off", "interval", "time-range", "pixel-detect", "ai-detect")
DPI_OPTIONS = (72, 96, 150, 300, 600, 1200, 2400)

MIN_FPS = 1.0
MAX_FPS = 30.0


@dataclass(frozen=True)
class CaptureConfig:
    quality: CaptureQuality = "high"
    jpeg_quality: float = 0.92
    dpi: int = 1200
    filename_format: FilenameFormat = "timestamp"
    video_name: str = "video"

    @property
    def file_extension(self) -> str:
        return "png" if self.quality == "high" else "jpeg"


@dataclass(frozen=True)
class AutomationConfig:
    fps: float = 5.0
    scene_sensitivity: int = 25
    fast_scan: bool = True
    slide_mode: bool = False
    range_start_s: float = 0.0
    range_end_s: Optional[float] = None
    playback_rate: float = 1.0

    # Detector / timing knobs
    detect_scale: float = 0.1
    scan_step_s: float = 0.5
    stabilization_delay_s: float = 0.75
    cooldown_s: float = 2.0
    ai_min_period_s: float = 0.5
    frame_tick_s: float = 1.0 / 60.0

    @property
    def capture_period_s(self) -> float:
        return 1.0 / self.fps

    @property
    def ai_period_s(self) -> float:
        return max(self.capture_period_s, self.ai_min_period_s)


@dataclass(frozen=True)
class AiConfig:
    model: str = "gemini-3-flash-preview"
    api_key_env: str = "GEMINI_API_KEY"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout_s: float = 30.0
    snapshot_quality: float = 0.2


@dataclass(frozen=True)
class ExportConfig:
    export_format: ExportFormat = "jpeg"
    preset: ExportPreset = "original"
    naming: NamingPattern = "original"
    out_dir: str = "output/export"
    make_zip: bool = True
    make_pdf: bool = False
    write_manifest: bool = True


@dataclass(frozen=True)
class Config:
    mode: CaptureMode = "interval"

    capture: CaptureConfig = field(default_factory=CaptureConfig)
    automation: AutomationConfig = field(default_factory=AutomationConfig)
    ai: AiConfig = field(default_factory=AiConfig)
    export: ExportConfig = field(default_factory=ExportConfig)

    # Session bounds
    max_session_s: Optional[float] = None
    manual_timestamps: tuple[float, ...] = ()


def clamp_fps(fps: float) -> float:
    """Clamp a requested sample rate into the supported 1..30 fps window."""
    return max(MIN_FPS, min(MAX_FPS, float(fps)))


def validate_sensitivity(value: int) -> int:
    if not 1 <= value <= 100:
        raise ValueError(f"sensitivity must be within 1..100, got {value}")
    return int(value)


# ── Persisted settings ─────────────────────────────────────────────


def load_settings(path: Path, base: Config) -> Config:
    """Merge the persisted settings file at *path* over *base*.

    Missing files leave *base* untouched.  A corrupt file is logged and
    ignored so a bad settings file never blocks a capture session.
    """
    if not path.exists():
        return base
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        log.warning("Could not load settings from %s: %s", path, exc)
        return base
    if not isinstance(data, dict):
        log.warning("Ignoring settings file %s: expected a JSON object", path)
        return base

    capture = base.capture
    automation = base.automation
    export = base.export

    if data.get("quality") in ("high", "low"):
        capture = replace(capture, quality=data["quality"])
    if data.get("filenameFormat") in ("timestamp", "sequence", "video-time"):
        capture = replace(capture, filename_format=data["filenameFormat"])
    if isinstance(data.get("dpi"), int) and data["dpi"] > 0:
        capture = replace(capture, dpi=data["dpi"])
    if isinstance(data.get("fps"), (int, float)):
        automation = replace(automation, fps=clamp_fps(data["fps"]))
    if isinstance(data.get("sceneDetectSensitivity"), int):
        try:
            automation = replace(
                automation,
                scene_sensitivity=validate_sensitivity(data["sceneDetectSensitivity"]),
            )
        except ValueError as exc:
            log.warning("Ignoring persisted sensitivity: %s", exc)
    if data.get("exportFormat") in ("jpeg", "png", "webp"):
        export = replace(export, export_format=data["exportFormat"])

    return replace(base, capture=capture, automation=automation, export=export)


def save_settings(path: Path, cfg: Config) -> None:
    """Persist the user-facing subset of *cfg* to *path*."""
    data: Dict[str, Any] = {
        "quality": cfg.capture.quality,
        "filenameFormat": cfg.capture.filename_format,
        "fps": cfg.automation.fps,
        "dpi": cfg.capture.dpi,
        "exportFormat": cfg.export.export_format,
        "sceneDetectSensitivity": cfg.automation.scene_sensitivity,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
