from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from frame_grabber.config import (
    CAPTURE_MODES,
    DPI_OPTIONS,
    AiConfig,
    AutomationConfig,
    CaptureConfig,
    Config,
    ExportConfig,
    clamp_fps,
    load_settings,
    save_settings,
)
from frame_grabber.frames.models import SHARPENING_LEVELS, edit_filters, validate_dpi
from frame_grabber.logging_utils import setup_logging
from frame_grabber.pipeline.session import SCREEN, run_session

FILTER_FLAGS = ("brightness", "contrast", "saturation", "blur", "grayscale", "sepia", "sharpening")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="frame-grabber",
        description="Capture still frames from a video (manually, on a timer or on scene changes), "
                    "edit them and export them as images, a ZIP or a PDF.",
    )

    # Source
    p.add_argument("video", nargs="?", default=None, help="video file to capture from")
    p.add_argument("--screen", action="store_true", help="capture the desktop instead of a file")
    p.add_argument("--monitor", type=int, default=1)

    # Mode
    p.add_argument("--mode", choices=list(CAPTURE_MODES), default=None)
    p.add_argument("--at", dest="at", type=float, action="append", default=[],
                   metavar="SECONDS", help="manual capture position (repeatable)")

    # Settings file
    p.add_argument("--settings", type=Path, default=None)
    p.add_argument("--save-settings", action="store_true")

    # Capture (None = keep the persisted / default value)
    p.add_argument("--quality", choices=["high", "low"], default=None)
    p.add_argument("--dpi", type=int, default=None, help=f"common values: {', '.join(map(str, DPI_OPTIONS))}")
    p.add_argument("--filename-format", choices=["timestamp", "sequence", "video-time"], default=None)

    # Automation
    p.add_argument("--fps", type=float, default=None)
    p.add_argument("--sensitivity", type=int, default=None)
    p.add_argument("--slide-mode", action="store_true")
    p.add_argument("--no-fast-scan", dest="fast_scan", action="store_false")
    p.add_argument("--range-start", type=float, default=0.0)
    p.add_argument("--range-end", type=float, default=None)
    p.add_argument("--playback-rate", type=float, default=1.0)
    p.add_argument("--max-seconds", type=float, default=None)

    # Bulk filter edits
    for name in FILTER_FLAGS[:-1]:
        p.add_argument(f"--{name}", type=float, default=None)
    p.add_argument("--sharpening", choices=list(SHARPENING_LEVELS), default=None)

    # Export
    p.add_argument("--out", dest="out_dir", default="output/export")
    p.add_argument("--format", dest="export_format", choices=["jpeg", "png", "webp"], default=None)
    p.add_argument("--preset", choices=["original", "web", "print"], default="original")
    p.add_argument("--naming", choices=["original", "timestamp-index", "scene-index"], default="original")
    p.add_argument("--zip", dest="make_zip", action="store_true", default=True)
    p.add_argument("--no-zip", dest="make_zip", action="store_false")
    p.add_argument("--pdf", dest="make_pdf", action="store_true")
    p.add_argument("--no-manifest", dest="write_manifest", action="store_false")

    p.add_argument("--verbose", "-v", action="store_true")
    return p


def _fail(message: str) -> None:
    print(message, file=sys.stderr)
    sys.exit(2)


def _validate(args: argparse.Namespace) -> None:
    if args.screen == (args.video is not None):
        _fail("give either a VIDEO file or --screen")
    if args.video is not None and not Path(args.video).is_file():
        _fail(f"video file not found: {args.video}")
    if args.dpi is not None:
        try:
            validate_dpi(args.dpi)
        except ValueError as exc:
            _fail(str(exc))
    if args.sensitivity is not None and not 1 <= args.sensitivity <= 100:
        _fail("sensitivity must be within 1..100")
    if args.range_start < 0:
        _fail("range-start must be >= 0")
    if args.range_end is not None and args.range_end < args.range_start:
        _fail("range-end must not be before range-start")
    if args.playback_rate <= 0:
        _fail("playback-rate must be > 0")
    if args.max_seconds is not None and args.max_seconds <= 0:
        _fail("max-seconds must be > 0")
    if args.screen and args.mode not in (None, "off") and args.max_seconds is None:
        _fail("--screen automation needs --max-seconds")
    if args.at and args.mode not in (None, "off"):
        _fail("--at captures run in mode 'off'")


def _filter_changes(args: argparse.Namespace) -> Dict[str, Any]:
    changes = {name: getattr(args, name) for name in FILTER_FLAGS if getattr(args, name) is not None}
    try:
        edit_filters(None, **changes)
    except ValueError as exc:
        _fail(str(exc))
    return changes


def build_config(args: argparse.Namespace) -> Config:
    base = Config()
    if args.settings is not None:
        base = load_settings(args.settings, base)

    mode = args.mode or ("off" if args.at else "interval")

    capture = CaptureConfig(
        quality=args.quality or base.capture.quality,
        dpi=args.dpi if args.dpi is not None else base.capture.dpi,
        filename_format=args.filename_format or base.capture.filename_format,
    )
    automation = AutomationConfig(
        fps=clamp_fps(args.fps) if args.fps is not None else base.automation.fps,
        scene_sensitivity=(
            args.sensitivity if args.sensitivity is not None else base.automation.scene_sensitivity
        ),
        fast_scan=args.fast_scan,
        slide_mode=args.slide_mode,
        range_start_s=args.range_start,
        range_end_s=args.range_end,
        playback_rate=args.playback_rate,
    )
    export = ExportConfig(
        export_format=args.export_format or base.export.export_format,
        preset=args.preset,
        naming=args.naming,
        out_dir=args.out_dir,
        make_zip=args.make_zip,
        make_pdf=args.make_pdf,
        write_manifest=args.write_manifest,
    )
    return Config(
        mode=mode,
        capture=capture,
        automation=automation,
        ai=AiConfig(),
        export=export,
        max_session_s=args.max_seconds,
        manual_timestamps=tuple(args.at),
    )


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    log = setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    _validate(args)
    changes = _filter_changes(args)
    cfg = build_config(args)

    if args.save_settings:
        if args.settings is None:
            _fail("--save-settings needs --settings FILE")
        save_settings(args.settings, cfg)
        log.info("Settings saved to %s", args.settings)

    try:
        result = run_session(
            cfg,
            SCREEN if args.screen else Path(args.video),
            filter_changes=changes,
            screen_monitor=args.monitor,
        )
    except RuntimeError as exc:
        log.error(str(exc))
        sys.exit(1)

    log.info("Output in %s", result.out_dir)


if __name__ == "__main__":
    main()
