from __future__ import annotations

import asyncio
import logging
import os
from contextlib import AsyncExitStack
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx

from frame_grabber.automation.scheduler import CaptureScheduler
from frame_grabber.config import Config
from frame_grabber.detection.ai import GeminiComparator, VisualComparator
from frame_grabber.frames.grabber import CaptureError, FrameGrabber
from frame_grabber.frames.store import FrameStore
from frame_grabber.imaging.pipeline import FilterPipeline
from frame_grabber.media.screen import ScreenVideoSource
from frame_grabber.media.source import OpenCvVideoSource
from frame_grabber.output.exporter import ExportedImage, render_for_export
from frame_grabber.output.manifest import build_manifest, write_manifest
from frame_grabber.output.naming import video_name_for
from frame_grabber.output.pdf import write_pdf
from frame_grabber.output.zipper import DEFAULT_ZIP_NAME, zip_images
from frame_grabber.session_id import generate_session_id

log = logging.getLogger("frame_grabber")

SCREEN = "screen"


@dataclass
class SessionResult:
    session_id: str
    out_dir: Path
    store: FrameStore
    exported: List[ExportedImage]
    stop_reason: Optional[str] = None
    session_duration_s: Optional[float] = None


def run_session(
    cfg: Config,
    video: Union[Path, str],
    filter_changes: Optional[Dict[str, Any]] = None,
    comparator: Optional[VisualComparator] = None,
    screen_monitor: int = 1,
) -> SessionResult:
    """Capture from *video* (a file path, or ``"screen"``), edit, then export.

    *filter_changes* is a bulk edit applied to every captured frame before
    export.  For ``ai-detect`` a :class:`GeminiComparator` is built from
    the API key environment variable unless *comparator* is given.
    """
    return asyncio.run(_run(cfg, video, filter_changes or {}, comparator, screen_monitor))


async def _run(
    cfg: Config,
    video: Union[Path, str],
    filter_changes: Dict[str, Any],
    comparator: Optional[VisualComparator],
    screen_monitor: int,
) -> SessionResult:
    is_screen = video == SCREEN
    session_id = generate_session_id(None if is_screen else video_name_for(Path(video)))
    out_dir = Path(cfg.export.out_dir) / session_id

    async with AsyncExitStack() as stack:
        # ── Open the source ─────────────────────────────────────────
        if is_screen:
            source = stack.enter_context(ScreenVideoSource(screen_monitor))
            capture_cfg = replace(cfg.capture, video_name="screen")
        else:
            source = stack.enter_context(
                OpenCvVideoSource(Path(video), playback_rate=cfg.automation.playback_rate)
            )
            capture_cfg = replace(cfg.capture, video_name=video_name_for(Path(video)))

        store = FrameStore()
        grabber = FrameGrabber(source, store, capture_cfg)

        if cfg.mode == "ai-detect" and comparator is None:
            api_key = os.environ.get(cfg.ai.api_key_env)
            if not api_key:
                raise RuntimeError(
                    f"AI scene detection needs an API key in ${cfg.ai.api_key_env}"
                )
            client = await stack.enter_async_context(httpx.AsyncClient(timeout=cfg.ai.timeout_s))
            comparator = GeminiComparator(api_key, model=cfg.ai.model, base_url=cfg.ai.base_url, client=client)

        log.info("Session %s started (mode=%s)", session_id, cfg.mode)

        # ── Manual captures ─────────────────────────────────────────
        for at_s in cfg.manual_timestamps:
            if source.is_live:
                log.warning("Ignoring --at %.2f: a live source cannot seek", at_s)
                continue
            await source.seek(at_s)
            try:
                grabber.grab()
            except CaptureError as exc:
                log.warning("Capture at %.2f s failed: %s", at_s, exc)

        # ── Automation ──────────────────────────────────────────────
        stop_reason: Optional[str] = None
        duration_s: Optional[float] = None
        if cfg.mode != "off":
            scheduler = CaptureScheduler(
                source, grabber, cfg.automation,
                comparator=comparator,
                snapshot_quality=cfg.ai.snapshot_quality,
            )
            scheduler.start(cfg.mode)
            if not await scheduler.wait_stopped(cfg.max_session_s):
                scheduler.stop("time limit")
            await scheduler.join()
            stop_reason = scheduler.stop_reason
            duration_s = scheduler.session_duration_s
            if scheduler.status != "Idle":
                log.info("Final AI status: %s", scheduler.status)

    log.info("Captured %d frame(s)", len(store))

    # ── Bulk edit ───────────────────────────────────────────────────
    if filter_changes and len(store):
        changed = store.apply_change(None, **filter_changes)
        log.info("Applied %s to %d frame(s)", ", ".join(sorted(filter_changes)), changed)

    # ── Export ──────────────────────────────────────────────────────
    pipeline = FilterPipeline(jpeg_quality=cfg.capture.jpeg_quality)
    exported = render_for_export(store.frames, pipeline, cfg.export)

    if exported and cfg.export.make_zip:
        zip_path = out_dir / DEFAULT_ZIP_NAME
        zip_images(exported, zip_path)
        log.info("ZIP written to %s", zip_path)

    if exported and cfg.export.make_pdf:
        write_pdf(exported, out_dir / "captured-frames.pdf")

    if cfg.export.write_manifest:
        manifest = build_manifest(
            session_id, cfg, store.frames, exported,
            session_duration_s=duration_s, stop_reason=stop_reason,
        )
        write_manifest(out_dir / "session_manifest.json", manifest)
        log.info("Manifest written to %s", out_dir / "session_manifest.json")

    log.info("Done: %d captured, %d exported", len(store), len(exported))
    return SessionResult(
        session_id=session_id,
        out_dir=out_dir,
        store=store,
        exported=exported,
        stop_reason=stop_reason,
        session_duration_s=duration_s,
    )
