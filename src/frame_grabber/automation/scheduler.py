"""Capture automation.

One :class:`CaptureScheduler` owns every timer, frame-loop callback and
in-flight task of an automation session.  All work interleaves on the
asyncio loop thread; ``start()`` and ``stop()`` are the only methods
that change the session state.  Async work captures the session
generation when it begins and drops its result if the session has
moved on by the time it completes.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Optional

from frame_grabber.automation.timers import LoopTimers, RepeatingTimer, TimerHandle, Timers
from frame_grabber.config import CAPTURE_MODES, AutomationConfig, CaptureMode
from frame_grabber.detection.ai import COMPARISON_PROMPT, VisualComparator, is_change_verdict
from frame_grabber.detection.scene import SceneChangeDetector
from frame_grabber.frames.grabber import CaptureError, FrameGrabber
from frame_grabber.frames.models import CapturedFrame
from frame_grabber.media.source import VideoSource

log = logging.getLogger("frame_grabber")

STATUS_IDLE = "Idle"
STATUS_SNAPSHOT = "Capturing frame for analysis..."
STATUS_SNAPSHOT_FAILED = "Failed to capture frame."
STATUS_BASELINE = "Setting baseline frame..."
STATUS_MONITORING = "Baseline set. Monitoring for changes..."
STATUS_ASKING = "Asking AI to compare frames..."
STATUS_CHANGED = "Scene change detected!"
STATUS_UNCHANGED = "No change. Monitoring..."
STATUS_AI_FAILED = "AI analysis failed."


class CaptureScheduler:
    """Decides when the grabber captures, under one of the automation modes.

    * ``interval``: capture every ``1/fps`` seconds while the video plays.
    * ``time-range``: same cadence, only inside ``[range_start_s, range_end_s]``;
      stops once the position passes the end.
    * ``pixel-detect``: compare downsampled frames on every frame tick
      (optionally with slide-mode stabilization and cooldown), or sweep
      a paused video in fixed seek steps when fast scan is on.
    * ``ai-detect``: periodic snapshots judged by a visual comparator.

    With the default :class:`LoopTimers`, ``start()`` must be called from
    inside a running event loop.
    """

    def __init__(
        self,
        source: VideoSource,
        grabber: FrameGrabber,
        config: AutomationConfig,
        comparator: Optional[VisualComparator] = None,
        timers: Optional[Timers] = None,
        snapshot_quality: float = 0.2,
    ) -> None:
        self.source = source
        self.grabber = grabber
        self.config = config
        self.comparator = comparator
        self.timers = timers or LoopTimers()
        self.snapshot_quality = snapshot_quality
        self.detector = SceneChangeDetector(config.scene_sensitivity, config.detect_scale)

        self._mode: CaptureMode = "off"
        self._fast_scan = False
        self._generation = 0
        self._started_at: Optional[float] = None
        self._stopped: Optional[asyncio.Event] = None
        self._tasks: set[asyncio.Task] = set()

        self._interval: Optional[RepeatingTimer] = None
        self._frame_handle: Optional[TimerHandle] = None
        self._stabilize_handle: Optional[TimerHandle] = None
        self._cooldown_handle: Optional[TimerHandle] = None
        self._stabilizing = False
        self._cooling_down = False

        self._ai_baseline: Optional[bytes] = None
        self._ai_pending = False

        self.status = STATUS_IDLE
        self.stop_reason: Optional[str] = None
        self.session_duration_s: Optional[float] = None
        self.captured_count = 0

    # ── Public state ────────────────────────────────────────────────

    @property
    def mode(self) -> CaptureMode:
        return self._mode

    @property
    def is_active(self) -> bool:
        return self._mode != "off"

    @property
    def fast_scan_active(self) -> bool:
        return self._fast_scan

    # ── Lifecycle ───────────────────────────────────────────────────

    def start(self, mode: CaptureMode, fast_scan: Optional[bool] = None) -> None:
        if mode not in CAPTURE_MODES:
            raise ValueError(f"unknown capture mode: {mode!r}")
        if self.is_active:
            self.stop(reason="mode change")
        if mode == "off":
            return
        if not self.source.is_ready:
            raise RuntimeError("video source is not ready")
        if mode == "ai-detect" and self.comparator is None:
            raise ValueError("ai-detect mode needs a visual comparator")

        fast = self.config.fast_scan if fast_scan is None else fast_scan
        if mode == "pixel-detect" and fast and self.source.is_live:
            log.warning("Fast scan needs a seekable source; using continuous detection")
            fast = False

        self._generation += 1
        self._mode = mode
        self._fast_scan = mode == "pixel-detect" and fast
        self._started_at = self.timers.now()
        self._stopped = asyncio.Event()
        self.session_duration_s = None
        self.stop_reason = None
        self.captured_count = 0

        if not self._fast_scan:
            self.source.play()
        log.info("Starting %s automation%s", mode, " (fast scan)" if self._fast_scan else "")

        if mode == "interval":
            self._interval = RepeatingTimer(self.timers, self.config.capture_period_s, self._interval_tick)
        elif mode == "time-range":
            self._start_time_range()
        elif mode == "pixel-detect":
            self.detector.reset()
            if self._fast_scan:
                self._spawn(self._fast_scan_sweep(self._generation))
            else:
                self._schedule_frame()
        else:
            self._ai_baseline = None
            self._interval = RepeatingTimer(self.timers, self.config.ai_period_s, self._ai_tick)
            self._ai_tick()

    def stop(self, reason: str = "manual") -> None:
        if not self.is_active:
            return

        self._generation += 1
        self._cancel_timers()
        self._stabilizing = False
        self._cooling_down = False
        self._ai_pending = False
        self._ai_baseline = None
        self.detector.reset()

        if self._started_at is not None:
            self.session_duration_s = self.timers.now() - self._started_at
        self._started_at = None
        self._mode = "off"
        self._fast_scan = False
        self.status = STATUS_IDLE
        self.stop_reason = reason
        if self._stopped is not None:
            self._stopped.set()

        log.info(
            "Automation stopped (%s) after %.2f s, %d frames captured",
            reason, self.session_duration_s or 0.0, self.captured_count,
        )

    async def join(self) -> None:
        """Wait for in-flight async work (seeks, sweeps, AI calls) to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Wait until the session stops; False if *timeout* elapsed first."""
        if not self.is_active or self._stopped is None:
            return True
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # ── Shared helpers ──────────────────────────────────────────────

    def _is_current(self, generation: int) -> bool:
        return self.is_active and generation == self._generation

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_timers(self) -> None:
        if self._interval is not None:
            self._interval.cancel()
            self._interval = None
        for handle in (self._frame_handle, self._stabilize_handle, self._cooldown_handle):
            if handle is not None:
                handle.cancel()
        self._frame_handle = None
        self._stabilize_handle = None
        self._cooldown_handle = None

    def _playback_over(self) -> bool:
        return not self.source.is_live and self.source.ended

    def _capture(self, dedupe: bool = True, position_s: Optional[float] = None) -> Optional[CapturedFrame]:
        try:
            frame = self.grabber.grab(dedupe=dedupe, position_s=position_s)
        except CaptureError as exc:
            log.warning("Capture failed: %s", exc)
            return None
        if frame is not None:
            self.captured_count += 1
        return frame

    # ── Interval / time range ───────────────────────────────────────

    def _interval_tick(self) -> None:
        if self._playback_over():
            self.stop("video ended")
            return
        if self.source.paused and not self.source.is_live:
            return
        self._capture()

    def _range_end(self) -> float:
        end = self.config.range_end_s
        return self.source.duration_s if end is None else end

    def _start_time_range(self) -> None:
        start = self.config.range_start_s
        if self.source.position_s < start:
            self._spawn(self._seek_then_run_range(self._generation, start))
        else:
            self._interval = RepeatingTimer(self.timers, self.config.capture_period_s, self._time_range_tick)

    async def _seek_then_run_range(self, generation: int, start: float) -> None:
        await self.source.seek(start)
        if self._is_current(generation):
            self._interval = RepeatingTimer(self.timers, self.config.capture_period_s, self._time_range_tick)

    def _time_range_tick(self) -> None:
        start, end = self.config.range_start_s, self._range_end()
        position = self.source.position_s
        if start <= position <= end:
            self._capture(position_s=position)
        if position > end or self._playback_over():
            self.stop("range complete")

    # ── Pixel detection, continuous ─────────────────────────────────

    def _schedule_frame(self) -> None:
        self._frame_handle = self.timers.call_later(self.config.frame_tick_s, self._pixel_tick)

    def _pixel_tick(self) -> None:
        self._frame_handle = None
        if not self.source.is_live and (self.source.paused or self.source.ended):
            self.stop("playback stopped")
            return

        surface = self.source.surface()
        if surface is not None and self.detector.observe(surface):
            self._on_scene_change()
        if self.is_active:
            self._schedule_frame()

    def _on_scene_change(self) -> None:
        if not self.config.slide_mode:
            self._capture()
            return
        if self._stabilizing or self._cooling_down:
            log.debug("Scene change ignored (stabilizing=%s, cooldown=%s)", self._stabilizing, self._cooling_down)
            return
        self._stabilizing = True
        self._stabilize_handle = self.timers.call_later(
            self.config.stabilization_delay_s, self._finish_stabilization,
        )

    def _finish_stabilization(self) -> None:
        self._stabilize_handle = None
        self._capture()
        self._stabilizing = False
        self._cooling_down = True
        self._cooldown_handle = self.timers.call_later(self.config.cooldown_s, self._end_cooldown)

    def _end_cooldown(self) -> None:
        self._cooldown_handle = None
        self._cooling_down = False

    # ── Pixel detection, fast scan ──────────────────────────────────

    async def _fast_scan_sweep(self, generation: int) -> None:
        source = self.source
        source.pause()
        step = self.config.scan_step_s
        try:
            first = source.surface()
            if first is not None:
                self.detector.observe(first)

            while self._is_current(generation):
                if source.position_s >= source.duration_s:
                    self.stop("scan complete")
                    return
                await source.seek(min(source.position_s + step, source.duration_s))
                if not self._is_current(generation):
                    return
                surface = source.surface()
                if surface is not None and self.detector.observe(surface, rebase_on_change=True):
                    self._capture(dedupe=False)
                await asyncio.sleep(0)
        except Exception as exc:
            if not self._is_current(generation):
                log.debug("Fast scan error after stop ignored: %s", exc)
                return
            log.exception("Fast scan failed at %.2f s", source.position_s)
            self.stop("scan failed")

    # ── AI detection ────────────────────────────────────────────────

    def _ai_tick(self) -> None:
        if self._ai_pending:
            log.debug("AI comparison still in flight; skipping tick")
            return
        if not self.source.is_live and (self.source.paused or self.source.ended):
            self.stop("playback stopped")
            return

        self.status = STATUS_SNAPSHOT
        snapshot = self.grabber.snapshot(self.snapshot_quality)
        if snapshot is None:
            self.status = STATUS_SNAPSHOT_FAILED
            return

        if self._ai_baseline is None:
            self.status = STATUS_BASELINE
            self._capture()
            self._ai_baseline = snapshot
            self.status = STATUS_MONITORING
            return

        self._ai_pending = True
        self.status = STATUS_ASKING
        self._spawn(self._ai_compare(self._generation, self._ai_baseline, snapshot))

    async def _ai_compare(self, generation: int, baseline: bytes, current: bytes) -> None:
        assert self.comparator is not None
        try:
            verdict = await self.comparator.compare(baseline, current, COMPARISON_PROMPT)
        except Exception as exc:
            if self._is_current(generation):
                log.error("AI scene detection failed: %s", exc)
                self.stop("ai failure")
                self.status = STATUS_AI_FAILED
            else:
                log.debug("AI comparison failed after stop: %s", exc)
            return

        if not self._is_current(generation):
            log.debug("Discarding AI verdict that arrived after stop")
            return
        self._ai_pending = False

        if is_change_verdict(verdict):
            self.status = STATUS_CHANGED
            self._capture()
            self._ai_baseline = current
        else:
            self.status = STATUS_UNCHANGED
