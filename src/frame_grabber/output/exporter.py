from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from frame_grabber.config import ExportConfig, ExportPreset
from frame_grabber.frames.models import CapturedFrame
from frame_grabber.imaging.codec import decode_image, encode_image
from frame_grabber.imaging.dpi import inject_dpi
from frame_grabber.imaging.pipeline import FilterPipeline
from frame_grabber.output.naming import export_filename

log = logging.getLogger("frame_grabber")


class ExportUnavailableError(RuntimeError):
    """An optional export backend is not installed."""


@dataclass(frozen=True)
class Preset:
    quality: float
    dpi: Optional[int]  # None keeps the frame's own DPI


PRESETS: Dict[ExportPreset, Preset] = {
    "original": Preset(quality=0.92, dpi=None),
    "web": Preset(quality=0.8, dpi=72),
    "print": Preset(quality=0.92, dpi=300),
}


@dataclass(frozen=True)
class ExportedImage:
    frame_id: str
    name: str
    data: bytes


def export_dpi(frame: CapturedFrame, preset: Preset) -> Optional[int]:
    if preset.dpi is not None:
        return preset.dpi
    return frame.filters.dpi if frame.filters else None


def render_for_export(
    frames: Iterable[CapturedFrame],
    pipeline: FilterPipeline,
    cfg: ExportConfig,
) -> List[ExportedImage]:
    """Render, convert and DPI-tag *frames* in order."""
    preset = PRESETS[cfg.preset]
    exported: List[ExportedImage] = []

    for index, frame in enumerate(frames):
        # The pipeline hands back the raw capture when it cannot decode it
        rendered = pipeline.render(frame.data, frame.filters)

        ext = cfg.export_format
        img = decode_image(rendered)
        if img is None:
            log.warning("Exporting %s without conversion: bitmap is undecodable", frame.filename)
            data, ext = rendered, frame.file_extension
        else:
            data = encode_image(img, ext, preset.quality)

        dpi = export_dpi(frame, preset)
        if dpi is not None:
            data = inject_dpi(data, dpi)

        exported.append(ExportedImage(
            frame_id=frame.id,
            name=export_filename(cfg.naming, frame, index, ext),
            data=data,
        ))

    if not exported:
        log.info("No frames selected for export")
    else:
        log.info("Rendered %d frame(s) as %s (%s preset)", len(exported), cfg.export_format, cfg.preset)
    return exported
