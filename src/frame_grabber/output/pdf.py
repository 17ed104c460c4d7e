from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import List, Sequence

from frame_grabber.output.exporter import ExportedImage, ExportUnavailableError

log = logging.getLogger("frame_grabber")

# Page size in points equals the pixel size, so each image fills its page
PAGE_RESOLUTION = 72.0


def write_pdf(images: Sequence[ExportedImage], path: Path) -> int:
    """Write one PDF page per image; returns the page count."""
    try:
        from PIL import Image
    except ImportError:
        raise ExportUnavailableError(
            "PDF export needs Pillow; install it with `pip install frame-grabber[pdf]`"
        ) from None

    pages: List["Image.Image"] = []
    for image in images:
        with Image.open(io.BytesIO(image.data)) as im:
            pages.append(im.convert("RGB"))

    if not pages:
        log.info("No frames to write to %s", path)
        return 0

    path.parent.mkdir(parents=True, exist_ok=True)
    first, rest = pages[0], pages[1:]
    first.save(path, "PDF", save_all=True, append_images=rest, resolution=PAGE_RESOLUTION)
    log.info("Wrote %d page(s) to %s", len(pages), path)
    return len(pages)
