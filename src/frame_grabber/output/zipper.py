from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Iterable

from frame_grabber.output.exporter import ExportedImage

DEFAULT_ZIP_NAME = "captured-frames.zip"


def zip_images(images: Iterable[ExportedImage], output_zip: Path) -> int:
    """Write *images* into a deflated ZIP at *output_zip*; returns the entry count."""
    output_zip.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with zipfile.ZipFile(output_zip, "w", zipfile.ZIP_DEFLATED) as zf:
        for image in images:
            zf.writestr(image.name, image.data)
            count += 1
    return count
