"""Resolution metadata for PNG and JPEG containers.

PNG output gets a freshly built ``pHYs`` chunk straight after ``IHDR``
(any older one is dropped).  JPEG output has the density fields of its
JFIF ``APP0`` segment patched in place.  Pixel data is never touched and
anything that is not a PNG or JPEG is returned as-is.
"""
from __future__ import annotations

import logging
import math
import struct
import zlib

from frame_grabber.frames.models import validate_dpi
from frame_grabber.imaging.codec import JPEG_SOI, PNG_SIGNATURE

log = logging.getLogger("frame_grabber")

INCHES_PER_METER = 39.3701

_PHYS_UNIT_METER = 1
_JFIF_UNIT_DPI = 1
_JFIF_ID = b"JFIF\x00"
_APP0 = 0xE0
_SOS = 0xDA
_EOI = 0xD9


def pixels_per_meter(dpi: int) -> int:
    # Half-up rounding
    return int(math.floor(dpi * INCHES_PER_METER + 0.5))


def png_chunk(chunk_type: bytes, data: bytes) -> bytes:
    """Serialise one PNG chunk: length, type, data, CRC32 over type + data."""
    crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
    return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)


def build_phys_chunk(dpi: int) -> bytes:
    ppm = pixels_per_meter(dpi)
    return png_chunk(b"pHYs", struct.pack(">IIB", ppm, ppm, _PHYS_UNIT_METER))


def inject_dpi(data: bytes, dpi: int) -> bytes:
    """Return *data* re-labelled as *dpi* dots per inch.

    Raises ValueError for a DPI outside 1..65535; foreign or malformed
    containers come back unchanged.
    """
    validate_dpi(dpi)
    if data.startswith(PNG_SIGNATURE):
        return _inject_png(data, dpi)
    if data.startswith(JPEG_SOI):
        return _inject_jpeg(data, dpi)
    return data


def _inject_png(data: bytes, dpi: int) -> bytes:
    out = [PNG_SIGNATURE]
    pos = len(PNG_SIGNATURE)
    end = len(data)

    while pos + 8 <= end:
        (length,) = struct.unpack_from(">I", data, pos)
        chunk_type = data[pos + 4:pos + 8]
        chunk_end = pos + 12 + length
        if chunk_end > end:
            break
        body = data[pos + 8:pos + 8 + length]
        pos = chunk_end

        if chunk_type == b"pHYs":
            continue
        out.append(png_chunk(chunk_type, body))
        if chunk_type == b"IHDR":
            out.append(build_phys_chunk(dpi))
        elif chunk_type == b"IEND":
            return b"".join(out)

    log.debug("PNG chunk stream ended before IEND; leaving bytes untouched")
    return data


def _inject_jpeg(data: bytes, dpi: int) -> bytes:
    buf = bytearray(data)
    offset = len(JPEG_SOI)

    while offset + 4 <= len(buf):
        if buf[offset] != 0xFF:
            break
        marker = buf[offset + 1]
        if marker in (_SOS, _EOI):
            break
        (seg_len,) = struct.unpack_from(">H", buf, offset + 2)
        if (
            marker == _APP0
            and buf[offset + 4:offset + 9] == _JFIF_ID
            and offset + 16 <= len(buf)
        ):
            buf[offset + 11] = _JFIF_UNIT_DPI
            struct.pack_into(">HH", buf, offset + 12, dpi, dpi)
            return bytes(buf)
        if seg_len < 2:
            break
        offset += 2 + seg_len

    log.debug("No JFIF APP0 segment found; leaving JPEG untouched")
    return data
