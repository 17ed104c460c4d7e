from __future__ import annotations

import hashlib
import logging
from typing import Dict, Hashable, Optional, Tuple

from frame_grabber.frames.models import FilterConfig
from frame_grabber.imaging.codec import decode_image, encode_image, sniff_kind
from frame_grabber.imaging.sharpen import sharpen
from frame_grabber.imaging.tone import apply_tone

log = logging.getLogger("frame_grabber")

CACHE_CAPACITY = 20

CacheKey = Tuple[bytes, Hashable]


class RenderCache:
    """Bounded map of rendered outputs.

    Eviction is by insertion order: once full, the oldest inserted entry
    goes first, however recently it was read.
    """

    def __init__(self, capacity: int = CACHE_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("cache capacity must be >= 1")
        self.capacity = capacity
        self._entries: Dict[CacheKey, bytes] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def get(self, key: CacheKey) -> Optional[bytes]:
        value = self._entries.get(key)
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    def put(self, key: CacheKey, value: bytes) -> None:
        self._entries[key] = value
        while len(self._entries) > self.capacity:
            oldest = next(iter(self._entries))
            del self._entries[oldest]

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0


def bitmap_key(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=16).digest()


class FilterPipeline:
    """Turns a captured PNG/JPEG plus its filters into the edited image.

    The output keeps the input's container format.  Bytes that cannot be
    decoded, or re-encoded, are handed back untouched instead of raising.
    """

    def __init__(self, cache: Optional[RenderCache] = None, jpeg_quality: float = 0.92) -> None:
        self.cache = cache if cache is not None else RenderCache()
        self.jpeg_quality = jpeg_quality

    def render(self, data: bytes, filters: Optional[FilterConfig]) -> bytes:
        if filters is None:
            return data

        key = (bitmap_key(data), filters)
        cached = self.cache.get(key)
        if cached is not None:
            log.debug("Render cache hit")
            return cached

        kind = sniff_kind(data)
        img = decode_image(data) if kind else None
        if img is None:
            log.warning("Could not decode bitmap for rendering; returning it unmodified")
            return data

        out = sharpen(apply_tone(img, filters), filters.sharpening)

        try:
            rendered = encode_image(out, kind, self.jpeg_quality)
        except ValueError as exc:
            log.warning("Could not re-encode rendered bitmap (%s); returning it unmodified", exc)
            return data

        self.cache.put(key, rendered)
        return rendered

    def clear(self) -> None:
        self.cache.clear()
