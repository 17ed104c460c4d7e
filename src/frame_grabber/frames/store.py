from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Iterable, Iterator, Optional

from frame_grabber.frames.models import CapturedFrame, FilterConfig, edit_filters, reset_filters

log = logging.getLogger("frame_grabber")


class FrameStore:
    """In-memory, capture-ordered collection of frames for one session.

    Records are immutable; filter edits swap in a new record that keeps
    the id, the bitmap and the position in the collection.
    """

    def __init__(self) -> None:
        self._frames: list[CapturedFrame] = []

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self) -> Iterator[CapturedFrame]:
        return iter(list(self._frames))

    @property
    def frames(self) -> tuple[CapturedFrame, ...]:
        return tuple(self._frames)

    def add(self, frame: CapturedFrame) -> None:
        self._frames.append(frame)

    def get(self, frame_id: str) -> Optional[CapturedFrame]:
        for frame in self._frames:
            if frame.id == frame_id:
                return frame
        return None

    def select(self, ids: Optional[Iterable[str]] = None) -> list[CapturedFrame]:
        """Frames matching *ids* in store order, or every frame when *ids* is empty."""
        wanted = set(ids or ())
        if not wanted:
            return list(self._frames)
        return [f for f in self._frames if f.id in wanted]

    # ── Filter edits ────────────────────────────────────────────────

    def update_filters(self, frame_id: str, filters: FilterConfig) -> bool:
        return self.update_many([frame_id], filters) == 1

    def update_many(self, ids: Iterable[str], filters: FilterConfig) -> int:
        wanted = set(ids)
        return self._swap(lambda f: f.id in wanted, lambda f: filters)

    def update_all(self, filters: FilterConfig) -> int:
        return self._swap(lambda f: True, lambda f: filters)

    def apply_change(self, ids: Optional[Iterable[str]] = None, **changes: Any) -> int:
        """Merge *changes* into each targeted frame's own filters.

        Targets every frame when *ids* is empty, like a bulk edit with no
        selection.  Values are validated at this boundary.
        """
        wanted = set(ids or ())
        return self._swap(
            lambda f: not wanted or f.id in wanted,
            lambda f: edit_filters(f.filters, **changes),
        )

    def reset_filters(self, frame_id: str) -> bool:
        return self._swap(lambda f: f.id == frame_id, reset_filters) == 1

    # ── Removal ─────────────────────────────────────────────────────

    def remove(self, frame_id: str) -> bool:
        return self.remove_many([frame_id]) == 1

    def remove_many(self, ids: Iterable[str]) -> int:
        wanted = set(ids)
        before = len(self._frames)
        self._frames = [f for f in self._frames if f.id not in wanted]
        return before - len(self._frames)

    def clear(self) -> None:
        log.debug("Clearing %d frames", len(self._frames))
        self._frames = []

    def _swap(self, match, new_filters) -> int:
        changed = 0
        for i, frame in enumerate(self._frames):
            if match(frame):
                self._frames[i] = replace(frame, filters=new_filters(frame))
                changed += 1
        return changed
