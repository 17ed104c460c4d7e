from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Literal, Optional

SharpeningLevel = Literal["off", "low", "medium", "high"]
ImageKind = Literal["png", "jpeg"]

SHARPENING_LEVELS = ("off", "low", "medium", "high")
DEFAULT_DPI = 1200
MAX_DPI = 0xFFFF

# Editor ranges, enforced only by edit_filters()
_RANGES = {
    "brightness": (0.0, 200.0),
    "contrast": (0.0, 200.0),
    "saturation": (0.0, 200.0),
    "blur": (0.0, 10.0),
    "grayscale": (0.0, 100.0),
    "sepia": (0.0, 100.0),
}


@dataclass(frozen=True)
class FilterConfig:
    brightness: float = 100.0   # percent, 100 = neutral
    contrast: float = 100.0     # percent, 100 = neutral
    saturation: float = 100.0   # percent, 100 = neutral
    blur: float = 0.0           # gaussian radius in px
    grayscale: float = 0.0      # percent blend
    sepia: float = 0.0          # percent blend
    sharpening: SharpeningLevel = "off"
    dpi: Optional[int] = None

    def as_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class CapturedFrame:
    id: str
    data: bytes
    file_extension: ImageKind
    filename: str
    timestamp: float
    filters: Optional[FilterConfig] = None


def capture_filters(dpi: Optional[int]) -> FilterConfig:
    """Filters attached to a frame at capture time."""
    return FilterConfig(sharpening="low", dpi=dpi)


def validate_dpi(dpi: int) -> int:
    if isinstance(dpi, bool) or not isinstance(dpi, int) or not 1 <= dpi <= MAX_DPI:
        raise ValueError(f"dpi must be an integer within 1..{MAX_DPI}, got {dpi!r}")
    return dpi


def edit_filters(base: Optional[FilterConfig] = None, **changes: Any) -> FilterConfig:
    """Return *base* with *changes* applied, rejecting values outside the editor ranges.

    This is the boundary where user edits enter the system; the render
    pipeline itself accepts any numeric value.
    """
    base = base or FilterConfig()
    known = {f.name for f in fields(FilterConfig)}
    for name, value in changes.items():
        if name not in known:
            raise ValueError(f"unknown filter field: {name}")
        if name in _RANGES:
            lo, hi = _RANGES[name]
            if not lo <= float(value) <= hi:
                raise ValueError(f"{name} must be within {lo:g}..{hi:g}, got {value}")
        elif name == "sharpening":
            if value not in SHARPENING_LEVELS:
                raise ValueError(f"sharpening must be one of {SHARPENING_LEVELS}, got {value!r}")
        elif name == "dpi" and value is not None:
            validate_dpi(value)
    return replace(base, **changes)


def reset_filters(frame: CapturedFrame) -> FilterConfig:
    """Capture defaults, keeping the frame's DPI choice."""
    dpi = frame.filters.dpi if frame.filters and frame.filters.dpi else DEFAULT_DPI
    return capture_filters(dpi)
