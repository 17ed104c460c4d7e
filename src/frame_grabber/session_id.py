from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_session_id(label: Optional[str] = None) -> str:
    """Generate a capture-session identifier from the current UTC time and optional label."""
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%SZ")
    if label:
        return f"{ts}_{label}"
    return ts


def new_frame_id() -> str:
    """Return an opaque identifier for a freshly captured frame."""
    return f"frame-{uuid.uuid4().hex[:12]}"
