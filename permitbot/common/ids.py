"""Run and record identifier helpers."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone


def generate_run_id() -> str:
    now = datetime.now(tz=timezone.utc)
    return now.strftime("run-%Y%m%dT%H%M%S%fZ")


def content_hash_id(*parts: object) -> str:
    """Deterministic id for source records that carry no native identifier."""
    digest = hashlib.sha1()
    for part in parts:
        digest.update(str(part if part is not None else "").encode("utf-8"))
        digest.update(b"\x1f")
    return f"h{digest.hexdigest()[:16]}"


def record_id(prefix: str, native_id: str) -> str:
    return f"{prefix}-{native_id}"
