"""US postal-area (ZIP) key normalisation."""

from __future__ import annotations

import re

from permitbot.common.constants import AREA_KEY_LENGTH

US_ZIP_RE = re.compile(r"^(\d{5})(?:[-\s]?\d{4})?$")


def normalise_area_key(raw: object) -> str:
    if raw is None or isinstance(raw, bool):
        return ""

    # Numeric ZIPs lose their leading zeros in some feature services.
    if isinstance(raw, int):
        return str(raw).zfill(AREA_KEY_LENGTH) if 0 < raw < 100000 else str(raw)
    if isinstance(raw, float):
        if raw.is_integer() and 0 < raw < 100000:
            return str(int(raw)).zfill(AREA_KEY_LENGTH)
        return ""

    cleaned = str(raw).strip()
    if not cleaned:
        return ""

    match = US_ZIP_RE.match(cleaned)
    if match:
        return match.group(1)
    return cleaned
