"""
Identifier normalization

Quiz, document and result ids reach us from route parameters, cache keys and
older client builds that appended readable tags to them. Everything is reduced
to a canonical UUID before it is used as a remote-store key.
"""
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

# Last group may run past 12 hex chars (timestamp concatenation in old ids)
UUID_PATTERN = re.compile(
    r"([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12,})",
    re.IGNORECASE,
)

KNOWN_SUFFIXES = re.compile(
    r"(-quiz|_quiz|quiz|-document|_document|-results|_results)$",
    re.IGNORECASE,
)

SENTINELS = ("undefined", "null")


def is_uuid_like(value: Optional[str]) -> bool:
    """True when the whole value has the 8-4-4-4-12+ hex shape."""
    if not value:
        return False
    return UUID_PATTERN.fullmatch(value) is not None


def normalize_id(raw_id: Optional[str]) -> Optional[str]:
    """
    Reduce a loosely formatted identifier to its canonical UUID form

    Args:
        raw_id: Identifier as received from a caller or a storage key

    Returns:
        The extracted UUID, or the best-effort cleaned string when no UUID
        could be recovered. The sentinels "undefined"/"null" come back
        unchanged so the upstream bug stays visible.
    """
    if raw_id is None:
        return None

    cleaned = str(raw_id).strip()
    if not cleaned:
        return cleaned

    if cleaned in SENTINELS:
        logger.warning(f"Received sentinel identifier '{cleaned}', returning as is")
        return cleaned

    # Repeat until stable so a second pass finds nothing left to strip
    while True:
        without_suffix = KNOWN_SUFFIXES.sub("", cleaned).strip()
        if not without_suffix or without_suffix == cleaned:
            break
        cleaned = without_suffix

    match = UUID_PATTERN.search(cleaned)
    if match:
        return match.group(1)

    if "-" in cleaned:
        segments = cleaned.split("-")
        if len(segments) >= 5:
            last_segment = re.sub(r"[^0-9a-f]", "", segments[4], flags=re.IGNORECASE)
            rebuilt = "-".join(segments[:4] + [last_segment])
            if is_uuid_like(rebuilt):
                logger.debug(f"Rebuilt identifier '{raw_id}' as '{rebuilt}'")
                return rebuilt

    logger.warning(f"Identifier is not a valid UUID after normalization: '{cleaned}'")
    return cleaned
