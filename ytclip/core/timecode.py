"""
Clip bound parsing and validation.

Accepted forms for a bound:
  H:MM:SS / HH:MM:SS   0 <= HH <= 23, 0 <= MM, SS <= 59
  N                    plain seconds, below 24h

Bounds are normalised to H:MM:SS, the form yt-dlp's --download-sections
accepts. Start/end ordering is not checked here; yt-dlp rejects inverted
ranges itself.
"""

import re

from ytclip.core.constants import TIME_PATTERN, SECONDS_PATTERN, MAX_CLIP_SECONDS
from ytclip.core.error_codes import ValidationError
from ytclip.core.models import ClipBounds

_TIME_RE = re.compile(TIME_PATTERN)
_SECONDS_RE = re.compile(SECONDS_PATTERN)


def is_valid_time_format(value: str) -> bool:
    """True for H:MM:SS / HH:MM:SS within a single day."""
    if not value or not isinstance(value, str):
        return False
    return _TIME_RE.match(value.strip()) is not None


def time_to_seconds(value: str) -> int:
    parts = [int(p) for p in value.split(':')]
    if len(parts) != 3:
        return 0
    hours, minutes, seconds = parts
    return hours * 3600 + minutes * 60 + seconds


def seconds_to_time(total: int) -> str:
    hours, rest = divmod(int(total), 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{seconds:02d}"


def normalize_time(value: str) -> str:
    """
    Normalise one bound to H:MM:SS.
    Raises ValidationError on anything else.
    """
    text = str(value).strip()
    if _SECONDS_RE.match(text):
        seconds = int(text)
        if seconds > MAX_CLIP_SECONDS:
            raise ValidationError(f"Time offset out of range: {text}")
        return seconds_to_time(seconds)
    if not is_valid_time_format(text):
        raise ValidationError(
            f"Invalid time format: {text!r}. Use HH:MM:SS (00-23:00-59:00-59)."
        )
    return seconds_to_time(time_to_seconds(text))


def _blank(value) -> bool:
    return value is None or str(value).strip() == ''


def parse_clip_bounds(start: str | None, end: str | None) -> ClipBounds | None:
    """
    Validate a start/end pair.
    Both blank -> None (full source). Exactly one blank -> ValidationError.
    """
    if _blank(start) and _blank(end):
        return None
    if _blank(start) or _blank(end):
        raise ValidationError(
            "Start and end time must be given together, or both left empty for the full video."
        )
    return ClipBounds(start=normalize_time(start), end=normalize_time(end))
