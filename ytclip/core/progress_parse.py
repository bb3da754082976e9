"""
Parsing of yt-dlp's textual progress output.

yt-dlp has no structured progress channel we can rely on, so its stdout is
scraped. With ``--progress --newline`` every progress update is its own line:

    [download]  42.3% of   12.34MiB at    1.23MiB/s ETA 00:05

Contract:
  * the first ``\\d+\\.\\d+%`` match on a line is the raw download percentage
    (0-100); it maps to the overall 10-80% band as ``10 + pct * 0.7``;
  * a line containing ``[ExtractAudio]`` marks the start of transcoding,
    which is reported once at a fixed 85%.

Percentages can go backwards when yt-dlp restarts a fragment; clamping is
left to the pipeline, which sees the whole stream.
"""

import re
from dataclasses import dataclass

from ytclip.core.constants import (
    PERCENT_PATTERN, EXTRACT_AUDIO_MARKER, JobStage,
    PROGRESS_DOWNLOAD_START, PROGRESS_DOWNLOAD_END, PROGRESS_DOWNLOAD_SCALE,
    PROGRESS_CONVERTING,
)

_PERCENT_RE = re.compile(PERCENT_PATTERN)


@dataclass(frozen=True)
class ParsedProgress:
    stage: str
    progress: int
    message: str


def parse_percent(line: str) -> float | None:
    """Return the raw percentage on a line, or None."""
    m = _PERCENT_RE.search(line)
    if not m:
        return None
    return float(m.group(1))


def map_download_progress(percent: float) -> int:
    """Map a raw 0-100 download percentage into the overall 10-80 band."""
    percent = max(0.0, percent)
    value = min(PROGRESS_DOWNLOAD_START + percent * PROGRESS_DOWNLOAD_SCALE,
                PROGRESS_DOWNLOAD_END)
    return round(value)


def is_extract_audio_line(line: str) -> bool:
    return EXTRACT_AUDIO_MARKER in line


class OutputParser:
    """
    Stateful line parser for one tool run.
    The converting transition fires at most once.
    """

    def __init__(self):
        self.converting = False

    def feed(self, line: str) -> list[ParsedProgress]:
        updates = []
        percent = parse_percent(line)
        if percent is not None:
            updates.append(ParsedProgress(
                stage=JobStage.DOWNLOADING,
                progress=map_download_progress(percent),
                message=f"Downloading... {percent:.1f}%",
            ))
        if not self.converting and is_extract_audio_line(line):
            self.converting = True
            updates.append(ParsedProgress(
                stage=JobStage.CONVERTING,
                progress=PROGRESS_CONVERTING,
                message="Converting audio...",
            ))
        return updates
