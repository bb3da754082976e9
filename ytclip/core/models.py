"""
In-memory data models (plain dataclasses) for ytclip.
"""

import threading
from dataclasses import dataclass, field
from typing import Optional

from ytclip.core.constants import JobStatus, TERMINAL_STATUSES


@dataclass(frozen=True)
class ClipBounds:
    start: str                       # normalised H:MM:SS
    end: str

    @property
    def section(self) -> str:
        """yt-dlp --download-sections value."""
        return f"*{self.start}-{self.end}"


@dataclass(frozen=True)
class ExtractionRequest:
    source_url: str
    clip: Optional[ClipBounds] = None
    title: Optional[str] = None      # None -> resolve from the source


@dataclass
class Job:
    id: str                          # epoch milliseconds, unique per process
    source_url: str
    clip: Optional[ClipBounds] = None
    title: Optional[str] = None
    file_name: Optional[str] = None
    status: str = JobStatus.PROCESSING
    progress: int = 0                # overall percentage at the terminal transition
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    download_url: Optional[str] = None
    file_size: Optional[int] = None
    relayed: Optional[bool] = None
    persisted: Optional[bool] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            'jobId': self.id,
            'status': self.status,
            'progress': self.progress,
            'sourceUrl': self.source_url,
            'title': self.title,
            'fileName': self.file_name,
            'startTime': self.clip.start if self.clip else None,
            'endTime': self.clip.end if self.clip else None,
            'createdAt': self.created_at,
            'completedAt': self.completed_at,
            'downloadUrl': self.download_url,
            'fileSize': self.file_size,
            'relayed': self.relayed,
            'persisted': self.persisted,
            'error': self.error,
            'errorCode': self.error_code,
        }
