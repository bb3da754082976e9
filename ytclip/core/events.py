"""
Progress events published on the progress bus.

One dataclass per event type; the ``type`` tag is a class attribute so a
variant can never carry the wrong tag. ``to_dict`` produces the camelCase
wire shape sent to SSE subscribers.
"""

from dataclasses import dataclass, replace
from typing import ClassVar, Optional

from ytclip.core.constants import EventType, JobStage


@dataclass(frozen=True)
class ProgressEvent:
    job_id: str
    stage: str
    message: str = ""
    progress: int = 0

    type: ClassVar[str] = ""
    is_terminal: ClassVar[bool] = False

    def with_progress(self, progress: int, stage: str | None = None) -> "ProgressEvent":
        """Copy with a clamped progress (and optionally stage)."""
        if stage is None:
            return replace(self, progress=progress)
        return replace(self, progress=progress, stage=stage)

    def to_dict(self) -> dict:
        return {
            'type': self.type,
            'jobId': self.job_id,
            'stage': self.stage,
            'message': self.message,
            'progress': self.progress,
        }


@dataclass(frozen=True)
class ConnectedEvent(ProgressEvent):
    type: ClassVar[str] = EventType.CONNECTED


@dataclass(frozen=True)
class StartedEvent(ProgressEvent):
    type: ClassVar[str] = EventType.STARTED


@dataclass(frozen=True)
class ProgressUpdate(ProgressEvent):
    type: ClassVar[str] = EventType.PROGRESS


@dataclass(frozen=True)
class CompletedEvent(ProgressEvent):
    file_name: str = ""
    file_path: str = ""
    download_url: str = ""
    file_size: int = 0
    relayed: bool = False
    persisted: bool = False

    type: ClassVar[str] = EventType.COMPLETED
    is_terminal: ClassVar[bool] = True

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            'fileName': self.file_name,
            'filePath': self.file_path,
            'downloadUrl': self.download_url,
            'fileSize': self.file_size,
            'relayed': self.relayed,
            'persisted': self.persisted,
        })
        return data


@dataclass(frozen=True)
class ErrorEvent(ProgressEvent):
    error: str = ""
    code: Optional[str] = None

    type: ClassVar[str] = EventType.ERROR
    is_terminal: ClassVar[bool] = True

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['error'] = self.error
        data['code'] = self.code
        return data


def connected(job_id: str) -> ConnectedEvent:
    return ConnectedEvent(job_id=job_id, stage=JobStage.INITIALIZING,
                          message="Connected to progress stream")
