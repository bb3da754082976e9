"""
Extraction pipeline and the process-wide service that runs it.

Each accepted request runs on a worker thread:
  initializing -> downloading -> converting -> processing
    -> [uploading] -> [saving] -> finished
with `failed` reachable from any non-terminal stage. Progress goes out on the
progress bus; the registry keeps the final status until eviction.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date
from functools import partial
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import quote

from ytclip.core.config import AppConfig
from ytclip.core.constants import (
    JobStage, JobStatus, ErrorCode, STAGE_ORDER,
    PROGRESS_STARTED, PROGRESS_INITIALIZING, PROGRESS_DOWNLOAD_START,
    PROGRESS_PROCESSING, PROGRESS_UPLOADING, PROGRESS_SAVING, PROGRESS_FINISHED,
)
from ytclip.core.error_codes import JobError, ToolUnavailableError, is_degraded
from ytclip.core.events import (
    ProgressEvent, StartedEvent, ProgressUpdate, CompletedEvent, ErrorEvent,
)
from ytclip.core.job_registry import JobRegistry
from ytclip.core.models import ExtractionRequest, Job
from ytclip.core.persistence import SupabaseMetadataStore
from ytclip.core.progress_bus import ProgressBus, Subscription, SubscriberClosed
from ytclip.core.relay import SupabaseStorageRelay
from ytclip.core.security_utils import build_output_name, safe_output_path
from ytclip.core.timecode import parse_clip_bounds
from ytclip.core.tool_runner import ToolRunner
from ytclip.core.url_parse import validate_source_url
from ytclip.core.yt_metadata import resolve_title

logger = logging.getLogger(__name__)

UPLOADS_ROUTE = "/uploads"


def build_request(source_url: str | None, start: str | None = None,
                  end: str | None = None, title: str | None = None) -> ExtractionRequest:
    """Validate raw request fields. Raises ValidationError."""
    url = validate_source_url(source_url)
    clip = parse_clip_bounds(start, end)
    title = str(title).strip() if title is not None else ''
    return ExtractionRequest(source_url=url, clip=clip, title=title or None)


def local_file_path(file_name: str) -> str:
    return f"{UPLOADS_ROUTE}/{quote(file_name)}"


def local_download_url(base_url: str, file_name: str) -> str:
    return f"{base_url.rstrip('/')}{local_file_path(file_name)}"


def terminal_snapshot(job: Job) -> Optional[ProgressEvent]:
    """Rebuild the terminal event of a finished job for late subscribers."""
    if job.status == JobStatus.COMPLETED:
        return CompletedEvent(
            job_id=job.id,
            stage=JobStage.FINISHED,
            message="MP3 extraction complete!",
            progress=PROGRESS_FINISHED,
            file_name=job.file_name or "",
            file_path=local_file_path(job.file_name) if job.file_name else "",
            download_url=job.download_url or "",
            file_size=job.file_size or 0,
            relayed=bool(job.relayed),
            persisted=bool(job.persisted),
        )
    if job.status == JobStatus.FAILED:
        return ErrorEvent(
            job_id=job.id,
            stage=JobStage.FAILED,
            message=job.error or "Job failed",
            progress=job.progress,
            error=job.error or "",
            code=job.error_code,
        )
    return None


class StreamTracker:
    """
    Enforces ordering on one job's event stream before publishing:
    stages never move backward, progress never decreases, and only the
    first terminal event gets through.
    """

    def __init__(self, job_id: str, bus: ProgressBus):
        self.job_id = job_id
        self.bus = bus
        self._lock = threading.Lock()
        self._stage_idx = 0
        self._progress = 0
        self._terminated = False

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def stage(self) -> str:
        return STAGE_ORDER[self._stage_idx]

    @property
    def terminated(self) -> bool:
        return self._terminated

    def emit(self, event: ProgressEvent) -> Optional[ProgressEvent]:
        """Clamp and publish; returns the published event or None if dropped."""
        with self._lock:
            if self._terminated:
                logger.warning("Job %s: dropping %s event after terminal event",
                               self.job_id, event.type)
                return None

            if isinstance(event, ErrorEvent):
                event = event.with_progress(self._progress, JobStage.FAILED)
            else:
                idx = STAGE_ORDER.index(event.stage)
                if idx < self._stage_idx:
                    idx = self._stage_idx
                self._stage_idx = idx
                self._progress = max(self._progress, min(event.progress, PROGRESS_FINISHED))
                event = event.with_progress(self._progress, STAGE_ORDER[idx])

            if event.is_terminal:
                self._terminated = True
            self.bus.publish(self.job_id, event)
        return event


class ExtractionPipeline:
    """Runs one job from title resolution to its terminal event."""

    def __init__(self, job: Job, registry: JobRegistry, tracker: StreamTracker,
                 runner: ToolRunner, upload_dir: Path, base_url: str,
                 title_resolver: Callable[[str], str],
                 relay: SupabaseStorageRelay | None = None,
                 store: SupabaseMetadataStore | None = None):
        self.job = job
        self.registry = registry
        self.tracker = tracker
        self.runner = runner
        self.upload_dir = upload_dir
        self.base_url = base_url
        self.title_resolver = title_resolver
        self.relay = relay
        self.store = store

    def _progress(self, stage: str, progress: int, message: str):
        self.tracker.emit(ProgressUpdate(job_id=self.job.id, stage=stage,
                                         message=message, progress=progress))

    def _on_tool_progress(self, stage: str, progress: int, message: str):
        self._progress(stage, progress, message)

    def run(self):
        """Never raises; every outcome ends in exactly one terminal event."""
        job_id = self.job.id
        try:
            self._execute()
        except JobError as e:
            logger.error("Job %s failed: %s", job_id, e)
            self._fail(e)
        except Exception as e:
            logger.error("Unexpected error processing job %s: %s", job_id, e, exc_info=True)
            self._fail(JobError("Server error while processing the job", detail=str(e),
                                code=ErrorCode.UNEXPECTED))

    def _execute(self):
        job = self.job
        self.tracker.emit(StartedEvent(job_id=job.id, stage=JobStage.INITIALIZING,
                                       message="Preparing download...",
                                       progress=PROGRESS_STARTED))

        # ── Stage 1: Initializing ──
        title = job.title
        if not title:
            self._progress(JobStage.INITIALIZING, PROGRESS_INITIALIZING, "Looking up video title...")
            title = self.title_resolver(job.source_url)
        file_name = build_output_name(job.id, title)
        output_path = safe_output_path(self.upload_dir, file_name)
        self.registry.update(job.id, title=title, file_name=file_name)
        logger.info("Job %s: %s -> %s", job.id, job.source_url, output_path)

        # ── Stage 2: Downloading / converting ──
        if job.clip is not None:
            message = f"Downloading section {job.clip.start}-{job.clip.end}..."
        else:
            message = "Downloading full audio..."
        self._progress(JobStage.DOWNLOADING, PROGRESS_DOWNLOAD_START, message)

        outcome = self.runner.run(job.source_url, output_path, job.clip,
                                  on_progress=self._on_tool_progress)
        if not outcome.ok:
            raise outcome.error

        # ── Stage 3: Processing ──
        self._progress(JobStage.PROCESSING, PROGRESS_PROCESSING, "Processing file...")
        download_url = local_download_url(self.base_url, file_name)

        # ── Stage 4: Optional relay ──
        relayed = False
        if self.relay is not None:
            self._progress(JobStage.UPLOADING, PROGRESS_UPLOADING, "Uploading to storage...")
            try:
                download_url = self.relay.upload(output_path, file_name)
                relayed = True
            except JobError as e:
                if not is_degraded(e.code):
                    raise
                logger.warning("Job %s: relay failed, keeping local file: %s", job.id, e)

        # ── Stage 5: Optional metadata record ──
        persisted = False
        if self.store is not None:
            self._progress(JobStage.SAVING, PROGRESS_SAVING, "Saving metadata...")
            try:
                self.store.save_record(title=title, date=date.today().isoformat(),
                                       media_reference=download_url)
                persisted = True
            except JobError as e:
                if not is_degraded(e.code):
                    raise
                logger.warning("Job %s: metadata not saved: %s", job.id, e)

        # ── Stage 6: Finished ──
        self.registry.mark_completed(job.id, download_url=download_url,
                                     file_size=outcome.file_size, file_name=file_name,
                                     relayed=relayed, persisted=persisted)
        self.tracker.emit(CompletedEvent(
            job_id=job.id,
            stage=JobStage.FINISHED,
            message="MP3 extraction complete!",
            progress=PROGRESS_FINISHED,
            file_name=file_name,
            file_path=local_file_path(file_name),
            download_url=download_url,
            file_size=outcome.file_size,
            relayed=relayed,
            persisted=persisted,
        ))

    def _fail(self, error: JobError):
        detail = error.detail or error.message
        self.registry.mark_failed(self.job.id, detail, code=error.code,
                                  progress=self.tracker.progress)
        self.tracker.emit(ErrorEvent(
            job_id=self.job.id,
            stage=JobStage.FAILED,
            message=error.message,
            error=detail,
            code=error.code,
        ))


class ExtractionService:
    """
    Process-wide coordinator: owns the registry, the progress bus and the
    worker pool. Construct once at startup and shut down explicitly.
    """

    def __init__(self, config: AppConfig, registry: JobRegistry | None = None,
                 bus: ProgressBus | None = None, runner: ToolRunner | None = None,
                 relay: SupabaseStorageRelay | None = None,
                 store: SupabaseMetadataStore | None = None,
                 title_resolver: Callable[[str], str] | None = None):
        self.config = config
        self.registry = registry or JobRegistry()
        self.bus = bus or ProgressBus()
        self.runner = runner or ToolRunner(config.ytdlp_path)
        self.relay = relay
        self.store = store
        self.title_resolver = title_resolver or partial(resolve_title,
                                                        ytdlp_path=config.ytdlp_path)
        self._executor = ThreadPoolExecutor(max_workers=config.max_concurrent_jobs,
                                            thread_name_prefix="ytclip-job")
        self._lock = threading.Lock()
        self._futures: dict[str, Future] = {}
        self._accepting = True

    @classmethod
    def from_config(cls, config: AppConfig) -> "ExtractionService":
        """Wire optional relay/persistence from config."""
        relay = None
        store = None
        if config.relay_enabled:
            relay = SupabaseStorageRelay(config.get('supabase_url'), config.get('supabase_key'),
                                         config.get('storage_bucket'))
        if config.persistence_enabled:
            store = SupabaseMetadataStore(config.get('supabase_url'), config.get('supabase_key'),
                                          config.get('metadata_table'))
        logger.info("Relay %s, metadata persistence %s",
                    "enabled" if relay else "disabled", "enabled" if store else "disabled")
        return cls(config, relay=relay, store=store)

    @property
    def upload_dir(self) -> Path:
        return self.config.upload_dir

    # ── Submission ────────────────────────────────────────────────────

    def submit(self, request: ExtractionRequest, base_url: str) -> Job:
        """
        Accept a validated request and start it in the background.
        Raises ToolUnavailableError before any side effect if yt-dlp is missing.
        """
        if not self._accepting:
            raise JobError("Server is shutting down", code=ErrorCode.SHUTTING_DOWN)
        if not self.runner.is_available():
            raise ToolUnavailableError(
                "yt-dlp is not installed. Install it with: pip install yt-dlp")

        self.upload_dir.mkdir(parents=True, exist_ok=True)
        job = self.registry.create(request)
        pipeline = ExtractionPipeline(
            job=job,
            registry=self.registry,
            tracker=StreamTracker(job.id, self.bus),
            runner=self.runner,
            upload_dir=self.upload_dir,
            base_url=base_url,
            title_resolver=self.title_resolver,
            relay=self.relay,
            store=self.store,
        )
        with self._lock:
            future = self._executor.submit(pipeline.run)
            self._futures[job.id] = future
        future.add_done_callback(partial(self._on_job_done, job.id))
        return job

    def submit_raw(self, source_url: str | None, start: str | None, end: str | None,
                   title: str | None, base_url: str) -> Job:
        """Validate raw fields and submit. Raises ValidationError/ToolUnavailableError."""
        return self.submit(build_request(source_url, start, end, title), base_url)

    def _on_job_done(self, job_id: str, future: Future):
        with self._lock:
            self._futures.pop(job_id, None)
        exc = future.exception() if not future.cancelled() else None
        if exc is not None:
            logger.error("Job %s worker raised: %s", job_id, exc)
        self.registry.schedule_eviction(job_id, self.config.retention_sec,
                                        on_evict=self.bus.drop)

    # ── Queries ───────────────────────────────────────────────────────

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.registry.get(job_id)

    def list_jobs(self) -> list[Job]:
        return self.registry.list()

    def active_job_count(self) -> int:
        with self._lock:
            return len(self._futures)

    # ── Subscriptions ─────────────────────────────────────────────────

    def subscribe(self, job_id: str) -> Subscription:
        """
        Open a progress subscription. A job that already finished gets its
        terminal event replayed once as a snapshot.
        """
        sub = self.bus.subscribe(job_id)
        job = self.registry.snapshot(job_id)
        if job is not None and job.is_terminal:
            snapshot = terminal_snapshot(job)
            if snapshot is not None:
                try:
                    sub.deliver(snapshot)
                except SubscriberClosed:
                    pass
        return sub

    def unsubscribe(self, job_id: str, sub: Subscription):
        self.bus.unsubscribe(job_id, sub)

    # ── Lifecycle ─────────────────────────────────────────────────────

    def shutdown(self, wait: bool = True):
        """Stop accepting jobs, let in-flight jobs finish, release resources."""
        self._accepting = False
        logger.info("Shutting down; %d job(s) in flight", self.active_job_count())
        self._executor.shutdown(wait=wait)
        self.registry.close()
        self.bus.close()
