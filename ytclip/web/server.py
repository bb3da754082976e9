"""
FastAPI application: extraction endpoints, progress streams, job queries
and static serving of produced files.
"""
from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles

from ytclip.core.config import AppConfig
from ytclip.core.constants import APP_DISPLAY_NAME, APP_VERSION, ErrorCode
from ytclip.core.diagnostics import get_ffmpeg_version, get_ytdlp_version
from ytclip.core.error_codes import JobError
from ytclip.core.pipeline import ExtractionService, UPLOADS_ROUTE, local_download_url
from ytclip.web.models import (
    AcceptedResponse, ConvertBody, ExtractMp3Body, FileInfo, JobInfo,
)
from ytclip.web.sse import event_stream

logger = logging.getLogger(__name__)

ENDPOINTS = [
    "POST /api/extract-mp3",
    "GET /api/convert",
    "POST /api/convert",
    "GET /api/progress/:jobId",
    "GET /api/jobs",
    "GET /api/jobs/:jobId",
    "GET /api/status",
    "GET /api/files",
    "GET /api/docs",
]

_STATUS_BY_CODE = {
    ErrorCode.VALIDATION: 400,
    ErrorCode.TOOL_UNAVAILABLE: 503,
    ErrorCode.SHUTTING_DOWN: 503,
}

def utc_iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()

def public_base_url(config: AppConfig, request: Request) -> str:
    # Download links are always https unless an explicit base URL is configured
    if config.public_base_url:
        return config.public_base_url
    host = request.headers.get("host") or request.url.netloc
    return f"https://{host}"

def create_app(config: AppConfig | None = None,
               service: ExtractionService | None = None) -> FastAPI:
    config = config or (service.config if service else AppConfig())
    service = service or ExtractionService.from_config(config)
    config.upload_dir.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("%s v%s ready; uploads in %s", APP_DISPLAY_NAME, APP_VERSION,
                    config.upload_dir.resolve())
        yield
        service.shutdown(wait=True)

    app = FastAPI(title=APP_DISPLAY_NAME, version=APP_VERSION, lifespan=lifespan)
    app.state.service = service
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Range", "Cache-Control"],
        expose_headers=["Content-Range", "Accept-Ranges"],
    )

    @app.exception_handler(JobError)
    async def job_error_handler(request: Request, exc: JobError):
        status = _STATUS_BY_CODE.get(exc.code, 500)
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content={"error": exc.message, "code": exc.code})

    def _accept(request: Request, source_url: Optional[str], start: Optional[str],
                end: Optional[str], title: Optional[str]) -> AcceptedResponse:
        job = service.submit_raw(source_url, start, end, title,
                                 base_url=public_base_url(config, request))
        return AcceptedResponse(
            jobId=job.id,
            message="Download started. Follow progressUrl for updates.",
            progressUrl=f"/api/progress/{job.id}",
        )

    @app.post("/api/extract-mp3", response_model=AcceptedResponse)
    def extract_mp3(body: ExtractMp3Body, request: Request):
        return _accept(request, body.youtubeUrl, body.startTime, body.endTime, body.title)

    @app.get("/api/convert", response_model=AcceptedResponse)
    def convert_get(request: Request, url: Optional[str] = None, start: Optional[str] = None,
                    end: Optional[str] = None, title: Optional[str] = None):
        return _accept(request, url, start, end, title)

    @app.post("/api/convert", response_model=AcceptedResponse)
    def convert_post(body: ConvertBody, request: Request):
        return _accept(request, body.url, body.start, body.end, body.title)

    @app.get("/api/progress/{job_id}")
    async def progress(job_id: str):
        sub = service.subscribe(job_id)
        return StreamingResponse(
            event_stream(service, job_id, sub),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    @app.get("/api/jobs", response_model=List[JobInfo])
    def list_jobs():
        return [JobInfo(**job.to_dict()) for job in service.list_jobs()]

    @app.get("/api/jobs/{job_id}", response_model=JobInfo)
    def get_job(job_id: str):
        job = service.get_job(job_id)
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")
        return JobInfo(**job.to_dict())

    @app.get("/api/status")
    def status():
        return {
            "server": "running",
            "version": APP_VERSION,
            "port": config.get("port"),
            "ytdlp_installed": service.runner.is_available(),
            "ytdlpVersion": get_ytdlp_version(config.ytdlp_path),
            "ffmpegVersion": get_ffmpeg_version(),
            "activeJobs": service.active_job_count(),
            "relayEnabled": service.relay is not None,
            "persistenceEnabled": service.store is not None,
            "endpoints": ENDPOINTS,
        }

    @app.get("/api/files")
    def list_files(request: Request):
        base_url = public_base_url(config, request)
        files = []
        for path in config.upload_dir.glob("*.mp3"):
            try:
                st = path.stat()
            except OSError:
                continue  # removed while listing
            files.append(FileInfo(
                fileName=path.name,
                downloadUrl=local_download_url(base_url, path.name),
                fileSize=st.st_size,
                createdAt=utc_iso(st.st_ctime),
                modifiedAt=utc_iso(st.st_mtime),
            ))
        files.sort(key=lambda f: f.createdAt, reverse=True)
        return {"success": True, "files": [f.model_dump() for f in files], "count": len(files)}

    @app.get("/api/docs")
    def api_docs(request: Request):
        base_url = str(request.base_url).rstrip("/")
        params = {
            "url": "Video URL (required)",
            "start": "Start time, HH:MM:SS or seconds (optional, together with end)",
            "end": "End time, HH:MM:SS or seconds (optional, together with start)",
            "title": "File title (optional, looked up from the video when empty)",
        }
        return {
            "title": f"{APP_DISPLAY_NAME} API",
            "description": "Extracts an MP3 (a section or the whole track) from a video.",
            "baseUrl": base_url,
            "endpoints": {
                "convert_get": {
                    "method": "GET",
                    "url": "/api/convert",
                    "parameters": params,
                    "example": "/api/convert?url=https://youtu.be/VIDEO_ID&start=0:30:00&end=1:00:00&title=my_audio",
                },
                "convert_post": {
                    "method": "POST",
                    "url": "/api/convert",
                    "contentType": "application/json",
                    "body": params,
                    "example": {"url": "https://youtu.be/VIDEO_ID", "start": "0:30:00",
                                "end": "1:00:00", "title": "my_audio"},
                },
                "progress": {
                    "method": "GET",
                    "url": "/api/progress/{jobId}",
                    "description": "Server-Sent Events stream of progress events",
                },
            },
            "response": {
                "accepted": {"success": True, "jobId": "job id", "message": "status text",
                             "progressUrl": "/api/progress/{jobId}"},
                "completed_event": {"type": "completed", "stage": "finished", "progress": 100,
                                    "fileName": "generated file name",
                                    "downloadUrl": "download URL",
                                    "fileSize": "size in bytes",
                                    "relayed": "uploaded to remote storage",
                                    "persisted": "metadata record saved"},
                "error": {"error": "error message", "code": "machine-readable code"},
            },
            "notes": [
                "yt-dlp and ffmpeg must be installed on the server.",
                "Times are HH:MM:SS (e.g. 1:30:45); omit both start and end for the full video.",
                f"Generated MP3 files are served from {UPLOADS_ROUTE}/{{fileName}}.",
                "Finished jobs are kept for a limited time; query /api/jobs/{jobId} as a fallback.",
            ],
        }

    app.mount(UPLOADS_ROUTE, StaticFiles(directory=str(config.upload_dir)), name="uploads")

    return app
