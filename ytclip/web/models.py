"""
Request and response bodies of the HTTP API.
"""
from __future__ import annotations
from pydantic import BaseModel
from typing import Literal, Optional

JobStatus = Literal["processing", "completed", "failed"]

class ExtractMp3Body(BaseModel):
    youtubeUrl: Optional[str] = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    title: Optional[str] = None

class ConvertBody(BaseModel):
    url: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    title: Optional[str] = None

class AcceptedResponse(BaseModel):
    success: bool = True
    jobId: str
    message: str
    progressUrl: str

class JobInfo(BaseModel):
    jobId: str
    status: JobStatus
    progress: Optional[int] = None
    sourceUrl: str
    title: Optional[str] = None
    fileName: Optional[str] = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    createdAt: Optional[str] = None
    completedAt: Optional[str] = None
    downloadUrl: Optional[str] = None
    fileSize: Optional[int] = None
    relayed: Optional[bool] = None
    persisted: Optional[bool] = None
    error: Optional[str] = None
    errorCode: Optional[str] = None

class FileInfo(BaseModel):
    fileName: str
    downloadUrl: str
    fileSize: int
    createdAt: str
    modifiedAt: str
