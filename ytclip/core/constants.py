"""
Shared constants for ytclip.
Single source of truth — imported by every other module.
"""

import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "ytclip"
APP_DISPLAY_NAME = "YouTube MP3 Clipper"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

APP_SUPPORT_DIR = HOME / f".{APP_NAME}"
LOG_DIR = APP_SUPPORT_DIR / "logs"
CONFIG_PATH = APP_SUPPORT_DIR / "config.json"
DEFAULT_UPLOAD_DIR = pathlib.Path("uploads")

# ── Server defaults ──────────────────────────────────────────────────
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 9899
DEFAULT_YTDLP = "yt-dlp"
DEFAULT_METADATA_TABLE = "serm"

# ── Job status values (registry-level) ────────────────────────────────
class JobStatus:
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

TERMINAL_STATUSES = {JobStatus.COMPLETED, JobStatus.FAILED}

# ── Job stage values (ordered) ────────────────────────────────────────
class JobStage:
    INITIALIZING = "initializing"
    DOWNLOADING = "downloading"
    CONVERTING = "converting"
    PROCESSING = "processing"
    UPLOADING = "uploading"
    SAVING = "saving"
    FINISHED = "finished"
    FAILED = "failed"

STAGE_ORDER = [
    JobStage.INITIALIZING,
    JobStage.DOWNLOADING,
    JobStage.CONVERTING,
    JobStage.PROCESSING,
    JobStage.UPLOADING,
    JobStage.SAVING,
    JobStage.FINISHED,
]

# ── Event types ───────────────────────────────────────────────────────
class EventType:
    CONNECTED = "connected"
    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    ERROR = "error"

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Rejected before a job exists
    VALIDATION = "ERR_VALIDATION"
    TOOL_UNAVAILABLE = "ERR_TOOL_UNAVAILABLE"

    # Terminal job failures
    SPAWN = "ERR_SPAWN"
    TOOL_EXECUTION = "ERR_TOOL_EXECUTION"
    OUTPUT_MISSING = "ERR_OUTPUT_MISSING"
    UNEXPECTED = "ERR_UNEXPECTED"
    SHUTTING_DOWN = "ERR_SHUTTING_DOWN"

    # Downgraded to flags on the completed event
    RELAY = "ERR_RELAY"
    PERSISTENCE = "ERR_PERSISTENCE"

    # Title lookup (never surfaced to callers)
    METADATA = "ERR_METADATA"

DEGRADED_ERRORS = {
    ErrorCode.RELAY,
    ErrorCode.PERSISTENCE,
}

# ── Progress mapping ─────────────────────────────────────────────────
PROGRESS_STARTED = 0
PROGRESS_INITIALIZING = 5
PROGRESS_DOWNLOAD_START = 10
PROGRESS_DOWNLOAD_END = 80
PROGRESS_DOWNLOAD_SCALE = 0.7    # raw 0-100% -> 10-80%
PROGRESS_CONVERTING = 85
PROGRESS_PROCESSING = 90
PROGRESS_UPLOADING = 92
PROGRESS_SAVING = 96
PROGRESS_FINISHED = 100

# ── yt-dlp output contract ───────────────────────────────────────────
PERCENT_PATTERN = r'(\d+\.\d+)%'
EXTRACT_AUDIO_MARKER = "[ExtractAudio]"
AUDIO_FORMAT = "mp3"
AUDIO_QUALITY = "0"

# ── Clip bounds ───────────────────────────────────────────────────────
TIME_PATTERN = r'^([0-9]|[0-1][0-9]|2[0-3]):([0-5][0-9]):([0-5][0-9])$'
SECONDS_PATTERN = r'^\d+$'
MAX_CLIP_SECONDS = 24 * 3600 - 1

# ── Job retention / concurrency ───────────────────────────────────────
DEFAULT_RETENTION_SEC = 300
DEFAULT_MAX_CONCURRENT_JOBS = 4
SUBSCRIBER_QUEUE_SIZE = 256
SSE_KEEPALIVE_SEC = 15.0

# ── Timeouts (seconds) ────────────────────────────────────────────────
TOOL_PROBE_TIMEOUT = 10
METADATA_TIMEOUT = 60
RELAY_TIMEOUT = 300
PERSISTENCE_TIMEOUT = 30

# ── Misc ──────────────────────────────────────────────────────────────
FALLBACK_TITLE = "converted_audio"
MAX_TITLE_LEN = 50
MAX_ERROR_DETAIL_LEN = 4000

# Characters forbidden in file names
UNSAFE_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'
