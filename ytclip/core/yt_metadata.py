"""
Video metadata fetching via yt-dlp.
"""

import json
import logging
import subprocess

from ytclip.core.security_utils import run_subprocess_capture
from ytclip.core.error_codes import MetadataError
from ytclip.core.constants import DEFAULT_YTDLP, METADATA_TIMEOUT, FALLBACK_TITLE

logger = logging.getLogger(__name__)


def fetch_metadata(video_url: str, ytdlp_path: str = DEFAULT_YTDLP) -> dict:
    """
    Fetch video metadata using yt-dlp --dump-json.
    Returns the parsed info dict (has 'title', 'duration', ...).
    """
    args = [
        ytdlp_path,
        "--dump-json",
        "--no-playlist",
        "--skip-download",
        video_url,
    ]

    try:
        result = run_subprocess_capture(args, timeout=METADATA_TIMEOUT)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise MetadataError(f"yt-dlp metadata fetch failed: {e}")

    if result.returncode != 0:
        stderr = result.stderr or ""
        raise MetadataError(f"yt-dlp failed (rc={result.returncode})", detail=stderr[:300])

    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise MetadataError(f"Failed to parse yt-dlp JSON: {e}")

    if not isinstance(data, dict):
        raise MetadataError("Unexpected yt-dlp JSON payload")
    return data


def resolve_title(video_url: str, ytdlp_path: str = DEFAULT_YTDLP,
                  fallback: str = FALLBACK_TITLE) -> str:
    """
    Best-effort title lookup. Any failure yields the fallback name;
    this never raises.
    """
    try:
        metadata = fetch_metadata(video_url, ytdlp_path)
    except MetadataError as e:
        logger.warning("Title lookup failed for %s: %s — using %r", video_url, e, fallback)
        return fallback

    title = str(metadata.get('title') or '').strip()
    return title or fallback
