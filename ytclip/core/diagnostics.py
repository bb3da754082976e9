"""
Diagnostics: tool version detection and system checks.
"""

import logging
import subprocess

from ytclip.core.security_utils import run_subprocess_capture
from ytclip.core.constants import DEFAULT_YTDLP, TOOL_PROBE_TIMEOUT

logger = logging.getLogger(__name__)


def is_tool_available(ytdlp_path: str = DEFAULT_YTDLP) -> bool:
    """True if `yt-dlp --version` runs and exits 0."""
    try:
        result = run_subprocess_capture([ytdlp_path, "--version"], timeout=TOOL_PROBE_TIMEOUT)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning("yt-dlp probe failed (%s): %s", ytdlp_path, e)
        return False
    return result.returncode == 0


def get_ytdlp_version(ytdlp_path: str = DEFAULT_YTDLP) -> str:
    """Return yt-dlp version string, or error message."""
    try:
        result = run_subprocess_capture([ytdlp_path, "--version"], timeout=TOOL_PROBE_TIMEOUT)
        if result.returncode == 0:
            return result.stdout.strip()
        return f"Error (rc={result.returncode})"
    except FileNotFoundError:
        return "Not installed"
    except Exception as e:
        return f"Error: {e}"


def get_ffmpeg_version() -> str:
    """Return ffmpeg version string, or error message."""
    try:
        result = run_subprocess_capture(["ffmpeg", "-version"], timeout=TOOL_PROBE_TIMEOUT)
        if result.returncode == 0:
            first_line = result.stdout.strip().splitlines()[0]
            return first_line
        return f"Error (rc={result.returncode})"
    except FileNotFoundError:
        return "Not installed"
    except Exception as e:
        return f"Error: {e}"
