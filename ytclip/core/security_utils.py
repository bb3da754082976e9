"""
Security utilities for ytclip.
- Filename sanitization
- Path containment checks
- Safe subprocess execution (argument arrays only)
"""

import re
import subprocess
import pathlib
import logging

from ytclip.core.constants import UNSAFE_FILENAME_CHARS, MAX_TITLE_LEN, FALLBACK_TITLE

logger = logging.getLogger(__name__)


# ── Filename / path safety ────────────────────────────────────────────

def sanitize_title(title: str, max_len: int = MAX_TITLE_LEN) -> str:
    """Sanitize a video title for use inside a file name."""
    if not title:
        return ""
    # Replace unsafe characters with underscore
    safe = re.sub(UNSAFE_FILENAME_CHARS, '_', title)
    # Remove path traversal sequences
    safe = safe.replace('..', '')
    # Collapse runs of whitespace
    safe = re.sub(r'\s+', ' ', safe).strip()
    if len(safe) > max_len:
        safe = safe[:max_len].rstrip()
    # Leading dots would make hidden files
    safe = safe.strip('.').strip()
    return safe


def build_output_name(job_id: str, title: str) -> str:
    """Return '<job_id>_<sanitized title>.mp3'."""
    sanitized = sanitize_title(title) or FALLBACK_TITLE
    return f"{job_id}_{sanitized}.mp3"


def safe_output_path(output_root: pathlib.Path, file_name: str) -> pathlib.Path:
    """
    Join a file name onto output_root, refusing anything that escapes it.
    Raises ValueError on traversal.
    """
    candidate = output_root / file_name
    real_root = output_root.resolve(strict=False)
    real_candidate = candidate.resolve(strict=False)
    if real_candidate.parent != real_root:
        raise ValueError(f"Path traversal detected: {file_name!r}")
    return candidate


# ── Subprocess safety ─────────────────────────────────────────────────

def _check_args(args) -> None:
    if not isinstance(args, (list, tuple)):
        raise TypeError("Subprocess args must be a list/tuple, not a string")


def run_subprocess(args: list[str], **kwargs) -> subprocess.CompletedProcess:
    """
    Execute a subprocess using argument arrays only.
    shell=True is explicitly forbidden.
    """
    _check_args(args)

    # Force shell=False — remove any caller-supplied value, then set it once
    kwargs.pop('shell', None)

    logger.debug("Running subprocess: %s", ' '.join(str(a) for a in args))
    return subprocess.run(args, shell=False, **kwargs)


def run_subprocess_capture(args: list[str], timeout: int = 300, **kwargs) -> subprocess.CompletedProcess:
    """Run subprocess and capture stdout/stderr."""
    return run_subprocess(
        args,
        capture_output=True,
        text=True,
        timeout=timeout,
        **kwargs,
    )


def spawn_subprocess(args: list[str], **kwargs) -> subprocess.Popen:
    """
    Start a long-running subprocess with piped text stdout/stderr.
    Same argument-array rules as run_subprocess.
    """
    _check_args(args)
    kwargs.pop('shell', None)

    logger.debug("Spawning subprocess: %s", ' '.join(str(a) for a in args))
    return subprocess.Popen(
        args,
        shell=False,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding='utf-8',
        errors='replace',
        bufsize=1,
        **kwargs,
    )
