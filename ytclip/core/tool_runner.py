"""
Audio extraction via yt-dlp, run as a streamed subprocess.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ytclip.core.constants import (
    DEFAULT_YTDLP, AUDIO_FORMAT, AUDIO_QUALITY, MAX_ERROR_DETAIL_LEN,
)
from ytclip.core.diagnostics import is_tool_available
from ytclip.core.error_codes import (
    JobError, SpawnError, ToolExecutionError, OutputMissingError,
)
from ytclip.core.models import ClipBounds
from ytclip.core.progress_parse import OutputParser
from ytclip.core.security_utils import spawn_subprocess

logger = logging.getLogger(__name__)

# (stage, progress, message)
ProgressCallback = Callable[[str, int, str], None]


@dataclass
class RunOutcome:
    ok: bool
    file_size: int = 0
    error: Optional[JobError] = None
    returncode: Optional[int] = None


class ToolRunner:
    """Builds yt-dlp invocations and turns a run into a single outcome."""

    def __init__(self, ytdlp_path: str = DEFAULT_YTDLP):
        self.ytdlp_path = ytdlp_path

    def is_available(self) -> bool:
        return is_tool_available(self.ytdlp_path)

    def build_args(self, source_url: str, output_path: Path,
                   clip: ClipBounds | None = None) -> list[str]:
        """Audio-only, best quality; the section flag only for clips."""
        args = [
            self.ytdlp_path,
            "--no-playlist",
            "-x",
            "--audio-format", AUDIO_FORMAT,
            "--audio-quality", AUDIO_QUALITY,
        ]
        if clip is not None:
            args.extend(["--download-sections", clip.section])
        args.extend([
            "--progress",
            "--newline",
            "-o", self.output_template(output_path),
            source_url,
        ])
        return args

    @staticmethod
    def output_template(output_path: Path) -> str:
        """
        yt-dlp output template that ends up at output_path after audio
        extraction ('%' is a template metacharacter, so it is escaped).
        """
        stem = str(output_path.with_suffix(''))
        return stem.replace('%', '%%') + '.%(ext)s'

    def run(self, source_url: str, output_path: Path,
            clip: ClipBounds | None = None,
            on_progress: ProgressCallback | None = None) -> RunOutcome:
        """
        Run yt-dlp to completion, forwarding parsed progress to on_progress.
        Never raises for tool failures; they come back as the outcome's error.
        """
        args = self.build_args(source_url, output_path, clip)
        logger.info("yt-dlp command: %s", ' '.join(args))

        try:
            proc = spawn_subprocess(args)
        except OSError as e:
            logger.error("Failed to start yt-dlp: %s", e)
            return RunOutcome(ok=False, error=SpawnError(
                f"Could not start process: {e}", detail=str(e)))

        # Drain stderr concurrently so a chatty tool can't fill the pipe
        stderr_chunks: list[str] = []
        stderr_thread = threading.Thread(
            target=self._collect_stream, args=(proc.stderr, stderr_chunks), daemon=True,
        )
        stderr_thread.start()

        parser = OutputParser()
        try:
            for line in proc.stdout:
                line = line.rstrip('\r\n')
                if not line:
                    continue
                logger.debug("yt-dlp stdout: %s", line)
                if on_progress is None:
                    continue
                for update in parser.feed(line):
                    on_progress(update.stage, update.progress, update.message)
        except BaseException:
            proc.kill()
            proc.wait()
            raise
        finally:
            proc.stdout.close()

        returncode = proc.wait()
        stderr_thread.join()
        stderr_text = ''.join(stderr_chunks).strip()
        logger.info("yt-dlp exited with code %s", returncode)
        if stderr_text:
            logger.debug("yt-dlp stderr: %s", stderr_text)

        return self._outcome(returncode, stderr_text, output_path)

    @staticmethod
    def _collect_stream(stream, sink: list[str]):
        try:
            for chunk in stream:
                sink.append(chunk)
        finally:
            stream.close()

    @staticmethod
    def _outcome(returncode: int, stderr_text: str, output_path: Path) -> RunOutcome:
        if returncode != 0:
            detail = stderr_text[-MAX_ERROR_DETAIL_LEN:] or f"Process exit code: {returncode}"
            return RunOutcome(ok=False, returncode=returncode, error=ToolExecutionError(
                f"Download error: process exited with code {returncode}", detail=detail))

        if not output_path.exists():
            logger.error("Output file was not created: %s", output_path)
            return RunOutcome(ok=False, returncode=returncode, error=OutputMissingError(
                "Failed to create MP3 file", detail=f"File generation failed: {output_path.name}"))

        file_size = output_path.stat().st_size
        logger.info("Final file size: %d bytes", file_size)
        return RunOutcome(ok=True, file_size=file_size, returncode=returncode)
