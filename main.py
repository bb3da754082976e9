#!/usr/bin/env python3
"""
ytclip v1.0.0 — Main entry point.
Starts the extraction API server with uvicorn.
"""

import sys
import os
import logging
import shutil
import traceback
from pathlib import Path
from datetime import datetime

# ── Ensure user-level tool paths are in PATH ──────────────────────────
# `pip install --user yt-dlp` lands in ~/.local/bin, which service managers
# often leave out of PATH.
EXTRA_TOOL_PATHS = [
    os.path.expanduser("~/.local/bin"),
    "/usr/local/bin",
    "/opt/homebrew/bin",
]

current_path = os.environ.get("PATH", "")
for p in EXTRA_TOOL_PATHS:
    if os.path.isdir(p) and p not in current_path.split(os.pathsep):
        current_path = p + os.pathsep + current_path
os.environ["PATH"] = current_path

PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import uvicorn

from ytclip.core.config import AppConfig, load_env
from ytclip.core.constants import APP_NAME, APP_VERSION, LOG_DIR
from ytclip.core.pipeline import ExtractionService
from ytclip.web.server import create_app

# ── Logging setup (writes to ~/.ytclip/logs/ and the console) ─────────
LOG_FILE = LOG_DIR / "app.log"


def setup_logging(level: int = logging.INFO):
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(LOG_FILE, encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )


logger = logging.getLogger(APP_NAME)


def check_prerequisites(config: AppConfig):
    """Log whether yt-dlp and ffmpeg are reachable. Requests re-check yt-dlp."""
    ytdlp = shutil.which(config.ytdlp_path)
    ffmpeg = shutil.which("ffmpeg")
    if not ytdlp:
        logger.warning("yt-dlp not found (%s). Install with: pip install yt-dlp",
                       config.ytdlp_path)
    else:
        logger.info("yt-dlp found at: %s", ytdlp)
    if not ffmpeg:
        logger.warning("ffmpeg not found; audio conversion will fail")
    else:
        logger.info("ffmpeg found at: %s", ffmpeg)


def main():
    load_env()
    setup_logging(logging.DEBUG if os.environ.get("YTCLIP_DEBUG") else logging.INFO)

    logger.info("=" * 60)
    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())
    logger.info("Python: %s", sys.executable)
    logger.info("PATH: %s", os.environ.get("PATH", ""))
    logger.info("=" * 60)

    try:
        config = AppConfig()
        check_prerequisites(config)
        service = ExtractionService.from_config(config)
        if service.store is not None and not service.store.ping():
            logger.warning("Metadata store unreachable; records will not be saved until it recovers")
        app = create_app(config, service)
        logger.info("Listening on http://%s:%s", config.get("host"), config.get("port"))
        uvicorn.run(app, host=config.get("host"), port=config.get("port"), log_config=None)
    except Exception as e:
        logger.critical("Fatal error: %s: %s\n%s", type(e).__name__, e, traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    main()
