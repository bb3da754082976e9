#!/usr/bin/env python3
"""
Unit tests for ytclip core modules.
Tests cover: clip bounds, URL validation, security utils, error codes,
progress parsing, events, config.
"""

import sys
import json
import tempfile
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

from ytclip.core.constants import (
    ErrorCode, JobStage, EventType, DEFAULT_RETENTION_SEC, DEFAULT_PORT,
)
from ytclip.core.config import AppConfig
from ytclip.core.error_codes import (
    JobError, ValidationError, ToolExecutionError, RelayError, is_degraded,
)
from ytclip.core.events import CompletedEvent, ErrorEvent, ProgressUpdate, connected
from ytclip.core.models import ClipBounds
from ytclip.core.progress_parse import (
    OutputParser, parse_percent, map_download_progress,
)
from ytclip.core.security_utils import (
    sanitize_title, build_output_name, safe_output_path, run_subprocess,
)
from ytclip.core.timecode import (
    is_valid_time_format, normalize_time, parse_clip_bounds, time_to_seconds,
    seconds_to_time,
)
from ytclip.core.url_parse import validate_source_url, is_http_url

FIXTURES = Path(__file__).resolve().parent / "fixtures"


class TestClipBounds(unittest.TestCase):
    """Test time validation and clip bound parsing."""

    def test_valid_formats(self):
        self.assertTrue(is_valid_time_format("00:10:00"))
        self.assertTrue(is_valid_time_format("0:30:00"))
        self.assertTrue(is_valid_time_format("23:59:59"))

    def test_invalid_formats(self):
        self.assertFalse(is_valid_time_format("25:00:00"))
        self.assertFalse(is_valid_time_format("24:00:00"))
        self.assertFalse(is_valid_time_format("00:60:00"))
        self.assertFalse(is_valid_time_format("00:00:60"))
        self.assertFalse(is_valid_time_format("10:00"))
        self.assertFalse(is_valid_time_format(""))
        self.assertFalse(is_valid_time_format(None))

    def test_conversion(self):
        self.assertEqual(time_to_seconds("1:02:03"), 3723)
        self.assertEqual(seconds_to_time(3723), "1:02:03")
        self.assertEqual(seconds_to_time(5), "0:00:05")

    def test_normalize(self):
        self.assertEqual(normalize_time("00:10:05"), "0:10:05")
        self.assertEqual(normalize_time(" 12:00:00 "), "12:00:00")
        self.assertEqual(normalize_time("90"), "0:01:30")

    def test_normalize_rejects_out_of_range_seconds(self):
        with self.assertRaises(ValidationError):
            normalize_time(str(24 * 3600))

    def test_both_bounds(self):
        clip = parse_clip_bounds("00:10:00", "00:10:05")
        self.assertEqual(clip, ClipBounds(start="0:10:00", end="0:10:05"))
        self.assertEqual(clip.section, "*0:10:00-0:10:05")

    def test_no_bounds_means_full_source(self):
        self.assertIsNone(parse_clip_bounds(None, None))
        self.assertIsNone(parse_clip_bounds("", "  "))

    def test_single_bound_rejected(self):
        with self.assertRaises(ValidationError):
            parse_clip_bounds("00:10:00", "")
        with self.assertRaises(ValidationError):
            parse_clip_bounds(None, "00:10:00")

    def test_invalid_hour_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            parse_clip_bounds("25:00:00", "25:00:05")
        self.assertEqual(ctx.exception.code, ErrorCode.VALIDATION)

    def test_inverted_range_passes_through(self):
        clip = parse_clip_bounds("00:10:05", "00:10:00")
        self.assertEqual(clip.section, "*0:10:05-0:10:00")
        clip = parse_clip_bounds("00:10:00", "00:10:00")
        self.assertEqual(clip.start, clip.end)


class TestURLValidation(unittest.TestCase):

    def test_valid(self):
        self.assertEqual(validate_source_url(" https://youtu.be/dQw4w9WgXcQ "),
                         "https://youtu.be/dQw4w9WgXcQ")
        self.assertTrue(is_http_url("http://example.com/watch?v=1"))

    def test_missing(self):
        for value in (None, "", "   "):
            with self.assertRaises(ValidationError):
                validate_source_url(value)

    def test_not_http(self):
        self.assertFalse(is_http_url("ftp://example.com/file"))
        self.assertFalse(is_http_url("not a url"))
        with self.assertRaises(ValidationError):
            validate_source_url("file:///etc/passwd")


class TestSecurityUtils(unittest.TestCase):
    """Test security utilities."""

    def test_sanitize_title_basic(self):
        self.assertEqual(sanitize_title("Hello World"), "Hello World")

    def test_sanitize_title_special_chars(self):
        result = sanitize_title('Sermon: "Grace" <1/2>')
        for ch in '":<>/':
            self.assertNotIn(ch, result)

    def test_sanitize_title_path_traversal(self):
        result = sanitize_title("../../../etc/passwd")
        self.assertNotIn('..', result)
        self.assertNotIn('/', result)

    def test_sanitize_title_empty(self):
        self.assertEqual(sanitize_title(""), "")
        self.assertEqual(sanitize_title("..."), "")

    def test_sanitize_title_long(self):
        self.assertLessEqual(len(sanitize_title("A" * 300)), 50)

    def test_build_output_name(self):
        self.assertEqual(build_output_name("1700000000000", "Test"), "1700000000000_Test.mp3")
        self.assertEqual(build_output_name("1", "???"), "1____.mp3")
        self.assertEqual(build_output_name("1", ""), "1_converted_audio.mp3")

    def test_safe_output_path(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            path = safe_output_path(root, "1_Test.mp3")
            self.assertEqual(path.parent.resolve(), root.resolve())
            with self.assertRaises(ValueError):
                safe_output_path(root, "../escape.mp3")

    def test_run_subprocess_rejects_string(self):
        with self.assertRaises(TypeError):
            run_subprocess("echo hi")


class TestErrorCodes(unittest.TestCase):
    """Test error taxonomy."""

    def test_subclass_codes(self):
        self.assertEqual(ValidationError("x").code, ErrorCode.VALIDATION)
        self.assertEqual(ToolExecutionError("x").code, ErrorCode.TOOL_EXECUTION)
        self.assertTrue(issubclass(RelayError, JobError))

    def test_explicit_code(self):
        e = JobError("boom", detail="trace", code=ErrorCode.UNEXPECTED)
        self.assertEqual(e.code, ErrorCode.UNEXPECTED)
        self.assertEqual(e.detail, "trace")
        self.assertIn("ERR_UNEXPECTED", str(e))

    def test_degraded(self):
        self.assertTrue(is_degraded(ErrorCode.RELAY))
        self.assertTrue(is_degraded(ErrorCode.PERSISTENCE))
        self.assertFalse(is_degraded(ErrorCode.TOOL_EXECUTION))


class TestProgressParsing(unittest.TestCase):
    """Test yt-dlp output scraping against canned output."""

    def test_parse_percent(self):
        self.assertEqual(parse_percent("[download]  42.3% of 1.00MiB"), 42.3)
        self.assertIsNone(parse_percent("[download] 100% of 80.73KiB in 00:00:01"))
        self.assertIsNone(parse_percent("[youtube] abc: Downloading webpage"))

    def test_map_download_progress(self):
        self.assertEqual(map_download_progress(0.0), 10)
        self.assertEqual(map_download_progress(50.0), 45)
        self.assertEqual(map_download_progress(100.0), 80)
        self.assertEqual(map_download_progress(250.0), 80)

    def test_fixture_sequence(self):
        parser = OutputParser()
        updates = []
        for line in (FIXTURES / "ytdlp_section_output.txt").read_text().splitlines():
            updates.extend(parser.feed(line))

        downloading = [u.progress for u in updates if u.stage == JobStage.DOWNLOADING]
        self.assertEqual(downloading, [10, 19, 45, 44, 80])
        converting = [u for u in updates if u.stage == JobStage.CONVERTING]
        self.assertEqual(len(converting), 1)
        self.assertEqual(converting[0].progress, 85)
        self.assertEqual(updates[-1].stage, JobStage.CONVERTING)

    def test_converting_fires_once(self):
        parser = OutputParser()
        first = parser.feed("[ExtractAudio] Destination: a.mp3")
        second = parser.feed("[ExtractAudio] Destination: a.mp3")
        self.assertEqual(len(first), 1)
        self.assertEqual(second, [])


class TestEvents(unittest.TestCase):

    def test_progress_wire_shape(self):
        event = ProgressUpdate(job_id="1", stage=JobStage.DOWNLOADING,
                               message="Downloading...", progress=45)
        self.assertEqual(event.to_dict(), {
            'type': EventType.PROGRESS, 'jobId': '1', 'stage': 'downloading',
            'message': 'Downloading...', 'progress': 45,
        })
        self.assertFalse(event.is_terminal)

    def test_completed_fields(self):
        event = CompletedEvent(job_id="1", stage=JobStage.FINISHED, progress=100,
                               file_name="1_Test.mp3", download_url="https://h/uploads/1_Test.mp3",
                               file_size=3, relayed=False, persisted=True)
        data = event.to_dict()
        self.assertEqual(data['type'], 'completed')
        self.assertEqual(data['fileName'], '1_Test.mp3')
        self.assertEqual(data['fileSize'], 3)
        self.assertTrue(data['persisted'])
        self.assertTrue(event.is_terminal)
        json.dumps(data)

    def test_error_fields(self):
        event = ErrorEvent(job_id="1", stage=JobStage.FAILED, message="fail",
                           error="ERROR: boom", code=ErrorCode.TOOL_EXECUTION)
        data = event.to_dict()
        self.assertEqual(data['type'], 'error')
        self.assertEqual(data['error'], 'ERROR: boom')
        self.assertTrue(event.is_terminal)

    def test_with_progress_keeps_variant(self):
        event = ErrorEvent(job_id="1", stage=JobStage.FAILED, error="x")
        clamped = event.with_progress(40)
        self.assertIsInstance(clamped, ErrorEvent)
        self.assertEqual(clamped.progress, 40)
        self.assertEqual(clamped.error, "x")

    def test_connected(self):
        self.assertEqual(connected("7").type, EventType.CONNECTED)


class TestConfig(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "config.json"

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_defaults(self):
        config = AppConfig(self.path, use_env=False)
        self.assertEqual(config.retention_sec, DEFAULT_RETENTION_SEC)
        self.assertEqual(config.get('port'), DEFAULT_PORT)
        self.assertFalse(config.relay_enabled)
        self.assertFalse(config.persistence_enabled)

    def test_coercion(self):
        config = AppConfig(self.path, use_env=False, overrides={
            'retention_sec': '999999', 'max_concurrent_jobs': 'many', 'port': '70000',
            'public_base_url': 'https://clips.example.com/',
        })
        self.assertEqual(config.retention_sec, 86400)
        self.assertEqual(config.max_concurrent_jobs, 4)
        self.assertEqual(config.get('port'), DEFAULT_PORT)
        self.assertEqual(config.public_base_url, 'https://clips.example.com')

    def test_save_and_reload(self):
        config = AppConfig(self.path, use_env=False)
        config.set('ytdlp_path', '/opt/bin/yt-dlp')
        reloaded = AppConfig(self.path, use_env=False)
        self.assertEqual(reloaded.ytdlp_path, '/opt/bin/yt-dlp')

    def test_supabase_enables_relay_and_persistence(self):
        config = AppConfig(self.path, use_env=False, overrides={
            'supabase_url': 'https://x.supabase.co', 'supabase_key': 'k',
            'storage_bucket': 'audio',
        })
        self.assertTrue(config.relay_enabled)
        self.assertTrue(config.persistence_enabled)


if __name__ == '__main__':
    unittest.main()
