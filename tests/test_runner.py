#!/usr/bin/env python3
"""
Tests for the yt-dlp runner, using small shell scripts in place of yt-dlp.
"""

import os
import sys
import tempfile
import textwrap
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

from ytclip.core.constants import ErrorCode, JobStage
from ytclip.core.diagnostics import is_tool_available
from ytclip.core.models import ClipBounds
from ytclip.core.tool_runner import ToolRunner
from ytclip.core.yt_metadata import resolve_title

# Shared prologue: answer --version, find the -o template
_PROLOGUE = """\
#!/bin/sh
if [ "$1" = "--version" ]; then
    echo "2024.01.01"
    exit 0
fi
out=""
while [ $# -gt 0 ]; do
    if [ "$1" = "-o" ]; then
        shift
        out="$1"
    fi
    shift
done
dest=$(printf '%s' "$out" | sed 's/%(ext)s/mp3/')
"""

_SUCCESS = _PROLOGUE + """\
echo "[download] Destination: tmp.webm"
echo "[download]   0.0% of 1.00MiB"
echo "[download]  50.0% of 1.00MiB"
echo "[download] 100.0% of 1.00MiB"
echo "[ExtractAudio] Destination: $dest"
printf 'ID3fakeaudio' > "$dest"
exit 0
"""

_FAILURE = _PROLOGUE + """\
echo "[download]  10.0% of 1.00MiB"
echo "ERROR: [youtube] abc: Video unavailable" >&2
exit 1
"""

_SILENT_FAILURE = _PROLOGUE + """\
exit 2
"""

_NO_OUTPUT = _PROLOGUE + """\
echo "[download] 100.0% of 1.00MiB"
exit 0
"""

_CHATTY_STDERR = _PROLOGUE + """\
i=0
while [ $i -lt 5000 ]; do
    echo "WARNING: padding padding padding padding padding padding $i" >&2
    i=$((i+1))
done
printf 'ID3' > "$dest"
exit 0
"""

_METADATA = """\
#!/bin/sh
echo '{"title": "Sunday Service", "duration": 3600}'
"""

_BROKEN_METADATA = """\
#!/bin/sh
echo 'not json'
"""


@unittest.skipIf(os.name == 'nt', "fake yt-dlp scripts need a POSIX shell")
class TestToolRunner(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.output = self.root / "1700000000000_Test.mp3"

    def tearDown(self):
        self.tmpdir.cleanup()

    def _script(self, body: str, name: str = "yt-dlp") -> str:
        path = self.root / name
        path.write_text(textwrap.dedent(body))
        os.chmod(path, 0o755)
        return str(path)

    def _run(self, body: str, clip=None):
        runner = ToolRunner(self._script(body))
        updates = []
        outcome = runner.run("https://youtu.be/x", self.output, clip,
                             on_progress=lambda s, p, m: updates.append((s, p)))
        return outcome, updates

    def test_success(self):
        outcome, updates = self._run(_SUCCESS, ClipBounds("0:10:00", "0:10:05"))
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.returncode, 0)
        self.assertEqual(outcome.file_size, len(b'ID3fakeaudio'))
        self.assertTrue(self.output.exists())
        self.assertEqual(updates, [
            (JobStage.DOWNLOADING, 10),
            (JobStage.DOWNLOADING, 45),
            (JobStage.DOWNLOADING, 80),
            (JobStage.CONVERTING, 85),
        ])

    def test_nonzero_exit(self):
        outcome, updates = self._run(_FAILURE)
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.returncode, 1)
        self.assertEqual(outcome.error.code, ErrorCode.TOOL_EXECUTION)
        self.assertIn("Video unavailable", outcome.error.detail)
        self.assertEqual(updates, [(JobStage.DOWNLOADING, 17)])

    def test_nonzero_exit_without_stderr(self):
        outcome, _ = self._run(_SILENT_FAILURE)
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.error.detail, "Process exit code: 2")

    def test_missing_output(self):
        outcome, _ = self._run(_NO_OUTPUT)
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.error.code, ErrorCode.OUTPUT_MISSING)

    def test_spawn_failure(self):
        runner = ToolRunner(str(self.root / "does-not-exist"))
        outcome = runner.run("https://youtu.be/x", self.output)
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.error.code, ErrorCode.SPAWN)
        self.assertFalse(runner.is_available())

    def test_chatty_stderr_does_not_block(self):
        outcome, _ = self._run(_CHATTY_STDERR)
        self.assertTrue(outcome.ok)

    def test_is_available(self):
        self.assertTrue(is_tool_available(self._script(_SUCCESS)))

    def test_resolve_title(self):
        self.assertEqual(resolve_title("https://youtu.be/x", self._script(_METADATA)),
                         "Sunday Service")

    def test_resolve_title_fallback(self):
        self.assertEqual(resolve_title("https://youtu.be/x", self._script(_BROKEN_METADATA),
                                       fallback="sermon"), "sermon")
        self.assertEqual(resolve_title("https://youtu.be/x", str(self.root / "missing")),
                         "converted_audio")


class TestBuildArgs(unittest.TestCase):

    def setUp(self):
        self.runner = ToolRunner("yt-dlp")
        self.output = Path("uploads") / "1_Test.mp3"

    def test_with_clip(self):
        args = self.runner.build_args("https://youtu.be/x", self.output,
                                      ClipBounds("0:10:00", "0:10:05"))
        self.assertEqual(args[0], "yt-dlp")
        self.assertIn("-x", args)
        self.assertEqual(args[args.index("--audio-format") + 1], "mp3")
        self.assertEqual(args[args.index("--audio-quality") + 1], "0")
        self.assertEqual(args[args.index("--download-sections") + 1], "*0:10:00-0:10:05")
        self.assertIn("--newline", args)
        self.assertEqual(args[-1], "https://youtu.be/x")

    def test_full_source(self):
        args = self.runner.build_args("https://youtu.be/x", self.output)
        self.assertNotIn("--download-sections", args)

    def test_output_template(self):
        self.assertEqual(ToolRunner.output_template(Path("uploads/1_Test.mp3")),
                         "uploads/1_Test.%(ext)s")
        self.assertEqual(ToolRunner.output_template(Path("uploads/1_100%.mp3")),
                         "uploads/1_100%%.%(ext)s")


if __name__ == '__main__':
    unittest.main()
