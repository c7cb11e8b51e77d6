import unittest
from pathlib import Path
from unittest.mock import patch

from drivetrim.errors import EngineError, ResourceError
from drivetrim.ffmpeg import (
    FFmpegEngine,
    FFmpegNotFound,
    build_operations,
    parse_ffmpeg_progress_seconds,
    resolve_ffmpeg_bins,
)
from drivetrim.options import normalize_edit_options


class _FakeProc:
    def __init__(self, stderr_lines, retcode: int = 0):
        self.stderr = iter(stderr_lines)
        self._retcode = int(retcode)

    def wait(self) -> int:
        return self._retcode


def _ready_engine() -> FFmpegEngine:
    engine = FFmpegEngine(Path("."))
    engine.ffmpeg_path, engine.ffprobe_path = "ffmpeg", "ffprobe"
    return engine


def _seq(**raw):
    # 4 s of output for a 4 s source unless options say otherwise.
    return build_operations(normalize_edit_options(raw), 4.0)


class TestProgressParsing(unittest.TestCase):
    def test_parse_ffmpeg_progress_seconds(self):
        self.assertAlmostEqual(parse_ffmpeg_progress_seconds("out_time_ms=1500000"), 1.5, places=3)
        self.assertAlmostEqual(parse_ffmpeg_progress_seconds("out_time_us=250000"), 0.25, places=3)
        self.assertAlmostEqual(
            parse_ffmpeg_progress_seconds("frame=120 fps=24.0 q=23.0 time=00:00:02.34 bitrate=1200kbits/s"),
            2.34,
            places=2,
        )
        self.assertIsNone(parse_ffmpeg_progress_seconds("progress=continue"))
        self.assertIsNone(parse_ffmpeg_progress_seconds("out_time_us=N/A"))
        self.assertIsNone(parse_ffmpeg_progress_seconds(""))


class TestFFmpegEngine(unittest.TestCase):
    @patch("drivetrim.ffmpeg.subprocess.Popen")
    def test_run_emits_fractions(self, popen):
        popen.return_value = _FakeProc(
            [
                "out_time_ms=1000000\n",
                "out_time_ms=2000000\n",
                "out_time_ms=9000000\n",  # past the end, should clamp
                "progress=end\n",
            ]
        )
        events = []
        _ready_engine().run(_seq(), "in.mp4", "out.mp4", on_progress=events.append)

        self.assertEqual(events[0], 0.0)
        self.assertAlmostEqual(events[1], 0.25)
        self.assertAlmostEqual(events[2], 0.5)
        self.assertEqual(events[3], 1.0)
        self.assertEqual(events[-1], 1.0)
        self.assertTrue(all(0.0 <= e <= 1.0 for e in events))

        called_cmd = popen.call_args.args[0]
        self.assertEqual(called_cmd[0], "ffmpeg")
        self.assertIn("pipe:2", called_cmd)
        self.assertIn("-nostats", called_cmd)

    @patch("drivetrim.ffmpeg.subprocess.Popen")
    def test_silent_source_command_has_no_audio_stream(self, popen):
        popen.return_value = _FakeProc(["progress=end\n"])
        _ready_engine().run(_seq(volume_pct=50), "in.mp4", "out.mp4", has_audio=False)
        called_cmd = popen.call_args.args[0]
        self.assertIn("-an", called_cmd)
        self.assertNotIn("-af", called_cmd)

    @patch("drivetrim.ffmpeg.subprocess.Popen")
    def test_progress_is_relative_to_output_duration(self, popen):
        popen.return_value = _FakeProc(["out_time_ms=1000000\n"])
        events = []
        # 4 s at 2x speed is a 2 s output.
        _ready_engine().run(_seq(speed=2.0), "in.mp4", "out.mp4", on_progress=events.append)
        self.assertAlmostEqual(events[1], 0.5)

    @patch("drivetrim.ffmpeg.subprocess.Popen")
    def test_non_zero_exit_raises_engine_error(self, popen):
        popen.return_value = _FakeProc(["out_time_ms=1000000\n", "Conversion failed!\n"], retcode=1)
        with self.assertRaises(EngineError) as ctx:
            _ready_engine().run(_seq(), "in.mp4", "out.mp4")
        self.assertEqual(ctx.exception.returncode, 1)
        self.assertIn("Conversion failed", str(ctx.exception))

    @patch("drivetrim.ffmpeg.subprocess.Popen")
    def test_start_failure_raises_engine_error(self, popen):
        popen.side_effect = OSError("no such file")
        with self.assertRaises(EngineError):
            _ready_engine().run(_seq(), "in.mp4", "out.mp4")

    def test_run_requires_init(self):
        engine = FFmpegEngine(Path("."))
        self.assertFalse(engine.is_ready)
        with self.assertRaises(ResourceError):
            engine.run(_seq(), "in.mp4", "out.mp4")

    @patch("drivetrim.ffmpeg.shutil.which")
    def test_init_and_dispose(self, which):
        which.side_effect = lambda name: f"/usr/bin/{name}"
        engine = FFmpegEngine(Path("/nonexistent-root"))
        engine.init()
        self.assertTrue(engine.is_ready)
        self.assertEqual(engine.ffmpeg_path, "/usr/bin/ffmpeg")
        engine.dispose()
        self.assertFalse(engine.is_ready)

    @patch("drivetrim.ffmpeg.shutil.which", return_value=None)
    def test_missing_binaries(self, _which):
        with self.assertRaises(FFmpegNotFound):
            resolve_ffmpeg_bins(Path("/nonexistent-root"))
        self.assertTrue(issubclass(FFmpegNotFound, ResourceError))


if __name__ == "__main__":
    unittest.main()
