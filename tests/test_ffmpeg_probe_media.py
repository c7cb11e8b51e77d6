import json
import subprocess
import unittest
from unittest.mock import Mock, patch

from drivetrim.errors import EngineError
from drivetrim.ffmpeg import FFmpegEngine, probe_media


class TestProbeMedia(unittest.TestCase):
    @patch("drivetrim.ffmpeg.subprocess.run")
    def test_probe_media_fields(self, run: Mock):
        run.return_value = Mock(
            stdout=json.dumps(
                {
                    "format": {"duration": "12.34", "size": "1234567", "bit_rate": "8192000"},
                    "streams": [
                        {
                            "codec_type": "video",
                            "width": 1920,
                            "height": 1080,
                            "r_frame_rate": "30000/1001",
                            "codec_name": "h264",
                        },
                        {"codec_type": "audio", "codec_name": "aac"},
                    ],
                }
            )
        )

        info = probe_media("ffprobe", "x.mp4")
        self.assertAlmostEqual(info.duration, 12.34)
        self.assertTrue(info.has_video)
        self.assertTrue(info.has_audio)
        self.assertEqual((info.width, info.height), (1920, 1080))
        self.assertAlmostEqual(info.fps, 30000 / 1001, places=2)
        self.assertEqual(info.video_codec, "h264")
        self.assertEqual(info.audio_codec, "aac")
        self.assertEqual(info.bitrate, 8192000)
        self.assertEqual(info.file_size_bytes, 1234567)

    @patch("drivetrim.ffmpeg.subprocess.run")
    def test_probe_media_video_only(self, run: Mock):
        run.return_value = Mock(
            stdout=json.dumps(
                {
                    "format": {"duration": "3.0"},
                    "streams": [{"codec_type": "video", "width": 640, "height": 360, "r_frame_rate": "0/0"}],
                }
            )
        )
        info = probe_media("ffprobe", "v.mp4")
        self.assertTrue(info.has_video)
        self.assertFalse(info.has_audio)
        self.assertEqual(info.fps, 0.0)
        self.assertEqual(info.audio_codec, "")

    @patch("drivetrim.ffmpeg.subprocess.run")
    def test_engine_probe_wraps_failures(self, run: Mock):
        run.side_effect = subprocess.CalledProcessError(1, ["ffprobe"])
        engine = FFmpegEngine(".")
        engine.ffmpeg_path, engine.ffprobe_path = "ffmpeg", "ffprobe"
        with self.assertRaises(EngineError):
            engine.probe("broken.mp4")


if __name__ == "__main__":
    unittest.main()
