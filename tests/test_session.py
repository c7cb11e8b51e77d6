import asyncio
import random
import tempfile
import threading
import unittest
from pathlib import Path

from drivetrim.errors import EngineError, ResourceError, TransportError, ValidationError
from drivetrim.ffmpeg import Trim, VolumeScale
from drivetrim.model import MediaInfo, RemoteFile
from drivetrim.progress import Phase, ProgressTracker
from drivetrim.session import ENGINE_PROGRESS_BAND, STAGE_CANCELLED, STAGE_UPLOADING, EditSession


class _FakeDrive:
    def __init__(self, duration_ms=120000, authorized=True):
        self.is_authorized = authorized
        self.duration_ms = duration_ms
        self.uploads = []
        self.upload_error = None

    def get_metadata(self, file_id):
        return RemoteFile(id=file_id, name="holiday.mp4", size=1024, duration_ms=self.duration_ms)

    def download_to(self, file_id, dest):
        Path(dest).write_bytes(b"source")
        return 6

    def upload(self, content, name, folder_id=None, mime_type="video/mp4"):
        if self.upload_error is not None:
            raise self.upload_error
        self.uploads.append((Path(content).read_bytes(), name, folder_id))
        return "uploaded-1"


class _FakeEngine:
    def __init__(self, ready=True, fail=False, probe_duration=42.0, has_audio=True):
        self.is_ready = ready
        self.fail = fail
        self.probe_duration = probe_duration
        self.has_audio = has_audio
        self.runs = []
        self.audio_flags = []

    def init(self):
        self.is_ready = True

    def probe(self, src):
        return MediaInfo(duration=self.probe_duration, has_video=True, has_audio=self.has_audio, fps=25.0)

    def run(self, seq, src, out_path, on_progress=None, has_audio=True):
        self.runs.append((seq, src, out_path))
        self.audio_flags.append(has_audio)
        if on_progress is not None:
            on_progress(0.0)
            on_progress(0.5)
        if self.fail:
            raise EngineError("ffmpeg exited with code 1", returncode=1)
        Path(out_path).write_bytes(b"edited")
        if on_progress is not None:
            on_progress(1.0)


class _BlockingEngine(_FakeEngine):
    """Engine whose run parks on a worker thread until released."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()
        self.finished = threading.Event()

    def run(self, seq, src, out_path, on_progress=None, has_audio=True):
        self.runs.append((seq, src, out_path))
        self.started.set()
        self.release.wait(5)
        self.finished.set()


class TestEditSession(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.temp_root = Path(self._td.name)

    def tearDown(self):
        self._td.cleanup()

    def _session(self, drive=None, engine=None, **kw):
        return EditSession(
            "file-1",
            drive or _FakeDrive(),
            engine or _FakeEngine(),
            temp_root=self.temp_root,
            tick_sec=0.01,
            tracker=ProgressTracker(rng=random.Random(0)),
            **kw,
        )

    async def test_load_uses_metadata_duration(self):
        s = self._session()
        await s.load()
        self.assertTrue(s.loaded)
        self.assertAlmostEqual(s.duration, 120.0)
        self.assertEqual(s.media.fps, 25.0)
        self.assertTrue(s.source_path.exists())
        self.assertTrue(s.can_process)
        s.close()
        self.assertFalse(s.loaded)

    async def test_load_falls_back_to_probe_duration(self):
        s = self._session(drive=_FakeDrive(duration_ms=None))
        await s.load()
        self.assertAlmostEqual(s.duration, 42.0)

    async def test_player_duration_when_nothing_else_known(self):
        s = self._session(drive=_FakeDrive(duration_ms=None), engine=_FakeEngine(ready=False))
        await s.load()
        self.assertEqual(s.duration, 0.0)
        s.apply_player_duration(30.0)
        self.assertAlmostEqual(s.duration, 30.0)
        s.apply_player_duration(99.0)
        self.assertAlmostEqual(s.duration, 30.0)

    async def test_load_requires_token(self):
        s = self._session(drive=_FakeDrive(authorized=False))
        with self.assertRaises(TransportError):
            await s.load()

    async def test_process_uploads_and_completes(self):
        drive = _FakeDrive()
        engine = _FakeEngine()
        s = self._session(drive=drive, engine=engine, output_folder_id="out-folder")
        await s.load()
        s.timeline.load_range(25.0, 75.0)
        s.set_option("volume_pct", 150)

        file_id = await s.process()

        self.assertEqual(file_id, "uploaded-1")
        self.assertEqual(drive.uploads, [(b"edited", "edited_holiday.mp4", "out-folder")])
        seq = engine.runs[0][0]
        self.assertEqual(seq.find(Trim), Trim(start_sec=30.0, duration_sec=60.0))
        self.assertEqual(seq.find(VolumeScale), VolumeScale(factor=1.5))
        self.assertEqual(s.tracker.phase, Phase.COMPLETED)
        self.assertEqual(s.tracker.progress_pct, 100.0)
        self.assertFalse(s.timeline.disabled)
        self.assertEqual(s.last_output_path, Path(engine.runs[0][2]))
        self.assertTrue(s.last_output_path.exists())
        self.assertEqual(engine.audio_flags, [True])

    async def test_progress_never_decreases_during_run(self):
        seen = []
        s = self._session()
        s.tracker.on_change = lambda st: seen.append(st.progress_pct)
        await s.load()
        await s.process()
        self.assertEqual(seen, sorted(seen))
        self.assertEqual(seen[-1], 100.0)

    async def test_invalid_selection_touches_nothing(self):
        engine = _FakeEngine()
        s = self._session(engine=engine)
        await s.load()
        with self.assertRaises(ValidationError):
            await s.process({"start_pct": 60, "end_pct": 40})
        self.assertEqual(engine.runs, [])
        self.assertEqual(s.tracker.phase, Phase.NOT_STARTED)
        self.assertFalse(s.timeline.disabled)

    async def test_engine_not_ready(self):
        s = self._session(engine=_FakeEngine(ready=False))
        await s.load()
        self.assertFalse(s.can_process)
        with self.assertRaises(ResourceError):
            await s.process()
        await s.ensure_engine()
        self.assertTrue(s.engine.is_ready)

    async def test_engine_failure_marks_tracker_failed(self):
        drive = _FakeDrive()
        s = self._session(drive=drive, engine=_FakeEngine(fail=True))
        await s.load()
        with self.assertRaises(EngineError):
            await s.process()
        self.assertEqual(s.tracker.phase, Phase.FAILED)
        self.assertEqual(s.tracker.progress_pct, 0.0)
        self.assertTrue(s.tracker.state.stage.startswith("Processing failed"))
        self.assertEqual(drive.uploads, [])
        self.assertFalse(s.timeline.disabled)

    async def test_upload_failure_marks_tracker_failed(self):
        drive = _FakeDrive()
        drive.upload_error = TransportError("Upload failed: HTTP 500")
        s = self._session(drive=drive)
        await s.load()
        with self.assertRaises(TransportError):
            await s.process()
        self.assertEqual(s.tracker.phase, Phase.FAILED)
        self.assertTrue(s.tracker.state.stage.startswith("Transfer failed"))

    async def test_second_run_rejected_while_in_flight(self):
        s = self._session()
        await s.load()
        s.tracker.start()
        with self.assertRaises(ResourceError):
            await s.process()

    async def test_output_kept_for_saving_until_next_run(self):
        s = self._session()
        await s.load()
        await s.process()
        first = s.last_output_path
        self.assertEqual(s.copy_name, "trimmed_holiday.mp4")

        dest = s.save_output_copy(self.temp_root / "saved" / s.copy_name)
        self.assertEqual(dest.read_bytes(), b"edited")

        await s.process()
        self.assertNotEqual(s.last_output_path, first)
        self.assertFalse(first.exists())
        self.assertTrue(s.last_output_path.exists())

        s.close()
        self.assertIsNone(s.last_output_path)
        with self.assertRaises(FileNotFoundError):
            s.save_output_copy(self.temp_root / "late.mp4")

    async def test_save_copy_before_any_run(self):
        s = self._session()
        await s.load()
        with self.assertRaises(FileNotFoundError):
            s.save_output_copy(self.temp_root / "copy.mp4")

    async def test_failed_run_keeps_no_output(self):
        s = self._session(engine=_FakeEngine(fail=True))
        await s.load()
        with self.assertRaises(EngineError):
            await s.process()
        self.assertIsNone(s.last_output_path)

    async def test_cancel_mid_run_marks_tracker_failed(self):
        engine = _BlockingEngine()
        drive = _FakeDrive()
        s = self._session(drive=drive, engine=engine)
        await s.load()
        task = asyncio.create_task(s.process())
        try:
            self.assertTrue(await asyncio.to_thread(engine.started.wait, 5))
            task.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await task
        finally:
            engine.release.set()
            await asyncio.to_thread(engine.finished.wait, 5)

        st = s.tracker.state
        self.assertEqual(s.tracker.phase, Phase.FAILED)
        self.assertFalse(st.is_processing)
        self.assertEqual(st.stage, STAGE_CANCELLED)
        self.assertEqual(st.progress_pct, 0.0)
        self.assertFalse(s.timeline.disabled)
        self.assertTrue(s.can_process)
        self.assertEqual(drive.uploads, [])
        self.assertIsNone(s.last_output_path)

    async def test_new_run_allowed_after_cancel(self):
        engine = _BlockingEngine()
        s = self._session(engine=engine)
        await s.load()
        task = asyncio.create_task(s.process())
        try:
            await asyncio.to_thread(engine.started.wait, 5)
            task.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await task
        finally:
            engine.release.set()
            await asyncio.to_thread(engine.finished.wait, 5)
        s.engine = _FakeEngine()
        self.assertEqual(await s.process(), "uploaded-1")
        self.assertEqual(s.tracker.phase, Phase.COMPLETED)

    async def test_upload_stage_stays_below_complete(self):
        seen = []
        s = self._session()
        s.tracker.on_change = lambda st: seen.append(st)
        await s.load()
        await s.process()
        uploading = [st.progress_pct for st in seen if st.is_processing and st.stage == STAGE_UPLOADING]
        self.assertTrue(uploading)
        self.assertTrue(all(p < 100.0 for p in uploading))
        self.assertAlmostEqual(uploading[0], ENGINE_PROGRESS_BAND[1])
        running = [st.progress_pct for st in seen if st.is_processing]
        self.assertLessEqual(max(running), ENGINE_PROGRESS_BAND[1])
        self.assertEqual(seen[-1].progress_pct, 100.0)

    async def test_silent_source_runs_without_audio(self):
        engine = _FakeEngine(has_audio=False)
        s = self._session(drive=_FakeDrive(duration_ms=None), engine=engine)
        await s.load()
        self.assertFalse(s.media.has_audio)
        await s.process()
        self.assertEqual(engine.audio_flags, [False])

    async def test_preview_operations_follow_timeline(self):
        s = self._session()
        await s.load()
        s.timeline.load_range(0.0, 50.0)
        s.set_option("speed", 2.0)
        seq = s.preview_operations()
        self.assertAlmostEqual(seq.output_duration_sec, 30.0)


if __name__ == "__main__":
    unittest.main()
