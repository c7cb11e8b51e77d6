from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .drive import DriveClient
from .errors import DriveTrimError, EngineError, ResourceError, TransportError, ValidationError
from .ffmpeg import FFmpegEngine, OperationSequence, build_operations
from .model import EditOptions, MediaInfo, RemoteFile
from .options import normalize_edit_options
from .progress import ProgressTracker
from .timeline import TimelineController

log = logging.getLogger(__name__)

STAGE_LOADING = "Loading video..."
STAGE_PROCESSING = "Processing video..."
STAGE_UPLOADING = "Uploading..."
STAGE_CANCELLED = "Cancelled"

# Share of the progress bar driven by the encoder; milestones sit at both ends.
ENGINE_PROGRESS_BAND = (5.0, 90.0)


class EditSession:
    """
    One editing session for one remote video.

    Owns the timeline, the current edit options and the progress tracker.
    At most one processing run is in flight; there is no mid-run cancel.
    The engine handle is injected and owned by the caller.
    """

    def __init__(
        self,
        file_id: str,
        drive: DriveClient,
        engine: FFmpegEngine,
        *,
        output_folder_id: Optional[str] = None,
        tick_sec: float = 0.5,
        temp_root: Optional[Path] = None,
        tracker: Optional[ProgressTracker] = None,
        timeline: Optional[TimelineController] = None,
    ) -> None:
        self.file_id = str(file_id)
        self.drive = drive
        self.engine = engine
        self.output_folder_id = output_folder_id
        self.tick_sec = float(tick_sec)
        self.tracker = tracker or ProgressTracker()
        self.timeline = timeline or TimelineController(0.0)
        self.remote: Optional[RemoteFile] = None
        self.media: Optional[MediaInfo] = None
        self.source_path: Optional[Path] = None
        self.last_output_id: Optional[str] = None
        self.last_output_path: Optional[Path] = None
        self.options: EditOptions = EditOptions.default()
        self._raw: Dict[str, Any] = {}
        self._temp_root = temp_root
        self._work_dir: Optional[Path] = None
        self._runs = 0

    # ---------- state ----------
    @property
    def duration(self) -> float:
        return self.timeline.duration

    @property
    def loaded(self) -> bool:
        return self.source_path is not None

    @property
    def can_process(self) -> bool:
        return (
            self.engine.is_ready
            and self.loaded
            and self.duration > 0
            and not self.tracker.running
        )

    def set_option(self, key: str, value: Any) -> None:
        """Store a raw slider/dropdown value; clamping happens at process time."""
        self._raw[key] = value

    def current_raw_options(self) -> Dict[str, Any]:
        trim = self.timeline.trim_range()
        return {**self._raw, "start_pct": trim.start_pct, "end_pct": trim.end_pct}

    def preview_operations(self) -> OperationSequence:
        options = normalize_edit_options(self.current_raw_options())
        return build_operations(options, self.duration)

    # ---------- lifecycle ----------
    async def ensure_engine(self) -> None:
        try:
            await asyncio.to_thread(self.engine.init)
        except OSError as ex:
            raise ResourceError(str(ex)) from ex

    async def load(self) -> None:
        """
        Fetch metadata and download the source for preview and processing.

        Duration: metadata when present, else ffprobe, else whatever the
        player reports later through `apply_player_duration`.
        """
        if not self.drive.is_authorized:
            raise TransportError("Not authenticated", status_code=401)
        self.remote = await asyncio.to_thread(self.drive.get_metadata, self.file_id)

        work = self._ensure_work_dir()
        suffix = Path(self.remote.name).suffix or ".mp4"
        src = work / f"input{suffix}"
        await asyncio.to_thread(self.drive.download_to, self.file_id, src)
        self.source_path = src

        duration = self.remote.duration_sec
        if self.engine.is_ready:
            try:
                self.media = await asyncio.to_thread(self.engine.probe, str(src))
            except EngineError as ex:
                log.warning("probe failed, relying on metadata: %s", ex)
                self.media = None
        if duration is None and self.media is not None and self.media.duration > 0:
            duration = self.media.duration

        self.timeline.set_duration(duration or 0.0)
        self.options = EditOptions.default()
        self._raw = {}

    def apply_player_duration(self, duration: float) -> None:
        if self.duration > 0:
            return
        self.timeline.set_duration(duration)

    def close(self) -> None:
        self.timeline.set_disabled(True)
        work, self._work_dir = self._work_dir, None
        self.source_path = None
        self.last_output_path = None
        if work is not None:
            shutil.rmtree(work, ignore_errors=True)

    # ---------- processing ----------
    async def process(self, raw: Optional[Mapping[str, Any]] = None) -> str:
        """
        Run trim/re-encode and upload the result. Returns the new file id.

        The encoded file is kept as `last_output_path` until the next run or
        `close()`, so it can be previewed and saved locally.

        Raises:
            ValidationError: empty selection (nothing else is touched)
            ResourceError: engine not ready, or a run is already in flight
            EngineError / TransportError: the run failed (tracker is FAILED)
        """
        if self.tracker.running:
            raise ResourceError("A video is already being processed")
        if not self.engine.is_ready:
            raise ResourceError("ffmpeg is not initialized")
        if self.source_path is None or self.duration <= 0:
            raise ValidationError("No video loaded")

        options = normalize_edit_options(raw if raw is not None else self.current_raw_options())
        seq = build_operations(options, self.duration)
        self.options = options
        has_audio = self.media.has_audio if self.media is not None else True

        self._runs += 1
        out_path = self._ensure_work_dir() / f"output_{self._runs}.mp4"
        name = f"edited_{self.remote.stem if self.remote else self.file_id}.mp4"
        loop = asyncio.get_running_loop()
        band_lo, band_hi = ENGINE_PROGRESS_BAND

        def _on_engine_progress(fraction: float) -> None:
            # Engine completion only covers its own band; upload owns the rest.
            pct = band_lo + max(0.0, min(1.0, fraction)) * (band_hi - band_lo)
            loop.call_soon_threadsafe(self.tracker.report, pct / 100.0)

        log.info("processing %s: %s", self.file_id, options.to_dict())
        self.tracker.start()
        self.timeline.set_disabled(True)
        ticker = asyncio.create_task(self.tracker.run_fallback(self.tick_sec))
        kept = False
        try:
            self.tracker.advance(band_lo, STAGE_PROCESSING)
            await asyncio.to_thread(
                self.engine.run,
                seq,
                str(self.source_path),
                str(out_path),
                _on_engine_progress,
                has_audio=has_audio,
            )
            # Let queued progress callbacks land before the stage change.
            await asyncio.sleep(0)
            self.tracker.advance(band_hi, STAGE_UPLOADING)
            file_id = await asyncio.to_thread(self.drive.upload, out_path, name, self.output_folder_id)
            self.tracker.complete()
            self.last_output_id = file_id
            self._keep_output(out_path)
            kept = True
            return file_id
        except asyncio.CancelledError:
            log.warning("processing of %s cancelled", self.file_id)
            self.tracker.fail(STAGE_CANCELLED)
            raise
        except DriveTrimError as ex:
            log.warning("processing failed: %s", ex)
            self.tracker.fail(ex.user_message())
            raise
        except Exception as ex:
            log.exception("processing crashed: %s", ex)
            err = EngineError(str(ex))
            self.tracker.fail(err.user_message())
            raise err from ex
        finally:
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker
            self.timeline.set_disabled(False)
            if not kept:
                out_path.unlink(missing_ok=True)

    @property
    def copy_name(self) -> str:
        """Suggested local file name for a saved copy of the last output."""
        return f"trimmed_{self.remote.stem if self.remote else self.file_id}.mp4"

    def save_output_copy(self, dest_path: Union[str, Path]) -> Path:
        src = self.last_output_path
        if src is None or not src.exists():
            raise FileNotFoundError("No processed video to save yet")
        dest = Path(dest_path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dest)
        log.info("saved copy of %s to %s", src.name, dest)
        return dest

    def _keep_output(self, out_path: Path) -> None:
        prev, self.last_output_path = self.last_output_path, out_path
        if prev is not None and prev != out_path:
            prev.unlink(missing_ok=True)

    def _ensure_work_dir(self) -> Path:
        if self._work_dir is None:
            root = self._temp_root
            if root is not None:
                Path(root).mkdir(parents=True, exist_ok=True)
            self._work_dir = Path(tempfile.mkdtemp(prefix="drivetrim_", dir=str(root) if root else None))
        return self._work_dir
