from __future__ import annotations

import json
import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from .errors import EngineError, ResourceError
from .model import EditOptions, MediaInfo
from .options import quality_preset

log = logging.getLogger(__name__)


class FFmpegNotFound(ResourceError):
    """Raised when ffmpeg/ffprobe cannot be located."""
    pass


# ---------- operations ----------
@dataclass(frozen=True)
class Trim:
    start_sec: float
    duration_sec: float


@dataclass(frozen=True)
class VolumeScale:
    factor: float  # linear amplitude multiplier, not dB


@dataclass(frozen=True)
class Fade:
    """Fade directives on the trimmed timeline (0 = first output frame)."""

    fade_in_sec: float
    fade_out_start_sec: float
    fade_out_sec: float


@dataclass(frozen=True)
class SpeedChange:
    speed: float

    @property
    def video_pts_factor(self) -> float:
        return 1.0 / self.speed

    @property
    def audio_tempo(self) -> float:
        return self.speed


@dataclass(frozen=True)
class Encode:
    crf: int
    preset: str
    faststart: bool = True


Operation = Union[Trim, VolumeScale, Fade, SpeedChange, Encode]


@dataclass(frozen=True)
class OperationSequence:
    operations: Tuple[Operation, ...]
    trimmed_duration_sec: float
    output_duration_sec: float

    def find(self, kind: type) -> Optional[Operation]:
        for op in self.operations:
            if isinstance(op, kind):
                return op
        return None

    @property
    def encode(self) -> Encode:
        op = self.find(Encode)
        if not isinstance(op, Encode):
            raise ValueError("sequence has no Encode step")
        return op


def _num(v: float) -> str:
    """Stable text for ffmpeg arguments: up to 6 decimals, no trailing zeros."""
    s = f"{float(v):.6f}".rstrip("0").rstrip(".")
    return "0" if s in ("", "-0") else s


def build_operations(options: EditOptions, duration: float) -> OperationSequence:
    """
    Translate canonical edit options into the ordered ffmpeg operations.

    Order is fixed: Trim, VolumeScale, Fade, SpeedChange, Encode. Fade offsets
    are relative to the trimmed clip, never to the source timeline.

    Args:
        options: normalized options (see options.normalize_edit_options)
        duration: authoritative media duration in seconds
    """
    duration = max(0.0, float(duration))
    start = options.trim.start_sec(duration)
    end = options.trim.end_sec(duration)
    trimmed = max(0.0, end - start)

    ops: List[Operation] = []
    if start > 0.0 or end < duration:
        ops.append(Trim(start_sec=start, duration_sec=trimmed))

    if options.volume_pct != 100:
        ops.append(VolumeScale(factor=options.volume_pct / 100.0))

    if options.fade_in_sec > 0 or options.fade_out_sec > 0:
        # Overlapping fades are passed through as-is; only a negative start is clamped.
        ops.append(
            Fade(
                fade_in_sec=options.fade_in_sec,
                fade_out_start_sec=max(0.0, trimmed - options.fade_out_sec),
                fade_out_sec=options.fade_out_sec,
            )
        )

    if options.speed != 1.0:
        ops.append(SpeedChange(speed=options.speed))

    q = quality_preset(options.quality)
    ops.append(Encode(crf=q.crf, preset=q.preset))

    return OperationSequence(
        operations=tuple(ops),
        trimmed_duration_sec=trimmed,
        output_duration_sec=trimmed / options.speed if options.speed > 0 else trimmed,
    )


def video_filter_chain(seq: OperationSequence) -> str:
    parts: List[str] = []
    fade = seq.find(Fade)
    if isinstance(fade, Fade):
        if fade.fade_in_sec > 0:
            parts.append(f"fade=t=in:st=0:d={_num(fade.fade_in_sec)}")
        if fade.fade_out_sec > 0:
            parts.append(f"fade=t=out:st={_num(fade.fade_out_start_sec)}:d={_num(fade.fade_out_sec)}")
    speed = seq.find(SpeedChange)
    if isinstance(speed, SpeedChange):
        parts.append(f"setpts={_num(speed.video_pts_factor)}*PTS")
    return ",".join(parts)


def audio_filter_chain(seq: OperationSequence) -> str:
    parts: List[str] = []
    vol = seq.find(VolumeScale)
    if isinstance(vol, VolumeScale):
        parts.append(f"volume={_num(vol.factor)}")
    speed = seq.find(SpeedChange)
    if isinstance(speed, SpeedChange):
        parts.append(f"atempo={_num(speed.audio_tempo)}")
    return ",".join(parts)


def build_process_command(
    ffmpeg_path: str,
    src: str,
    out_path: str,
    seq: OperationSequence,
    with_progress: bool = True,
    has_audio: bool = True,
) -> List[str]:
    """
    Build the single ffmpeg invocation for an operation sequence.

    -ss/-t are input options (before -i): ffmpeg seeks before decoding, and
    the output timeline starts at zero so fade offsets line up. A source
    without an audio stream gets `-an` and no audio filters.
    """
    args: List[str] = [ffmpeg_path, "-y"]
    trim = seq.find(Trim)
    if isinstance(trim, Trim):
        args += ["-ss", _num(trim.start_sec), "-t", _num(trim.duration_sec)]
    args += ["-i", src]

    vf = video_filter_chain(seq)
    if vf:
        args += ["-vf", vf]
    af = audio_filter_chain(seq) if has_audio else ""
    if af:
        args += ["-af", af]

    enc = seq.encode
    args += [
        "-c:v",
        "libx264",
        "-crf",
        str(enc.crf),
        "-preset",
        enc.preset,
        "-pix_fmt",
        "yuv420p",
    ]
    if has_audio:
        args += ["-c:a", "aac", "-b:a", "192k"]
    else:
        args.append("-an")
    if enc.faststart:
        args += ["-movflags", "+faststart"]
    if with_progress:
        args += ["-progress", "pipe:2", "-nostats"]
    args.append(out_path)
    return args


# ---------- binaries / probing ----------
def _which(name: str, local_bin: Path) -> Optional[str]:
    local = local_bin / name
    if local.exists():
        return str(local)
    return shutil.which(name)


def resolve_ffmpeg_bins(project_root: Path) -> Tuple[str, str]:
    """Return (ffmpeg_path, ffprobe_path). Prefer ./bin, fallback to PATH."""
    local_bin = Path(project_root) / "bin"
    if os.name == "nt":
        ffmpeg = _which("ffmpeg.exe", local_bin) or _which("ffmpeg", local_bin)
        ffprobe = _which("ffprobe.exe", local_bin) or _which("ffprobe", local_bin)
    else:
        ffmpeg = _which("ffmpeg", local_bin)
        ffprobe = _which("ffprobe", local_bin)

    if not ffmpeg or not ffprobe:
        raise FFmpegNotFound(f"ffmpeg/ffprobe not found in {local_bin} or on PATH")
    return ffmpeg, ffprobe


def _parse_rate(raw: object) -> float:
    s = str(raw or "").strip()
    if not s:
        return 0.0
    try:
        if "/" in s:
            num, den = s.split("/", 1)
            d = float(den)
            return float(num) / d if d else 0.0
        return float(s)
    except ValueError:
        return 0.0


def _as_int(raw: object) -> int:
    try:
        return int(float(raw or 0))
    except (TypeError, ValueError):
        return 0


def probe_media(ffprobe_path: str, src: str) -> MediaInfo:
    """Use ffprobe to get duration, stream presence and the basic video facts."""
    cmd = [
        ffprobe_path,
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        src,
    ]
    p = subprocess.run(cmd, capture_output=True, text=True, check=True)
    data = json.loads(p.stdout or "{}")

    fmt = data.get("format", {}) or {}
    try:
        dur = float(fmt.get("duration", 0.0) or 0.0)
    except (TypeError, ValueError):
        dur = 0.0

    streams = data.get("streams", []) or []
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    audio = next((s for s in streams if s.get("codec_type") == "audio"), None)

    return MediaInfo(
        duration=dur,
        has_video=video is not None,
        has_audio=audio is not None,
        width=_as_int((video or {}).get("width")),
        height=_as_int((video or {}).get("height")),
        fps=_parse_rate((video or {}).get("r_frame_rate")),
        video_codec=str((video or {}).get("codec_name") or ""),
        audio_codec=str((audio or {}).get("codec_name") or ""),
        bitrate=_as_int(fmt.get("bit_rate")),
        file_size_bytes=_as_int(fmt.get("size")),
    )


_TIME_RE = re.compile(r"time=(\d+):(\d+):(\d+(?:\.\d+)?)")


def parse_ffmpeg_progress_seconds(line: str) -> Optional[float]:
    """Output position in seconds from a `-progress` or stats line, else None."""
    s = str(line or "").strip()
    if not s:
        return None
    for key, scale in (("out_time_us=", 1_000_000.0), ("out_time_ms=", 1_000_000.0)):
        # ffmpeg reports out_time_ms in microseconds too.
        if s.startswith(key):
            try:
                return max(0.0, int(s[len(key):]) / scale)
            except ValueError:
                return None
    m = _TIME_RE.search(s)
    if m:
        h, mi, sec = m.groups()
        return int(h) * 3600 + int(mi) * 60 + float(sec)
    return None


# ---------- engine handle ----------
class FFmpegEngine:
    """
    One ffmpeg "engine" per app: resolved binaries plus a run method.

    Lifecycle is explicit: `init()` before use, `is_ready`, `dispose()`.
    """

    def __init__(self, project_root: Path) -> None:
        self.project_root = Path(project_root)
        self.ffmpeg_path: Optional[str] = None
        self.ffprobe_path: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return bool(self.ffmpeg_path and self.ffprobe_path)

    def init(self) -> None:
        if self.is_ready:
            return
        self.ffmpeg_path, self.ffprobe_path = resolve_ffmpeg_bins(self.project_root)
        log.info("ffmpeg engine ready: %s", self.ffmpeg_path)

    def dispose(self) -> None:
        self.ffmpeg_path = None
        self.ffprobe_path = None

    def _require_ready(self) -> Tuple[str, str]:
        if not self.ffmpeg_path or not self.ffprobe_path:
            raise ResourceError("ffmpeg is not initialized")
        return self.ffmpeg_path, self.ffprobe_path

    def probe(self, src: str) -> MediaInfo:
        _ffmpeg, ffprobe = self._require_ready()
        try:
            return probe_media(ffprobe, src)
        except (OSError, subprocess.CalledProcessError, ValueError) as ex:
            raise EngineError(f"ffprobe failed: {ex}") from ex

    def run(
        self,
        seq: OperationSequence,
        src: str,
        out_path: str,
        on_progress: Optional[Callable[[float], None]] = None,
        has_audio: bool = True,
    ) -> None:
        """
        Execute the sequence. Progress fractions in [0, 1] go to `on_progress`.

        Raises:
            ResourceError: engine not initialized
            EngineError: ffmpeg could not start or exited non-zero
        """
        ffmpeg, _ffprobe = self._require_ready()
        cmd = build_process_command(ffmpeg, src, out_path, seq, with_progress=True, has_audio=has_audio)
        total = max(0.001, float(seq.output_duration_sec))
        log.info("ffmpeg: %s", " ".join(cmd))

        def _emit(fraction: float) -> None:
            if on_progress is not None:
                on_progress(max(0.0, min(1.0, fraction)))

        tail: List[str] = []
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as ex:
            raise EngineError(f"cannot start ffmpeg: {ex}") from ex

        _emit(0.0)
        if proc.stderr is not None:
            for line in proc.stderr:
                tail = (tail + [line.rstrip()])[-20:]
                if line.strip() == "progress=end":
                    _emit(1.0)
                    continue
                sec = parse_ffmpeg_progress_seconds(line)
                if sec is not None:
                    _emit(sec / total)

        rc = proc.wait()
        if rc != 0:
            detail = "\n".join(x for x in tail if x and "=" not in x)[-500:]
            raise EngineError(f"ffmpeg exited with code {rc}: {detail}".strip(), returncode=rc)
        _emit(1.0)
