from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from .timecode import to_sec

MIN_VOLUME_PCT = 0.0
MAX_VOLUME_PCT = 200.0
DEFAULT_VOLUME_PCT = 100.0
MIN_FADE_SEC = 0.0
MAX_FADE_SEC = 10.0
MIN_SPEED = 0.5
MAX_SPEED = 2.0
DEFAULT_SPEED = 1.0


@dataclass(frozen=True)
class MediaInfo:
    duration: float
    has_video: bool
    has_audio: bool
    width: int = 0
    height: int = 0
    fps: float = 0.0
    video_codec: str = ""
    audio_codec: str = ""
    bitrate: int = 0
    file_size_bytes: int = 0


@dataclass(frozen=True)
class RemoteFile:
    """File metadata as reported by the remote file service."""

    id: str
    name: str
    size: int = 0
    mime_type: str = ""
    duration_ms: Optional[int] = None

    @property
    def duration_sec(self) -> Optional[float]:
        if self.duration_ms is None or self.duration_ms <= 0:
            return None
        return self.duration_ms / 1000.0

    @property
    def stem(self) -> str:
        return Path(self.name).stem or self.id

    @staticmethod
    def from_api(d: Dict[str, Any]) -> "RemoteFile":
        meta = d.get("videoMediaMetadata") or {}
        raw_ms = meta.get("durationMillis") if isinstance(meta, dict) else None
        try:
            duration_ms: Optional[int] = int(raw_ms) if raw_ms not in (None, "") else None
        except (TypeError, ValueError):
            duration_ms = None
        try:
            size = int(d.get("size") or 0)
        except (TypeError, ValueError):
            size = 0
        return RemoteFile(
            id=str(d.get("id") or ""),
            name=str(d.get("name") or ""),
            size=size,
            mime_type=str(d.get("mimeType") or ""),
            duration_ms=duration_ms,
        )


class Quality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class QualityPreset:
    """
    x264 settings for a quality level.

    crf is an inverse scale: lower means better picture and a larger file.
    """

    crf: int
    preset: str


QUALITY_PRESETS: Dict[Quality, QualityPreset] = {
    Quality.LOW: QualityPreset(crf=28, preset="fast"),
    Quality.MEDIUM: QualityPreset(crf=23, preset="medium"),
    Quality.HIGH: QualityPreset(crf=18, preset="slow"),
}


@dataclass(frozen=True)
class TrimRange:
    start_pct: float = 0.0
    end_pct: float = 100.0

    def start_sec(self, duration: float) -> float:
        return to_sec(self.start_pct, duration)

    def end_sec(self, duration: float) -> float:
        return to_sec(self.end_pct, duration)

    def duration_sec(self, duration: float) -> float:
        return max(0.0, self.end_sec(duration) - self.start_sec(duration))


@dataclass(frozen=True)
class EditOptions:
    """
    Canonical, clamped edit parameters for one processing run.

    Build these through `options.normalize_edit_options`; the constructor
    itself does not validate.
    """

    trim: TrimRange = field(default_factory=TrimRange)
    volume_pct: float = DEFAULT_VOLUME_PCT
    fade_in_sec: float = 0.0
    fade_out_sec: float = 0.0
    speed: float = DEFAULT_SPEED
    quality: Quality = Quality.MEDIUM

    @staticmethod
    def default() -> "EditOptions":
        return EditOptions()

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["quality"] = self.quality.value
        return d


@dataclass(frozen=True)
class ProcessingState:
    is_processing: bool = False
    progress_pct: float = 0.0
    stage: str = ""

    @staticmethod
    def idle() -> "ProcessingState":
        return ProcessingState()
