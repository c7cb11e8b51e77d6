from __future__ import annotations

import math
from typing import Any, Mapping, Union

from .errors import ValidationError
from .model import (
    DEFAULT_SPEED,
    DEFAULT_VOLUME_PCT,
    MAX_FADE_SEC,
    MAX_SPEED,
    MAX_VOLUME_PCT,
    MIN_FADE_SEC,
    MIN_SPEED,
    MIN_VOLUME_PCT,
    QUALITY_PRESETS,
    EditOptions,
    Quality,
    QualityPreset,
    TrimRange,
)
from .timecode import clamp


def _cfg(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw and raw[key] not in (None, ""):
            return raw[key]
    return default


def _clamp_number(value: Any, minimum: float, maximum: float, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return clamp(number, minimum, maximum)


def normalize_quality(value: Any) -> Quality:
    if isinstance(value, Quality):
        return value
    key = str(value or "").strip().lower()
    for q in Quality:
        if q.value == key:
            return q
    return Quality.MEDIUM


def quality_preset(quality: Any) -> QualityPreset:
    return QUALITY_PRESETS[normalize_quality(quality)]


def normalize_edit_options(raw: Union[EditOptions, Mapping[str, Any]]) -> EditOptions:
    """
    Clamp raw UI values into a canonical EditOptions.

    Out-of-range or garbage numbers are clamped (or fall back to the field
    default) silently. Accepts both snake_case and the camelCase keys used by
    the web client (`startTime`/`endTime` are percentages there too).

    Raises:
        ValidationError: start >= end after clamping (no selection left).
    """
    if isinstance(raw, EditOptions):
        raw = {
            "start_pct": raw.trim.start_pct,
            "end_pct": raw.trim.end_pct,
            "volume_pct": raw.volume_pct,
            "fade_in_sec": raw.fade_in_sec,
            "fade_out_sec": raw.fade_out_sec,
            "speed": raw.speed,
            "quality": raw.quality,
        }

    trim_raw = raw.get("trim")
    if isinstance(trim_raw, TrimRange):
        start_raw: Any = trim_raw.start_pct
        end_raw: Any = trim_raw.end_pct
    elif isinstance(trim_raw, Mapping):
        start_raw = _cfg(trim_raw, "start_pct", "startPct", default=0.0)
        end_raw = _cfg(trim_raw, "end_pct", "endPct", default=100.0)
    else:
        start_raw = _cfg(raw, "start_pct", "startPct", "startTime", default=0.0)
        end_raw = _cfg(raw, "end_pct", "endPct", "endTime", default=100.0)

    start_pct = _clamp_number(start_raw, 0.0, 100.0, 0.0)
    end_pct = _clamp_number(end_raw, 0.0, 100.0, 100.0)
    if start_pct >= end_pct:
        raise ValidationError(f"start {start_pct:g}% is not before end {end_pct:g}%")

    return EditOptions(
        trim=TrimRange(start_pct=start_pct, end_pct=end_pct),
        volume_pct=_clamp_number(
            _cfg(raw, "volume_pct", "volume", default=DEFAULT_VOLUME_PCT),
            MIN_VOLUME_PCT,
            MAX_VOLUME_PCT,
            DEFAULT_VOLUME_PCT,
        ),
        fade_in_sec=_clamp_number(
            _cfg(raw, "fade_in_sec", "fadeIn", default=0.0), MIN_FADE_SEC, MAX_FADE_SEC, 0.0
        ),
        fade_out_sec=_clamp_number(
            _cfg(raw, "fade_out_sec", "fadeOut", default=0.0), MIN_FADE_SEC, MAX_FADE_SEC, 0.0
        ),
        speed=_clamp_number(_cfg(raw, "speed", default=DEFAULT_SPEED), MIN_SPEED, MAX_SPEED, DEFAULT_SPEED),
        quality=normalize_quality(_cfg(raw, "quality", default=Quality.MEDIUM)),
    )
