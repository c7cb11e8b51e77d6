from __future__ import annotations

import math


def _finite(v: float) -> bool:
    try:
        return math.isfinite(float(v))
    except (TypeError, ValueError):
        return False


def _usable_duration(duration: float) -> bool:
    return _finite(duration) and float(duration) > 0.0


def clamp(value: float, lo: float, hi: float) -> float:
    if hi < lo:
        return lo
    return max(lo, min(hi, value))


def to_pct(sec: float, duration: float) -> float:
    """Absolute seconds -> position on a 0..100 scale.

    With no usable duration the input is returned unchanged (0.0 if the input
    itself is not finite), so callers never see NaN/Infinity.
    """
    if not _finite(sec):
        return 0.0
    if not _usable_duration(duration):
        return float(sec)
    return float(sec) / float(duration) * 100.0


def to_sec(pct: float, duration: float) -> float:
    """0..100 position -> absolute seconds. Same guards as `to_pct`."""
    if not _finite(pct):
        return 0.0
    if not _usable_duration(duration):
        return float(pct)
    return float(pct) / 100.0 * float(duration)


def _split(sec: float) -> tuple[int, int, float]:
    if not _finite(sec):
        sec = 0.0
    sec = max(0.0, float(sec))
    m = int(sec // 60)
    s = int(sec % 60)
    return m, s, sec


def format_time(sec: float) -> str:
    """`m:ss` label used for durations and slider read-outs."""
    m, s, _ = _split(sec)
    return f"{m}:{s:02d}"


def format_time_precise(sec: float) -> str:
    """`m:ss.cc` label used on the timeline."""
    m, s, raw = _split(sec)
    cs = int(round((raw % 1) * 100, 6))
    if cs >= 100:
        cs = 99
    return f"{m}:{s:02d}.{cs:02d}"


def format_bytes(n: int) -> str:
    try:
        n = int(n)
    except (TypeError, ValueError):
        return "-"
    if n <= 0:
        return "-"
    units = ["B", "KB", "MB", "GB", "TB"]
    v = float(n)
    u = 0
    while v >= 1024.0 and u < len(units) - 1:
        v /= 1024.0
        u += 1
    return f"{v:.1f} {units[u]}"


def format_bitrate(bps: int) -> str:
    try:
        bps = int(bps)
    except (TypeError, ValueError):
        return "-"
    if bps <= 0:
        return "-"
    if bps >= 1_000_000:
        return f"{bps / 1_000_000:.2f} Mbps"
    return f"{bps / 1000:.0f} Kbps"
