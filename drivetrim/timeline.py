from __future__ import annotations

import math
import time
from enum import Enum
from typing import Callable, Optional

from .model import TrimRange
from .timecode import clamp, to_pct, to_sec

# Selection can never get shorter than 0.1% of the media or 0.1 s, whichever is longer.
MIN_SELECTION_FRACTION = 0.001
MIN_SELECTION_SEC = 0.1
FRAME_INTERVAL_SEC = 1.0 / 60.0
DEFAULT_FPS = 30.0
HANDLE_HIT_PX = 8.0

# capture(on_move, on_up) registers document-level pointer listeners and
# returns the callable that removes them again.
MoveListener = Callable[[float], None]
UpListener = Callable[[], None]
Capture = Callable[[MoveListener, UpListener], Callable[[], None]]


class Handle(str, Enum):
    START = "start"
    END = "end"
    PLAYHEAD = "playhead"


def min_selectable_sec(duration: float) -> float:
    return max(max(0.0, float(duration)) * MIN_SELECTION_FRACTION, MIN_SELECTION_SEC)


def _clean_duration(duration: float) -> float:
    try:
        d = float(duration)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(d) or d < 0.0:
        return 0.0
    return d


class TimelineController:
    """
    Start handle, end handle and playhead of the trim timeline.

    States are Idle (`drag_handle is None`) and Dragging(handle). Pointer x
    values are local to the track, in pixels. Start/end moves are coalesced
    to one update per `frame_interval_sec`; the last pending position is
    always applied on `flush()` / `pointer_up()`. Playhead drags are applied
    on every move.

    Invariants kept after every call:
        0 <= start_pct < end_pct <= 100 (for a non-zero duration)
        start_sec <= playhead_sec <= end_sec
    """

    def __init__(
        self,
        duration: float,
        track_width: float = 0.0,
        *,
        frame_interval_sec: float = FRAME_INTERVAL_SEC,
        clock: Callable[[], float] = time.monotonic,
        capture: Optional[Capture] = None,
        on_change: Optional[Callable[["TimelineController"], None]] = None,
    ) -> None:
        self.duration = _clean_duration(duration)
        self.track_width = max(0.0, float(track_width or 0.0))
        self.frame_interval_sec = max(0.0, float(frame_interval_sec))
        self.capture = capture
        self.on_change = on_change
        self._clock = clock

        self._start_pct = 0.0
        self._end_pct = 100.0
        self._playhead = 0.0

        self._drag: Optional[Handle] = None
        self._grab_offset = 0.0
        self._pending: Optional[float] = None
        self._last_apply = float("-inf")
        self._release: Optional[Callable[[], None]] = None
        self._disabled = False

    # ---------- read-only views ----------
    @property
    def min_selectable_sec(self) -> float:
        return min_selectable_sec(self.duration)

    @property
    def draggable(self) -> bool:
        return self.duration > self.min_selectable_sec

    @property
    def disabled(self) -> bool:
        return self._disabled

    @property
    def drag_handle(self) -> Optional[Handle]:
        return self._drag

    @property
    def is_dragging(self) -> bool:
        return self._drag is not None

    @property
    def start_pct(self) -> float:
        return self._start_pct

    @property
    def end_pct(self) -> float:
        return self._end_pct

    @property
    def start_sec(self) -> float:
        return to_sec(self._start_pct, self.duration) if self.duration > 0 else 0.0

    @property
    def end_sec(self) -> float:
        return to_sec(self._end_pct, self.duration) if self.duration > 0 else 0.0

    @property
    def selection_sec(self) -> float:
        return max(0.0, self.end_sec - self.start_sec)

    @property
    def playhead_sec(self) -> float:
        return self._playhead

    @property
    def playhead_pct(self) -> float:
        return to_pct(self._playhead, self.duration) if self.duration > 0 else 0.0

    def trim_range(self) -> TrimRange:
        return TrimRange(start_pct=self._start_pct, end_pct=self._end_pct)

    # ---------- geometry ----------
    def set_track_width(self, width: float) -> None:
        self.track_width = max(0.0, float(width or 0.0))

    def x_to_sec(self, x: float) -> float:
        """Track-local x -> seconds. x is clamped to the track first."""
        if self.track_width <= 0.0 or self.duration <= 0.0:
            return 0.0
        try:
            xf = float(x)
        except (TypeError, ValueError):
            return 0.0
        if not math.isfinite(xf):
            return 0.0
        xf = clamp(xf, 0.0, self.track_width)
        return xf / self.track_width * self.duration

    def sec_to_x(self, sec: float) -> float:
        if self.duration <= 0.0:
            return 0.0
        return clamp(float(sec), 0.0, self.duration) / self.duration * self.track_width

    def hit_test(self, x: float, tolerance_px: float = HANDLE_HIT_PX) -> Optional[Handle]:
        """Handle under x, if any. The playhead wins only when strictly closer."""
        if self.track_width <= 0.0 or self.duration <= 0.0:
            return None
        x = clamp(float(x), 0.0, self.track_width)
        start_x = self.sec_to_x(self.start_sec)
        end_x = self.sec_to_x(self.end_sec)
        d_start = abs(x - start_x)
        d_end = abs(x - end_x)
        if d_start < d_end or (d_start == d_end and x <= start_x):
            best, best_d = Handle.START, d_start
        else:
            best, best_d = Handle.END, d_end
        d_play = abs(x - self.sec_to_x(self._playhead))
        if d_play < best_d:
            best, best_d = Handle.PLAYHEAD, d_play
        return best if best_d <= tolerance_px else None

    # ---------- pointer input ----------
    def press(self, x: float, tolerance_px: float = HANDLE_HIT_PX) -> Optional[Handle]:
        """
        Pointer-down anywhere on the track.

        Starts a drag when a handle is under the pointer, otherwise seeks.
        Returns the grabbed handle (None for a seek or ignored input).
        """
        if self._disabled or self._drag is not None:
            return None
        handle = self.hit_test(x, tolerance_px)
        if handle is not None and self.pointer_down(handle, x):
            return handle
        if handle is None:
            self.click(x)
        return None

    def pointer_down(self, handle: Handle, x: float) -> bool:
        if self._disabled or self._drag is not None or not self.draggable:
            return False
        handle = Handle(handle)
        t = self.x_to_sec(x)
        if handle == Handle.START:
            self._grab_offset = t - self.start_sec
        elif handle == Handle.END:
            self._grab_offset = t - self.end_sec
        else:
            self._grab_offset = t - self._playhead
        self._drag = handle
        self._pending = None
        self._last_apply = float("-inf")
        if self.capture is not None:
            self._release = self.capture(self.pointer_move, self.pointer_up)
        return True

    def pointer_move(self, x: float) -> None:
        if self._drag is None or self._disabled:
            return
        candidate = self.x_to_sec(x) - self._grab_offset
        if self._drag == Handle.PLAYHEAD:
            self._seek(candidate)
            return
        self._pending = candidate
        if self._clock() - self._last_apply >= self.frame_interval_sec:
            self.flush()

    def flush(self) -> None:
        """Apply the latest coalesced start/end position, if any."""
        if self._pending is None or self._drag is None:
            self._pending = None
            return
        candidate = self._pending
        self._pending = None
        self._last_apply = self._clock()
        if self._drag == Handle.START:
            self._apply_start(candidate)
        elif self._drag == Handle.END:
            self._apply_end(candidate)

    def pointer_up(self) -> None:
        if self._drag is None:
            return
        self.flush()
        self._end_drag()

    def click(self, x: float) -> bool:
        if self._disabled or self._drag is not None or self.duration <= 0.0:
            return False
        self._seek(self.x_to_sec(x))
        return True

    def set_disabled(self, disabled: bool) -> None:
        if disabled and self._drag is not None:
            self.flush()
            self._end_drag()
        self._disabled = bool(disabled)

    # ---------- programmatic edits ----------
    def set_duration(self, duration: float) -> None:
        """New authoritative duration: the selection resets to the full media."""
        if self._drag is not None:
            self._end_drag()
        self.duration = _clean_duration(duration)
        self.reset()

    def reset(self) -> None:
        self._start_pct = 0.0
        self._end_pct = 100.0
        self._playhead = 0.0
        self._emit()

    def load_range(self, start_pct: float, end_pct: float) -> None:
        """Set start/end from percentages (sliders, restored options)."""
        if self.duration <= 0.0:
            return
        self._apply_end(to_sec(clamp(float(end_pct), 0.0, 100.0), self.duration))
        self._apply_start(to_sec(clamp(float(start_pct), 0.0, 100.0), self.duration))
        self._apply_end(to_sec(clamp(float(end_pct), 0.0, 100.0), self.duration))

    def set_playhead(self, sec: float) -> bool:
        """
        Sync the playhead to the player position.

        Ignored while the playhead itself is being dragged. Returns True when
        the position reached the end of the selection.
        """
        if self._drag == Handle.PLAYHEAD or self.duration <= 0.0:
            return False
        try:
            raw = float(sec)
        except (TypeError, ValueError):
            return False
        if not math.isfinite(raw):
            return False
        self._seek(raw)
        return raw >= self.end_sec

    def nudge_playhead(self, delta_sec: float) -> None:
        if self._disabled or self._drag is not None or self.duration <= 0.0:
            return
        self._seek(self._playhead + float(delta_sec))

    def step_playhead(self, frames: int, fps: float = DEFAULT_FPS) -> None:
        rate = float(fps) if fps and fps > 0 else DEFAULT_FPS
        self.nudge_playhead(int(frames) / rate)

    def set_start_at_playhead(self) -> bool:
        if self._disabled or self._drag is not None or not self.draggable:
            return False
        self._apply_start(self._playhead)
        return True

    def set_end_at_playhead(self) -> bool:
        if self._disabled or self._drag is not None or not self.draggable:
            return False
        self._apply_end(self._playhead)
        return True

    # ---------- internals ----------
    def _end_drag(self) -> None:
        self._drag = None
        self._grab_offset = 0.0
        self._pending = None
        release, self._release = self._release, None
        if release is not None:
            release()

    def _apply_start(self, t: float) -> None:
        hi = max(0.0, self.end_sec - self.min_selectable_sec)
        t = clamp(t, 0.0, hi)
        self._start_pct = to_pct(t, self.duration)
        if self._playhead < self.start_sec:
            self._playhead = self.start_sec
        self._emit()

    def _apply_end(self, t: float) -> None:
        lo = min(self.duration, self.start_sec + self.min_selectable_sec)
        t = clamp(t, lo, self.duration)
        self._end_pct = to_pct(t, self.duration)
        if self._playhead > self.end_sec:
            self._playhead = self.end_sec
        self._emit()

    def _seek(self, t: float) -> None:
        self._playhead = clamp(t, self.start_sec, self.end_sec)
        self._emit()

    def _emit(self) -> None:
        if self.on_change is not None:
            self.on_change(self)
