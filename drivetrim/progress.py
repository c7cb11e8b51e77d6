from __future__ import annotations

import asyncio
import math
import random
from enum import Enum
from typing import Callable, Optional

from .model import ProcessingState

STAGE_INITIALIZING = "Initializing..."
STAGE_COMPLETE = "Complete!"


class Phase(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ProgressTracker:
    """
    Forward-only progress for one processing run.

    While running, the shown value is the max of the engine's last report, a
    random fallback that creeps up on every tick (capped below 90%), stage
    milestones, and the previously shown value.
    """

    def __init__(
        self,
        tick_increment_max: float = 3.0,
        fallback_cap: float = 89.0,
        rng: Optional[random.Random] = None,
        on_change: Optional[Callable[[ProcessingState], None]] = None,
    ) -> None:
        self.tick_increment_max = max(0.0, float(tick_increment_max))
        self.fallback_cap = min(89.9, max(0.0, float(fallback_cap)))
        self.rng = rng or random.Random()
        self.on_change = on_change
        self.phase = Phase.NOT_STARTED
        self._state = ProcessingState.idle()
        self._engine = 0.0
        self._fallback = 0.0
        self._milestone = 0.0

    @property
    def state(self) -> ProcessingState:
        return self._state

    @property
    def progress_pct(self) -> float:
        return self._state.progress_pct

    @property
    def running(self) -> bool:
        return self.phase == Phase.RUNNING

    def start(self, stage: str = STAGE_INITIALIZING) -> None:
        self.phase = Phase.RUNNING
        self._engine = 0.0
        self._fallback = 0.0
        self._milestone = 0.0
        self._set(ProcessingState(is_processing=True, progress_pct=0.0, stage=stage))

    def report(self, fraction: float) -> None:
        """Engine-reported completion in [0, 1]. Lower values never pull progress back."""
        if not self.running:
            return
        try:
            f = float(fraction)
        except (TypeError, ValueError):
            return
        if math.isnan(f):
            return
        self._engine = max(0.0, min(100.0, f * 100.0))
        self._refresh()

    def tick(self) -> None:
        if not self.running:
            return
        step = self.rng.uniform(0.0, self.tick_increment_max)
        self._fallback = min(self.fallback_cap, self._fallback + step)
        self._refresh()

    def advance(self, pct: float, stage: Optional[str] = None) -> None:
        if not self.running:
            return
        self._milestone = max(self._milestone, max(0.0, min(100.0, float(pct))))
        self._refresh(stage)

    def complete(self, stage: str = STAGE_COMPLETE) -> None:
        if not self.running:
            return
        self.phase = Phase.COMPLETED
        self._set(ProcessingState(is_processing=False, progress_pct=100.0, stage=stage))

    def fail(self, stage: str = "Error occurred") -> None:
        if self.phase in (Phase.COMPLETED, Phase.FAILED):
            return
        self.phase = Phase.FAILED
        self._set(ProcessingState(is_processing=False, progress_pct=0.0, stage=stage))

    async def run_fallback(self, interval_sec: float = 0.5) -> None:
        """Tick until the run leaves RUNNING. Meant to run as an asyncio task."""
        interval = max(0.01, float(interval_sec))
        while self.running:
            await asyncio.sleep(interval)
            self.tick()

    def _refresh(self, stage: Optional[str] = None) -> None:
        pct = max(self._state.progress_pct, self._engine, self._fallback, self._milestone)
        self._set(
            ProcessingState(
                is_processing=True,
                progress_pct=min(100.0, pct),
                stage=stage if stage is not None else self._state.stage,
            )
        )

    def _set(self, state: ProcessingState) -> None:
        self._state = state
        if self.on_change is not None:
            self.on_change(state)
