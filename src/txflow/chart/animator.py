"""Live loading animation: a gently moving series shown while flow data is fetched."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Callable

from txflow.chart.surface import SeriesHandle, TimeScale
from txflow.config import AnimationConfig
from txflow.models import SeriesPoint

LOGGER = logging.getLogger(__name__)

BACKFILL_SPACING_SECONDS = 2
BACKFILL_PHASE_STEP = 0.12
RANGE_LEAD_SECONDS = 2


def loading_baseline(last_value: float | None, amplitude_ratio: float = 0.03) -> tuple[float, float]:
    """Baseline and wave amplitude anchored on the latest real value."""
    if last_value is None or not math.isfinite(last_value):
        last_value = 1.0
    baseline = max(1.0, float(last_value))
    return baseline, max(1.0, baseline * amplitude_ratio)


class LiveLoadingAnimator:
    """Frame loop that feeds the loading series while ``running``.

    ``step`` does one frame of work and can be driven directly with an explicit clock;
    ``start`` runs it from an asyncio task at the configured frame interval.
    """

    def __init__(
        self,
        series: SeriesHandle,
        time_scale: Callable[[], TimeScale | None],
        config: AnimationConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.series = series
        self._time_scale = time_scale
        self.config = config or AnimationConfig()
        self._clock = clock
        self.baseline = 1.0
        self.amplitude = 1.0
        self._task: asyncio.Task[None] | None = None
        self._reset()

    def _reset(self) -> None:
        self.running = False
        self.phase = 0.0
        self.points: list[SeriesPoint] = []
        self._last_update_ms: float | None = None

    def set_baseline(self, baseline: float, amplitude: float) -> None:
        self.baseline = baseline
        self.amplitude = amplitude

    def wave_value(self, phase: float) -> float:
        return max(0.0, self.baseline + math.sin(phase) * self.amplitude)

    def start(self) -> None:
        if self.running:
            return
        self._reset()
        self.running = True
        now = self._clock()
        self.step(now)
        time_scale = self._time_scale()
        if time_scale is not None:
            now_seconds = int(now)
            time_scale.set_visible_range(
                now_seconds - self.config.window_seconds, now_seconds + RANGE_LEAD_SECONDS
            )

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.debug("No running event loop; loading animation is driven manually")
            return
        self._task = loop.create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        was_running = self.running
        self._reset()
        self.series.set_data([])
        if was_running:
            LOGGER.debug("Loading animation stopped")

    async def _run(self) -> None:
        interval = self.config.frame_interval_ms / 1000.0
        while self.running:
            await asyncio.sleep(interval)
            if not self.running:
                break
            self.step(self._clock())

    def step(self, now: float) -> bool:
        """Advance one frame; returns True when the series was updated."""
        if not self.running:
            return False
        self.phase += self.config.phase_step
        now_ms = now * 1000.0
        if (
            self._last_update_ms is not None
            and now_ms - self._last_update_ms < self.config.update_interval_ms
        ):
            return False
        self._last_update_ms = now_ms
        self.points = self._next_points(int(now))
        self.series.set_data(self.points)
        return True

    def _next_points(self, now_seconds: int) -> list[SeriesPoint]:
        window_start = now_seconds - self.config.window_seconds
        value = SeriesPoint(time=now_seconds, value=self.wave_value(self.phase))
        points = [point for point in self.points if point.time >= window_start]
        if points and points[-1].time == now_seconds:
            points[-1] = value
        else:
            points.append(value)

        if len(points) < self.config.min_points:
            count = self.config.backfill_points
            points = [
                SeriesPoint(
                    time=window_start + index * BACKFILL_SPACING_SECONDS,
                    value=self.wave_value(self.phase - (count - index) * BACKFILL_PHASE_STEP),
                )
                for index in range(count)
            ]
        return points
