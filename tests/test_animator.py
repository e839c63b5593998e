from __future__ import annotations

import asyncio
import math

import pytest

from txflow.chart.animator import LiveLoadingAnimator, loading_baseline
from txflow.chart.surface import MatplotlibSurface
from txflow.config import AnimationConfig

NOW = 1_704_448_800.0


class Clock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _animator(clock: Clock, config: AnimationConfig | None = None) -> tuple[MatplotlibSurface, LiveLoadingAnimator]:
    surface = MatplotlibSurface()
    series = surface.add_line_series("loading")
    animator = LiveLoadingAnimator(series, surface.time_scale, config=config, clock=clock)
    animator.set_baseline(*loading_baseline(1000.0))
    return surface, animator


def test_loading_baseline_defaults_and_amplitude() -> None:
    assert loading_baseline(None) == (1.0, 1.0)
    assert loading_baseline(0.2) == (1.0, 1.0)
    assert loading_baseline(1000.0) == (1000.0, 30.0)
    assert loading_baseline(float("nan")) == (1.0, 1.0)


def test_start_backfills_and_locks_visible_range() -> None:
    clock = Clock(NOW)
    surface, animator = _animator(clock)

    animator.start()

    points = surface.series["loading"].points
    assert len(points) == 30
    assert points[0].time == int(NOW) - 60
    assert points[1].time - points[0].time == 2
    assert all(point.value >= 0 for point in points)
    assert surface.time_scale().get_visible_logical_range() is not None
    animator.stop()


def test_updates_are_throttled_but_phase_advances_every_frame() -> None:
    clock = Clock(NOW)
    surface, animator = _animator(clock)
    animator.start()
    phase = animator.phase

    assert not animator.step(NOW + 0.016)
    assert animator.phase == pytest.approx(phase + 0.06)
    assert animator.step(NOW + 0.070)
    animator.stop()


def test_same_second_point_is_replaced_not_duplicated() -> None:
    clock = Clock(NOW)
    surface, animator = _animator(clock)
    animator.start()
    animator.step(NOW + 0.1)
    animator.step(NOW + 0.2)

    times = [point.time for point in surface.series["loading"].points]
    assert len(times) == len(set(times))
    assert times[-1] == int(NOW)
    animator.stop()


def test_points_outside_window_are_dropped() -> None:
    clock = Clock(NOW)
    surface, animator = _animator(clock)
    animator.start()

    for offset in range(1, 91):
        animator.step(NOW + offset)

    times = [point.time for point in surface.series["loading"].points]
    assert min(times) >= int(NOW) + 90 - 60
    assert max(times) == int(NOW) + 90
    animator.stop()


def test_values_follow_the_wave_and_never_go_negative() -> None:
    clock = Clock(NOW)
    surface, animator = _animator(clock)
    animator.set_baseline(1.0, 5.0)
    animator.start()

    values = [point.value for point in surface.series["loading"].points]
    assert min(values) == 0.0
    assert max(values) <= 6.0
    assert animator.wave_value(math.pi / 2) == 6.0
    animator.stop()


def test_stop_clears_series_and_resets_state() -> None:
    clock = Clock(NOW)
    surface, animator = _animator(clock)
    animator.start()

    animator.stop()

    assert surface.series["loading"].points == ()
    assert not animator.running
    assert animator.phase == 0.0
    assert not animator.step(NOW + 1)


@pytest.mark.asyncio
async def test_frame_loop_runs_as_task_until_stopped() -> None:
    clock = Clock(NOW)
    config = AnimationConfig(frame_interval_ms=1, update_interval_ms=1)
    surface, animator = _animator(clock, config)

    animator.start()
    for _ in range(5):
        clock.now += 1
        await asyncio.sleep(0.005)

    assert animator.phase > 0.06
    assert max(point.time for point in surface.series["loading"].points) > int(NOW)

    animator.stop()
    await asyncio.sleep(0.005)
    assert surface.series["loading"].points == ()
