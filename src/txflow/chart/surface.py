"""Charting surface abstraction and a matplotlib-backed implementation.

The adapter and animator only talk to the protocols below. ``MatplotlibSurface`` keeps
series data and the visible range in memory and renders a static figure on demand, so
the whole chart can be driven headless (CLI exports and tests).
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Literal, Protocol, Sequence

import matplotlib.pyplot as plt
import pandas as pd

from txflow.chart.common import LINE_STYLES, save_figure
from txflow.models import SeriesPoint

SeriesKind = Literal["area", "line"]


@dataclass(frozen=True)
class LogicalRange:
    """Visible range in bar-index units."""

    start: float
    end: float

    @property
    def center(self) -> float:
        return (self.start + self.end) / 2.0

    @property
    def half_width(self) -> float:
        return (self.end - self.start) / 2.0


@dataclass(frozen=True)
class CrosshairEvent:
    time: int | None = None
    point: tuple[float, float] | None = None


CrosshairListener = Callable[[CrosshairEvent], None]


class SeriesHandle(Protocol):
    name: str

    def set_data(self, points: Sequence[SeriesPoint]) -> None: ...

    def apply_options(self, **options: Any) -> None: ...


class TimeScale(Protocol):
    def set_visible_range(self, start: int, end: int) -> None: ...

    def get_visible_logical_range(self) -> LogicalRange | None: ...

    def set_visible_logical_range(self, logical_range: LogicalRange) -> None: ...

    def fit_content(self) -> None: ...

    def reset_time_scale(self) -> None: ...


class ChartSurface(Protocol):
    def add_area_series(self, name: str, **options: Any) -> SeriesHandle: ...

    def add_line_series(self, name: str, **options: Any) -> SeriesHandle: ...

    def subscribe_crosshair_move(self, listener: CrosshairListener) -> None: ...

    def time_scale(self) -> TimeScale: ...

    def resize(self, width: int, height: int) -> None: ...

    def apply_options(self, **options: Any) -> None: ...

    def remove(self) -> None: ...


class MatplotlibSeries:
    def __init__(self, name: str, kind: SeriesKind, options: dict[str, Any]) -> None:
        self.name = name
        self.kind = kind
        self.options = dict(options)
        self.points: tuple[SeriesPoint, ...] = ()

    def set_data(self, points: Sequence[SeriesPoint]) -> None:
        ordered = sorted(points, key=lambda point: point.time)
        times = [point.time for point in ordered]
        if len(times) != len(set(times)):
            raise ValueError(f"{self.name}: series data must have unique times")
        self.points = tuple(ordered)

    def apply_options(self, **options: Any) -> None:
        self.options.update(options)


class MatplotlibTimeScale:
    def __init__(self, surface: "MatplotlibSurface") -> None:
        self._surface = surface
        self._logical: LogicalRange | None = None

    def _bar_times(self) -> list[int]:
        return self._surface.bar_times()

    def set_visible_range(self, start: int, end: int) -> None:
        times = self._bar_times()
        if not times:
            self._logical = None
            return
        first = bisect.bisect_left(times, start)
        last = bisect.bisect_right(times, end) - 1
        self._logical = LogicalRange(float(first), float(max(first, last)))

    def get_visible_logical_range(self) -> LogicalRange | None:
        return self._logical

    def set_visible_logical_range(self, logical_range: LogicalRange) -> None:
        if logical_range.end < logical_range.start:
            raise ValueError("logical range end must be >= start")
        self._logical = logical_range

    def fit_content(self) -> None:
        times = self._bar_times()
        self._logical = LogicalRange(0.0, float(len(times) - 1)) if times else None

    def reset_time_scale(self) -> None:
        self._logical = None

    def visible_times(self) -> tuple[float, float] | None:
        """Visible range converted back to epoch seconds (interpolated between bars)."""
        times = self._bar_times()
        if self._logical is None or not times:
            return None
        return _time_at(times, self._logical.start), _time_at(times, self._logical.end)


def _time_at(times: list[int], index: float) -> float:
    if len(times) == 1:
        return float(times[0])
    if index <= 0:
        step = times[1] - times[0]
        return times[0] + index * step
    last = len(times) - 1
    if index >= last:
        step = times[-1] - times[-2]
        return times[-1] + (index - last) * step
    lower = int(index)
    fraction = index - lower
    return times[lower] + fraction * (times[lower + 1] - times[lower])


class MatplotlibSurface:
    def __init__(self, width: int = 1200, height: int = 420, timezone_name: str = "UTC") -> None:
        self.width = width
        self.height = height
        self.timezone_name = timezone_name
        self.options: dict[str, Any] = {}
        self.series: dict[str, MatplotlibSeries] = {}
        self._time_scale = MatplotlibTimeScale(self)
        self._crosshair_listeners: list[CrosshairListener] = []
        self.removed = False

    def _add_series(self, name: str, kind: SeriesKind, options: dict[str, Any]) -> MatplotlibSeries:
        if self.removed:
            raise RuntimeError("chart surface has been removed")
        if name in self.series:
            raise ValueError(f"series already exists: {name}")
        handle = MatplotlibSeries(name, kind, options)
        self.series[name] = handle
        return handle

    def add_area_series(self, name: str, **options: Any) -> MatplotlibSeries:
        return self._add_series(name, "area", options)

    def add_line_series(self, name: str, **options: Any) -> MatplotlibSeries:
        return self._add_series(name, "line", options)

    def subscribe_crosshair_move(self, listener: CrosshairListener) -> None:
        self._crosshair_listeners.append(listener)

    def move_crosshair(self, time: int | None, point: tuple[float, float] | None = None) -> None:
        event = CrosshairEvent(time=time, point=point if time is not None else None)
        for listener in list(self._crosshair_listeners):
            listener(event)

    def leave(self) -> None:
        self.move_crosshair(None)

    def time_scale(self) -> MatplotlibTimeScale:
        return self._time_scale

    def resize(self, width: int, height: int) -> None:
        self.width = max(1, int(width))
        self.height = max(1, int(height))

    def apply_options(self, **options: Any) -> None:
        for key, value in options.items():
            if isinstance(value, dict) and isinstance(self.options.get(key), dict):
                self.options[key] = {**self.options[key], **value}
            else:
                self.options[key] = value

    def remove(self) -> None:
        self.series.clear()
        self._crosshair_listeners.clear()
        self.removed = True

    def bar_times(self) -> list[int]:
        return sorted({point.time for handle in self.series.values() for point in handle.points})

    def render(self, output_path: Path, title: str = "Transaction flow") -> Path:
        layout = self.options.get("layout", {})
        grid = self.options.get("grid", {})
        text_color = layout.get("text_color", "#475569")

        dpi = 100
        fig, ax = plt.subplots(figsize=(self.width / dpi, self.height / dpi), dpi=dpi)
        background = layout.get("background")
        if background:
            fig.patch.set_facecolor(background)
            ax.set_facecolor(background)

        plotted = False
        for handle in self.series.values():
            if not handle.points:
                continue
            x = pd.to_datetime([point.time for point in handle.points], unit="s", utc=True).tz_convert(
                self.timezone_name
            ).to_pydatetime()
            y = [point.value for point in handle.points]
            color = handle.options.get("color", "#64748b")
            ax.plot(
                x,
                y,
                color=color,
                linestyle=LINE_STYLES.get(handle.options.get("line_style", "solid"), "-"),
                linewidth=handle.options.get("line_width", 2),
                label=handle.options.get("title", handle.name),
            )
            if handle.kind == "area":
                ax.fill_between(x, y, 0, color=color, alpha=handle.options.get("fill_alpha", 0.2))
            plotted = True

        visible = self._time_scale.visible_times()
        if visible is not None and visible[1] > visible[0]:
            bounds = (
                pd.to_datetime(list(visible), unit="s", utc=True)
                .tz_convert(self.timezone_name)
                .to_pydatetime()
            )
            ax.set_xlim(bounds[0], bounds[1])
        ax.set_ylim(bottom=0)
        if grid.get("color"):
            ax.grid(True, color=grid["color"], alpha=grid.get("alpha", 1.0))
        ax.tick_params(colors=text_color)
        ax.set_title(title, color=text_color)
        ax.set_xlabel("Time", color=text_color)
        ax.set_ylabel("Amount", color=text_color)
        if plotted:
            ax.legend(loc="upper left", fontsize=8)
        return save_figure(output_path)
