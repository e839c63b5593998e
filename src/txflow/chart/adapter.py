from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

from txflow.chart.animator import LiveLoadingAnimator, loading_baseline
from txflow.chart.surface import ChartSurface, CrosshairEvent, LogicalRange, SeriesHandle
from txflow.chart.tooltip import HIDDEN, TooltipState, TooltipView
from txflow.config import AnimationConfig
from txflow.features.buckets import (
    LEGACY_FAILED,
    LEGACY_SUCCESS,
    PAYMENTS_FAILED,
    PAYMENTS_SUCCESS,
    SERIES_NAMES,
    TRANSFERS_FAILED,
    TRANSFERS_SUCCESS,
    FlowAggregation,
    aggregate_flow,
    resolve_tooltip,
)
from txflow.models import NormalizedRecord, Outcome
from txflow.preprocess.status import classify_outcome, is_pending, is_success

LOGGER = logging.getLogger(__name__)

LOADING_SERIES = "loading"

MIN_ZOOM_HALF_WIDTH = 5.0
ZOOM_IN_FACTOR = 0.8
ZOOM_OUT_FACTOR = 1.25

# Payments solid, transfers dotted, failures dashed.
SERIES_STYLES: dict[str, tuple[str, dict[str, Any]]] = {
    PAYMENTS_SUCCESS: (
        "area",
        {"color": "#16a34a", "fill_alpha": 0.28, "line_width": 3, "line_style": "solid", "title": "Buy (Success)"},
    ),
    PAYMENTS_FAILED: (
        "line",
        {"color": "#ef4444", "line_width": 3, "line_style": "dashed", "title": "Buy (Failed)"},
    ),
    TRANSFERS_SUCCESS: (
        "area",
        {"color": "#2563eb", "fill_alpha": 0.22, "line_width": 3, "line_style": "dotted", "title": "Sell (Success)"},
    ),
    TRANSFERS_FAILED: (
        "line",
        {"color": "#f97316", "line_width": 3, "line_style": "dashed", "title": "Sell (Failed)"},
    ),
    LOADING_SERIES: (
        "line",
        {"color": "#64748b", "line_width": 2, "line_style": "dotted", "title": "Loading"},
    ),
    LEGACY_SUCCESS: (
        "area",
        {"color": "#22c55e", "fill_alpha": 0.25, "line_width": 2, "line_style": "solid", "title": "Success"},
    ),
    LEGACY_FAILED: (
        "area",
        {"color": "#ef4444", "fill_alpha": 0.20, "line_width": 2, "line_style": "solid", "title": "Failed"},
    ),
}

THEMES: dict[str, dict[str, Any]] = {
    "light": {
        "layout": {"background": "#ffffff", "text_color": "#475569"},
        "grid": {"color": "#94a3b8", "alpha": 0.18},
        "crosshair": {"color": "#64748b", "alpha": 0.35},
        "loading_color": "#64748b",
    },
    "dark": {
        "layout": {"background": "#0f172a", "text_color": "#cbd5e1"},
        "grid": {"color": "#94a3b8", "alpha": 0.08},
        "crosshair": {"color": "#94a3b8", "alpha": 0.35},
        "loading_color": "#94a3b8",
    },
}


def _status_of(record: NormalizedRecord) -> str:
    return record.status


class ChartRenderingAdapter:
    """Binds the flow dataset to a charting surface.

    Owns the six data series plus the loading series, the crosshair tooltip and the
    loading animation. Zoom controls are no-ops until a surface with a visible range exists.
    """

    def __init__(
        self,
        surface: ChartSurface | None = None,
        *,
        theme: str = "light",
        is_fullscreen: bool = False,
        tooltip_view: TooltipView | None = None,
        tooltip_top_n: int = 5,
        animation: AnimationConfig | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if theme not in THEMES:
            raise ValueError(f"Unknown theme: {theme}")
        self.theme = theme
        self.is_fullscreen = is_fullscreen
        self.tooltip_view = tooltip_view or TooltipView()
        self.tooltip_top_n = tooltip_top_n
        self.animation = animation or AnimationConfig()
        self._clock = clock
        self.status_of: Callable[[NormalizedRecord], str] = _status_of
        self.is_success: Callable[[str | None], bool] = is_success
        self.is_pending: Callable[[str | None], bool] = is_pending

        self.surface: ChartSurface | None = None
        self.series: dict[str, SeriesHandle] = {}
        self.animator: LiveLoadingAnimator | None = None
        self.rows: tuple[NormalizedRecord, ...] = ()
        self.aggregation = FlowAggregation(combined=False)
        self.tooltip: TooltipState = HIDDEN
        self.is_loading = False
        self.baseline, self.amplitude = loading_baseline(None, self.animation.amplitude_ratio)
        self._fitted = False
        if surface is not None:
            self.attach(surface)

    def attach(self, surface: ChartSurface) -> None:
        if self.surface is not None:
            self.detach()
        self.surface = surface
        for name in (*SERIES_NAMES[:4], LOADING_SERIES, *SERIES_NAMES[4:]):
            kind, options = SERIES_STYLES[name]
            add = surface.add_area_series if kind == "area" else surface.add_line_series
            self.series[name] = add(name, **options)
        surface.subscribe_crosshair_move(self.handle_crosshair)

        animator_kwargs = {"clock": self._clock} if self._clock is not None else {}
        self.animator = LiveLoadingAnimator(
            self.series[LOADING_SERIES],
            self._time_scale,
            config=self.animation,
            **animator_kwargs,
        )
        self.animator.set_baseline(self.baseline, self.amplitude)
        self._fitted = False
        self.set_theme(self.theme)
        if self.rows:
            self.update(self.rows)
        if self.is_loading:
            self.animator.start()

    def detach(self) -> None:
        if self.animator is not None:
            self.animator.stop()
            self.animator = None
        if self.surface is not None:
            self.surface.remove()
        self.surface = None
        self.series = {}
        self.tooltip = HIDDEN

    def _time_scale(self):
        return self.surface.time_scale() if self.surface is not None else None

    def _zoom(self, factor: float, min_half_width: float = 0.0) -> None:
        time_scale = self._time_scale()
        if time_scale is None:
            return
        current = time_scale.get_visible_logical_range()
        if current is None:
            return
        half = max(min_half_width, current.half_width * factor)
        time_scale.set_visible_logical_range(
            LogicalRange(start=current.center - half, end=current.center + half)
        )

    def zoom_in(self) -> None:
        self._zoom(ZOOM_IN_FACTOR, min_half_width=MIN_ZOOM_HALF_WIDTH)

    def zoom_out(self) -> None:
        self._zoom(ZOOM_OUT_FACTOR)

    def reset(self) -> None:
        time_scale = self._time_scale()
        if time_scale is None:
            return
        time_scale.reset_time_scale()
        time_scale.fit_content()

    def outcome_of(self, record: NormalizedRecord) -> Outcome:
        return classify_outcome(self.status_of(record), self.is_success, self.is_pending)

    def update(self, records: Sequence[NormalizedRecord]) -> FlowAggregation:
        self.rows = tuple(records)
        self.aggregation = aggregate_flow(self.rows, self.outcome_of)
        for name in SERIES_NAMES:
            handle = self.series.get(name)
            if handle is not None:
                handle.set_data(self.aggregation.series.get(name, ()))

        time_scale = self._time_scale()
        if time_scale is not None and not self._fitted and not self.aggregation.is_empty:
            time_scale.fit_content()
            self._fitted = True

        last = next(
            (
                value
                for value in (
                    self.aggregation.last_value(PAYMENTS_SUCCESS),
                    self.aggregation.last_value(TRANSFERS_SUCCESS),
                    self.aggregation.last_value(LEGACY_SUCCESS),
                )
                if value is not None
            ),
            None,
        )
        self.baseline, self.amplitude = loading_baseline(last, self.animation.amplitude_ratio)
        if self.animator is not None:
            self.animator.set_baseline(self.baseline, self.amplitude)
        LOGGER.debug(
            "Chart updated: %d rows, %d buckets, combined=%s",
            len(self.rows),
            len(self.aggregation.buckets),
            self.aggregation.combined,
        )
        return self.aggregation

    def handle_crosshair(self, event: CrosshairEvent) -> TooltipState:
        if event.time is None or event.point is None:
            self.tooltip = HIDDEN
            return self.tooltip
        data = resolve_tooltip(self.aggregation, event.time, top_n=self.tooltip_top_n)
        self.tooltip = self.tooltip_view.render(
            data, theme=self.theme, is_fullscreen=self.is_fullscreen
        )
        return self.tooltip

    def set_loading(self, is_loading: bool) -> None:
        if is_loading == self.is_loading:
            return
        self.is_loading = is_loading
        if self.animator is None:
            return
        if is_loading:
            self.animator.start()
        else:
            self.animator.stop()

    def set_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValueError(f"Unknown theme: {theme}")
        self.theme = theme
        if self.surface is None:
            return
        palette = THEMES[theme]
        self.surface.apply_options(
            layout=palette["layout"], grid=palette["grid"], crosshair=palette["crosshair"]
        )
        loading = self.series.get(LOADING_SERIES)
        if loading is not None:
            loading.apply_options(color=palette["loading_color"])

    def set_fullscreen(self, is_fullscreen: bool) -> None:
        self.is_fullscreen = is_fullscreen

    @property
    def tooltip_width(self) -> int:
        return self.tooltip_view.width_for(self.is_fullscreen)

    def resize(self, width: int, height: int) -> None:
        if self.surface is not None:
            self.surface.resize(width, height)
