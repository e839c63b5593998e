from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
from jinja2 import Environment, FileSystemLoader, select_autoescape

from txflow.features.buckets import (
    LEGACY_FAILED,
    LEGACY_SUCCESS,
    PAYMENTS_FAILED,
    PAYMENTS_SUCCESS,
    TRANSFERS_FAILED,
    TRANSFERS_SUCCESS,
    TooltipData,
)
from txflow.models import FlowType, NormalizedRecord

SUM_LABELS: dict[str, tuple[str, str]] = {
    PAYMENTS_SUCCESS: ("Buy (Success)", "#16a34a"),
    PAYMENTS_FAILED: ("Buy (Failed)", "#ef4444"),
    TRANSFERS_SUCCESS: ("Sell (Success)", "#2563eb"),
    TRANSFERS_FAILED: ("Sell (Failed)", "#f97316"),
    LEGACY_SUCCESS: ("Success", "#22c55e"),
    LEGACY_FAILED: ("Failed", "#ef4444"),
}

TYPE_LABELS: dict[FlowType, tuple[str, str]] = {
    FlowType.PAYMENT: ("Buy", "#16a34a"),
    FlowType.TRANSFER: ("Sell", "#2563eb"),
}

PALETTES = {
    "light": {"text": "#0f172a", "muted": "#64748b"},
    "dark": {"text": "#e2e8f0", "muted": "#94a3b8"},
}


def format_money(value: Any) -> str:
    try:
        return f"{float(value):,.2f}"
    except (TypeError, ValueError):
        return str(value)


def format_bucket_time(time: int, timezone_name: str) -> str:
    stamp = pd.Timestamp(time, unit="s", tz="UTC").tz_convert(timezone_name)
    return stamp.strftime("%d/%m/%Y %H:%M")


def type_label(record: NormalizedRecord) -> tuple[str, str]:
    return TYPE_LABELS.get(record.flow_type, ("", ""))


@dataclass(frozen=True)
class TooltipState:
    visible: bool
    width: int = 0
    html: str = ""
    data: TooltipData | None = None


HIDDEN = TooltipState(visible=False)


def _template_env() -> Environment:
    templates_path = Path(__file__).resolve().parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(templates_path)),
        autoescape=select_autoescape(enabled_extensions=("html", "xml", "j2")),
        trim_blocks=True,
        lstrip_blocks=True,
    )


class TooltipView:
    """Renders the crosshair tooltip for one minute bucket as an HTML fragment."""

    def __init__(
        self,
        timezone_name: str = "UTC",
        width: int = 400,
        fullscreen_width: int = 600,
    ) -> None:
        self.timezone_name = timezone_name
        self.width = width
        self.fullscreen_width = fullscreen_width
        self._template = _template_env().get_template("tooltip.html.j2")

    def width_for(self, is_fullscreen: bool) -> int:
        return self.fullscreen_width if is_fullscreen else self.width

    def context(self, data: TooltipData, theme: str = "light", is_fullscreen: bool = False) -> dict[str, Any]:
        palette = PALETTES.get(theme, PALETTES["light"])
        rows = []
        for record in data.records:
            label, color = type_label(record)
            rows.append(
                {
                    "type_label": label,
                    "type_color": color or palette["muted"],
                    "ref": record.identifiers.display_ref,
                    "member": record.member.name if record.member else "",
                    "amount": format_money(record.chart_amount),
                }
            )
        totals = [
            {
                "label": SUM_LABELS[name][0],
                "color": SUM_LABELS[name][1],
                "amount": format_money(value),
            }
            for name, value in data.sums.items()
        ]
        return {
            "theme": theme,
            "palette": palette,
            "width": self.width_for(is_fullscreen),
            "time_label": format_bucket_time(data.time, self.timezone_name),
            "totals": totals,
            "rows": rows,
            "show_member": is_fullscreen,
        }

    def render(
        self,
        data: TooltipData | None,
        theme: str = "light",
        is_fullscreen: bool = False,
    ) -> TooltipState:
        if data is None:
            return HIDDEN
        html = self._template.render(**self.context(data, theme=theme, is_fullscreen=is_fullscreen))
        return TooltipState(
            visible=True,
            width=self.width_for(is_fullscreen),
            html=html,
            data=data,
        )
