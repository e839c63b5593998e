from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator


class ApiConfig(BaseModel):
    base_url: str = "http://localhost:3000/api"
    token: str | None = None
    timeout: float = Field(default=30.0, gt=0.0)


class TimeConfig(BaseModel):
    timezone: str = "Asia/Bangkok"


class FlowConfig(BaseModel):
    page_limit: int = Field(default=200, ge=1)
    max_pages: int = Field(default=50, ge=1)
    default_preset: Literal["today", "last7d", "last30d", "custom"] = "today"


class TableConfig(BaseModel):
    page_limit: int = Field(default=10, ge=1)
    preload_limit: int = Field(default=5000, ge=1)


class AnimationConfig(BaseModel):
    frame_interval_ms: float = Field(default=16.0, gt=0.0)
    update_interval_ms: float = Field(default=66.0, gt=0.0)
    phase_step: float = Field(default=0.06, gt=0.0)
    window_seconds: int = Field(default=60, ge=2)
    backfill_points: int = Field(default=30, ge=2)
    min_points: int = Field(default=25, ge=1)
    amplitude_ratio: float = Field(default=0.03, gt=0.0, lt=1.0)

    @model_validator(mode="after")
    def _check_update_interval(self) -> "AnimationConfig":
        if self.update_interval_ms < self.frame_interval_ms:
            raise ValueError("update_interval_ms must be >= frame_interval_ms")
        return self


class TooltipConfig(BaseModel):
    top_n: int = Field(default=5, ge=1)
    width: int = Field(default=400, ge=100)
    fullscreen_width: int = Field(default=600, ge=100)


class OutputsConfig(BaseModel):
    tables_format: Literal["parquet", "csv"] = "parquet"
    figures_format: str = "png"


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    quiet_loggers: list[str] = Field(default_factory=lambda: ["httpx", "httpcore", "matplotlib"])


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    api: ApiConfig = Field(default_factory=ApiConfig)
    time: TimeConfig = Field(default_factory=TimeConfig)
    flow: FlowConfig = Field(default_factory=FlowConfig)
    table: TableConfig = Field(default_factory=TableConfig)
    animation: AnimationConfig = Field(default_factory=AnimationConfig)
    tooltip: TooltipConfig = Field(default_factory=TooltipConfig)
    outputs: OutputsConfig = Field(default_factory=OutputsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def load_config(path: Path) -> AppConfig:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    config = AppConfig.model_validate(data)
    config.api.base_url = (os.getenv("TXFLOW_API_URL") or config.api.base_url).rstrip("/")
    config.api.token = config.api.token or os.getenv("TXFLOW_API_TOKEN")
    return config
