"""Configuration loading for autopause."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from autopause.models import StopMode


class CycleConfig(BaseModel):
    seek_start_max: float = 0.15  # a seek landing below this counts as a restart
    min_prior_position: float = 0.8
    wrap_tolerance: float = 0.1
    reset_grace_seconds: float = 1.5
    near_end_seconds: float = 0.2


class PollingConfig(BaseModel):
    active_interval: float = Field(default=1.0, gt=0)
    boot_interval: float = Field(default=0.3, gt=0)
    boot_window: float = Field(default=5.0, gt=0)


class PageConfig(BaseModel):
    route_prefix: str = "/shorts"
    renderer_selector: str = "ytd-reel-video-renderer"
    active_attribute: str = "is-active"
    scope_selectors: list[str] = Field(default_factory=lambda: [
        "ytd-shorts", "#shorts-container", "#shorts-inner-container",
    ])
    navigation_events: list[str] = Field(default_factory=lambda: [
        "yt-navigate-start", "yt-navigate-finish", "yt-page-data-updated", "popstate",
    ])


class Config(BaseModel):
    mode: StopMode = StopMode.LOOPS
    seconds_limit: float = Field(default=25.0, gt=0)
    loops_limit: int = Field(default=3, gt=0)
    debug: bool = True
    cycles: CycleConfig = Field(default_factory=CycleConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    page: PageConfig = Field(default_factory=PageConfig)

    @property
    def limit(self) -> float:
        """The limit that applies to the configured mode."""
        if self.mode == StopMode.SECONDS:
            return self.seconds_limit
        return self.loops_limit

    def describe_limit(self) -> str:
        if self.mode == StopMode.SECONDS:
            return f"limit={self.seconds_limit:g}s"
        return f"limit={self.loops_limit} loops"


def _project_root() -> Path:
    """Return the autopause project root directory."""
    return Path(__file__).parent.parent


def load_config(config_path: Path | None = None) -> Config:
    """Load config from YAML file. Falls back to defaults if file missing."""
    if config_path is None:
        config_path = _project_root() / "config.yaml"

    if config_path.exists():
        raw: dict[str, Any] = yaml.safe_load(config_path.read_text()) or {}
        return Config(**raw)

    return Config()
