"""Shotcoach configuration with defaults, loadable from YAML.

API keys are read from the environment (``.env`` is loaded when present) and
never need to live in the YAML file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml
from dotenv import load_dotenv

log = logging.getLogger(__name__)

load_dotenv(override=False)


@dataclass
class CameraConfig:
    camera_id: int = 0
    capture_width: int = 1280
    capture_height: int = 720


@dataclass
class StabilityConfig:
    tick_period_s: float = 1.0
    similarity_threshold: float = 0.05
    stable_ticks: int = 2
    sample_quality: float = 0.1


@dataclass
class CoachConfig:
    capture_quality: float = 0.4
    max_history_messages: int = 20
    max_session_s: float = 30.0
    greeting_text: str = (
        "Hi! Point your camera at your subject and hold still. I'll help you frame the shot."
    )


@dataclass
class OpenAIConfig:
    base_url: str = "https://api.openai.com/v1"
    api_key: str = field(default_factory=lambda: os.environ.get("OPENAI_API_KEY", ""))
    vision_model: str = "gpt-4.1-nano"
    max_tokens: int = 100
    tts_model: str = "tts-1"
    voice: str = "alloy"
    timeout_s: float = 20.0


@dataclass
class AudioConfig:
    speaker_device: str = "default"
    sample_rate: int = 24000


@dataclass
class MapsConfig:
    enabled: bool = False
    base_url: str = "https://maps.googleapis.com/maps/api"
    api_key: str = field(default_factory=lambda: os.environ.get("GOOGLE_MAPS_API_KEY", ""))
    latitude: float | None = None
    longitude: float | None = None
    radius_m: int = 500
    max_places: int = 5


@dataclass
class NetworkConfig:
    http_port: int = 8090
    host: str = "0.0.0.0"


@dataclass
class ShotCoachConfig:
    camera: CameraConfig = field(default_factory=CameraConfig)
    stability: StabilityConfig = field(default_factory=StabilityConfig)
    coach: CoachConfig = field(default_factory=CoachConfig)
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    maps: MapsConfig = field(default_factory=MapsConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    mock: bool = False

    def validate(self) -> None:
        """Raise ValueError on values the engine cannot run with."""
        if self.stability.tick_period_s <= 0.0:
            raise ValueError("stability.tick_period_s must be > 0")
        if not (0.0 < self.stability.similarity_threshold < 1.0):
            raise ValueError("stability.similarity_threshold must be in (0, 1)")
        if self.stability.stable_ticks < 1:
            raise ValueError("stability.stable_ticks must be >= 1")
        for name, q in (
            ("stability.sample_quality", self.stability.sample_quality),
            ("coach.capture_quality", self.coach.capture_quality),
        ):
            if not (0.0 < q <= 1.0):
                raise ValueError(f"{name} must be in (0, 1]")
        if self.coach.max_history_messages < 3:
            raise ValueError("coach.max_history_messages must be >= 3")
        if self.coach.max_session_s < 0.0:
            raise ValueError("coach.max_session_s must be >= 0 (0 disables the limit)")
        if self.openai.max_tokens < 1:
            raise ValueError("openai.max_tokens must be >= 1")
        if self.maps.enabled and (self.maps.latitude is None or self.maps.longitude is None):
            raise ValueError("maps.latitude and maps.longitude are required when maps is enabled")


_SECTIONS = ("camera", "stability", "coach", "openai", "audio", "maps", "network")


def load_config(path: str | Path | None = None) -> ShotCoachConfig:
    """Load config from YAML file, falling back to defaults."""
    if path is None:
        return ShotCoachConfig()

    path = Path(path)
    if not path.exists():
        log.warning("config file not found: %s, using defaults", path)
        return ShotCoachConfig()

    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        log.warning("config load error: %s, using defaults", e)
        return ShotCoachConfig()

    cfg = ShotCoachConfig()
    for name in _SECTIONS:
        section = raw.get(name)
        if not isinstance(section, dict):
            continue
        target = getattr(cfg, name)
        known = {f.name for f in fields(target)}
        for k, v in section.items():
            if k not in known:
                log.warning("config: unknown key %s.%s ignored", name, k)
                continue
            setattr(target, k, v)
    cfg.mock = bool(raw.get("mock", False))

    log.info("config loaded from %s", path)
    return cfg
