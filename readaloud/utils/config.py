"""
Configuration loader for the read-aloud player.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


class Config:
    """Configuration manager for read-aloud playback."""

    _instance: Optional["Config"] = None
    _config: Dict[str, Any] = {}

    def __new__(cls) -> "Config":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if not self._config:
            self._load_config()

    def _get_project_root(self) -> Path:
        """Get the project root directory."""
        # Navigate up from readaloud/utils to project root
        current = Path(__file__).resolve()
        return current.parent.parent.parent

    def _load_config(self) -> None:
        """Load configuration from YAML file, merged over the defaults."""
        config_path = self._get_project_root() / "config" / "settings.yaml"

        self._config = self._get_defaults()
        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            self._config = _merge(self._config, loaded)

    def _get_defaults(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "voice": {
                "default": None,
                "speed": 1.0,
                "volume": 1.0,
            },
            "playback": {
                "speed_min": 0.5,
                "speed_max": 2.0,
                "words_per_minute": 150,
            },
            "engine": {
                "name": "pyttsx3",
                "base_rate": 200,
                "pump_interval": 0.05,
            },
        }

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Example:
            config.get("playback", "speed_max") -> 2.0
        """
        value = self._config
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default
        return value

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        return self._get_project_root()

    @property
    def voice(self) -> Optional[str]:
        """Get the default voice id (None lets the engine pick)."""
        return self.get("voice", "default")

    @property
    def speed(self) -> float:
        """Get the default speech speed multiplier."""
        return float(self.get("voice", "speed", default=1.0))

    @property
    def volume(self) -> float:
        """Get the default volume."""
        return float(self.get("voice", "volume", default=1.0))

    @property
    def speed_min(self) -> float:
        return float(self.get("playback", "speed_min", default=0.5))

    @property
    def speed_max(self) -> float:
        return float(self.get("playback", "speed_max", default=2.0))

    @property
    def words_per_minute(self) -> int:
        """Average reading speed used for time estimates."""
        return int(self.get("playback", "words_per_minute", default=150))

    @property
    def base_rate(self) -> int:
        """pyttsx3 rate (words per minute) at speed 1.0."""
        return int(self.get("engine", "base_rate", default=200))

    @property
    def pump_interval(self) -> float:
        """Seconds between engine event-loop iterations in the CLI."""
        return float(self.get("engine", "pump_interval", default=0.05))

    @property
    def tts_engine(self) -> str:
        """Get the speech engine name; READALOUD_ENGINE overrides it."""
        return os.environ.get(
            "READALOUD_ENGINE", self.get("engine", "name", default="pyttsx3")
        ).lower()


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# Singleton instance
config = Config()
