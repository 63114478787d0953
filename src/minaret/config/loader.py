"""YAML loader for the engine settings.

A profile file names its parent with 'extends:'; the parent is loaded
first and the profile's keys are merged over it. Everything lives under
a top-level 'minaret:' key.
"""

from pathlib import Path
from typing import Any

import yaml

from . import (
    DuckingConfig,
    LoggingConfig,
    MinaretConfig,
    PostAction,
    PrayerTimesConfig,
    RampConfig,
    ScheduleSettings,
    WatchdogConfig,
)
from .profiles import detect_profile

# Older settings files call the alternate content "quran"
POST_ACTION_ALIASES = {"quran": PostAction.ALTERNATE.value}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into a copy of base; nested sections merge key by key."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml_with_inheritance(path: Path) -> dict[str, Any]:
    """Read a profile file, resolving its 'extends:' chain.

    The parent path is relative to the file that names it.

    Raises:
        FileNotFoundError: If the file or one of its parents is missing
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    parent = raw.pop("extends", None)
    if parent is not None:
        raw = deep_merge(load_yaml_with_inheritance(path.parent / parent), raw)

    return raw


def dict_to_config(data: dict[str, Any]) -> MinaretConfig:
    """Build MinaretConfig from the merged 'minaret:' tree.

    Missing or empty sections keep their defaults. Unknown keys raise
    TypeError from the section dataclass.
    """
    root = data.get("minaret", {}) or {}

    def section(key: str) -> dict[str, Any]:
        value = root.get(key, {})
        return value if value is not None else {}

    return MinaretConfig(
        schedule=_parse_schedule_settings(section("schedule")),
        prayer_times=_parse_prayer_times(section("prayer_times")),
        ramp=RampConfig(**section("ramp")),
        watchdog=WatchdogConfig(**section("watchdog")),
        ducking=DuckingConfig(**section("ducking")),
        logging=LoggingConfig(**section("logging")),
    )


def _parse_schedule_settings(data: dict[str, Any]) -> ScheduleSettings:
    data = dict(data)
    action = data.get("post_action")
    if isinstance(action, str):
        data["post_action"] = POST_ACTION_ALIASES.get(action.lower(), action.lower())
    return ScheduleSettings(**data)


def _parse_prayer_times(data: dict[str, Any]) -> PrayerTimesConfig:
    defaults = PrayerTimesConfig()
    times = data.get("times")
    excluded = data.get("excluded")
    return PrayerTimesConfig(
        times={str(k): str(v) for k, v in times.items()} if times else defaults.times,
        excluded=list(excluded) if excluded is not None else defaults.excluded,
    )


class YAMLConfigLoader:
    """Loads engine settings from a directory of profile files."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize loader.

        Args:
            config_dir: Directory holding base.yaml and the profile files.
                Defaults to config/ at the project root.
        """
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent.parent / "config"
        self._config_dir = config_dir

    def load(self, path: Path) -> MinaretConfig:
        """Load settings from one file and its parents."""
        return dict_to_config(load_yaml_with_inheritance(path))

    def load_profile(self, profile: str) -> MinaretConfig:
        """Load <config_dir>/<profile>.yaml."""
        return self.load(self._config_dir / f"{profile}.yaml")

    def get_config_dir(self) -> Path:
        """Directory profiles are read from."""
        return self._config_dir


def load_config(path: str | Path | None = None, profile: str | None = None) -> MinaretConfig:
    """Load engine settings.

    Args:
        path: Settings file; wins over profile
        profile: 'dev', 'prod' or 'test'. If neither argument is given,
            MINARET_PROFILE decides (dev when unset).

    Returns:
        Parsed MinaretConfig
    """
    loader = YAMLConfigLoader()

    if path is not None:
        return loader.load(Path(path))
    return loader.load_profile(profile or detect_profile().value)


__all__ = [
    "POST_ACTION_ALIASES",
    "YAMLConfigLoader",
    "deep_merge",
    "dict_to_config",
    "load_config",
    "load_yaml_with_inheritance",
]
