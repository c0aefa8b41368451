from dataclasses import dataclass, field
from typing import Optional
from pathlib import Path
import os
import tomllib
from .priority import Priority, as_priority

# Absolute tolerance used for every comparison against zero.
EPSILON = 1e-8


def _get_config_paths() -> list[Path]:
    """Returns list of paths to check for config files, in order of priority."""
    paths: list[Path] = []

    # 1. Current directory
    paths.append(Path.cwd() / ".cassorc.toml")

    # 2. Home directory
    home = Path.home()
    paths.append(home / ".cassorc.toml")

    # 3. XDG config directory
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", str(home / ".config")))
    paths.append(Path(xdg_config) / "casso" / "config.toml")

    return paths


def _load_config_file() -> dict[str, object] | None:
    """Load config from file if it exists."""
    for path in _get_config_paths():
        if path.exists():
            try:
                with open(path, "rb") as f:
                    return tomllib.load(f)
            except Exception as e:
                import warnings

                warnings.warn(f"Failed to load config from {path}: {e}")
    return None


def _parse_config_value(key: str, value: object) -> object:
    """Convert config file values to proper types."""
    # Handle priorities given by name ("low", "high", ...) or by strength
    if key.endswith("_priority"):
        return as_priority(value)

    if key == "epsilon" and isinstance(value, (int, float)):
        return float(value)

    return value


@dataclass
class Config:
    epsilon: float = EPSILON

    # Optional strengths above this are clamped. The default keeps the
    # largest weight (1e15) within double precision of the unit weight.
    max_strength: int = 1500

    # Default priorities used by edit sessions.
    stay_priority: Priority = field(default_factory=lambda: Priority.LOW)
    edit_priority: Priority = field(default_factory=lambda: Priority.HIGH)

    @staticmethod
    def load(path: Optional[Path | str] = None) -> "Config":
        """
        Load config from a file. If no path is provided, searches standard locations.
        """
        if path is not None:
            # Load from specific file
            path = Path(path)
            if not path.exists():
                # File doesn't exist, return defaults
                return Config()
            with open(path, "rb") as f:
                config_data = tomllib.load(f)
        else:
            # Load from standard locations
            config_data = _load_config_file()
            if config_data is None:
                # No config file found, return defaults
                return Config()

        config = Config()
        for key, value in config_data.items():
            if hasattr(config, key):
                parsed_value = _parse_config_value(key, value)
                setattr(config, key, parsed_value)

        return config


# Global default config loaded from file
_default_config: Optional[Config] = None


def default_config() -> Config:
    """
    Returns the default config, loading from file if not already loaded.
    This is cached so the file is only read once per session.
    """
    global _default_config
    if _default_config is None:
        _default_config = Config.load()
    return _default_config
