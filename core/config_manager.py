"""
Configuration Manager for Habit Mindmap.

Central place for the layout and gesture constants. Every empirical value is
declared here and can be overridden from config/runtime.yaml.

Usage:
    from core.config_manager import config
    width = config.NODE_WIDTH
"""
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.exceptions import ConfigError
from core.logger import get_logger

CONFIG_DIR = Path(__file__).parent.parent / "config"
RUNTIME_CONFIG_PATH = CONFIG_DIR / "runtime.yaml"

logger = get_logger("config")


@dataclass
class SystemConfig:
    """
    Runtime constants.

    Sizes are in canvas units (the rendering layer maps them to pixels).
    """

    # === Goal nodes ===

    # Fixed width keeps the layout arithmetic simple
    NODE_WIDTH: float = 150
    # Starting height; the renderer may report a taller measured height
    NODE_BASE_HEIGHT: float = 40
    NODE_VERTICAL_SPACING: float = 70
    NODE_HORIZONTAL_SPACING: float = 30

    # === Habit leaves ===

    HABIT_NODE_WIDTH: float = 120
    HABIT_NODE_HEIGHT: float = 30
    # None means half of NODE_HORIZONTAL_SPACING
    HABIT_HORIZONTAL_SPACING: Optional[float] = None

    # === Canvas ===

    INITIAL_Y: float = 50
    MIN_MARGIN: float = 50
    BOTTOM_MARGIN: float = 100
    EMPTY_CANVAS_HEIGHT: float = 200
    # Used when the caller does not report a viewport (typical phone width)
    DEFAULT_VIEWPORT_WIDTH: float = 390

    # === Pan / zoom ===

    MIN_SCALE: float = 0.5
    MAX_SCALE: float = 3.0

    # === Goal store ===

    # False keeps the historical ADD_SUBGOAL behaviour: when the parent owns
    # habit links the new goal is still created, just not linked.
    # True rejects the whole command.
    STRICT_SUBGOAL_LINKING: bool = False

    def __post_init__(self):
        if self.HABIT_HORIZONTAL_SPACING is None:
            self.HABIT_HORIZONTAL_SPACING = self.NODE_HORIZONTAL_SPACING / 2

    def validate(self, source: Optional[str] = None) -> "SystemConfig":
        """Raise ConfigError when values cannot produce a usable layout."""
        positive = (
            "NODE_WIDTH",
            "NODE_BASE_HEIGHT",
            "HABIT_NODE_WIDTH",
            "HABIT_NODE_HEIGHT",
            "MIN_SCALE",
            "MAX_SCALE",
        )
        for name in positive:
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError(f"{name} must be a positive number (got {value!r})", source)

        non_negative = (
            "NODE_VERTICAL_SPACING",
            "NODE_HORIZONTAL_SPACING",
            "HABIT_HORIZONTAL_SPACING",
            "INITIAL_Y",
            "MIN_MARGIN",
            "BOTTOM_MARGIN",
            "EMPTY_CANVAS_HEIGHT",
            "DEFAULT_VIEWPORT_WIDTH",
        )
        for name in non_negative:
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value < 0:
                raise ConfigError(f"{name} must be a non-negative number (got {value!r})", source)

        if self.MIN_SCALE > self.MAX_SCALE:
            raise ConfigError(
                f"MIN_SCALE ({self.MIN_SCALE}) is larger than MAX_SCALE ({self.MAX_SCALE})",
                source,
            )
        return self


def _load_runtime_config(path: Path) -> Dict[str, Any]:
    """Load runtime overrides if the file exists."""
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        logger.warning(f"Ignoring unreadable runtime config {path}: {e}")
        return {}

    if not isinstance(data, dict):
        raise ConfigError("runtime config must be a mapping of NAME: value", str(path))
    return data


def get_config(path: Optional[Path] = None) -> SystemConfig:
    """
    Build the system configuration.

    Priority: runtime.yaml > defaults
    """
    path = path or RUNTIME_CONFIG_PATH
    overrides = _load_runtime_config(path)

    known = {f.name for f in fields(SystemConfig)}
    accepted = {}
    for key, value in overrides.items():
        if key in known:
            accepted[key] = value
        else:
            logger.warning(f"Unknown config key {key!r} in {path}")

    return SystemConfig(**accepted).validate(str(path))


# Global config instance
config = get_config()
