"""
LifeEngine Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


class Config:
    """Application configuration loaded from environment variables."""

    # Scheduler cadence (~60 ticks per second by default)
    TICK_INTERVAL_MS: int = int(os.getenv("LIFEENGINE_TICK_INTERVAL_MS", "16"))
    # Autosave every N ticks through the configured persistence strategy (0 disables)
    AUTOSAVE_EVERY: int = int(os.getenv("LIFEENGINE_AUTOSAVE_EVERY", "0"))

    # Need catalog overrides. Rates are per simulated second, thresholds in [0, 1].
    HUNGER_DECAY_RATE: float = _env_float("HUNGER_DECAY_RATE", 0.01)
    HUNGER_THRESHOLD: float = _env_float("HUNGER_THRESHOLD", 0.7)
    HUNGER_ACTION_DURATION: float = _env_float("HUNGER_ACTION_DURATION", 5.0)
    REST_DECAY_RATE: float = _env_float("REST_DECAY_RATE", 0.005)
    REST_THRESHOLD: float = _env_float("REST_THRESHOLD", 0.7)
    REST_ACTION_DURATION: float = _env_float("REST_ACTION_DURATION", 20.0)
    SOCIAL_DECAY_RATE: float = _env_float("SOCIAL_DECAY_RATE", 0.008)
    SOCIAL_THRESHOLD: float = _env_float("SOCIAL_THRESHOLD", 0.7)
    SOCIAL_ACTION_DURATION: float = _env_float("SOCIAL_ACTION_DURATION", 8.0)
    # Comma-separated, highest priority first
    NEED_PRIORITY: str = os.getenv("LIFEENGINE_NEED_PRIORITY", "hunger,rest,social")

    # Relationship drift
    RELATIONSHIP_GAIN: float = _env_float("LIFEENGINE_RELATIONSHIP_GAIN", 0.1)
    RELATIONSHIP_DECAY: float = _env_float("LIFEENGINE_RELATIONSHIP_DECAY", 0.001)

    # Memory retention
    MEMORY_CAPACITY: int = int(os.getenv("LIFEENGINE_MEMORY_CAPACITY", "20"))
    MEMORY_HALF_LIFE_SECONDS: float = _env_float("LIFEENGINE_MEMORY_HALF_LIFE", 300.0)

    # Logging
    VERBOSE: bool = bool(os.getenv("LIFEENGINE_VERBOSE"))

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    SAVE_DIR: Path = Path(os.getenv("LIFEENGINE_SAVE_DIR", "saves"))
    SCENARIOS_DIR: Path = PROJECT_ROOT / "examples" / "scenarios"

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if values are out of range."""
        if cls.TICK_INTERVAL_MS < 0:
            raise ValueError("LIFEENGINE_TICK_INTERVAL_MS must be >= 0")

        if cls.MEMORY_CAPACITY < 1:
            raise ValueError("LIFEENGINE_MEMORY_CAPACITY must be >= 1")

        if cls.MEMORY_HALF_LIFE_SECONDS <= 0:
            raise ValueError("LIFEENGINE_MEMORY_HALF_LIFE must be > 0")

        for name in ("HUNGER", "REST", "SOCIAL"):
            threshold = getattr(cls, f"{name}_THRESHOLD")
            if not 0.0 <= threshold <= 1.0:
                raise ValueError(f"{name}_THRESHOLD must be within [0, 1], got {threshold}")
            if getattr(cls, f"{name}_DECAY_RATE") < 0:
                raise ValueError(f"{name}_DECAY_RATE must be >= 0")

        # Building the catalog checks the priority list names every need exactly once
        cls.need_catalog()

    @classmethod
    def need_catalog(cls):
        """Build the NeedCatalog described by the current configuration."""
        from .needs import NeedCatalog, NeedSpec
        from .schemas import ActionKind, NeedKind

        specs = {
            NeedKind.HUNGER: NeedSpec(
                kind=NeedKind.HUNGER,
                decay_rate=cls.HUNGER_DECAY_RATE,
                threshold=cls.HUNGER_THRESHOLD,
                action=ActionKind.EAT,
                action_duration=cls.HUNGER_ACTION_DURATION,
            ),
            NeedKind.REST: NeedSpec(
                kind=NeedKind.REST,
                decay_rate=cls.REST_DECAY_RATE,
                threshold=cls.REST_THRESHOLD,
                action=ActionKind.SLEEP,
                action_duration=cls.REST_ACTION_DURATION,
            ),
            NeedKind.SOCIAL: NeedSpec(
                kind=NeedKind.SOCIAL,
                decay_rate=cls.SOCIAL_DECAY_RATE,
                threshold=cls.SOCIAL_THRESHOLD,
                action=ActionKind.SOCIALIZE,
                action_duration=cls.SOCIAL_ACTION_DURATION,
            ),
        }
        priority = tuple(
            NeedKind(item.strip()) for item in cls.NEED_PRIORITY.split(",") if item.strip()
        )
        return NeedCatalog(specs=specs, priority=priority)

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "LifeEngine Configuration:",
            f"  Tick Interval: {cls.TICK_INTERVAL_MS}ms",
            f"  Need Priority: {cls.NEED_PRIORITY}",
            f"  Thresholds: hunger={cls.HUNGER_THRESHOLD} rest={cls.REST_THRESHOLD} social={cls.SOCIAL_THRESHOLD}",
            f"  Memory: capacity={cls.MEMORY_CAPACITY} half_life={cls.MEMORY_HALF_LIFE_SECONDS}s",
            f"  Autosave: every {cls.AUTOSAVE_EVERY} ticks" if cls.AUTOSAVE_EVERY else "  Autosave: off",
            f"  Save Dir: {cls.SAVE_DIR}",
        ]
        return "\n".join(lines)
