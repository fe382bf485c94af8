"""Runtime settings for the sync engine.

Reads engine tuning from explicit arguments, environment variables, .env
files, and YAML config fallbacks.

Precedence (highest to lowest):
    Explicit args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    ORGSYNC_MAX_PARALLEL_OPERATIONS: Records processed concurrently (default: 4)
    ORGSYNC_DEFAULT_LOOKBACK_HOURS: First-session checkpoint window (default: 24)
    ORGSYNC_STATE_DIR: Directory for audit files (default: .orgsync)
    ORGSYNC_DEBUG: Enable debug logging (default: false)
"""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    max_parallel_operations: int = 4
    default_lookback_hours: float = 24.0
    state_dir: str = ".orgsync"
    debug: bool = False


def validate_settings(settings: Settings) -> None:
    """Validate settings values and raise ValueError if invalid.

    Args:
        settings: Settings instance to validate.

    Raises:
        ValueError: If a numeric value is out of range or state_dir is empty.
    """
    if not (1 <= settings.max_parallel_operations <= 64):
        raise ValueError(
            f"Invalid max_parallel_operations '{settings.max_parallel_operations}': must be a number between 1 and 64"
        )

    if settings.default_lookback_hours <= 0:
        raise ValueError(
            f"Invalid default_lookback_hours '{settings.default_lookback_hours}': must be a positive number"
        )

    settings.state_dir = settings.state_dir.strip()
    if not settings.state_dir:
        raise ValueError(
            "State directory cannot be empty. Set ORGSYNC_STATE_DIR environment variable."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_number_env(key: str, cast: type) -> int | float | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Invalid {key} '{raw}': must be a number") from None


def load_settings(
    max_parallel_operations: int | None = None,
    default_lookback_hours: float | None = None,
    state_dir: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
    dotenv: bool = True,
) -> Settings:
    """Load settings with unified precedence.

    Resolution order for each field (highest to lowest):
        explicit arg > env var / .env > yaml_fallbacks > built-in default

    Args:
        max_parallel_operations: Override concurrency limit.
        default_lookback_hours: Override first-session checkpoint window.
        state_dir: Override audit state directory.
        debug: Enable debug logging.
        yaml_fallbacks: Values from the YAML ``engine`` section, used when
            neither an explicit arg nor an env var is set.
        dotenv: Load a ``.env`` file before reading env vars.

    Returns:
        Validated Settings instance.

    Raises:
        ValueError: If any value is malformed or out of range.
    """
    if dotenv:
        load_dotenv()

    fb = yaml_fallbacks or {}
    defaults = Settings()

    def pick(explicit, env_value, key):
        if explicit is not None:
            return explicit
        if env_value is not None:
            return env_value
        if fb.get(key) is not None:
            return fb[key]
        return getattr(defaults, key)

    env_debug = _get_bool_env("ORGSYNC_DEBUG")
    settings = Settings(
        max_parallel_operations=int(
            pick(
                max_parallel_operations,
                _get_number_env("ORGSYNC_MAX_PARALLEL_OPERATIONS", int),
                "max_parallel_operations",
            )
        ),
        default_lookback_hours=float(
            pick(
                default_lookback_hours,
                _get_number_env("ORGSYNC_DEFAULT_LOOKBACK_HOURS", float),
                "default_lookback_hours",
            )
        ),
        state_dir=str(
            pick(state_dir, os.getenv("ORGSYNC_STATE_DIR"), "state_dir")
        ),
        debug=debug or bool(env_debug),
    )

    validate_settings(settings)
    logger.debug("Loaded settings: %s", settings)
    return settings
