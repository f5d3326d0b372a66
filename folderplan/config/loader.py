# folderplan/config/loader.py
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError
from loguru import logger

from .schema import AppConfig
from .paths import get_user_config_file

ENV_PREFIX = "FOLDERPLAN_"

_cached_config: Optional[AppConfig] = None


def _env_overrides() -> Dict[str, Any]:
    """Collects FOLDERPLAN_<FIELD> environment variables for known config fields."""
    overrides: Dict[str, Any] = {}
    for field_name in AppConfig.model_fields:
        raw = os.environ.get(f"{ENV_PREFIX}{field_name.upper()}")
        if raw is not None:
            overrides[field_name] = raw # Pydantic coerces "true"/"16" etc.
    if overrides:
        logger.debug(f"Config overrides from environment: {sorted(overrides)}")
    return overrides

def _set_aside(config_path: Path) -> None:
    corrupted = config_path.with_suffix(".json.corrupted")
    try:
        corrupted.unlink(missing_ok=True)
        config_path.rename(corrupted)
        logger.info(f"Moved unreadable config to: {corrupted}")
    except OSError as e:
        logger.error(f"Could not move unreadable config aside: {e}")

def _read_user_file(config_path: Path) -> Dict[str, Any]:
    """Returns the user file's settings, or {} if it is missing or unreadable."""
    if not config_path.exists():
        logger.info("No user config found. Using default settings.")
        return {}
    logger.info(f"Loading user configuration from: {config_path}")
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("top-level JSON value must be an object")
        return data
    except (json.JSONDecodeError, ValueError, OSError) as e:
        logger.error(f"Failed to load user config file {config_path}: {e}")
        _set_aside(config_path)
        return {}

def load_config() -> AppConfig:
    """Loads the user file, applies environment overrides and caches the result."""
    global _cached_config
    if _cached_config:
        return _cached_config

    settings = _read_user_file(get_user_config_file())
    settings.update(_env_overrides())
    try:
        _cached_config = AppConfig(**settings)
        logger.debug("Configuration loaded.")
    except ValidationError as e:
        logger.error(f"Invalid configuration, using defaults: {e}")
        _cached_config = AppConfig()
    return _cached_config

def save_config(config: AppConfig) -> None:
    """Writes the configuration atomically (temp file in the same folder, then os.replace)."""
    global _cached_config
    config_path = get_user_config_file()
    logger.info(f"Saving configuration to: {config_path}")
    pending: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile("w", encoding="utf-8", dir=config_path.parent,
                                         prefix=f".{config_path.name}_tmp", suffix=".json",
                                         delete=False) as handle:
            pending = Path(handle.name)
            handle.write(config.model_dump_json(indent=4))
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(pending, config_path)
        pending = None
    except OSError as e:
        logger.error(f"Failed to save configuration to {config_path}: {e}")
        raise
    finally:
        if pending is not None and pending.exists():
            try: pending.unlink()
            except OSError as unlink_err: logger.error(f"Failed to remove temporary config file {pending}: {unlink_err}")
    _cached_config = config


def get_config() -> AppConfig:
    """Returns the cached configuration object, loading if necessary."""
    if _cached_config is None:
        return load_config()
    return _cached_config

def reset_config_cache() -> None:
    global _cached_config
    _cached_config = None
