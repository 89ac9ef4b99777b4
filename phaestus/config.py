"""Centralized config loading: packaged YAML defaults, .env, then PHAESTUS_* overrides."""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from phaestus.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

# env var -> (config key, caster)
ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "PHAESTUS_MODEL": ("model", str),
    "PHAESTUS_LLM_TIMEOUT": ("llm_timeout_seconds", float),
    "PHAESTUS_LLM_MAX_RETRIES": ("llm_max_retries", int),
    "PHAESTUS_CHECKPOINTER": ("checkpointer", str),
    "PHAESTUS_DB_PATH": ("db_path", str),
}


def load_config(path: Path = CONFIG_PATH) -> dict[str, Any]:
    """Read the YAML defaults and apply environment overrides."""
    load_dotenv()
    try:
        config = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    for env_var, (key, caster) in ENV_OVERRIDES.items():
        raw = os.getenv(env_var)
        if raw is None or raw == "":
            continue
        try:
            config[key] = caster(raw)
        except ValueError as e:
            raise ConfigError(f"{env_var}={raw!r} is not a valid {caster.__name__}") from e
        logger.debug(f"Config override from {env_var}: {key}={config[key]!r}")

    return config


@lru_cache(maxsize=1)
def get_config() -> dict[str, Any]:
    """Return the loaded config dictionary (read once per process)."""
    return load_config()
