"""
Configuration loading with layered merging.

Implements the configuration precedence chain:
    defaults < backlog/config.yml < env vars

Defaults are merged under the file, so config files written by older
versions pick up new sections without a migration step.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from taskmark.core.exceptions import BacklogNotInitializedError, ConfigError

from .models import TaskmarkConfig

logger = logging.getLogger(__name__)

BACKLOG_DIR_NAME = "backlog"
CONFIG_FILE_NAME = "config.yml"


def get_backlog_dir(project_dir: Path | None = None) -> Path:
    """Return the backlog directory for a project (``<project>/backlog``)."""
    if project_dir is None:
        project_dir = Path.cwd()
    return Path(project_dir) / BACKLOG_DIR_NAME


def get_config_path(project_dir: Path | None = None) -> Path:
    """Return the path of the project's ``backlog/config.yml``."""
    return get_backlog_dir(project_dir) / CONFIG_FILE_NAME


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`.
    Nested dicts are merged, not replaced.

    Example:
        >>> base = {"a": 1, "b": {"x": 10, "y": 20}}
        >>> override = {"b": {"y": 30, "z": 40}, "c": 3}
        >>> deep_merge(base, override)
        {'a': 1, 'b': {'x': 10, 'y': 30, 'z': 40}, 'c': 3}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a plain dictionary."""
    return TaskmarkConfig().model_dump()


def _normalise_keys(data: dict[str, Any]) -> dict[str, Any]:
    """
    Re-key a loaded config through the models so camelCase aliases merge
    correctly against snake_case defaults.
    """
    try:
        partial = TaskmarkConfig.model_validate(data)
    except PydanticValidationError:
        # Leave invalid input for the final validation to report
        return data
    return partial.model_dump(exclude_unset=True)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() not in ("false", "0", "no", "")


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides.

    Supported env vars:
        TASKMARK_USE_INDEX - overrides performance.use_index
        TASKMARK_REBUILD_INDEX_ON_START - overrides performance.rebuild_index_on_start
    """
    result = config_dict.copy()
    performance = dict(result.get("performance") or {})

    if (use_index := os.environ.get("TASKMARK_USE_INDEX")) is not None:
        performance["use_index"] = _parse_bool(use_index)

    if (rebuild := os.environ.get("TASKMARK_REBUILD_INDEX_ON_START")) is not None:
        performance["rebuild_index_on_start"] = _parse_bool(rebuild)

    if performance:
        result["performance"] = performance
    return result


def load_config(project_dir: Path | None = None) -> TaskmarkConfig:
    """
    Load the backlog configuration for a project.

    Args:
        project_dir: Project root containing ``backlog/`` (defaults to cwd)

    Returns:
        Validated TaskmarkConfig

    Raises:
        BacklogNotInitializedError: If ``backlog/config.yml`` does not exist
        ConfigError: If the file is not valid YAML or fails validation
    """
    project_dir = Path(project_dir) if project_dir else Path.cwd()
    config_path = get_config_path(project_dir)
    if not config_path.exists():
        raise BacklogNotInitializedError(project_dir)

    try:
        with config_path.open(encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        raise ConfigError(f"Failed to read config at {config_path}: {e}", path=config_path) from e

    if not isinstance(loaded, dict):
        raise ConfigError(f"Config at {config_path} must be a mapping", path=config_path)

    merged = deep_merge(get_default_config(), _normalise_keys(loaded))
    merged = apply_env_overrides(merged)

    try:
        config = TaskmarkConfig.model_validate(merged)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid config at {config_path}: {e}", path=config_path) from e

    logger.debug(f"Loaded config from {config_path}")
    return config


def save_config(config: TaskmarkConfig, project_dir: Path | None = None) -> Path:
    """
    Write the configuration to ``backlog/config.yml``.

    Returns:
        Path to the written file
    """
    config_path = get_config_path(project_dir)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(config.model_dump(), f, sort_keys=False, allow_unicode=True)
    return config_path


def init_backlog(project_dir: Path | None = None, name: str | None = None) -> TaskmarkConfig:
    """
    Create ``backlog/`` with a default config and a .gitignore.

    Args:
        project_dir: Project root (defaults to cwd)
        name: Project name (defaults to the directory name)

    Returns:
        The written configuration

    Raises:
        ConfigError: If the backlog is already initialized
    """
    project_dir = Path(project_dir) if project_dir else Path.cwd()
    config_path = get_config_path(project_dir)
    if config_path.exists():
        raise ConfigError(f"Backlog already initialized at {config_path.parent}")

    config = TaskmarkConfig()
    config.project.name = name or project_dir.resolve().name
    save_config(config, project_dir)

    gitignore = config_path.parent / ".gitignore"
    if not gitignore.exists():
        gitignore.write_text(".cache/\n*.log\n.DS_Store\n", encoding="utf-8")

    logger.info(f"Initialized backlog at {config_path.parent}")
    return config
