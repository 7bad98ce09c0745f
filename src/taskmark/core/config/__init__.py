"""
Configuration models and loading.

This module provides Pydantic models for the backlog configuration
(``backlog/config.yml``) with layered merging: defaults < file < env vars.
"""

from .loader import (
    deep_merge,
    get_backlog_dir,
    get_config_path,
    init_backlog,
    load_config,
    save_config,
)
from .models import (
    BoardConfig,
    CloseValidationConfig,
    DisplayConfig,
    PerformanceConfig,
    ProjectConfig,
    TaskmarkConfig,
    ValidationsConfig,
)

__all__ = [
    # Models
    "BoardConfig",
    "CloseValidationConfig",
    "DisplayConfig",
    "PerformanceConfig",
    "ProjectConfig",
    "TaskmarkConfig",
    "ValidationsConfig",
    # Loader functions
    "deep_merge",
    "get_backlog_dir",
    "get_config_path",
    "init_backlog",
    "load_config",
    "save_config",
]
