"""
conductor config package public API.

File: src/conductor/config/__init__.py

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``conductor.toml`` + ``CONDUCTOR_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from conductor.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    env_name_for_path,
    load_config,
    load_orchestrator_config,
    normalize_paths,
)
from conductor.config.schema import (
    DEFAULT_CONFIG,
    LOG_LEVELS,
    PATH_FIELDS,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    OrchestratorConfig,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)
from conductor.constants import DEFAULT_CONFIG_FILE, ENV_PREFIX

__all__ = [
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "LOG_LEVELS",
    "OrchestratorConfig",
    "PATH_FIELDS",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "env_name_for_path",
    "load_config",
    "load_orchestrator_config",
    "merge_config",
    "normalize_paths",
    "validate_config",
]
