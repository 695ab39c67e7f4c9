"""Stable constants shared across conductor planes."""

from __future__ import annotations

from typing import Final

# Configuration file and environment contract.
DEFAULT_CONFIG_FILE: Final[str] = "conductor.toml"
ENV_PREFIX: Final[str] = "CONDUCTOR_"

# Context store sizing.
DEFAULT_CAPACITY_BYTES: Final[int] = 10 * 1024 * 1024

# Worker and tool defaults.
DEFAULT_UNRESOLVED_MARKERS: Final[tuple[str, ...]] = ("TODO", "FIXME")
DEFAULT_TEST_COMMAND: Final[str] = "pytest -q --cov"

# Default runtime paths (relative to the config file unless absolute).
DEFAULT_LOG_DIR: Final[str] = "logs"

__all__ = [
    "DEFAULT_CAPACITY_BYTES",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_LOG_DIR",
    "DEFAULT_TEST_COMMAND",
    "DEFAULT_UNRESOLVED_MARKERS",
    "ENV_PREFIX",
]
