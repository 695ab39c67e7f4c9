"""
conductor - configuration schema and validation.

File: src/conductor/config/schema.py

Purpose
- Define the authoritative configuration defaults and strict validation rules.

Functional requirements
- Validate config payloads and return structured issues (field path + message).
- Deterministic deep-merge of overlays onto defaults.
- Expose a frozen ``OrchestratorConfig`` view over a validated mapping.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final

from conductor.constants import (
    DEFAULT_CAPACITY_BYTES,
    DEFAULT_LOG_DIR,
    DEFAULT_TEST_COMMAND,
    DEFAULT_UNRESOLVED_MARKERS,
)

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("orchestrator", "task_profiles"),
    ("observability", "log_dir"),
)

DEFAULT_CONFIG: Final[Mapping[str, Any]] = {
    "orchestrator": {
        "max_iterations": 5,
        "max_parallel_workers": 3,
        "operation_timeout_seconds": 0.0,
        "enable_compaction": True,
        "task_profiles": None,
    },
    "context": {
        "capacity_bytes": DEFAULT_CAPACITY_BYTES,
        "compaction_trigger_ratio": 0.8,
        "compaction_target_ratio": 0.7,
        "min_index_token_length": 3,
        "min_query_token_length": 2,
        "max_search_results": 20,
        "structural_min_results": 5,
        "scoring": {
            "path_token_weight": 10.0,
            "filename_token_bonus": 20.0,
            "access_count_weight": 2.0,
            "depth_penalty": 0.5,
        },
        "retention": {
            "access_count_weight": 10.0,
            "size_divisor": 1000.0,
        },
    },
    "workers": {
        "code_max_attempts": 3,
        "test_coverage_threshold": 80.0,
        "unresolved_markers": list(DEFAULT_UNRESOLVED_MARKERS),
        "search_max_cached_files": 10,
    },
    "tools": {
        "test_command": DEFAULT_TEST_COMMAND,
        "shell_allowlist": [],
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": DEFAULT_LOG_DIR,
        "log_to_stdout": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


@dataclass(frozen=True, slots=True)
class OrchestratorConfig:
    """Typed, immutable view of a validated configuration mapping."""

    max_iterations: int
    max_parallel_workers: int
    operation_timeout_seconds: float
    enable_compaction: bool
    task_profiles: str | None
    capacity_bytes: int
    compaction_trigger_ratio: float
    compaction_target_ratio: float
    min_index_token_length: int
    min_query_token_length: int
    max_search_results: int
    structural_min_results: int
    scoring: Mapping[str, float]
    retention: Mapping[str, float]
    code_max_attempts: int
    test_coverage_threshold: float
    unresolved_markers: tuple[str, ...]
    search_max_cached_files: int
    test_command: str
    shell_allowlist: tuple[str, ...]
    log_level: str
    log_dir: str
    log_to_stdout: bool

    @classmethod
    def from_mapping(cls, config: Mapping[str, object]) -> OrchestratorConfig:
        """Validate ``config`` (merged over defaults) and build the typed view."""

        validated = assert_valid_config(merge_config(default_config(), config))
        orchestrator = validated["orchestrator"]
        context = validated["context"]
        workers = validated["workers"]
        tools = validated["tools"]
        observability = validated["observability"]
        return cls(
            max_iterations=orchestrator["max_iterations"],
            max_parallel_workers=orchestrator["max_parallel_workers"],
            operation_timeout_seconds=orchestrator["operation_timeout_seconds"],
            enable_compaction=orchestrator["enable_compaction"],
            task_profiles=orchestrator["task_profiles"],
            capacity_bytes=context["capacity_bytes"],
            compaction_trigger_ratio=context["compaction_trigger_ratio"],
            compaction_target_ratio=context["compaction_target_ratio"],
            min_index_token_length=context["min_index_token_length"],
            min_query_token_length=context["min_query_token_length"],
            max_search_results=context["max_search_results"],
            structural_min_results=context["structural_min_results"],
            scoring=dict(context["scoring"]),
            retention=dict(context["retention"]),
            code_max_attempts=workers["code_max_attempts"],
            test_coverage_threshold=workers["test_coverage_threshold"],
            unresolved_markers=tuple(workers["unresolved_markers"]),
            search_max_cached_files=workers["search_max_cached_files"],
            test_command=tools["test_command"],
            shell_allowlist=tuple(tools["shell_allowlist"]),
            log_level=observability["log_level"],
            log_dir=observability["log_dir"],
            log_to_stdout=observability["log_to_stdout"],
        )


def default_config() -> dict[str, Any]:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(dict(DEFAULT_CONFIG))


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate a complete config and return structured issues with dotted paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    allowed = set(DEFAULT_CONFIG)
    _reject_unknown_keys(root, allowed, "", issues)
    _require_keys(root, allowed, "", issues)

    out: dict[str, Any] = {}
    _section(root, key="orchestrator", path="", issues=issues, validator=_validate_orchestrator, out=out)
    _section(root, key="context", path="", issues=issues, validator=_validate_context, out=out)
    _section(root, key="workers", path="", issues=issues, validator=_validate_workers, out=out)
    _section(root, key="tools", path="", issues=issues, validator=_validate_tools, out=out)
    _section(root, key="observability", path="", issues=issues, validator=_validate_observability, out=out)

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=out, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _section(
    payload: Mapping[str, object],
    *,
    key: str,
    path: str,
    issues: _IssueCollector,
    validator: Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]],
    out: dict[str, Any],
) -> None:
    raw = payload.get(key)
    if raw is None:
        return
    section_path = _join(path, key)
    section_obj = _as_object(raw, section_path, issues)
    if section_obj is None:
        return
    out[key] = validator(section_obj, section_path, issues)


def _validate_orchestrator(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    allowed = set(DEFAULT_CONFIG["orchestrator"])
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed - {"task_profiles"}, path, issues)

    out: dict[str, Any] = {}
    for key in ("max_iterations", "max_parallel_workers"):
        if key in payload:
            _put(out, key, _as_int(payload[key], _join(path, key), issues, minimum=1))
    if "operation_timeout_seconds" in payload:
        _put(
            out,
            "operation_timeout_seconds",
            _as_float(
                payload["operation_timeout_seconds"],
                _join(path, "operation_timeout_seconds"),
                issues,
                minimum=0.0,
            ),
        )
    if "enable_compaction" in payload:
        _put(out, "enable_compaction", _as_bool(payload["enable_compaction"], _join(path, "enable_compaction"), issues))

    raw_profiles = payload.get("task_profiles")
    if raw_profiles is None:
        out["task_profiles"] = None
    else:
        _put(out, "task_profiles", _as_path_text(raw_profiles, _join(path, "task_profiles"), issues))
    return out


def _validate_context(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    allowed = set(DEFAULT_CONFIG["context"])
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "capacity_bytes" in payload:
        _put(out, "capacity_bytes", _as_int(payload["capacity_bytes"], _join(path, "capacity_bytes"), issues, minimum=1))
    for key in ("compaction_trigger_ratio", "compaction_target_ratio"):
        if key in payload:
            _put(out, key, _as_float(payload[key], _join(path, key), issues, minimum=0.0))
    for key in ("min_index_token_length", "min_query_token_length"):
        if key in payload:
            _put(out, key, _as_int(payload[key], _join(path, key), issues, minimum=0))
    for key in ("max_search_results", "structural_min_results"):
        if key in payload:
            _put(out, key, _as_int(payload[key], _join(path, key), issues, minimum=1))

    trigger = out.get("compaction_trigger_ratio")
    target = out.get("compaction_target_ratio")
    if trigger is not None and target is not None and not 0 < target < trigger <= 1:
        issues.add(
            _join(path, "compaction_target_ratio"),
            f"requires 0 < compaction_target_ratio < compaction_trigger_ratio <= 1 (got {target} / {trigger})",
        )

    for key in ("scoring", "retention"):
        raw = payload.get(key)
        if raw is None:
            continue
        section_path = _join(path, key)
        section = _as_object(raw, section_path, issues)
        if section is None:
            continue
        out[key] = _validate_weights(section, section_path, issues, allowed=set(DEFAULT_CONFIG["context"][key]))

    retention = out.get("retention")
    if isinstance(retention, Mapping) and retention.get("size_divisor") == 0:
        issues.add(_join(path, "retention.size_divisor"), "must be > 0")
    return out


def _validate_weights(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    allowed: set[str],
) -> dict[str, float]:
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, float] = {}
    for key in sorted(allowed):
        if key in payload:
            _put(out, key, _as_float(payload[key], _join(path, key), issues, minimum=0.0))
    return out


def _validate_workers(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    allowed = set(DEFAULT_CONFIG["workers"])
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("code_max_attempts", "search_max_cached_files"):
        if key in payload:
            _put(out, key, _as_int(payload[key], _join(path, key), issues, minimum=1))
    if "test_coverage_threshold" in payload:
        threshold = _as_float(
            payload["test_coverage_threshold"], _join(path, "test_coverage_threshold"), issues, minimum=0.0
        )
        if threshold is not None and threshold > 100:
            issues.add(_join(path, "test_coverage_threshold"), "must be <= 100")
        else:
            _put(out, "test_coverage_threshold", threshold)
    if "unresolved_markers" in payload:
        _put(
            out,
            "unresolved_markers",
            _as_str_list(payload["unresolved_markers"], _join(path, "unresolved_markers"), issues),
        )
    return out


def _validate_tools(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    allowed = set(DEFAULT_CONFIG["tools"])
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "test_command" in payload:
        _put(out, "test_command", _as_str(payload["test_command"], _join(path, "test_command"), issues))
    if "shell_allowlist" in payload:
        _put(
            out,
            "shell_allowlist",
            _as_str_list(payload["shell_allowlist"], _join(path, "shell_allowlist"), issues),
        )
    return out


def _validate_observability(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    allowed = set(DEFAULT_CONFIG["observability"])
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        raw_level = payload["log_level"]
        normalized = raw_level.strip().upper() if isinstance(raw_level, str) else raw_level
        _put(out, "log_level", _as_enum(normalized, _join(path, "log_level"), issues, allowed_values=LOG_LEVELS))
    if "log_dir" in payload:
        _put(out, "log_dir", _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues))
    if "log_to_stdout" in payload:
        _put(out, "log_to_stdout", _as_bool(payload["log_to_stdout"], _join(path, "log_to_stdout"), issues))
    return out


def _put(out: dict[str, Any], key: str, value: object | None) -> None:
    if value is not None:
        out[key] = value


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if isinstance(value, str) or not isinstance(value, Sequence):
        issues.add(path, f"expected list of strings, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]", issues)
        if parsed is None:
            return None
        out.append(parsed)
    return out


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        item = value[key]
        out[key] = _deep_copy_mapping(item) if isinstance(item, Mapping) else copy.deepcopy(item)
    return out


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "OrchestratorConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "validate_config",
]
