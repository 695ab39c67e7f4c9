"""
conductor - task profiles

File: src/conductor/control_plane/profiles.py

Purpose
- Static task-type -> (worker roles, ordered validation rules) mapping.
- Built-in defaults plus an optional YAML override file.

Functional requirements
- Unknown task types resolve to every registered worker with the generic rules.
- YAML entries are validated and rule names resolved against the rule catalog.

YAML format (top-level sequence)::

    - type: docs
      roles: [search]
      rules: [workers_reported, search_found_matches]
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Final, cast

import yaml

from conductor.control_plane.validation import (
    RULE_CODE_FILES_WRITTEN,
    RULE_COVERAGE_THRESHOLD_MET,
    RULE_NO_WORKER_ERRORS,
    RULE_SEARCH_FOUND_MATCHES,
    RULE_TESTS_GENERATED,
    RULE_WORKERS_REPORTED,
    ValidationRule,
)
from conductor.workers.base import ROLE_CODE, ROLE_SEARCH, ROLE_TEST

_ALLOWED_FIELDS: Final[frozenset[str]] = frozenset({"type", "roles", "rules"})
_GENERIC_RULES: Final[tuple[str, ...]] = (RULE_WORKERS_REPORTED, RULE_NO_WORKER_ERRORS)

_DEFAULT_PROFILES: Final[Mapping[str, tuple[tuple[str, ...], tuple[str, ...]]]] = MappingProxyType(
    {
        "search": ((ROLE_SEARCH,), (*_GENERIC_RULES, RULE_SEARCH_FOUND_MATCHES)),
        "code": ((ROLE_SEARCH, ROLE_CODE), (*_GENERIC_RULES, RULE_CODE_FILES_WRITTEN)),
        "test": (
            (ROLE_TEST,),
            (*_GENERIC_RULES, RULE_TESTS_GENERATED, RULE_COVERAGE_THRESHOLD_MET),
        ),
        "feature": (
            (ROLE_SEARCH, ROLE_CODE, ROLE_TEST),
            (*_GENERIC_RULES, RULE_CODE_FILES_WRITTEN, RULE_TESTS_GENERATED, RULE_COVERAGE_THRESHOLD_MET),
        ),
        "bugfix": (
            (ROLE_SEARCH, ROLE_CODE, ROLE_TEST),
            (*_GENERIC_RULES, RULE_CODE_FILES_WRITTEN, RULE_TESTS_GENERATED, RULE_COVERAGE_THRESHOLD_MET),
        ),
    }
)


@dataclass(frozen=True, slots=True)
class TaskProfile:
    """Roles a task type requires and the rules its iterations must satisfy."""

    task_type: str
    roles: tuple[str, ...]
    rules: tuple[ValidationRule, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.task_type, str) or not self.task_type.strip():
            raise ValueError("TaskProfile.task_type must be a non-empty string")
        object.__setattr__(self, "task_type", self.task_type.strip().lower())
        object.__setattr__(self, "roles", tuple(dict.fromkeys(self.roles)))
        object.__setattr__(self, "rules", tuple(self.rules))

    @property
    def rule_names(self) -> tuple[str, ...]:
        return tuple(rule.name for rule in self.rules)


class ProfileCatalog:
    """Resolves task types to profiles."""

    def __init__(self, profiles: Iterable[TaskProfile], *, rules: Mapping[str, ValidationRule]) -> None:
        self._profiles: dict[str, TaskProfile] = {}
        for profile in profiles:
            self._profiles[profile.task_type] = profile
        self._rules = rules

    @classmethod
    def default(cls, rules: Mapping[str, ValidationRule]) -> ProfileCatalog:
        return cls(
            (
                TaskProfile(task_type, roles, _resolve_rules(rule_names, rules, location=task_type))
                for task_type, (roles, rule_names) in _DEFAULT_PROFILES.items()
            ),
            rules=rules,
        )

    @classmethod
    def load(
        cls,
        path: str | os.PathLike[str] | None,
        *,
        rules: Mapping[str, ValidationRule],
    ) -> ProfileCatalog:
        """Defaults overlaid with the entries of a YAML profile file, when given."""

        catalog = cls.default(rules)
        if path is None:
            return catalog
        for profile in load_profiles_file(Path(path), rules=rules):
            catalog._profiles[profile.task_type] = profile
        return catalog

    def __contains__(self, task_type: object) -> bool:
        return isinstance(task_type, str) and task_type.strip().lower() in self._profiles

    def types(self) -> list[str]:
        return sorted(self._profiles)

    def resolve(self, task_type: str, registered_roles: Sequence[str]) -> TaskProfile:
        profile = self._profiles.get(task_type.strip().lower())
        if profile is not None:
            return profile
        return TaskProfile(
            task_type,
            tuple(registered_roles),
            _resolve_rules(_GENERIC_RULES, self._rules, location=task_type),
        )


def load_profiles_file(path: Path, *, rules: Mapping[str, ValidationRule]) -> list[TaskProfile]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = cast("object", yaml.safe_load(handle))
    except yaml.YAMLError as exc:
        raise ValueError(f"{path}: invalid YAML ({exc})") from exc
    except OSError as exc:
        raise ValueError(f"{path}: cannot read task profiles ({exc})") from exc

    if loaded is None:
        return []
    if not isinstance(loaded, list):
        raise ValueError(f"{path}: expected top-level YAML sequence, got {type(loaded).__name__}")

    profiles: list[TaskProfile] = []
    for index, item in enumerate(loaded):
        location = f"{path.name}[{index}]"
        if not isinstance(item, Mapping):
            raise ValueError(f"{location}: expected a mapping, got {type(item).__name__}")
        unknown = sorted(set(item) - _ALLOWED_FIELDS)
        if unknown:
            raise ValueError(f"{location}: unexpected fields: {unknown}")
        task_type = item.get("type")
        if not isinstance(task_type, str) or not task_type.strip():
            raise ValueError(f"{location}: 'type' must be a non-empty string")
        roles = _string_list(item.get("roles"), f"{location}.roles")
        if not roles:
            raise ValueError(f"{location}: 'roles' must list at least one worker role")
        rule_names = _string_list(item.get("rules", list(_GENERIC_RULES)), f"{location}.rules")
        profiles.append(TaskProfile(task_type, tuple(roles), _resolve_rules(rule_names, rules, location=location)))
    return profiles


def _string_list(value: object, location: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) and item.strip() for item in value):
        raise ValueError(f"{location}: expected a list of non-empty strings")
    return [item.strip() for item in value]


def _resolve_rules(
    names: Sequence[str], rules: Mapping[str, ValidationRule], *, location: str
) -> tuple[ValidationRule, ...]:
    resolved: list[ValidationRule] = []
    for name in names:
        rule = rules.get(name)
        if rule is None:
            raise ValueError(f"{location}: unknown validation rule {name!r}; known: {sorted(rules)}")
        resolved.append(rule)
    return tuple(resolved)


__all__ = ["ProfileCatalog", "TaskProfile", "load_profiles_file"]
