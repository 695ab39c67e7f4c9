"""
conductor - completion rules

File: src/conductor/control_plane/validation.py

Purpose
- Named predicates over the most recent Acting output that decide whether an
  iteration completed, and the human-readable feedback when it did not.

Functional requirements
- Rules run in order; the first unsatisfied rule stops evaluation.
- A rule that raises is reported as unsatisfied rather than aborting verification.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Final

from conductor.domain.models import ActionOutput, WorkerResult
from conductor.workers.base import ROLE_CODE, ROLE_SEARCH, ROLE_TEST

RULE_WORKERS_REPORTED: Final[str] = "workers_reported"
RULE_NO_WORKER_ERRORS: Final[str] = "no_worker_errors"
RULE_SEARCH_FOUND_MATCHES: Final[str] = "search_found_matches"
RULE_CODE_FILES_WRITTEN: Final[str] = "code_files_written"
RULE_TESTS_GENERATED: Final[str] = "tests_generated"
RULE_COVERAGE_THRESHOLD_MET: Final[str] = "coverage_threshold_met"


@dataclass(frozen=True, slots=True)
class RuleResult:
    satisfied: bool
    feedback: str = ""

    @classmethod
    def ok(cls) -> RuleResult:
        return cls(satisfied=True)

    @classmethod
    def fail(cls, feedback: str) -> RuleResult:
        return cls(satisfied=False, feedback=feedback)


RulePredicate = Callable[[ActionOutput], "RuleResult | bool"]


@dataclass(frozen=True, slots=True)
class ValidationRule:
    """A named completion predicate."""

    name: str
    predicate: RulePredicate
    description: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("ValidationRule.name must be a non-empty string")
        if not callable(self.predicate):
            raise TypeError("ValidationRule.predicate must be callable")

    def evaluate(self, action: ActionOutput) -> RuleResult:
        try:
            outcome = self.predicate(action)
        except Exception as exc:  # noqa: BLE001
            return RuleResult.fail(f"rule {self.name!r} raised {type(exc).__name__}: {exc}")
        if isinstance(outcome, RuleResult):
            if outcome.satisfied or outcome.feedback:
                return outcome
            return RuleResult.fail(f"rule {self.name!r} was not satisfied")
        if outcome:
            return RuleResult.ok()
        return RuleResult.fail(f"rule {self.name!r} was not satisfied")


def evaluate_rules(rules: Sequence[ValidationRule], action: ActionOutput) -> tuple[str | None, RuleResult]:
    """Return ``(failed_rule_name, result)``; the name is ``None`` when all rules pass."""

    for rule in rules:
        result = rule.evaluate(action)
        if not result.satisfied:
            return rule.name, result
    return None, RuleResult.ok()


def _role_result(action: ActionOutput, role: str) -> WorkerResult | None:
    return action.result_for(role)


def _workers_reported(action: ActionOutput) -> RuleResult:
    missing = [role for role in action.required_roles if _role_result(action, role) is None]
    if missing:
        return RuleResult.fail(f"no result from worker(s): {', '.join(missing)}")
    if not action.results:
        return RuleResult.fail("no worker produced a result")
    return RuleResult.ok()


def _no_worker_errors(action: ActionOutput) -> RuleResult:
    if not action.worker_errors:
        return RuleResult.ok()
    details = "; ".join(f"{name}: {message}" for name, message in sorted(action.worker_errors.items()))
    return RuleResult.fail(f"worker error(s): {details}")


def _role_succeeded(role: str, what: str) -> RulePredicate:
    def predicate(action: ActionOutput) -> RuleResult:
        result = _role_result(action, role)
        if result is None:
            return RuleResult.fail(f"{role} worker did not run")
        if not result.success:
            reason = "; ".join(result.errors) or "unknown reason"
            return RuleResult.fail(f"{what}: {reason}")
        if not result.artifacts:
            return RuleResult.fail(f"{what}: {role} worker produced no artifacts")
        return RuleResult.ok()

    return predicate


def _tests_generated(action: ActionOutput) -> RuleResult:
    result = _role_result(action, ROLE_TEST)
    if result is None:
        return RuleResult.fail("test worker did not run")
    generated = result.output.get("generated_tests", 0)
    if not isinstance(generated, int) or generated <= 0:
        return RuleResult.fail("no tests were generated")
    return RuleResult.ok()


def _coverage_threshold_met(threshold: float) -> RulePredicate:
    def predicate(action: ActionOutput) -> RuleResult:
        result = _role_result(action, ROLE_TEST)
        if result is None:
            return RuleResult.fail("test worker did not run")
        coverage = result.output.get("coverage")
        if not isinstance(coverage, (int, float)) or coverage < threshold:
            shown = f"{coverage:.1f}%" if isinstance(coverage, (int, float)) else "unknown"
            return RuleResult.fail(f"coverage {shown} is below the {threshold:.1f}% threshold")
        return RuleResult.ok()

    return predicate


def builtin_rules(*, coverage_threshold: float = 80.0) -> Mapping[str, ValidationRule]:
    """The rule catalog task profiles may reference by name."""

    rules = (
        ValidationRule(RULE_WORKERS_REPORTED, _workers_reported, "every required worker reported"),
        ValidationRule(RULE_NO_WORKER_ERRORS, _no_worker_errors, "no worker raised"),
        ValidationRule(
            RULE_SEARCH_FOUND_MATCHES,
            _role_succeeded(ROLE_SEARCH, "search found no matching files"),
            "the search worker matched at least one file",
        ),
        ValidationRule(
            RULE_CODE_FILES_WRITTEN,
            _role_succeeded(ROLE_CODE, "code generation did not produce accepted files"),
            "the code worker wrote at least one file",
        ),
        ValidationRule(RULE_TESTS_GENERATED, _tests_generated, "at least one test was generated"),
        ValidationRule(
            RULE_COVERAGE_THRESHOLD_MET,
            _coverage_threshold_met(coverage_threshold),
            "reported coverage meets the threshold",
        ),
    )
    return MappingProxyType({rule.name: rule for rule in rules})


def merge_rules(
    base: Mapping[str, ValidationRule], extra: Iterable[ValidationRule] = ()
) -> Mapping[str, ValidationRule]:
    merged = dict(base)
    for rule in extra:
        merged[rule.name] = rule
    return MappingProxyType(merged)


__all__ = [
    "RULE_CODE_FILES_WRITTEN",
    "RULE_COVERAGE_THRESHOLD_MET",
    "RULE_NO_WORKER_ERRORS",
    "RULE_SEARCH_FOUND_MATCHES",
    "RULE_TESTS_GENERATED",
    "RULE_WORKERS_REPORTED",
    "RuleResult",
    "ValidationRule",
    "builtin_rules",
    "evaluate_rules",
    "merge_rules",
]
