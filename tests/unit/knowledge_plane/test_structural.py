from __future__ import annotations

import pytest

from conductor.knowledge_plane.structural import (
    is_test_path,
    keyword_classes,
    matches_prefix,
    structural_matches,
    subsystem_scope,
)


def test_keyword_classes_normalize_aliases_in_order() -> None:
    assert keyword_classes(["handler", "testing", "tests", "wallet"]) == ["api", "test"]
    assert keyword_classes(["wallet"]) == []


def test_matches_prefix_at_root_or_directory_boundary() -> None:
    assert matches_prefix("tests/test_pay.py", ("tests/",))
    assert matches_prefix("backend/api/pay.go", ("api/",))
    assert not matches_prefix("backend/rapi/pay.go", ("api/",))


def test_structural_matches_require_prefix_and_token() -> None:
    candidates = [
        "tests/test_refund.py",
        "tests/test_wallet.py",
        "src/refund.py",
        "tests/test_refund.py",
    ]

    assert structural_matches(["refund", "tests"], candidates) == [
        "tests/test_refund.py",
        "tests/test_wallet.py",
    ]
    assert structural_matches(["refund", "test"], ["src/refund.py", "lib/tests/refund_case.py"]) == [
        "lib/tests/refund_case.py"
    ]
    assert structural_matches(["refund"], candidates) == []


def test_subsystem_scope_defaults_when_no_keyword_class() -> None:
    assert subsystem_scope(["service", "refund"]) == "services"
    assert subsystem_scope(["refund"]) == "."
    assert subsystem_scope(["refund"], default="src") == "src"


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("tests/helpers.py", True),
        ("pkg/test_wallet.py", True),
        ("backend/wallet_test.go", True),
        ("web/src/__tests__/App.tsx", True),
        ("web/src/App.spec.ts", True),
        ("src/contest.py", False),
        ("src/wallet.py", False),
    ],
)
def test_is_test_path(path: str, expected: bool) -> None:
    assert is_test_path(path) is expected
