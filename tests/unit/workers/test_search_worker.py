from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from conductor.domain.models import Task
from conductor.knowledge_plane.context_store import ContextStore
from conductor.tools import build_tool_registry
from conductor.workers.base import WorkerSettings
from conductor.workers.search import STRATEGY_FULL_TEXT, STRATEGY_STRUCTURAL, SearchWorker

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    (tmp_path / "services").mkdir()
    (tmp_path / "services" / "payment_service.py").write_text("def charge(): ...\n", encoding="utf-8")
    (tmp_path / "services" / "wallet_service.py").write_text("def balance(): ...\n", encoding="utf-8")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "core.py").write_text("# refund ledger entries live here\n", encoding="utf-8")
    return tmp_path


def _worker(repo: Path, **settings: int) -> tuple[SearchWorker, ContextStore]:
    store = ContextStore(100_000)
    worker = SearchWorker(store=store, tools=build_tool_registry(repo), settings=WorkerSettings(**settings))
    return worker, store


async def test_structural_scan_finds_files_and_warms_store(repo: Path) -> None:
    worker, store = _worker(repo)

    result = await worker.execute(Task.create("search", "update payment service"))

    assert result.success
    assert result.output["scope"] == "services"
    assert result.output["strategy"] == STRATEGY_STRUCTURAL
    assert result.artifacts == ("services/payment_service.py", "services/wallet_service.py")
    cached = store.peek("services/payment_service.py")
    assert cached is not None
    assert cached.relevance == 2.0


async def test_full_text_fallback_when_no_path_matches(repo: Path) -> None:
    worker, store = _worker(repo)

    result = await worker.execute(Task.create("search", "refund ledger"))

    assert result.success
    assert result.output["strategy"] == STRATEGY_FULL_TEXT
    assert result.artifacts == ("src/core.py",)
    assert "src/core.py" in store


async def test_cache_limit_bounds_store_warmup(repo: Path) -> None:
    worker, store = _worker(repo, search_max_cached_files=1)

    result = await worker.execute(Task.create("search", "service"))

    assert len(result.artifacts) == 2
    assert result.output["cached"] == ["services/payment_service.py"]
    assert len(store) == 1


async def test_no_matches_or_no_terms_is_unsuccessful(repo: Path) -> None:
    worker, _ = _worker(repo)

    missing = await worker.execute(Task.create("search", "kubernetes operator"))
    empty = await worker.execute(Task.create("search", "the and of"))

    assert not missing.success
    assert missing.errors
    assert not empty.success
    assert "no searchable terms" in empty.errors[0]
