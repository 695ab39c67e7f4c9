"""Static name -> worker lookup."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from types import MappingProxyType

from conductor.domain.errors import WorkerNotFoundError
from conductor.workers.base import Worker


class WorkerRegistry:
    """Worker lookup populated once at construction; safe for concurrent reads."""

    def __init__(self, workers: Iterable[Worker] = ()) -> None:
        registered: dict[str, Worker] = {}
        for worker in workers:
            if worker.name in registered:
                raise ValueError(f"duplicate worker name: {worker.name!r}")
            registered[worker.name] = worker
        self._workers: Mapping[str, Worker] = MappingProxyType(registered)

    def __contains__(self, name: object) -> bool:
        return name in self._workers

    def __len__(self) -> int:
        return len(self._workers)

    def names(self) -> list[str]:
        """Registered names in registration order."""

        return list(self._workers)

    def get(self, name: str) -> Worker:
        try:
            return self._workers[name]
        except KeyError:
            raise WorkerNotFoundError(name) from None

    def capabilities(self) -> dict[str, tuple[str, ...]]:
        return {name: tuple(worker.capabilities()) for name, worker in self._workers.items()}

    def missing(self, roles: Sequence[str]) -> list[str]:
        return [role for role in roles if role not in self._workers]


__all__ = ["WorkerRegistry"]
