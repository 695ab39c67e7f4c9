"""
conductor - workspace tools

File: src/conductor/tools/builtin.py

Purpose
- Concrete collaborators reachable through the tool contract: file read/write,
  structural listing, full-text search, shell execution, and the external test runner.

Functional requirements
- Every path is resolved inside the workspace root; escapes are refused.
- Writes are atomic.
- Shell commands honor an optional executable allowlist and the cancellation token.
- Test runs report pass/fail counts and the coverage percentage parsed from output.

Non-functional requirements
- Deterministic ordering of listings and matches.
- Captured command output is bounded.
"""

from __future__ import annotations

import asyncio
import re
import shlex
import time
from collections.abc import Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Final

from conductor.constants import DEFAULT_TEST_COMMAND
from conductor.knowledge_plane.scanner import RepositoryScanner
from conductor.tools.registry import ToolOutput
from conductor.utils.fs import atomic_write, relative_posix, resolve_within

if TYPE_CHECKING:
    from conductor.utils.concurrency import CancellationToken

_MAX_OUTPUT_CHARS: Final[int] = 200_000
_DEFAULT_SEARCH_LIMIT: Final[int] = 200

_PASSED_PATTERN: Final[re.Pattern[str]] = re.compile(r"(\d+)\s+passed")
_FAILED_PATTERN: Final[re.Pattern[str]] = re.compile(r"(\d+)\s+failed")
_ERROR_PATTERN: Final[re.Pattern[str]] = re.compile(r"(\d+)\s+errors?\b")
_COVERAGE_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"^TOTAL\s+.*?(\d+(?:\.\d+)?)%\s*$", flags=re.MULTILINE),
    re.compile(r"(?i)\bcoverage[:=]?\s+(\d+(?:\.\d+)?)%"),
)


def _require_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"payload field {key!r} must be a non-empty string")
    return value


def _str_list(payload: Mapping[str, Any], key: str) -> list[str]:
    value = payload.get(key, ())
    if isinstance(value, str):
        return [value]
    if not isinstance(value, Sequence):
        raise ValueError(f"payload field {key!r} must be a list of strings")
    return [item for item in value if isinstance(item, str) and item]


def _positive_int(payload: Mapping[str, Any], key: str, default: int) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"payload field {key!r} must be a positive integer")
    return value


def _truncate(text: str) -> str:
    if len(text) <= _MAX_OUTPUT_CHARS:
        return text
    return text[:_MAX_OUTPUT_CHARS] + "\n...<truncated>"


class WorkspaceTool:
    """Base for tools bound to one workspace root."""

    name: str = ""
    description: str = ""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, relative: str) -> Path:
        return resolve_within(self._root, relative)


class ReadFileTool(WorkspaceTool):
    name = "read_file"
    description = "Read a UTF-8 text file relative to the workspace root."

    async def execute(
        self, payload: Mapping[str, Any], *, cancel_token: CancellationToken | None = None
    ) -> ToolOutput:
        relative = _require_str(payload, "path")
        path = self._resolve(relative)
        content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return ToolOutput(data={"path": relative_posix(self._root, path), "content": content})


class WriteFileTool(WorkspaceTool):
    name = "write_file"
    description = "Atomically write a UTF-8 text file relative to the workspace root."

    async def execute(
        self, payload: Mapping[str, Any], *, cancel_token: CancellationToken | None = None
    ) -> ToolOutput:
        relative = _require_str(payload, "path")
        content = payload.get("content")
        if not isinstance(content, str):
            raise ValueError("payload field 'content' must be a string")
        path = self._resolve(relative)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(path, content)

        await asyncio.to_thread(_write)
        written = relative_posix(self._root, path)
        return ToolOutput(
            data={"path": written, "bytes": len(content.encode("utf-8"))},
            artifacts=(written,),
        )


class ListFilesTool(WorkspaceTool):
    """Structural directory scan: files under a scope whose path contains a term."""

    name = "list_files"
    description = "List workspace files under a scope, optionally filtered by path terms."

    def __init__(self, root: Path | str, *, scanner: RepositoryScanner | None = None) -> None:
        super().__init__(root)
        self._scanner = scanner if scanner is not None else RepositoryScanner(self._root)

    async def execute(
        self, payload: Mapping[str, Any], *, cancel_token: CancellationToken | None = None
    ) -> ToolOutput:
        scope = payload.get("scope", ".")
        if not isinstance(scope, str):
            raise ValueError("payload field 'scope' must be a string")
        terms = [term.lower() for term in _str_list(payload, "match")]
        limit = _positive_int(payload, "limit", _DEFAULT_SEARCH_LIMIT)

        files = await asyncio.to_thread(self._scanner.iter_files, scope)
        if terms:
            files = [path for path in files if any(term in path.lower() for term in terms)]
        return ToolOutput(data={"scope": scope, "files": files[:limit], "total": len(files)})


class SearchTextTool(WorkspaceTool):
    """Full-text scan for any of the given terms (case-insensitive)."""

    name = "search_text"
    description = "Scan file contents under a scope for any of the given terms."

    def __init__(self, root: Path | str, *, scanner: RepositoryScanner | None = None) -> None:
        super().__init__(root)
        self._scanner = scanner if scanner is not None else RepositoryScanner(self._root)

    async def execute(
        self, payload: Mapping[str, Any], *, cancel_token: CancellationToken | None = None
    ) -> ToolOutput:
        terms = [term.lower() for term in _str_list(payload, "terms")]
        if not terms:
            raise ValueError("payload field 'terms' must contain at least one term")
        scope = payload.get("scope", ".")
        if not isinstance(scope, str):
            raise ValueError("payload field 'scope' must be a string")
        limit = _positive_int(payload, "limit", _DEFAULT_SEARCH_LIMIT)

        def _scan() -> tuple[list[dict[str, Any]], list[str]]:
            matches: list[dict[str, Any]] = []
            files: dict[str, None] = {}
            for relative in self._scanner.iter_files(scope):
                if cancel_token is not None and cancel_token.is_cancelled:
                    break
                text = self._scanner.read_text(relative)
                if text is None:
                    continue
                for line_number, line in enumerate(text.splitlines(), start=1):
                    lowered = line.lower()
                    if any(term in lowered for term in terms):
                        matches.append({"path": relative, "line": line_number, "text": line.strip()[:240]})
                        files.setdefault(relative, None)
                        if len(matches) >= limit:
                            return matches, list(files)
            return matches, list(files)

        matches, files = await asyncio.to_thread(_scan)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        return ToolOutput(data={"matches": matches, "files": files})


@dataclass(frozen=True, slots=True)
class CommandResult:
    argv: tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "argv": list(self.argv),
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "duration_ms": self.duration_ms,
            "timed_out": self.timed_out,
        }


class RunCommandTool(WorkspaceTool):
    """Runs an executable in the workspace; the exit code is data, not an error."""

    name = "run_command"
    description = "Run a command (argv list or shell-style string) inside the workspace."

    def __init__(self, root: Path | str, *, allowlist: Sequence[str] = ()) -> None:
        super().__init__(root)
        self._allowlist = frozenset(allowlist)

    async def execute(
        self, payload: Mapping[str, Any], *, cancel_token: CancellationToken | None = None
    ) -> ToolOutput:
        argv = self._argv_from(payload)
        cwd_value = payload.get("cwd", ".")
        cwd = self._resolve(cwd_value) if isinstance(cwd_value, str) and cwd_value != "." else self._root
        timeout = payload.get("timeout_seconds")
        if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
            raise ValueError("payload field 'timeout_seconds' must be a positive number")

        result = await self.run(argv, cwd=cwd, timeout_seconds=timeout, cancel_token=cancel_token)
        return ToolOutput(data=result.to_dict())

    def _argv_from(self, payload: Mapping[str, Any]) -> tuple[str, ...]:
        if "argv" in payload:
            argv = tuple(_str_list(payload, "argv"))
        else:
            argv = tuple(shlex.split(_require_str(payload, "command")))
        if not argv:
            raise ValueError("command must not be empty")
        return argv

    def check_allowed(self, argv: Sequence[str]) -> None:
        executable = PurePosixPath(argv[0]).name
        if self._allowlist and executable not in self._allowlist:
            raise PermissionError(f"executable {executable!r} is not in the shell allowlist")

    async def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout_seconds: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> CommandResult:
        self.check_allowed(argv)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        started = time.monotonic()
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd or self._root),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        communicate = asyncio.ensure_future(process.communicate())
        waiters: set[asyncio.Future[Any]] = {communicate}
        cancel_wait: asyncio.Task[None] | None = None
        if cancel_token is not None:
            cancel_wait = asyncio.create_task(cancel_token.wait())
            waiters.add(cancel_wait)

        timed_out = False
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout_seconds, return_when=asyncio.FIRST_COMPLETED
            )
            if communicate not in done:
                with suppress(ProcessLookupError):
                    process.kill()
                if cancel_wait is not None and cancel_wait in done:
                    communicate.cancel()
                    with suppress(asyncio.CancelledError):
                        await communicate
                    await process.wait()
                    raise asyncio.CancelledError("command cancelled")
                timed_out = True
            stdout_bytes, stderr_bytes = await communicate
        except asyncio.CancelledError:
            with suppress(ProcessLookupError):
                process.kill()
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()
                with suppress(asyncio.CancelledError):
                    await cancel_wait

        return CommandResult(
            argv=tuple(argv),
            exit_code=None if timed_out else process.returncode,
            stdout=_truncate(stdout_bytes.decode("utf-8", errors="replace")),
            stderr=_truncate(stderr_bytes.decode("utf-8", errors="replace")),
            duration_ms=int((time.monotonic() - started) * 1000),
            timed_out=timed_out,
        )


@dataclass(frozen=True, slots=True)
class TestRunSummary:
    """Pass/fail counts and coverage parsed from a test runner's output."""

    __test__ = False

    passed: int
    failed: int
    errors: int
    coverage: float | None

    @property
    def tests_run(self) -> int:
        return self.passed + self.failed + self.errors


def parse_test_output(output: str) -> TestRunSummary:
    def _last_int(pattern: re.Pattern[str]) -> int:
        found = pattern.findall(output)
        return int(found[-1]) if found else 0

    coverage: float | None = None
    for pattern in _COVERAGE_PATTERNS:
        found = pattern.findall(output)
        if found:
            coverage = float(found[-1])
            break
    return TestRunSummary(
        passed=_last_int(_PASSED_PATTERN),
        failed=_last_int(_FAILED_PATTERN),
        errors=_last_int(_ERROR_PATTERN),
        coverage=coverage,
    )


class RunTestsTool(WorkspaceTool):
    """External test runner invoked through the configured command."""

    name = "run_tests"
    description = "Run the configured test command and report counts and coverage."

    def __init__(
        self,
        root: Path | str,
        *,
        command: str = DEFAULT_TEST_COMMAND,
        runner: RunCommandTool | None = None,
    ) -> None:
        super().__init__(root)
        self._argv = tuple(shlex.split(command))
        if not self._argv:
            raise ValueError("test command must not be empty")
        self._runner = runner if runner is not None else RunCommandTool(root)

    async def execute(
        self, payload: Mapping[str, Any], *, cancel_token: CancellationToken | None = None
    ) -> ToolOutput:
        targets = [relative_posix(self._root, self._resolve(path)) for path in _str_list(payload, "paths")]
        result = await self._runner.run((*self._argv, *targets), cancel_token=cancel_token)
        summary = parse_test_output(f"{result.stdout}\n{result.stderr}")
        return ToolOutput(
            data={
                "exit_code": result.exit_code,
                "tests_run": summary.tests_run,
                "passed": summary.passed,
                "failed": summary.failed,
                "errors": summary.errors,
                "coverage": summary.coverage,
                "output": result.stdout[-4000:],
            }
        )


__all__ = [
    "DEFAULT_TEST_COMMAND",
    "CommandResult",
    "ListFilesTool",
    "ReadFileTool",
    "RunCommandTool",
    "RunTestsTool",
    "SearchTextTool",
    "TestRunSummary",
    "WorkspaceTool",
    "WriteFileTool",
    "parse_test_output",
]
