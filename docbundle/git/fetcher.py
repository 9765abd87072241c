"""Shallow git clones for manifest repositories."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol

from ..logging import get_logger
from ..models import FetchedRepository

_REASON_PATTERNS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "ref-not-found",
        (
            "remote branch",
            "could not find remote branch",
            "couldn't find remote ref",
        ),
    ),
    (
        "auth",
        (
            "authentication failed",
            "could not read username",
            "could not read password",
            "permission denied",
            "terminal prompts disabled",
        ),
    ),
    (
        "repository-not-found",
        (
            "repository not found",
            "does not appear to be a git repository",
            "does not exist",
            "not found",
        ),
    ),
    (
        "network",
        (
            "could not resolve host",
            "unable to access",
            "connection refused",
            "connection timed out",
            "network is unreachable",
            "early eof",
        ),
    ),
)


class FetchError(RuntimeError):
    """Raised when a repository cannot be fetched at the requested ref."""

    def __init__(self, url: str, ref: Optional[str], reason: str, detail: str = "") -> None:
        self.url = url
        self.ref = ref
        self.reason = reason
        self.detail = detail.strip()
        target = f"{url}@{ref}" if ref else url
        message = f"Failed to fetch {target} ({reason})"
        if self.detail:
            message += f": {self.detail}"
        super().__init__(message)


class Fetcher(Protocol):
    """Populates an empty directory with a repository checkout."""

    def fetch(self, url: str, ref: Optional[str], dest: Path) -> FetchedRepository:
        ...


def classify_clone_failure(stderr: str) -> str:
    """Map git's stderr output onto a coarse failure reason."""
    lowered = stderr.lower()
    for reason, needles in _REASON_PATTERNS:
        if any(needle in lowered for needle in needles):
            return reason
    return "unknown"


class GitFetcher:
    """Runs ``git clone --depth 1`` into a fresh directory."""

    def __init__(
        self,
        runner: Callable[..., str] | None = None,
        *,
        depth: int = 1,
        git_executable: str = "git",
    ) -> None:
        self._runner = runner or self._default_runner
        self._depth = depth
        self._git = git_executable
        self.logger = get_logger("git.fetcher")

    def fetch(self, url: str, ref: Optional[str], dest: Path) -> FetchedRepository:
        """Clone ``url`` at ``ref`` (or the default branch) into ``dest``."""
        dest = Path(dest)
        if dest.exists() and (not dest.is_dir() or any(dest.iterdir())):
            raise FetchError(url, ref, "destination-not-empty", str(dest))
        dest.parent.mkdir(parents=True, exist_ok=True)

        args = [self._git, "clone", "--depth", str(self._depth)]
        if ref:
            args.extend(["--branch", ref])
        args.extend(["--", url, str(dest)])

        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"

        self.logger.debug("Running %s", " ".join(args))
        try:
            self._runner(args, cwd=dest.parent, env=env, capture_output=True)
        except FileNotFoundError as exc:
            raise FetchError(url, ref, "git-missing", str(exc)) from exc
        except subprocess.CalledProcessError as exc:
            stderr = _as_text(exc.stderr) or _as_text(exc.output)
            raise FetchError(url, ref, classify_clone_failure(stderr), _last_line(stderr)) from exc

        return FetchedRepository(root=dest, url=url, ref=ref)

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        env: dict[str, str] | None = None,
        capture_output: bool = False,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            env=env,
            check=True,
            text=True,
            capture_output=capture_output,
        )
        if capture_output:
            return completed.stdout
        return ""


def _as_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _last_line(text: str) -> str:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return lines[-1] if lines else ""


__all__ = ["FetchError", "Fetcher", "GitFetcher", "classify_clone_failure"]
