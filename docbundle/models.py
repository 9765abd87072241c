"""Core data models shared across docbundle components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatchcase
from pathlib import Path
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class SkipPattern:
    """Exclusion glob parsed once from a manifest ``skip`` entry."""

    pattern: str
    directory_only: bool = False
    anchored: bool = False
    has_slash: bool = False

    @classmethod
    def parse(cls, raw: str) -> "SkipPattern | None":
        pattern = raw.strip()
        if not pattern:
            return None

        directory_only = pattern.endswith("/")
        if directory_only:
            pattern = pattern.rstrip("/")

        anchored = pattern.startswith("/")
        if anchored:
            pattern = pattern.lstrip("/")

        if not pattern:
            return None
        return cls(
            pattern=pattern,
            directory_only=directory_only,
            anchored=anchored,
            has_slash="/" in pattern,
        )

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        """Return True when ``rel_path`` (POSIX, relative to the doc root) is excluded."""
        if self.directory_only and not is_dir:
            return False

        if not (self.anchored or self.has_slash):
            return any(fnmatchcase(part, self.pattern) for part in rel_path.split("/"))

        if fnmatchcase(rel_path, self.pattern):
            return True
        if not self.anchored and self.pattern.startswith("**/"):
            if fnmatchcase(rel_path, self.pattern[3:]):
                return True
        if self.pattern.endswith("/**"):
            prefix = self.pattern[:-3]
            if fnmatchcase(rel_path, prefix):
                return True
        return False

    def __str__(self) -> str:
        text = f"/{self.pattern}" if self.anchored else self.pattern
        return f"{text}/" if self.directory_only else text


@dataclass(frozen=True)
class RepositoryEntry:
    """One row of the repository manifest."""

    url: str
    path: str
    version: Optional[str] = None
    skip: Tuple[SkipPattern, ...] = ()
    index: int = 0


@dataclass(frozen=True)
class ResolvedVersion:
    """Fetch reference and naming derived from a declared version."""

    fetch_ref: Optional[str]
    display_label: str
    safe_slug: str


@dataclass(frozen=True)
class FetchedRepository:
    """Local working tree produced by a fetcher for a single entry."""

    root: Path
    url: str
    ref: Optional[str]


@dataclass(frozen=True)
class ExtractedDoc:
    """Concatenated documentation stream written to a scratch file."""

    path: Path
    file_count: int
    byte_count: int


class OutputMode(str, Enum):
    """How extracted documentation is packaged."""

    MULTI = "multi"
    AGGREGATE = "aggregate"


class EntryState(str, Enum):
    """Pipeline states for a single manifest entry."""

    RESOLVING = "resolving"
    FETCHING = "fetching"
    VALIDATING = "validating"
    EXTRACTING = "extracting"
    WRITING = "writing"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RunContext:
    """Explicit run state threaded through the pipeline."""

    output_dir: Path
    scratch_dir: Path
    mode: OutputMode = OutputMode.MULTI
    output_name: Optional[str] = None
    jobs: int = 1


@dataclass
class EntryOutcome:
    """Terminal state of one entry after the pipeline ran."""

    entry: RepositoryEntry
    repo_name: str
    version: ResolvedVersion
    state: EntryState
    artifact: Optional[Path] = None
    message: str = ""
    # Stage the entry was in when it failed; None unless state is FAILED.
    failed_stage: Optional[EntryState] = None


@dataclass
class RunReport:
    """Summary of a full manifest run."""

    outcomes: List[EntryOutcome] = field(default_factory=list)
    artifacts: List[Path] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state is EntryState.DONE)

    @property
    def skipped(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state is EntryState.SKIPPED)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state is EntryState.FAILED)
