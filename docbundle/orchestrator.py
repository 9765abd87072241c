"""Pipeline orchestration for manifest runs."""

from __future__ import annotations

import shutil
from collections import deque
from contextlib import closing
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from itertools import islice
from pathlib import Path
from typing import Deque, Iterator, Optional, Sequence

from .assembler import Assembler, build_assembler
from .compression import Compressor, ZstdCompressor
from .extractor import ExtractError, Extractor, TreeExtractor
from .git.fetcher import FetchError, Fetcher, GitFetcher
from .logging import get_logger
from .models import (
    EntryOutcome,
    EntryState,
    ExtractedDoc,
    RepositoryEntry,
    ResolvedVersion,
    RunContext,
    RunReport,
)
from .versions import repo_name_from_url, resolve_version


@dataclass
class PreparedEntry:
    """Result of the fetch and extract stages for one entry."""

    entry: RepositoryEntry
    repo_name: str
    version: ResolvedVersion
    workspace: Path
    state: EntryState
    doc: Optional[ExtractedDoc] = None
    message: str = ""
    failed_stage: Optional[EntryState] = None


class Orchestrator:
    """Runs every manifest entry through fetch, extract and output assembly."""

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        extractor: Extractor | None = None,
        compressor: Compressor | None = None,
    ) -> None:
        self.fetcher = fetcher or GitFetcher()
        self.extractor = extractor or TreeExtractor()
        self.compressor = compressor or ZstdCompressor()
        self.logger = get_logger("orchestrator")

    def run(self, entries: Sequence[RepositoryEntry], context: RunContext) -> RunReport:
        """Process ``entries`` in manifest order and return the run summary."""
        report = RunReport()
        assembler = build_assembler(context, self.compressor)
        assembler.open()
        try:
            with closing(self._prepare_all(entries, context)) as prepared_entries:
                for prepared in prepared_entries:
                    outcome = self._write(prepared, assembler)
                    report.outcomes.append(outcome)
                    if outcome.artifact is not None:
                        report.artifacts.append(outcome.artifact)

            artifact = assembler.finalize()
            if artifact is not None:
                report.artifacts.append(artifact)
        finally:
            assembler.close()

        self.logger.info(
            "Processed %d repositories: %d succeeded, %d skipped, %d failed.",
            len(report.outcomes),
            report.succeeded,
            report.skipped,
            report.failed,
        )
        return report

    def _prepare_all(
        self, entries: Sequence[RepositoryEntry], context: RunContext
    ) -> Iterator[PreparedEntry]:
        if context.jobs <= 1 or len(entries) <= 1:
            for entry in entries:
                yield self.prepare(entry, context)
            return

        # At most ``jobs`` entries are queued or running, plus the one being written,
        # so the number of live scratch workspaces never exceeds ``jobs + 1``.
        executor = ThreadPoolExecutor(max_workers=context.jobs, thread_name_prefix="docbundle")
        remaining = iter(entries)
        pending: Deque[Future[PreparedEntry]] = deque()
        try:
            for entry in islice(remaining, context.jobs):
                pending.append(executor.submit(self.prepare, entry, context))
            # Consume in submission order so output never depends on completion order.
            while pending:
                prepared = pending.popleft().result()
                for entry in islice(remaining, 1):
                    pending.append(executor.submit(self.prepare, entry, context))
                yield prepared
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
            for future in pending:
                if future.done() and not future.cancelled() and future.exception() is None:
                    leftover = future.result()
                    if leftover.workspace.exists():
                        shutil.rmtree(leftover.workspace, ignore_errors=True)

    def prepare(self, entry: RepositoryEntry, context: RunContext) -> PreparedEntry:
        """Resolve, fetch, validate and extract one entry into its scratch workspace."""
        repo_name = repo_name_from_url(entry.url)
        version = resolve_version(entry.version)
        if version.fetch_ref is None:
            self.logger.info(
                "Version not specified for '%s', cloning default branch.", repo_name
            )
        self.logger.info(
            "--- Processing repository: %s (version: %s)", repo_name, version.display_label
        )

        workspace = context.scratch_dir / f"{entry.index:03d}-{repo_name}"
        checkout = workspace / "checkout"
        prepared = PreparedEntry(
            entry=entry,
            repo_name=repo_name,
            version=version,
            workspace=workspace,
            state=EntryState.RESOLVING,
        )
        try:
            prepared.state = EntryState.FETCHING
            self.logger.info("Cloning %s...", entry.url)
            fetched = self.fetcher.fetch(entry.url, version.fetch_ref, checkout)

            prepared.state = EntryState.VALIDATING
            clone_root = fetched.root.resolve()
            doc_root = (clone_root / entry.path).resolve()
            if not doc_root.is_relative_to(clone_root):
                return self._fail(
                    prepared,
                    f"Documentation path '{entry.path}' escapes the repository checkout",
                )
            if not doc_root.is_dir():
                self.logger.warning(
                    "Documentation path '%s' not found in '%s'. Skipping.",
                    entry.path,
                    repo_name,
                )
                prepared.state = EntryState.SKIPPED
                prepared.message = f"Documentation path '{entry.path}' not found"
                shutil.rmtree(workspace, ignore_errors=True)
                return prepared

            prepared.state = EntryState.EXTRACTING
            if entry.skip:
                self.logger.info(
                    "Applying skip patterns: %s", ",".join(str(rule) for rule in entry.skip)
                )
            doc = self.extractor.extract(doc_root, entry.skip, workspace / "extracted.md")
        except FetchError as exc:
            self.logger.error(
                "Failed to fetch repositories[%d] %s (ref: %s): %s",
                entry.index,
                entry.url,
                version.fetch_ref or "default branch",
                exc,
            )
            return self._fail(prepared, str(exc))
        except ExtractError as exc:
            self.logger.error(
                "Failed to extract documentation for repositories[%d] %s: %s",
                entry.index,
                entry.url,
                exc,
            )
            return self._fail(prepared, str(exc))
        except BaseException:
            shutil.rmtree(workspace, ignore_errors=True)
            raise
        finally:
            if checkout.exists():
                shutil.rmtree(checkout, ignore_errors=True)

        prepared.state = EntryState.WRITING
        prepared.doc = doc
        return prepared

    def _fail(self, prepared: PreparedEntry, message: str) -> PreparedEntry:
        prepared.failed_stage = prepared.state
        prepared.state = EntryState.FAILED
        prepared.message = message
        shutil.rmtree(prepared.workspace, ignore_errors=True)
        return prepared

    def _write(self, prepared: PreparedEntry, assembler: Assembler) -> EntryOutcome:
        outcome = EntryOutcome(
            entry=prepared.entry,
            repo_name=prepared.repo_name,
            version=prepared.version,
            state=prepared.state,
            message=prepared.message,
            failed_stage=prepared.failed_stage,
        )
        if prepared.doc is None:
            return outcome

        try:
            outcome.artifact = assembler.add(
                prepared.doc,
                repo_name=prepared.repo_name,
                display_label=prepared.version.display_label,
                doc_path=prepared.entry.path,
                safe_slug=prepared.version.safe_slug,
            )
        except OSError as exc:
            self.logger.error(
                "Failed to write output for repositories[%d] %s: %s",
                prepared.entry.index,
                prepared.entry.url,
                exc,
            )
            outcome.failed_stage = EntryState.WRITING
            outcome.state = EntryState.FAILED
            outcome.message = str(exc)
        else:
            outcome.state = EntryState.DONE
            self.logger.info("Finished processing %s.", prepared.repo_name)
        finally:
            shutil.rmtree(prepared.workspace, ignore_errors=True)
        return outcome


__all__ = ["Orchestrator", "PreparedEntry"]
