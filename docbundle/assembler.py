"""Output strategies: one artifact per repository or one aggregate artifact."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import BinaryIO, Optional, Protocol

from .compression import Compressor
from .config import ConfigError, validate_output_name
from .extractor import copy_stream
from .logging import get_logger
from .models import ExtractedDoc, OutputMode, RunContext


def multi_file_header(repo_name: str, display_label: str) -> str:
    return f"# Documentation from {repo_name} @ {display_label}\n\n"


def aggregate_header(repo_name: str, display_label: str, doc_path: str) -> str:
    return (
        f"# Documentation from {repo_name} @ {display_label}\n"
        "\n"
        f"Source Path: `{doc_path}`\n"
        "\n"
        "---\n"
        "\n"
    )


class Assembler(Protocol):
    """Receives extracted documents in manifest order."""

    def open(self) -> None:
        ...

    def add(
        self,
        doc: ExtractedDoc,
        *,
        repo_name: str,
        display_label: str,
        doc_path: str,
        safe_slug: str,
    ) -> Optional[Path]:
        ...

    def finalize(self) -> Optional[Path]:
        ...

    def close(self) -> None:
        ...


class MultiFileAssembler:
    """Compresses each repository's documentation into its own artifact."""

    def __init__(self, context: RunContext, compressor: Compressor) -> None:
        self.context = context
        self.compressor = compressor
        self.logger = get_logger("assembler")
        self.work_dir = context.scratch_dir / "assembly"

    def artifact_path(self, repo_name: str, safe_slug: str) -> Path:
        return self.context.output_dir / f"{repo_name}-{safe_slug}.md{self.compressor.suffix}"

    def open(self) -> None:
        self.context.output_dir.mkdir(parents=True, exist_ok=True)
        self.work_dir.mkdir(parents=True, exist_ok=True)

    def add(
        self,
        doc: ExtractedDoc,
        *,
        repo_name: str,
        display_label: str,
        doc_path: str,
        safe_slug: str,
    ) -> Optional[Path]:
        artifact = self.artifact_path(repo_name, safe_slug)
        intermediate = self.work_dir / f"{repo_name}-{safe_slug}.md"
        self.logger.info("Generating individual file: %s", artifact)
        try:
            with intermediate.open("wb") as out:
                out.write(multi_file_header(repo_name, display_label).encode("utf-8"))
                copy_stream(doc, out)
            self.compressor.compress(intermediate, artifact)
        finally:
            intermediate.unlink(missing_ok=True)
        self.logger.info("Created %s", artifact)
        return artifact

    def finalize(self) -> Optional[Path]:
        return None

    def close(self) -> None:
        shutil.rmtree(self.work_dir, ignore_errors=True)


class AggregateAssembler:
    """Appends every repository to one buffer and compresses it once at the end."""

    def __init__(self, context: RunContext, compressor: Compressor) -> None:
        if not context.output_name:
            raise ConfigError("Aggregate mode requires an output name")
        self.context = context
        self.compressor = compressor
        self.output_name = validate_output_name(context.output_name)
        self.logger = get_logger("assembler")
        buffer_name = Path(self.output_name).name
        if buffer_name.endswith(compressor.suffix):
            buffer_name = buffer_name[: -len(compressor.suffix)]
        self.work_dir = context.scratch_dir / "assembly"
        self.buffer_path = self.work_dir / (buffer_name or "aggregate.md")
        self._handle: Optional[BinaryIO] = None

    @property
    def artifact_path(self) -> Path:
        return self.context.output_dir / self.output_name

    def open(self) -> None:
        self.context.output_dir.mkdir(parents=True, exist_ok=True)
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self._handle = self.buffer_path.open("wb")

    def add(
        self,
        doc: ExtractedDoc,
        *,
        repo_name: str,
        display_label: str,
        doc_path: str,
        safe_slug: str,
    ) -> Optional[Path]:
        if self._handle is None:
            raise RuntimeError("Aggregate buffer is not open")
        self.logger.info("Appending to aggregate file: %s", self.buffer_path)
        start = self._handle.tell()
        try:
            self._handle.write(aggregate_header(repo_name, display_label, doc_path).encode("utf-8"))
            copy_stream(doc, self._handle)
            self._handle.flush()
        except OSError:
            # Drop the partial block so a failed entry contributes nothing.
            self._handle.seek(start)
            self._handle.truncate()
            raise
        return None

    def finalize(self) -> Optional[Path]:
        self._close_handle()
        self.logger.info("Compressing the final aggregate markdown file")
        try:
            if not self.buffer_path.exists() or self.buffer_path.stat().st_size == 0:
                self.logger.warning(
                    "The generated markdown file '%s' is empty; no artifact written.",
                    self.buffer_path.name,
                )
                return None
            artifact = self.compressor.compress(self.buffer_path, self.artifact_path)
        finally:
            self.buffer_path.unlink(missing_ok=True)
        self.logger.info(
            "Success! Aggregated and compressed documentation created at: %s", artifact
        )
        return artifact

    def close(self) -> None:
        self._close_handle()
        shutil.rmtree(self.work_dir, ignore_errors=True)

    def _close_handle(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


def build_assembler(context: RunContext, compressor: Compressor) -> Assembler:
    """Return the output strategy selected for this run."""
    if context.mode is OutputMode.AGGREGATE:
        return AggregateAssembler(context, compressor)
    return MultiFileAssembler(context, compressor)


__all__ = [
    "AggregateAssembler",
    "Assembler",
    "MultiFileAssembler",
    "aggregate_header",
    "build_assembler",
    "multi_file_header",
]
