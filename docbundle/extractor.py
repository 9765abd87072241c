"""Concatenate documentation trees into a single stream."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import BinaryIO, Iterator, Protocol, Sequence

from .logging import get_logger
from .models import ExtractedDoc, SkipPattern

_EXCLUDED_DIRS = {".git", ".hg", ".svn"}
_BINARY_SNIFF_BYTES = 8192
_COPY_BUFFER = 1024 * 1024


class ExtractError(RuntimeError):
    """Raised when a documentation tree cannot be serialized."""


class Extractor(Protocol):
    """Serializes the files under a root directory into one stream."""

    def extract(
        self, root: Path, skip: Sequence[SkipPattern], dest: Path
    ) -> ExtractedDoc:
        ...


def _is_skipped(rel_path: str, is_dir: bool, skip: Sequence[SkipPattern]) -> bool:
    return any(rule.matches(rel_path, is_dir) for rule in skip)


def iter_documents(root: Path, skip: Sequence[SkipPattern]) -> Iterator[tuple[str, Path]]:
    """Yield ``(relative_posix_path, path)`` for included files in a stable order."""
    resolved_root = root.resolve()
    for dirpath, dirnames, filenames in os.walk(root):
        current_dir = Path(dirpath)
        rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

        kept_dirs = []
        for name in sorted(dirnames):
            if name in _EXCLUDED_DIRS:
                continue
            rel_path = f"{rel_dir}/{name}" if rel_dir else name
            if _is_skipped(rel_path, True, skip):
                continue
            kept_dirs.append(name)
        dirnames[:] = kept_dirs

        # Files at one level sort before the contents of its subdirectories.
        for filename in sorted(filenames):
            rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
            if _is_skipped(rel_path, False, skip):
                continue
            path = current_dir / filename
            if not path.is_file():
                continue
            if path.is_symlink() and not path.resolve().is_relative_to(resolved_root):
                continue
            yield rel_path, path


def _looks_binary(path: Path) -> bool:
    with path.open("rb") as handle:
        return b"\x00" in handle.read(_BINARY_SNIFF_BYTES)


def _write_file(out: BinaryIO, rel_path: str, path: Path) -> int:
    out.write(f"--- {rel_path} ---\n".encode("utf-8"))
    written = 0
    last = b""
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(_COPY_BUFFER)
            if not chunk:
                break
            out.write(chunk)
            written += len(chunk)
            last = chunk[-1:]
    if written and last != b"\n":
        out.write(b"\n")
    out.write(b"\n")
    return written


class TreeExtractor:
    """Walks a documentation directory and writes matching files to one file."""

    def __init__(self) -> None:
        self.logger = get_logger("extractor")

    def extract(
        self, root: Path, skip: Sequence[SkipPattern], dest: Path
    ) -> ExtractedDoc:
        root = Path(root)
        if not root.exists():
            raise ExtractError(f"Documentation root not found: {root}")
        if not root.is_dir():
            raise ExtractError(f"Documentation root is not a directory: {root}")

        file_count = 0
        byte_count = 0
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            with dest.open("wb") as out:
                for rel_path, path in iter_documents(root, skip):
                    if _looks_binary(path):
                        self.logger.debug("Skipping binary file %s", rel_path)
                        continue
                    byte_count += _write_file(out, rel_path, path)
                    file_count += 1
        except OSError as exc:
            dest.unlink(missing_ok=True)
            raise ExtractError(f"Failed to extract documentation from {root}: {exc}") from exc

        self.logger.debug("Extracted %d files (%d bytes) from %s", file_count, byte_count, root)
        return ExtractedDoc(path=dest, file_count=file_count, byte_count=byte_count)


def copy_stream(doc: ExtractedDoc, out: BinaryIO) -> None:
    """Append the extracted stream to an open binary handle."""
    with doc.path.open("rb") as handle:
        shutil.copyfileobj(handle, out, _COPY_BUFFER)


__all__ = ["ExtractError", "Extractor", "TreeExtractor", "copy_stream", "iter_documents"]
