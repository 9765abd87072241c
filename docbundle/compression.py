"""zstd compression of finished documentation files."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

import zstandard

DEFAULT_LEVEL = 3
MIN_LEVEL = 1
MAX_LEVEL = 22


class Compressor(Protocol):
    """Compresses one input file into one framed output file."""

    suffix: str

    def compress(self, source: Path, destination: Path) -> Path:
        ...


class ZstdCompressor:
    """Writes a single zstd frame, equivalent to ``zstd -f -o dest source``."""

    suffix = ".zstd"

    def __init__(self, level: int = DEFAULT_LEVEL) -> None:
        if not MIN_LEVEL <= level <= MAX_LEVEL:
            raise ValueError(f"zstd level must be between {MIN_LEVEL} and {MAX_LEVEL}: {level}")
        self.level = level

    def compress(self, source: Path, destination: Path) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".partial")
        compressor = zstandard.ZstdCompressor(level=self.level, write_checksum=True)
        try:
            with source.open("rb") as src, partial.open("wb") as dst:
                compressor.copy_stream(src, dst, size=source.stat().st_size)
            partial.replace(destination)
        finally:
            partial.unlink(missing_ok=True)
        return destination


__all__ = ["Compressor", "DEFAULT_LEVEL", "MAX_LEVEL", "MIN_LEVEL", "ZstdCompressor"]
