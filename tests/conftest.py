from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from docbundle.logging import reset_logging
from docbundle.models import OutputMode, RunContext


@pytest.fixture(autouse=True)
def reset_docbundle_logger() -> Iterator[None]:
    """Undo CLI logging configuration so caplog sees records in every test."""
    yield
    reset_logging()


@pytest.fixture
def run_context(tmp_path: Path) -> RunContext:
    """Provide a multi-file run context with fresh output and scratch directories."""
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    return RunContext(
        output_dir=tmp_path / "docs",
        scratch_dir=scratch,
        mode=OutputMode.MULTI,
    )


@pytest.fixture
def write_manifest(tmp_path: Path):
    """Return a helper that writes manifest YAML text and returns its path."""

    def _write(text: str, name: str = "repos.yaml") -> Path:
        path = tmp_path / name
        path.write_text(text.lstrip("\n"), encoding="utf-8")
        return path

    return _write
