"""Checks for external tools required before a run starts."""

from __future__ import annotations

import shutil
from typing import Iterable, List

REQUIRED_TOOLS = ("git",)


class MissingDependencyError(RuntimeError):
    """Raised when a required executable is not available on PATH."""

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = list(missing)
        names = ", ".join(f"'{name}'" for name in self.missing)
        super().__init__(f"Required dependency {names} is not installed.")


def check_dependencies(tools: Iterable[str] = REQUIRED_TOOLS) -> None:
    """Raise MissingDependencyError if any of ``tools`` cannot be found."""
    missing: List[str] = [tool for tool in tools if shutil.which(tool) is None]
    if missing:
        raise MissingDependencyError(missing)


__all__ = ["MissingDependencyError", "REQUIRED_TOOLS", "check_dependencies"]
