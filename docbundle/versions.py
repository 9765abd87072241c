"""Version resolution and artifact naming helpers."""

from __future__ import annotations

import re
from typing import Optional

from .models import ResolvedVersion

DEFAULT_BRANCH_LABEL = "default branch"
DEFAULT_BRANCH_SLUG = "main"
NULL_VERSION = "null"

_UNSAFE_CHARS = re.compile(r'[/\\:*?"<>|\x00-\x1f]')


def resolve_version(declared: Optional[str]) -> ResolvedVersion:
    """Map a declared manifest version to a fetch ref, display label and filename slug."""
    if declared is None or not declared.strip() or declared.strip() == NULL_VERSION:
        return ResolvedVersion(
            fetch_ref=None,
            display_label=DEFAULT_BRANCH_LABEL,
            safe_slug=DEFAULT_BRANCH_SLUG,
        )
    ref = declared.strip()
    return ResolvedVersion(fetch_ref=ref, display_label=ref, safe_slug=safe_filename(ref))


def safe_filename(value: str) -> str:
    """Replace path separators and other filename-unsafe characters with underscores."""
    return _UNSAFE_CHARS.sub("_", value)


def repo_name_from_url(url: str) -> str:
    """Derive a short repository name from a clone URL (``basename url .git``)."""
    trimmed = url.strip().rstrip("/\\")
    name = re.split(r"[/\\:]", trimmed)[-1] if trimmed else ""
    if name.endswith(".git"):
        name = name[: -len(".git")]
    name = safe_filename(name)
    if not name or name in {".", ".."}:
        return "repository"
    return name


__all__ = [
    "DEFAULT_BRANCH_LABEL",
    "DEFAULT_BRANCH_SLUG",
    "NULL_VERSION",
    "repo_name_from_url",
    "resolve_version",
    "safe_filename",
]
