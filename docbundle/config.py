"""Manifest loading for docbundle (repositories YAML)."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from .models import RepositoryEntry, SkipPattern
from .versions import NULL_VERSION


class _ManifestLoader(yaml.SafeLoader):
    """SafeLoader that keeps numeric and date scalars as written, so ``1.10`` stays ``1.10``."""


def _construct_verbatim(loader: yaml.SafeLoader, node: yaml.ScalarNode) -> str:
    return loader.construct_scalar(node)


for _tag in ("int", "float", "timestamp"):
    _ManifestLoader.add_constructor(f"tag:yaml.org,2002:{_tag}", _construct_verbatim)


class ConfigError(RuntimeError):
    """Raised when run configuration is unusable."""


class ManifestError(ConfigError):
    """Raised when the repository manifest cannot be loaded."""


def load_manifest(manifest_path: Path) -> List[RepositoryEntry]:
    """Parse the manifest at ``manifest_path`` into ordered repository entries."""
    path = Path(manifest_path).expanduser()
    if not path.is_file():
        raise ManifestError(f"Manifest file not found at '{path}'")

    data = _read_manifest(path)
    if not isinstance(data, dict):
        raise ManifestError(f"{path.name} must contain a mapping at the root")

    if "repositories" not in data:
        raise ManifestError(f"{path.name} is missing the 'repositories' key")
    repositories = data["repositories"]
    if repositories is None:
        return []
    if not isinstance(repositories, list):
        raise ManifestError(f"'repositories' in {path.name} must be a list")

    return [_parse_entry(index, raw) for index, raw in enumerate(repositories)]


def validate_output_name(name: str) -> str:
    """Return ``name`` if it is a safe relative artifact name, else raise ConfigError."""
    cleaned = name.strip()
    if not cleaned:
        raise ConfigError("Output name must not be empty")
    candidate = PurePosixPath(cleaned.replace("\\", "/"))
    if candidate.is_absolute() or Path(cleaned).is_absolute():
        raise ConfigError(f"Output name must be relative to the output directory: {name}")
    if ".." in candidate.parts:
        raise ConfigError(f"Output name must not leave the output directory: {name}")
    return candidate.as_posix()


def _read_manifest(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestError(f"Failed to read {path}: {exc}") from exc
    try:
        return yaml.load(text, Loader=_ManifestLoader)
    except yaml.YAMLError as exc:
        raise ManifestError(f"Failed to parse {path.name}: {exc}") from exc


def _parse_entry(index: int, raw: Any) -> RepositoryEntry:
    label = f"repositories[{index}]"
    if not isinstance(raw, dict):
        raise ManifestError(f"{label} must be a mapping")

    url = _required_str(raw, "url", label)
    doc_path = _required_str(raw, "path", label)
    version = _optional_version(raw.get("version"), label)
    skip = _parse_skip(raw.get("skip"), label)

    return RepositoryEntry(
        url=url,
        path=doc_path,
        version=version,
        skip=skip,
        index=index,
    )


def _required_str(raw: Dict[str, Any], key: str, label: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ManifestError(f"{label} requires a non-empty string '{key}'")
    return value.strip()


def _optional_version(value: Any, label: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ManifestError(f"{label} has an invalid 'version': {value!r}")
    text = value.strip()
    if not text or text == NULL_VERSION:
        return None
    return text


def _parse_skip(value: Any, label: str) -> Tuple[SkipPattern, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items: Sequence[Any] = [value]
    elif isinstance(value, list):
        items = value
    else:
        raise ManifestError(f"{label} 'skip' must be a list of glob strings")

    seen: set[str] = set()
    patterns: List[SkipPattern] = []
    for item in items:
        if not isinstance(item, str):
            raise ManifestError(f"{label} 'skip' entries must be strings, got {item!r}")
        for part in item.split(","):
            rule = SkipPattern.parse(part)
            if rule is None or str(rule) in seen:
                continue
            seen.add(str(rule))
            patterns.append(rule)
    return tuple(patterns)


__all__ = ["ConfigError", "ManifestError", "load_manifest", "validate_output_name"]
