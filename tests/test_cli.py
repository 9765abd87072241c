"""CLI behaviour tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from docbundle import cli, orchestrator, preflight
from docbundle.cli import _build_parser, main
from tests._fixtures.artifacts import read_zstd
from tests._fixtures.fake_fetcher import FakeFetcher

MANIFEST = """
repositories:
  - url: https://example.com/org/alpha.git
    version: v2.0.0
    path: docs
    skip: ["**/_index.md"]
  - url: https://example.com/org/beta.git
    path: handbook
"""

TREES = {
    "https://example.com/org/alpha.git": {"docs/a.md": "alpha\n", "docs/x/_index.md": "skip me\n"},
    "https://example.com/org/beta.git": {"handbook/b.md": "beta\n"},
}


@pytest.fixture
def fake_fetcher(monkeypatch: pytest.MonkeyPatch) -> FakeFetcher:
    fetcher = FakeFetcher(TREES)
    monkeypatch.setattr(orchestrator, "GitFetcher", lambda: fetcher)
    monkeypatch.setattr(preflight.shutil, "which", lambda tool: f"/usr/bin/{tool}")
    return fetcher


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_cli_single_positional_selects_multi_file_mode() -> None:
    args = _build_parser().parse_args(["repos.yaml"])
    assert args.manifest == "repos.yaml"
    assert args.output_name is None
    assert args.clean is True
    assert args.jobs == 1


def test_cli_accepts_aggregate_name_and_flags() -> None:
    args = _build_parser().parse_args(
        ["--no-clean", "repos.yaml", "all.md.zstd", "--jobs", "4", "--level", "19", "-v"]
    )
    assert args.output_name == "all.md.zstd"
    assert args.clean is False
    assert args.jobs == 4
    assert args.level == 19
    assert args.verbose is True


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["a.yaml", "b.zstd", "extra"],
        ["--bogus", "a.yaml"],
        ["a.yaml", "--jobs", "0"],
        ["a.yaml", "--level", "40"],
    ],
)
def test_cli_rejects_bad_arguments_with_status_one(argv: list[str], capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    assert excinfo.value.code == 1
    assert "usage: docbundle" in capsys.readouterr().err


def test_cli_help_exits_zero(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["--help"])
    assert excinfo.value.code == 0
    assert "--no-clean" in capsys.readouterr().out


def test_cli_aborts_before_fetching_without_git(
    workdir: Path, write_manifest, monkeypatch: pytest.MonkeyPatch, capsys
) -> None:
    fetcher = FakeFetcher(TREES)
    monkeypatch.setattr(orchestrator, "GitFetcher", lambda: fetcher)
    monkeypatch.setattr(preflight.shutil, "which", lambda tool: None)
    manifest = write_manifest(MANIFEST)

    with pytest.raises(SystemExit) as excinfo:
        main([str(manifest)])

    assert excinfo.value.code == 1
    assert "'git' is not installed" in capsys.readouterr().err
    assert fetcher.calls == []
    assert not (workdir / "docs").exists()


def test_cli_rejects_missing_manifest(workdir: Path, fake_fetcher: FakeFetcher) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main([str(workdir / "nope.yaml")])
    assert excinfo.value.code == 1
    assert fake_fetcher.calls == []


def test_cli_multi_file_run_writes_docs_directory(
    workdir: Path, write_manifest, fake_fetcher: FakeFetcher, capsys
) -> None:
    manifest = write_manifest(MANIFEST)
    stale = workdir / "docs" / "stale.md.zstd"
    stale.parent.mkdir()
    stale.write_bytes(b"old")

    main([str(manifest)])

    produced = sorted(path.name for path in (workdir / "docs").iterdir())
    assert produced == ["alpha-v2.0.0.md.zstd", "beta-main.md.zstd"]
    assert "skip me" not in read_zstd(workdir / "docs" / "alpha-v2.0.0.md.zstd")
    assert "Created docs/beta-main.md.zstd" in capsys.readouterr().out


def test_cli_no_clean_keeps_existing_outputs(
    workdir: Path, write_manifest, fake_fetcher: FakeFetcher
) -> None:
    manifest = write_manifest(MANIFEST)
    keep = workdir / "docs" / "keep.md.zstd"
    keep.parent.mkdir()
    keep.write_bytes(b"old")

    main(["--no-clean", str(manifest)])

    assert keep.read_bytes() == b"old"
    assert (workdir / "docs" / "beta-main.md.zstd").exists()


@pytest.mark.parametrize("output_dir", [".", "..", "config"])
def test_cli_refuses_to_clean_directory_holding_cwd_or_manifest(
    workdir: Path, write_manifest, fake_fetcher: FakeFetcher, output_dir: str, capsys
) -> None:
    (workdir / "config").mkdir()
    manifest = write_manifest(MANIFEST, name="config/repos.yaml")
    precious = workdir / "precious.txt"
    precious.write_text("keep\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        main([str(manifest), "--output-dir", output_dir])

    assert excinfo.value.code == 1
    assert "Refusing to clean" in capsys.readouterr().err
    assert precious.read_text(encoding="utf-8") == "keep\n"
    assert manifest.exists()
    assert fake_fetcher.calls == []


def test_cli_no_clean_allows_current_directory_as_output(
    workdir: Path, write_manifest, fake_fetcher: FakeFetcher
) -> None:
    manifest = write_manifest(MANIFEST)

    main(["--no-clean", str(manifest), "--output-dir", "."])

    assert manifest.exists()
    assert (workdir / "beta-main.md.zstd").exists()


def test_cli_aggregate_run_writes_named_artifact(
    workdir: Path, write_manifest, fake_fetcher: FakeFetcher
) -> None:
    manifest = write_manifest(MANIFEST)

    main([str(manifest), "bundle.md.zstd", "--output-dir", "out"])

    produced = [path.name for path in (workdir / "out").iterdir()]
    assert produced == ["bundle.md.zstd"]
    text = read_zstd(workdir / "out" / "bundle.md.zstd")
    assert text.index("@ v2.0.0") < text.index("@ default branch")
    assert not (workdir / "bundle.md").exists()


def test_cli_exits_two_when_nothing_was_produced(
    workdir: Path, write_manifest, fake_fetcher: FakeFetcher, capsys
) -> None:
    manifest = write_manifest(
        """
repositories:
  - url: https://example.com/org/beta.git
    path: not-there
"""
    )

    with pytest.raises(SystemExit) as excinfo:
        main([str(manifest), "bundle.md.zstd"])

    assert excinfo.value.code == cli.EXIT_NO_ARTIFACTS
    assert "No artifacts were produced: 1 skipped, 0 failed." in capsys.readouterr().err
    assert list((workdir / "docs").iterdir()) == []


def test_cli_empty_manifest_succeeds(workdir: Path, write_manifest, fake_fetcher: FakeFetcher) -> None:
    manifest = write_manifest("repositories: []\n")

    main([str(manifest)])

    assert (workdir / "docs").is_dir()


def test_cli_rejects_output_name_outside_output_dir(
    workdir: Path, write_manifest, fake_fetcher: FakeFetcher
) -> None:
    manifest = write_manifest(MANIFEST)

    with pytest.raises(SystemExit) as excinfo:
        main([str(manifest), "../escape.zstd"])

    assert excinfo.value.code == 1
    assert fake_fetcher.calls == []


def test_cli_removes_scratch_directory_on_interrupt(
    workdir: Path, write_manifest, fake_fetcher: FakeFetcher, monkeypatch: pytest.MonkeyPatch
) -> None:
    manifest = write_manifest(MANIFEST)
    seen: list[Path] = []

    def interrupted_run(self, entries, context):  # type: ignore[no-untyped-def]
        seen.append(context.scratch_dir)
        (context.scratch_dir / "partial").mkdir()
        raise KeyboardInterrupt

    monkeypatch.setattr(orchestrator.Orchestrator, "run", interrupted_run)

    with pytest.raises(SystemExit) as excinfo:
        main([str(manifest)])

    assert excinfo.value.code == cli.EXIT_INTERRUPTED
    assert seen and not seen[0].exists()
