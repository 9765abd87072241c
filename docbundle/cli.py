"""CLI entrypoint for building documentation bundles."""

from __future__ import annotations

import argparse
import shutil
import signal
import sys
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, NoReturn

from .compression import DEFAULT_LEVEL, MAX_LEVEL, MIN_LEVEL, ZstdCompressor
from .config import ConfigError, load_manifest, validate_output_name
from .logging import configure_logging, get_logger
from .models import OutputMode, RunContext
from .orchestrator import Orchestrator
from .preflight import MissingDependencyError, check_dependencies

EXIT_FATAL = 1
EXIT_NO_ARTIFACTS = 2
EXIT_INTERRUPTED = 130

_EPILOG = """\
modes:
  multi-file (default): docbundle <manifest_file>
      one compressed file per repository, named {repo_name}-{version}.md.zstd
  single-file (aggregate): docbundle <manifest_file> <output_name>
      all documentation combined into one compressed file
"""


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(EXIT_FATAL, f"{self.prog}: error: {message}\n")


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got '{value}'") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _compression_level(value: str) -> int:
    level = _positive_int(value)
    if not MIN_LEVEL <= level <= MAX_LEVEL:
        raise argparse.ArgumentTypeError(f"must be between {MIN_LEVEL} and {MAX_LEVEL}")
    return level


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="docbundle",
        description="Build compressed documentation bundles from a repository manifest.",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("manifest", help="YAML manifest listing the repositories to bundle.")
    parser.add_argument(
        "output_name",
        nargs="?",
        default=None,
        help="Aggregate everything into this file inside the output directory.",
    )
    parser.add_argument(
        "--no-clean",
        dest="clean",
        action="store_false",
        help="Do not remove the existing output directory before generating files.",
    )
    parser.add_argument(
        "--output-dir",
        default="docs",
        type=Path,
        help="Directory receiving the compressed artifacts (defaults to ./docs).",
    )
    parser.add_argument(
        "--jobs",
        default=1,
        type=_positive_int,
        help="Number of repositories fetched concurrently (defaults to 1).",
    )
    parser.add_argument(
        "--level",
        default=DEFAULT_LEVEL,
        type=_compression_level,
        help=f"zstd compression level (defaults to {DEFAULT_LEVEL}).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Increase log verbosity for troubleshooting.",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write log output to this file.",
    )
    return parser


def _raise_interrupt(signum: int, frame: object) -> None:
    raise KeyboardInterrupt(f"received signal {signum}")


@contextmanager
def _terminate_as_interrupt() -> Iterator[None]:
    """Turn SIGTERM into KeyboardInterrupt so scratch cleanup still runs."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


def _check_safe_to_clean(output_dir: Path, manifest_path: Path) -> None:
    """Refuse to remove a directory holding the working directory or the manifest."""
    if Path.cwd().resolve().is_relative_to(output_dir):
        raise ConfigError(
            f"Refusing to clean '{output_dir}': it contains the current working directory "
            "(choose another --output-dir or pass --no-clean)"
        )
    if manifest_path.is_relative_to(output_dir):
        raise ConfigError(
            f"Refusing to clean '{output_dir}': it contains the manifest {manifest_path} "
            "(choose another --output-dir or pass --no-clean)"
        )


def _prepare_output_dir(output_dir: Path, *, clean: bool, manifest_path: Path) -> None:
    logger = get_logger("cli")
    logger.info("--- Preparing output directory: %s", output_dir)
    if output_dir.exists() and not output_dir.is_dir():
        raise ConfigError(f"Output path exists and is not a directory: {output_dir}")
    if clean and output_dir.is_dir():
        _check_safe_to_clean(output_dir, manifest_path)
        logger.info("Removing existing output directory (use --no-clean to prevent this).")
        shutil.rmtree(output_dir)
    else:
        logger.info("Ensuring output directory exists (will not clean existing files).")
    output_dir.mkdir(parents=True, exist_ok=True)


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for docbundle."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)
    logger = get_logger("cli")

    if args.output_name is not None:
        mode = OutputMode.AGGREGATE
        logger.info("--- Running in Single-File (Aggregate) Mode")
    else:
        mode = OutputMode.MULTI
        logger.info("--- Running in Multi-File Mode")

    try:
        check_dependencies()
        output_name = (
            validate_output_name(args.output_name) if args.output_name is not None else None
        )
        manifest_path = Path(args.manifest).expanduser().resolve()
        entries = load_manifest(manifest_path)
    except (MissingDependencyError, ConfigError) as exc:
        parser.exit(EXIT_FATAL, f"Error: {exc}\n")
    logger.info("Found %d repositories to process in '%s'.", len(entries), args.manifest)

    output_dir = Path(args.output_dir).expanduser().resolve()
    try:
        _prepare_output_dir(output_dir, clean=bool(args.clean), manifest_path=manifest_path)
    except (ConfigError, OSError) as exc:
        parser.exit(EXIT_FATAL, f"Error: {exc}\n")

    orchestrator = Orchestrator(compressor=ZstdCompressor(level=args.level))
    try:
        with _terminate_as_interrupt(), tempfile.TemporaryDirectory(prefix="docbundle-") as scratch:
            logger.info("Created temporary directory at %s", scratch)
            context = RunContext(
                output_dir=output_dir,
                scratch_dir=Path(scratch),
                mode=mode,
                output_name=output_name,
                jobs=args.jobs,
            )
            try:
                report = orchestrator.run(entries, context)
            finally:
                logger.info("--- Cleaning up temporary directory")
    except KeyboardInterrupt:
        parser.exit(EXIT_INTERRUPTED, "Interrupted; temporary files removed.\n")

    for artifact in report.artifacts:
        print(f"Created {_relativize(artifact)}")
    if entries and not report.artifacts:
        parser.exit(
            EXIT_NO_ARTIFACTS,
            f"No artifacts were produced: {report.skipped} skipped, {report.failed} failed.\n",
        )


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
