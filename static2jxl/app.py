from __future__ import annotations

from pathlib import Path
from threading import Event
from typing import Sequence
import argparse
import logging
import os
import signal
import sys

from .collect import DEFAULT_MAX_FILES, collect
from .models import ConvertOptions
from .stats import Statistics, format_summary
from .tools import Toolchain, default_toolchain, get_tool_status
from .worker import MAX_THREADS, run_pool

__version__ = "2.0.0"

logger = logging.getLogger(__name__)

DEFAULT_THREADS = 4
DEFAULT_EFFORT = 7
PROTECTED_DIRS = [
    "/",
    "/etc",
    "/bin",
    "/sbin",
    "/usr",
    "/var",
    "/System",
    "/Library",
    "/Applications",
    "/private",
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="static2jxl",
        description=(
            "Convert static images to JPEG XL: JPEG is transcoded reversibly, "
            "PNG/BMP/TIFF/TGA/PPM of 2MB or more are encoded losslessly, RAW is left alone."
        ),
    )
    parser.add_argument("directory", type=Path, help="Directory to scan for images.")
    parser.add_argument("-i", "--in-place", action="store_true", help="Replace original files.")
    parser.add_argument("--skip-health-check", action="store_true", help="Skip output validation.")
    parser.add_argument("--no-recursive", action="store_true", help="Don't process subdirectories.")
    parser.add_argument(
        "--force-lossless",
        action="store_true",
        help="Convert lossless sources regardless of the 2MB threshold.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show detailed output.")
    parser.add_argument("--dry-run", action="store_true", help="Preview without converting.")
    parser.add_argument(
        "-j", dest="threads", type=int, default=DEFAULT_THREADS, help="Parallel workers."
    )
    parser.add_argument(
        "-d", dest="distance", type=float, default=None, help="Override JXL distance (lossless mode)."
    )
    parser.add_argument(
        "-e",
        dest="effort",
        type=int,
        default=DEFAULT_EFFORT,
        choices=range(1, 10),
        metavar="EFFORT",
        help="JXL effort 1-9.",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Decode every output and compare it with its source before committing.",
    )
    parser.add_argument(
        "--max-files", type=int, default=DEFAULT_MAX_FILES, help="Stop collecting after this many files."
    )
    parser.add_argument("--no-progress", action="store_true", help="Hide the progress bar.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def options_from_args(args: argparse.Namespace) -> ConvertOptions:
    return ConvertOptions(
        target_dir=args.directory,
        in_place=args.in_place,
        skip_health_check=args.skip_health_check,
        recursive=not args.no_recursive,
        force_lossless=args.force_lossless,
        verbose=args.verbose,
        dry_run=args.dry_run,
        num_threads=max(1, min(MAX_THREADS, args.threads)),
        distance=args.distance,
        effort=args.effort,
        verify_lossless=args.verify,
        max_files=max(1, args.max_files),
        show_progress=not args.no_progress and sys.stderr.isatty(),
    )


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(format="%(levelname)s %(message)s", stream=sys.stderr)
    logging.getLogger().setLevel(logging.DEBUG if verbose else logging.INFO)


def is_protected_directory(path: Path) -> bool:
    try:
        resolved = path.resolve(strict=True)
    except OSError:
        return True
    protected = {Path(item) for item in PROTECTED_DIRS}
    home = os.environ.get("HOME")
    if home:
        protected.add(Path(home).resolve())
    return resolved in protected


def check_dependencies(options: ConvertOptions) -> bool:
    status = get_tool_status(options.skip_health_check)
    logger.info("Tools: %s", ", ".join(f"{name}={path}" for name, path in status.items()))
    if status["cjxl"] == "missing":
        logger.error("cjxl not found. Install libjxl (e.g. brew install jpeg-xl)")
        return False
    if status["exiftool"] == "missing":
        logger.warning("exiftool not found, embedded metadata will not be copied")
    if status.get("djxl") == "missing":
        logger.warning("djxl not found, health check limited to signature validation")
    return True


def run(options: ConvertOptions, tools: Toolchain, cancel: Event | None = None) -> int:
    """Collect and convert everything under ``options.target_dir``.

    Returns the process exit code: 1 if any file failed, else 0.
    """
    cancel = cancel or Event()
    stats = Statistics()
    logger.info("Target: %s", options.target_dir)
    logger.info("Mode: JPEG -> reversible transcode, others -> lossless (>= 2MB)")
    logger.info("Threads: %d, Effort: %d", options.num_threads, options.effort)
    if options.in_place:
        logger.warning("In-place mode: originals will be replaced")
    if options.distance:
        logger.warning("Distance %g: lossless sources will be encoded lossily", options.distance)

    logger.info("Scanning for images...")
    entries = collect(
        options.target_dir,
        options.recursive,
        stats,
        force_lossless=options.force_lossless,
        max_files=options.max_files,
    )
    if not entries:
        logger.info("No suitable files found")
        return 0
    logger.info("Found: %d files to convert", len(entries))

    if options.dry_run:
        logger.info("Dry run, files that would be converted:")
        for entry in entries:
            print(f"   [{entry.file_type.value}] {entry.path}")
        return 0

    run_pool(entries, options, stats, tools, cancel)
    if cancel.is_set():
        logger.warning("Interrupted: %d of %d files processed", stats.processed, stats.total)
    print(format_summary(stats, health_checked=not options.skip_health_check))
    return 1 if stats.failed else 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    options = options_from_args(args)
    configure_logging(options.verbose)

    if not options.target_dir.is_dir():
        logger.error("Directory does not exist: %s", options.target_dir)
        return 1
    if options.in_place and is_protected_directory(options.target_dir):
        logger.error("Refusing to work in place on protected directory: %s", options.target_dir)
        return 1
    if not options.dry_run and not check_dependencies(options):
        return 1

    cancel = Event()

    def handle_signal(signum, frame):  # noqa: ARG001
        cancel.set()
        logger.warning("Interrupted! Finishing current files...")

    previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    for sig in previous:
        signal.signal(sig, handle_signal)
    try:
        return run(options, default_toolchain(), cancel)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
