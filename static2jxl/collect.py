from __future__ import annotations

from pathlib import Path
from typing import Iterator
import logging
import os

from .convert import build_output_path
from .models import FileEntry, FileType, SkipReason
from .policy import decide
from .sniff import classify, inspect_tiff
from .stats import Statistics

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILES = 100_000


def iter_candidate_files(root: Path, recursive: bool) -> Iterator[tuple[Path, int]]:
    """Yield ``(path, size)`` for regular files under ``root`` in directory order.

    Hidden entries and symlinks are never followed or yielded.
    """
    try:
        entries = list(os.scandir(root))
    except OSError as exc:
        logger.warning("Cannot open directory %s: %s", root, exc)
        return
    for entry in entries:
        if entry.name.startswith("."):
            continue
        try:
            if entry.is_symlink():
                continue
            if entry.is_dir():
                if recursive:
                    yield from iter_candidate_files(Path(entry.path), recursive)
                continue
            if not entry.is_file():
                continue
            size = entry.stat().st_size
        except OSError as exc:
            logger.warning("Cannot stat %s: %s", entry.path, exc)
            continue
        yield Path(entry.path), size


def collect(
    root: Path,
    recursive: bool,
    stats: Statistics,
    force_lossless: bool = False,
    max_files: int = DEFAULT_MAX_FILES,
) -> list[FileEntry]:
    files: list[FileEntry] = []
    claimed_outputs: set[Path] = set()
    for path, size in iter_candidate_files(root.resolve(), recursive):
        file_type = classify(path)
        compression = inspect_tiff(path) if file_type is FileType.TIFF else None
        decision = decide(file_type, compression, size, force_lossless)
        if decision.skipped:
            stats.add_skip(decision.reason)
            logger.debug("Skip (%s): %s", decision.reason.value, path)
            continue
        output = build_output_path(path)
        if output == path:
            stats.add_skip(SkipReason.OUTPUT_COLLISION)
            logger.warning("Skip %s: already named like its own output", path)
            continue
        if output in claimed_outputs:
            stats.add_skip(SkipReason.OUTPUT_COLLISION)
            logger.warning("Skip %s: %s is already the target of another file", path, output.name)
            continue
        if len(files) >= max_files:
            logger.warning("Maximum file limit reached (%d), remaining files ignored", max_files)
            break
        claimed_outputs.add(output)
        files.append(FileEntry(path, size, file_type))
        stats.add_collected(file_type)
    return files
