"""Best-effort metadata migration from a source image onto its JXL output.

The steps run in a fixed order. The embedded-metadata copy rewrites the file,
which resets its timestamps, so timestamps are restored after it, and the
creation time, which any earlier step may reset, is restored last.
"""

from __future__ import annotations

from pathlib import Path
import logging
import os

from .tools import Toolchain

logger = logging.getLogger(__name__)

WELL_PRESERVED_PERCENT = 70


def restore_timestamps(source: Path, dest: Path) -> bool:
    try:
        info = source.stat()
        os.utime(dest, ns=(info.st_atime_ns, info.st_mtime_ns))
    except OSError as exc:
        logger.debug("Cannot restore timestamps on %s: %s", dest, exc)
        return False
    return True


def _attempt(step, *paths: Path):
    try:
        return step(*paths)
    except OSError as exc:
        logger.debug("%s failed for %s: %s", getattr(step, "__name__", "step"), paths[-1], exc)
        return None


def preserved_percent(tools: Toolchain, source: Path, dest: Path) -> int | None:
    source_tags = _attempt(tools.count_tags, source)
    dest_tags = _attempt(tools.count_tags, dest)
    if source_tags is None or dest_tags is None:
        return None
    if source_tags == 0:
        return 100
    return dest_tags * 100 // source_tags


def migrate_metadata(source: Path, dest: Path, tools: Toolchain, verify: bool = False) -> bool:
    """Copy metadata from ``source`` to ``dest``; return False if anything was lost.

    Failures are logged, never raised: by the time this runs the image data
    itself has already been verified.
    """
    complete = True
    if not _attempt(tools.copy_xattrs, source, dest):
        logger.warning("Extended attributes not fully copied: %s", dest)
        complete = False
    if not _attempt(tools.copy_metadata, source, dest):
        logger.warning("Internal metadata migration partial: %s", dest)
        complete = False
    if not restore_timestamps(source, dest):
        logger.warning("Timestamp preservation failed: %s", dest)
        complete = False
    if not _attempt(tools.copy_creation_time, source, dest):
        logger.warning("Creation time not preserved: %s", dest)
        complete = False
    if verify:
        percent = preserved_percent(tools, source, dest)
        if percent is not None:
            if percent >= WELL_PRESERVED_PERCENT:
                logger.info("Metadata: %d%% preserved (%s)", percent, dest.name)
            else:
                logger.warning("Metadata: only %d%% preserved (%s)", percent, dest.name)
    return complete
