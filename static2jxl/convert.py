from __future__ import annotations

from pathlib import Path
import hashlib
import logging
import os
import tempfile

from PIL import Image, ImageChops

from .metadata import migrate_metadata
from .models import ConvertOptions, ConvertResult, FileEntry, Outcome
from .policy import size_reduction
from .sniff import HEADER_SIZE, is_jxl_signature, read_header
from .stats import Statistics
from .tools import Toolchain

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = ".jxl"
TEMP_SUFFIX = ".jxl.tmp"


def build_output_path(source: Path) -> Path:
    return source.with_suffix(OUTPUT_SUFFIX)


def build_temp_path(source: Path, in_place: bool) -> Path:
    if in_place:
        return source.with_name(source.name + TEMP_SUFFIX)
    return build_output_path(source)


def convert_file(
    entry: FileEntry, options: ConvertOptions, stats: Statistics, tools: Toolchain
) -> ConvertResult:
    """Run one file through encode, rollback, health check, metadata and commit.

    The source is only deleted (in-place mode) after the verified output has
    been renamed onto its final path. Every outcome is recorded in ``stats``.
    """
    source = entry.path
    output = build_output_path(source)
    if output == source:
        logger.error("Refusing to convert %s onto itself", source)
        return _finish(stats, entry, output, Outcome.FAILED, 0, "output would replace source")
    if not options.in_place and output.exists():
        logger.debug("Skip: %s exists", output)
        return _finish(stats, entry, output, Outcome.SKIPPED_EXISTS, 0, "output exists")

    temp = build_temp_path(source, options.in_place)
    if options.in_place and not _remove(temp):
        return _finish(stats, entry, output, Outcome.FAILED, 0, f"stale temp cannot be removed: {temp}")

    mode = "reversible" if entry.reversible else "lossless"
    logger.debug("Converting [%s -> %s]: %s", entry.file_type.value, mode, source)
    try:
        encoded = tools.encode(source, temp, entry.reversible, options)
    except OSError as exc:
        logger.debug("Encoder could not run for %s: %s", source, exc)
        encoded = False
    if not encoded:
        _remove(temp)
        logger.error("Conversion failed: %s", source)
        return _finish(stats, entry, output, Outcome.FAILED, 0, "encode failed")

    try:
        encoded_size = temp.stat().st_size
    except OSError as exc:
        _remove(temp)
        logger.error("Encoded output missing for %s: %s", source, exc)
        return _finish(stats, entry, output, Outcome.FAILED, 0, "encoded output missing")

    if encoded_size >= entry.size:
        _remove(temp)
        increase = -size_reduction(entry.size, encoded_size)
        logger.info("Rollback: JXL not smaller than original (+%.1f%%): %s", increase, source)
        return _finish(stats, entry, output, Outcome.SKIPPED_LARGER, encoded_size, "output not smaller")

    checks = []
    if not options.skip_health_check:
        checks.append(("health check", health_check))
    if options.verify_lossless:
        checks.append(("round-trip verification", verify_roundtrip))
    if checks:
        failed_check = next((name for name, check in checks if not _passes(check, entry, temp, tools)), None)
        stats.add_health(failed_check is None)
        if failed_check is not None:
            _remove(temp)
            logger.error("%s failed: %s", failed_check.capitalize(), source)
            return _finish(stats, entry, output, Outcome.FAILED, 0, f"{failed_check} failed")

    stats.add_metadata(migrate_metadata(source, temp, tools, verify=options.verbose))

    if options.in_place:
        try:
            os.replace(temp, output)
        except OSError as exc:
            _remove(temp)
            logger.error("Rename failed: %s -> %s: %s", temp, output, exc)
            return _finish(stats, entry, output, Outcome.FAILED, 0, "rename failed")
        try:
            source.unlink()
        except OSError as exc:
            logger.warning("Delete original failed: %s: %s", source, exc)

    try:
        output_size = output.stat().st_size
    except OSError:
        output_size = encoded_size
    reduction = size_reduction(entry.size, output_size)
    logger.debug("Done: %s (%.1f%% smaller)", output, reduction)
    return _finish(stats, entry, output, Outcome.SUCCESS, output_size, f"{reduction:.1f}% smaller")


def _passes(check, entry: FileEntry, path: Path, tools: Toolchain) -> bool:
    try:
        return check(entry, path, tools)
    except OSError as exc:
        logger.warning("Check could not run for %s: %s", entry.path, exc)
        return False


def health_check(entry: FileEntry, path: Path, tools: Toolchain) -> bool:
    try:
        if path.stat().st_size == 0:
            return False
        header = read_header(path, HEADER_SIZE)
    except OSError:
        return False
    if not is_jxl_signature(header):
        return False
    decodable = tools.validate(path)
    return decodable is None or decodable


def verify_roundtrip(entry: FileEntry, path: Path, tools: Toolchain) -> bool:
    """Decode ``path`` and compare it with the source.

    Reversible transcodes must rebuild the original JPEG byte for byte;
    lossless encodes must decode to identical pixels.
    """
    with tempfile.TemporaryDirectory(prefix="static2jxl_") as work:
        if entry.reversible:
            rebuilt = Path(work) / "rebuilt.jpg"
            if not tools.decode(path, rebuilt):
                return False
            return file_digest(rebuilt) == file_digest(entry.path)
        decoded = Path(work) / "decoded.png"
        if not tools.decode(path, decoded):
            return False
        return images_match(entry.path, decoded)


def images_match(first: Path, second: Path) -> bool:
    try:
        with Image.open(first) as left, Image.open(second) as right:
            if left.size != right.size:
                return False
            if left.mode == right.mode:
                # Native comparison keeps 16-bit samples intact.
                return left.tobytes() == right.tobytes()
            difference = ImageChops.difference(left.convert("RGBA"), right.convert("RGBA"))
            return difference.getbbox() is None
    except (OSError, Image.DecompressionBombError) as exc:
        logger.warning("Cannot compare %s with %s: %s", first, second, exc)
        return False


def file_digest(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _remove(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return True
    except OSError as exc:
        logger.warning("Cannot remove %s: %s", path, exc)
        return False
    return True


def _finish(
    stats: Statistics,
    entry: FileEntry,
    output: Path,
    outcome: Outcome,
    output_size: int,
    message: str,
) -> ConvertResult:
    result = ConvertResult(entry, output, outcome, output_size, message)
    stats.add_result(result)
    return result
