from __future__ import annotations

from .models import Action, Decision, FileType, SkipReason, TiffCompression

MIN_LOSSLESS_SIZE = 2 * 1024 * 1024

LOSSLESS_SOURCES = {FileType.PNG, FileType.BMP, FileType.TGA, FileType.PPM, FileType.TIFF}
LOSSY_TIFF_COMPRESSIONS = {TiffCompression.JPEG, TiffCompression.UNKNOWN}

_TYPE_SKIPS = {
    FileType.UNKNOWN: SkipReason.UNSUPPORTED,
    FileType.RAW: SkipReason.RAW_FORMAT,
    FileType.JXL: SkipReason.ALREADY_TARGET,
}


def decide(
    file_type: FileType,
    compression: TiffCompression | None,
    size: int,
    force_lossless: bool = False,
) -> Decision:
    """Decide whether and how a file is re-encoded.

    JPEG sources are transcoded reversibly at any size. Lossless sources are
    only worth converting from ``MIN_LOSSLESS_SIZE`` bytes up, unless
    ``force_lossless`` is set.
    """
    reason = _TYPE_SKIPS.get(file_type)
    if reason is not None:
        return Decision(Action.SKIP, reason)
    if file_type is FileType.TIFF and compression in LOSSY_TIFF_COMPRESSIONS:
        return Decision(Action.SKIP, SkipReason.LOSSY_TIFF)
    if file_type is FileType.JPEG:
        return Decision(Action.CONVERT_REVERSIBLE)
    if file_type in LOSSLESS_SOURCES and (force_lossless or size >= MIN_LOSSLESS_SIZE):
        return Decision(Action.CONVERT_LOSSLESS)
    return Decision(Action.SKIP, SkipReason.BELOW_THRESHOLD)


def size_reduction(input_size: int, output_size: int) -> float:
    if input_size <= 0:
        return 0.0
    return (1 - output_size / input_size) * 100
