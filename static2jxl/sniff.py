"""Content-based image type detection.

Files are classified from their leading bytes. TGA and camera RAW formats carry
no reliable signature, so those two fall back to the filename extension.
"""

from __future__ import annotations

from pathlib import Path
import logging
import struct

from .models import FileType, TiffCompression

logger = logging.getLogger(__name__)

HEADER_SIZE = 12
MAX_IFD_ENTRIES = 100
TIFF_COMPRESSION_TAG = 259

JPEG_MAGIC = b"\xff\xd8\xff"
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
BMP_MAGIC = b"BM"
TIFF_LE_MAGIC = b"II*\x00"
TIFF_BE_MAGIC = b"MM\x00*"
JXL_CODESTREAM_MAGIC = b"\xff\x0a"
JXL_CONTAINER_BOX = b"JXL "

TGA_EXTENSIONS = {".tga"}
RAW_EXTENSIONS = {".dng", ".cr2", ".cr3", ".nef", ".arw", ".orf", ".rw2", ".raf"}

_COMPRESSION_CODES = {
    1: TiffCompression.NONE,
    5: TiffCompression.LZW,
    7: TiffCompression.JPEG,
    8: TiffCompression.DEFLATE,
    32946: TiffCompression.DEFLATE,
}


def is_jxl_signature(header: bytes) -> bool:
    if header[:2] == JXL_CODESTREAM_MAGIC:
        return True
    return len(header) >= 8 and header[0] == 0 and header[4:8] == JXL_CONTAINER_BOX


def classify_header(header: bytes, name: str = "") -> FileType:
    """Classify a file from its first bytes, falling back to ``name``'s extension.

    Signatures are checked most-specific first; the first match wins.
    """
    if len(header) < 2:
        return FileType.UNKNOWN
    if header.startswith(JPEG_MAGIC):
        return FileType.JPEG
    if header.startswith(PNG_MAGIC):
        return FileType.PNG
    if header.startswith(BMP_MAGIC):
        return FileType.BMP
    suffix = Path(name).suffix.lower()
    if header.startswith(TIFF_LE_MAGIC) or header.startswith(TIFF_BE_MAGIC):
        # DNG, CR2, NEF and friends are TIFF containers; their extension
        # overrides the TIFF magic so camera originals are never converted.
        return FileType.RAW if suffix in RAW_EXTENSIONS else FileType.TIFF
    if is_jxl_signature(header):
        return FileType.JXL
    if header[0:1] == b"P" and header[1:2] in b"123456":
        return FileType.PPM
    if suffix in TGA_EXTENSIONS:
        return FileType.TGA
    if suffix in RAW_EXTENSIONS:
        return FileType.RAW
    return FileType.UNKNOWN


def read_header(path: Path, size: int = HEADER_SIZE) -> bytes:
    with path.open("rb") as handle:
        return handle.read(size)


def classify(path: Path) -> FileType:
    try:
        header = read_header(path)
    except OSError as exc:
        logger.debug("Cannot read %s: %s", path, exc)
        return FileType.UNKNOWN
    return classify_header(header, path.name)


def inspect_tiff(path: Path) -> TiffCompression:
    """Return the compression scheme recorded in the first IFD of a TIFF file.

    A directory without a Compression tag is reported as ``NONE`` (the TIFF
    default); an unreadable header or directory is ``UNKNOWN``. At most
    ``MAX_IFD_ENTRIES`` entries are scanned.
    """
    try:
        with path.open("rb") as handle:
            return _scan_first_ifd(handle)
    except OSError as exc:
        logger.debug("Cannot inspect TIFF %s: %s", path, exc)
        return TiffCompression.UNKNOWN


def _scan_first_ifd(handle) -> TiffCompression:
    header = handle.read(8)
    if len(header) < 8:
        return TiffCompression.UNKNOWN
    order = "<" if header[0] == 0x49 else ">"
    (ifd_offset,) = struct.unpack(order + "I", header[4:8])
    handle.seek(ifd_offset)
    count_bytes = handle.read(2)
    if len(count_bytes) < 2:
        return TiffCompression.UNKNOWN
    (entry_count,) = struct.unpack(order + "H", count_bytes)
    for _ in range(min(entry_count, MAX_IFD_ENTRIES)):
        entry = handle.read(12)
        if len(entry) < 12:
            break
        tag, _field_type, _count, value = struct.unpack(order + "HHIH", entry[:10])
        if tag == TIFF_COMPRESSION_TAG:
            return _COMPRESSION_CODES.get(value, TiffCompression.OTHER)
    return TiffCompression.NONE
