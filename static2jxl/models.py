from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class FileType(Enum):
    UNKNOWN = "Unknown"
    JPEG = "JPEG"
    PNG = "PNG"
    BMP = "BMP"
    TIFF = "TIFF"
    TGA = "TGA"
    PPM = "PPM/PBM/PGM"
    RAW = "RAW"
    JXL = "JXL"


class TiffCompression(Enum):
    NONE = "none"
    LZW = "lzw"
    JPEG = "jpeg"
    DEFLATE = "deflate"
    OTHER = "other"
    UNKNOWN = "unknown"


class SkipReason(Enum):
    RAW_FORMAT = "raw-format"
    UNSUPPORTED = "unsupported-or-unknown"
    ALREADY_TARGET = "already-jxl"
    LOSSY_TIFF = "lossy-tiff"
    BELOW_THRESHOLD = "below-size-threshold"
    OUTPUT_COLLISION = "output-collision"


class Action(Enum):
    SKIP = "skip"
    CONVERT_REVERSIBLE = "reversible"
    CONVERT_LOSSLESS = "lossless"


class Outcome(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED_EXISTS = "skipped-exists"
    SKIPPED_LARGER = "skipped-larger"


@dataclass(frozen=True)
class Decision:
    action: Action
    reason: SkipReason | None = None

    @property
    def skipped(self) -> bool:
        return self.action is Action.SKIP


@dataclass(frozen=True)
class FileEntry:
    path: Path
    size: int
    file_type: FileType

    @property
    def reversible(self) -> bool:
        return self.file_type is FileType.JPEG


@dataclass(frozen=True)
class ConvertOptions:
    target_dir: Path
    in_place: bool = False
    skip_health_check: bool = False
    recursive: bool = True
    force_lossless: bool = False
    verbose: bool = False
    dry_run: bool = False
    num_threads: int = 4
    distance: float | None = None
    effort: int = 7
    encoder_threads: int = 2
    verify_lossless: bool = False
    max_files: int = 100_000
    show_progress: bool = True


@dataclass(frozen=True)
class ConvertResult:
    entry: FileEntry
    output: Path
    outcome: Outcome
    output_size: int
    message: str

    @property
    def success(self) -> bool:
        return self.outcome is Outcome.SUCCESS
