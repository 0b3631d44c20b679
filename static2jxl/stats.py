from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from threading import Lock
import time

from .models import ConvertResult, FileType, Outcome, SkipReason
from .policy import size_reduction

MIB = 1024 * 1024

_FORMAT_LABELS = [
    (FileType.JPEG, "JPEG (reversible)"),
    (FileType.PNG, "PNG (lossless)"),
    (FileType.BMP, "BMP (lossless)"),
    (FileType.TIFF, "TIFF (lossless)"),
    (FileType.TGA, "TGA (lossless)"),
    (FileType.PPM, "PPM (lossless)"),
]

_SKIP_LABELS = [
    (SkipReason.RAW_FORMAT, "RAW files", "preserve flexibility"),
    (SkipReason.BELOW_THRESHOLD, "Small files", "< 2MB threshold"),
    (SkipReason.LOSSY_TIFF, "TIFF (JPEG)", "already lossy"),
    (SkipReason.ALREADY_TARGET, "Already JXL", "nothing to do"),
    (SkipReason.OUTPUT_COLLISION, "Name clashes", "same output path"),
    (SkipReason.UNSUPPORTED, "Unsupported", "unknown format"),
]


@dataclass
class Statistics:
    """Run-wide counters shared by the collector and every worker.

    Every mutation happens under ``lock``. The summary is read once all
    workers have joined.
    """

    total: int = 0
    processed: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    skipped_larger: int = 0
    skipped_exists: int = 0
    health_passed: int = 0
    health_failed: int = 0
    metadata_full: int = 0
    metadata_partial: int = 0
    bytes_input: int = 0
    bytes_output: int = 0
    start_time: float = field(default_factory=time.monotonic)
    collected_by_type: Counter = field(default_factory=Counter)
    skipped_by_reason: Counter = field(default_factory=Counter)
    lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def add_collected(self, file_type: FileType) -> None:
        with self.lock:
            self.collected_by_type[file_type] += 1

    def add_skip(self, reason: SkipReason) -> None:
        with self.lock:
            self.skipped_by_reason[reason] += 1

    def add_health(self, passed: bool) -> None:
        with self.lock:
            if passed:
                self.health_passed += 1
            else:
                self.health_failed += 1

    def add_metadata(self, complete: bool) -> None:
        with self.lock:
            if complete:
                self.metadata_full += 1
            else:
                self.metadata_partial += 1

    def add_result(self, result: ConvertResult) -> None:
        with self.lock:
            if result.outcome is Outcome.SUCCESS:
                self.success += 1
                self.bytes_input += result.entry.size
                self.bytes_output += result.output_size
            elif result.outcome is Outcome.FAILED:
                self.failed += 1
            else:
                self.skipped += 1
                if result.outcome is Outcome.SKIPPED_LARGER:
                    self.skipped_larger += 1
                else:
                    self.skipped_exists += 1

    def mark_processed(self) -> int:
        with self.lock:
            self.processed += 1
            return self.processed

    @property
    def reduction(self) -> float:
        return size_reduction(self.bytes_input, self.bytes_output)

    def elapsed(self) -> float:
        return time.monotonic() - self.start_time


def format_summary(stats: Statistics, health_checked: bool = True) -> str:
    elapsed = int(stats.elapsed())
    lines = [
        "Conversion complete",
        "",
        "Statistics:",
        f"   Total files:    {stats.total}",
        f"   Success:        {stats.success}",
        f"   Failed:         {stats.failed}",
        f"   Skipped:        {stats.skipped}",
        f"   Time:           {elapsed // 60}m {elapsed % 60}s",
    ]
    if stats.bytes_input > 0:
        lines += [
            f"   Input:          {stats.bytes_input / MIB:.2f} MB",
            f"   Output:         {stats.bytes_output / MIB:.2f} MB",
            f"   Reduction:      {stats.reduction:.1f}%",
        ]
    formats = [
        f"   {label}: {stats.collected_by_type[file_type]}"
        for file_type, label in _FORMAT_LABELS
        if stats.collected_by_type[file_type]
    ]
    if formats:
        lines += ["", "By format:", *formats]
    skips = [
        f"   {label}: {stats.skipped_by_reason[reason]} ({note})"
        for reason, label, note in _SKIP_LABELS
        if stats.skipped_by_reason[reason]
    ]
    if stats.skipped_larger:
        skips.append(f"   JXL larger: {stats.skipped_larger} (smart rollback)")
    if stats.skipped_exists:
        skips.append(f"   Output exists: {stats.skipped_exists} (not overwritten)")
    if skips:
        lines += ["", "Skipped details:", *skips]
    if stats.success:
        lines += [
            "",
            "Metadata:",
            f"   Complete: {stats.metadata_full}",
            f"   Partial:  {stats.metadata_partial}",
        ]
    if health_checked:
        lines += [
            "",
            "Health report:",
            f"   Passed: {stats.health_passed}",
            f"   Failed: {stats.health_failed}",
        ]
        checked = stats.health_passed + stats.health_failed
        if checked:
            lines.append(f"   Rate:   {stats.health_passed * 100 // checked}%")
    return "\n".join(lines)
