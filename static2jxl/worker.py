from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Event
from typing import Sequence
import logging

from tqdm import tqdm

from .convert import convert_file
from .models import ConvertOptions, ConvertResult, FileEntry
from .stats import Statistics
from .tools import Toolchain

logger = logging.getLogger(__name__)

MAX_THREADS = 32


def partition(count: int, workers: int) -> list[range]:
    """Split ``count`` items into disjoint contiguous ranges, one per worker.

    The remainder goes one item each to the first workers.
    """
    if count <= 0:
        return []
    workers = max(1, min(workers, count))
    per_worker, remainder = divmod(count, workers)
    spans = []
    start = 0
    for index in range(workers):
        end = start + per_worker + (1 if index < remainder else 0)
        spans.append(range(start, end))
        start = end
    return spans


def run_worker(
    entries: Sequence[FileEntry],
    span: range,
    options: ConvertOptions,
    stats: Statistics,
    tools: Toolchain,
    cancel: Event,
    progress: tqdm | None = None,
) -> list[ConvertResult]:
    results = []
    for index in span:
        # Checked between files only; a started file always runs to completion.
        if cancel.is_set():
            break
        entry = entries[index]
        results.append(convert_file(entry, options, stats, tools))
        processed = stats.mark_processed()
        if progress is not None:
            progress.set_postfix_str(entry.path.name, refresh=False)
            progress.update(processed - progress.n)
    return results


def run_pool(
    entries: Sequence[FileEntry],
    options: ConvertOptions,
    stats: Statistics,
    tools: Toolchain,
    cancel: Event | None = None,
) -> list[ConvertResult]:
    cancel = cancel or Event()
    with stats.lock:
        stats.total = len(entries)
    spans = partition(len(entries), options.num_threads)
    if not spans:
        return []
    logger.debug("Processing %d files on %d workers", len(entries), len(spans))
    results: list[ConvertResult] = []
    with tqdm(total=len(entries), unit="file", disable=not options.show_progress, leave=False) as bar:
        with ThreadPoolExecutor(max_workers=len(spans), thread_name_prefix="static2jxl") as pool:
            futures = [
                pool.submit(
                    run_worker,
                    entries,
                    span,
                    options,
                    stats,
                    tools,
                    cancel,
                    bar if index == 0 else None,
                )
                for index, span in enumerate(spans)
            ]
            for future in futures:
                results.extend(future.result())
    return results
