"""Adaptive batch driver for processing a directory of screenshots."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import Protocol, Sequence

from . import FILE_PATTERN, MAX_THREADS
from .errors import InvalidImageError
from ..utils import file_tools

logger = logging.getLogger(__name__)


class DirectoryProcessor(Protocol):
    """Consumer driven by process_files."""

    def process_file(self, path: Path) -> None:
        """Process one file. Called concurrently with others in the same batch."""

    def minimum_files_needed_for_completion(self) -> int:
        """How many more files must be processed at minimum; 0 means done.

        Lets the batch size shrink as the consumer approaches completion
        instead of loading every file in the directory.
        """

    def start_batch(self) -> None:
        """Called just before each batch starts."""

    def finish_batch(self) -> None:
        """Called just after every file in a batch has been processed."""

    def finish(self) -> None:
        """Called once after the last batch."""


def _run_file(processor: DirectoryProcessor, path: Path) -> None:
    logger.debug("Processing %s", path)
    processor.process_file(path)


def process_files(
    files: Sequence[Path],
    processor: DirectoryProcessor,
    max_threads: int = MAX_THREADS,
) -> int:
    """Feed files to processor in rounds sized by its remaining need.

    Returns the number of files handed to the processor.
    """

    if max_threads < 1:
        raise ValueError("max_threads must be at least 1")
    file_index = 0
    try:
        while file_index < len(files):
            needed = processor.minimum_files_needed_for_completion()
            logger.info("Need to process at least %s more files", needed)
            if needed <= 0:
                break
            remaining = len(files) - file_index
            batch_size = min(needed, max_threads, remaining)
            logger.info("%s files remaining, starting %s threads", remaining, batch_size)
            batch = files[file_index : file_index + batch_size]
            file_index += batch_size

            processor.start_batch()
            with ThreadPoolExecutor(max_workers=batch_size, thread_name_prefix="process-file") as executor:
                futures = {executor.submit(_run_file, processor, path): path for path in batch}
                wait(futures)
            for future, path in futures.items():
                exc = future.exception()
                if exc is None:
                    continue
                if isinstance(exc, InvalidImageError):
                    logger.warning("Skipping %s: %s", path, exc)
                    continue
                raise exc
            processor.finish_batch()
            logger.info("Finished batch of %s, %s files remaining", batch_size, len(files) - file_index)
    finally:
        processor.finish()
    return file_index


def process_directory(
    directory: Path,
    processor: DirectoryProcessor,
    pattern: str = FILE_PATTERN,
    max_threads: int = MAX_THREADS,
) -> int:
    """Process the files in directory matched by pattern, in name order."""

    files = file_tools.list_matching_files(directory, pattern)
    if not files:
        logger.warning("No files matched pattern '%s' in %s", pattern, directory)
        return 0
    return process_files(files, processor, max_threads)
