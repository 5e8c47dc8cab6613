"""
Bounded SHA256 worker pool.

A producer drains the scanner into a bounded asyncio.Queue, pulling records
in batches from a thread so directory listing never runs on the loop; N workers pull
records and hash them in threads (asyncio.to_thread) so large files never
block the event loop. Completion order is irrelevant: results go to a single
sink (the GroupIndex) which is order-independent.
"""

from __future__ import annotations

import asyncio
import hashlib
import itertools
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

import structlog

from sweeper.src.config.exceptions import HashingUnavailableError
from sweeper.src.dedup.models import FileRecord, RunStats

logger = structlog.get_logger(__name__)

HASH_ALGORITHM = "sha256"
SCAN_BATCH = 256


def ensure_hash_available() -> None:
    """Fail setup early if the interpreter has no usable SHA256."""
    try:
        hashlib.new(HASH_ALGORITHM)
    except (ValueError, AttributeError) as e:
        raise HashingUnavailableError(f"{HASH_ALGORITHM} not available: {e}") from e


def hash_file(file_path: Path, chunk_size: int = 65536) -> str:
    """
    Compute SHA256 of the full file content (chunked for memory efficiency).

    Raises:
        OSError: file cannot be opened or read to completion
    """
    sha256 = hashlib.new(HASH_ALGORITHM)

    with open(file_path, "rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)

    return sha256.hexdigest()


def _next_batch(records: Iterator[FileRecord], size: int) -> list[FileRecord]:
    return list(itertools.islice(records, size))


class HashReport:
    """Result of a hashing pass."""

    def __init__(self):
        self.hashed: int = 0
        self.failed: int = 0
        self.failures: list[tuple[str, str]] = []  # (file_path, error)


class ContentHasher:
    """Hash FileRecords with a fixed-size worker pool."""

    def __init__(
        self,
        workers: int = 4,
        chunk_size: int = 65536,
        stats: Optional[RunStats] = None,
    ):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.workers = workers
        self.chunk_size = chunk_size
        self.stats = stats if stats is not None else RunStats()

    async def hash_all(
        self,
        records: Iterable[FileRecord],
        sink: Callable[[FileRecord], None],
    ) -> HashReport:
        """
        Hash every record and hand the digested copy to sink.

        Unreadable files are logged and counted, never passed to sink.
        Returns once every worker has drained and exited.
        """
        report = HashReport()
        queue: asyncio.Queue[Optional[FileRecord]] = asyncio.Queue(maxsize=self.workers * 2)

        async def worker(worker_id: int) -> None:
            while True:
                record = await queue.get()
                try:
                    if record is None:
                        return
                    await self._hash_one(record, sink, report)
                finally:
                    queue.task_done()

        tasks = [asyncio.create_task(worker(i)) for i in range(self.workers)]

        try:
            iterator = iter(records)
            while batch := await asyncio.to_thread(_next_batch, iterator, SCAN_BATCH):
                for record in batch:
                    await queue.put(record)
            # One sentinel per worker: deterministic shutdown
            for _ in tasks:
                await queue.put(None)
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        logger.info(
            "hashing_completed",
            hashed=report.hashed,
            failed=report.failed,
            workers=self.workers,
        )
        return report

    async def _hash_one(
        self,
        record: FileRecord,
        sink: Callable[[FileRecord], None],
        report: HashReport,
    ) -> None:
        try:
            digest = await asyncio.to_thread(hash_file, record.path, self.chunk_size)
        except OSError as e:
            report.failed += 1
            report.failures.append((str(record.path), str(e)))
            self.stats.hash_errors += 1
            logger.warning("hash_failed", file_path=str(record.path), error=str(e))
            return

        report.hashed += 1
        self.stats.files_hashed += 1
        sink(record.model_copy(update={"digest": digest}))
