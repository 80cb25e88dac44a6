"""Bounded-concurrency batch conversion and in-memory batch job state."""
import asyncio
import itertools
import logging
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence

from converter.config import CONCURRENCY_HINT, MAX_CONCURRENCY
from converter.conversion.geometry import clamp
from converter.conversion.models import ConversionItem, ConversionOptions, ItemStatus
from converter.conversion.pipeline import describe_error

logger = logging.getLogger("converter.batch")

ConvertFn = Callable[[ConversionItem, ConversionOptions], Awaitable[None]]


@dataclass(frozen=True)
class BatchProgress:
    completed: int
    total: int

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 1.0

    def __str__(self) -> str:
        return f"{self.completed}/{self.total}"


@dataclass
class BatchJob:
    batch_id: str
    status: str  # "processing" | "completed"
    item_ids: list[str] = field(default_factory=list)
    completed: int = 0
    done: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return len(self.item_ids)


def concurrency_for(hint: Optional[int]) -> int:
    """Worker count for a hardware hint, leaving one unit of headroom."""
    return clamp((hint or 4) - 1, 1, MAX_CONCURRENCY)


async def run_batch(
    items: Sequence[ConversionItem],
    options: ConversionOptions,
    convert: ConvertFn,
    concurrency_hint: Optional[int] = None,
    on_progress: Optional[Callable[[BatchProgress], None]] = None,
) -> BatchProgress:
    """
    Run convert over items with clamp(hint - 1, 1, 6) workers sharing one cursor.
    Progress is reported after every item; completion order is unspecified.
    Returns the final progress once every worker has drained the cursor.
    """
    total = len(items)
    if not total:
        return BatchProgress(0, 0)
    hint = CONCURRENCY_HINT if concurrency_hint is None else concurrency_hint
    concurrency = concurrency_for(hint)
    cursor = itertools.count()
    completed = 0

    async def worker() -> None:
        nonlocal completed
        while True:
            index = next(cursor)
            if index >= total:
                return
            item = items[index]
            try:
                await convert(item, options)
            except Exception as e:
                logger.exception("Task failed for %s: %s", item.name, e)
                item.status = ItemStatus.ERROR
                item.error = describe_error(e)
            completed += 1
            if on_progress:
                on_progress(BatchProgress(completed, total))

    logger.info("Converting %s file(s) with %s worker(s)", total, concurrency)
    await asyncio.gather(*(worker() for _ in range(concurrency)))
    logger.info("Done. Converted %s/%s.", completed, total)
    return BatchProgress(completed, total)


_batches: dict[str, BatchJob] = {}


def get_batch(batch_id: str) -> Optional[BatchJob]:
    return _batches.get(batch_id)


def create_batch(item_ids: list[str], batch_id: Optional[str] = None) -> BatchJob:
    job = BatchJob(batch_id=batch_id or str(uuid.uuid4()), status="processing", item_ids=item_ids)
    _batches[job.batch_id] = job
    return job


def set_batch_progress(batch_id: str, progress: BatchProgress) -> None:
    job = _batches.get(batch_id)
    if job:
        job.completed = max(job.completed, progress.completed)


def set_batch_completed(batch_id: str, items: Sequence[ConversionItem]) -> None:
    job = _batches.get(batch_id)
    if job:
        job.status = "completed"
        job.completed = job.total
        job.done = sum(1 for i in items if i.status == ItemStatus.DONE)
        job.failed = sum(1 for i in items if i.status == ItemStatus.ERROR)
        logger.info("Batch %s completed: %s done, %s failed", batch_id, job.done, job.failed)
