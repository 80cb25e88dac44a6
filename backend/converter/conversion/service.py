"""Image conversion service: holds items, converts one or all with bounded concurrency."""
import asyncio
import logging
from typing import Callable, Optional

from converter.batch import BatchJob, BatchProgress, create_batch, run_batch, set_batch_completed, set_batch_progress
from converter.conversion.models import ConversionItem, ConversionOptions, ItemStatus, SourceHandle
from converter.conversion.pipeline import convert_image
from converter.conversion.surface import get_backend

logger = logging.getLogger("converter.service")


def format_bytes(size: int) -> str:
    """1536 -> '1.5 KB'"""
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{value:.0f} {units[index]}" if index == 0 else f"{value:.1f} {units[index]}"


class ConversionService:
    """Handles in-memory image items and their conversion."""

    def __init__(self, backend=None):
        self._items: dict[str, ConversionItem] = {}
        self._backend = backend or get_backend()
        self._supported_types: Optional[list[str]] = None
        logger.info("ConversionService initialized")

    @property
    def backend(self):
        return self._backend

    def supported_types(self) -> list[str]:
        """Output MIME types the encoder can produce. Detected once."""
        if self._supported_types is None:
            self._supported_types = self._backend.detect_supported_types()
            logger.info("Supported output types: %s", ", ".join(self._supported_types) or "none")
        return self._supported_types

    async def add_item(self, name: str, data: bytes, mime: str) -> ConversionItem:
        """Ingest one source image. Dimensions are probed best-effort."""
        item = ConversionItem(source=SourceHandle(data=data, type=mime, name=name))
        self._items[item.id] = item
        try:
            decoded = await asyncio.to_thread(self._backend.decode, data, mime)
        except Exception as e:
            logger.debug("Could not probe dimensions of %s: %s", name, e)
        else:
            item.width, item.height = decoded.dimensions()
            decoded.release()
        logger.info("Added %s (%s)", name, format_bytes(item.source.size))
        return item

    def get_item(self, item_id: str) -> Optional[ConversionItem]:
        return self._items.get(item_id)

    def list_items(self) -> list[ConversionItem]:
        return list(self._items.values())

    def remove_item(self, item_id: str) -> bool:
        return self._items.pop(item_id, None) is not None

    def clear(self) -> None:
        self._items.clear()

    async def convert_one(self, item_id: str, options: ConversionOptions) -> Optional[ConversionItem]:
        """Convert a single item. No-op if it is unknown or already converting."""
        item = self._items.get(item_id)
        if item is None or item.status == ItemStatus.CONVERTING:
            return item
        await convert_image(item, options, self._backend)
        return item

    async def _convert(self, item: ConversionItem, options: ConversionOptions) -> None:
        await self.convert_one(item.id, options)

    def start_batch(self) -> BatchJob:
        return create_batch([item.id for item in self._items.values()])

    async def convert_all(
        self,
        options: ConversionOptions,
        job: Optional[BatchJob] = None,
        concurrency_hint: Optional[int] = None,
        on_progress: Optional[Callable[[BatchProgress], None]] = None,
    ) -> BatchJob:
        """Convert every held item (or those of job) with the same options."""
        job = job or self.start_batch()
        items = [self._items[i] for i in job.item_ids if i in self._items]

        def progress(p: BatchProgress) -> None:
            set_batch_progress(job.batch_id, p)
            logger.debug("Batch %s: converted %s", job.batch_id, p)
            if on_progress:
                on_progress(p)

        await run_batch(items, options, self._convert, concurrency_hint=concurrency_hint, on_progress=progress)
        set_batch_completed(job.batch_id, items)
        return job


# Singleton
_conversion_service: Optional[ConversionService] = None


def get_conversion_service() -> ConversionService:
    global _conversion_service
    if _conversion_service is None:
        _conversion_service = ConversionService()
    return _conversion_service
