"""Single-item conversion: decode -> size -> composite -> encode, with per-item failure isolation."""
import asyncio
import logging
import re
from typing import Optional

from converter.config import OPAQUE_MIMES, QUALITY_MIMES
from converter.conversion.geometry import compute_draw_rect, compute_output_size
from converter.conversion.models import (
    ConversionItem,
    ConversionOptions,
    DecodedSurface,
    ItemStatus,
    OutputArtifact,
)
from converter.conversion.resample import maybe_resize_bitmap
from converter.conversion.surface import get_backend

logger = logging.getLogger("converter.pipeline")

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/avif": "avif",
}
FALLBACK_EXTENSION = "img"

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|]+')
_EXTENSION = re.compile(r"\.[^.]+\Z")


def safe_filename(name: str) -> str:
    """Replace each run of characters invalid in filenames with a single underscore."""
    return _UNSAFE_CHARS.sub("_", name)


def ext_from_mime(mime: str) -> str:
    return MIME_EXTENSIONS.get(mime, FALLBACK_EXTENSION)


def output_filename(name: str, mime: str) -> str:
    """photo.jpg + image/webp -> photo.webp"""
    return f"{safe_filename(_EXTENSION.sub('', name))}.{ext_from_mime(mime)}"


def describe_error(error: object) -> str:
    """Display text for a failure: the exception message as-is (it may be empty), or the value as text."""
    return str(error)


class _SurfaceLease:
    """Holds the current decoded surface and releases it once on exit."""

    def __init__(self, surface: DecodedSurface):
        self.surface = surface

    def __enter__(self) -> "_SurfaceLease":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.surface.release()
        return False


async def convert_image(item: ConversionItem, options: ConversionOptions, backend=None) -> None:
    """
    Convert one item in place. Sets status to done with a new output, or to
    error with a message; never raises for item-level failures. A previous
    output is kept until a later run succeeds. No-op if the item is already
    converting.
    """
    if item.status == ItemStatus.CONVERTING:
        logger.debug("Item %s already converting, skipping", item.id)
        return
    backend = backend or get_backend()
    item.status = ItemStatus.CONVERTING
    item.error = None

    try:
        decoded = await asyncio.to_thread(backend.decode, item.source.data, item.source.type)
        with _SurfaceLease(decoded) as lease:
            source_width, source_height = decoded.dimensions()
            dest_width, dest_height = compute_output_size(source_width, source_height, options)

            target = backend.make_surface(dest_width, dest_height)
            if options.type in OPAQUE_MIMES:
                target.fill(options.background)
            else:
                target.clear()

            target.image_smoothing_enabled = options.smoothing
            if target.image_smoothing_enabled and hasattr(target, "image_smoothing_quality"):
                target.image_smoothing_quality = options.smoothing_quality

            if decoded.kind == "bitmap":
                lease.surface = await maybe_resize_bitmap(backend, decoded, dest_width, dest_height, options)
                source_width, source_height = lease.surface.dimensions()

            rect = compute_draw_rect(source_width, source_height, dest_width, dest_height, options.fit)
            backend.draw(target, lease.surface, rect)

        quality: Optional[float] = options.quality if options.type in QUALITY_MIMES else None
        data = await asyncio.to_thread(backend.encode, target, options.type, quality)
    except Exception as e:
        item.status = ItemStatus.ERROR
        item.error = describe_error(e)
        logger.warning("Conversion failed for %s: %s", item.name, item.error)
        return

    item.output = OutputArtifact(
        data=data,
        type=options.type,
        name=output_filename(item.name, options.type),
        size=len(data),
        width=dest_width,
        height=dest_height,
    )
    item.status = ItemStatus.DONE
    logger.info("Converted %s -> %s (%sx%s)", item.name, item.output.name, dest_width, dest_height)
