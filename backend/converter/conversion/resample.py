"""Optional native pre-resize of a fast-path bitmap before compositing."""
import asyncio
import logging

from converter.conversion.models import ConversionOptions, DecodedSurface, FitMode, ResizeQuality

logger = logging.getLogger("converter.resample")


async def maybe_resize_bitmap(
    backend,
    surface: DecodedSurface,
    dest_width: int,
    dest_height: int,
    options: ConversionOptions,
) -> DecodedSurface:
    """
    Resize a bitmap to exactly (dest_width, dest_height) when the backend can
    and the options ask for it. contain/cover decide scale and crop at draw
    time, so they are never pre-resized.

    On success the original bitmap is released and the resized one returned;
    the caller owns the returned surface. Otherwise the original is returned.
    """
    if not getattr(backend, "supports_bitmap_resize", False):
        return surface
    if surface.kind != "bitmap":
        return surface
    quality = ResizeQuality(options.bmp_resize_quality)
    if quality == ResizeQuality.OFF:
        return surface
    if options.fit in (FitMode.COVER, FitMode.CONTAIN):
        return surface
    if surface.dimensions() == (dest_width, dest_height):
        return surface

    resized = await asyncio.to_thread(backend.resize_bitmap, surface, dest_width, dest_height, quality)
    surface.release()
    logger.debug("Resampled bitmap %sx%s -> %sx%s (%s)", surface.width, surface.height, dest_width, dest_height, quality.value)
    return resized
