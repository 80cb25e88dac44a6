"""Pillow implementations of decode, canvas, draw, encode and bitmap resize."""
import io
import logging
from typing import Optional

from PIL import Image, ImageColor, ImageOps, UnidentifiedImageError

from converter.config import CANDIDATE_EXPORT_MIMES, FAST_BITMAP, MAX_OUTPUT_PIXELS, QUALITY_MIMES
from converter.conversion.errors import DecodeFailure, EncodeFailure, SurfaceUnavailable
from converter.conversion.models import (
    BitmapSurface,
    DecodedSurface,
    DrawRect,
    FallbackSurface,
    ResizeQuality,
    SmoothingQuality,
)

logger = logging.getLogger("converter.surface")

MIME_TO_FORMAT = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/webp": "WEBP",
    "image/avif": "AVIF",
}

SMOOTHING_FILTERS = {
    SmoothingQuality.LOW: Image.Resampling.BILINEAR,
    SmoothingQuality.MEDIUM: Image.Resampling.BICUBIC,
    SmoothingQuality.HIGH: Image.Resampling.LANCZOS,
}

RESIZE_FILTERS = {
    ResizeQuality.PIXELATED: Image.Resampling.NEAREST,
    ResizeQuality.LOW: Image.Resampling.BILINEAR,
    ResizeQuality.MEDIUM: Image.Resampling.BICUBIC,
    ResizeQuality.HIGH: Image.Resampling.LANCZOS,
}


def parse_color(color: str) -> tuple[int, int, int, int]:
    """Parse a CSS-like color (#rgb, #rrggbb, #rrggbbaa, names, rgb()) to RGBA. White if invalid."""
    try:
        return ImageColor.getcolor(color.strip(), "RGBA")
    except (ValueError, AttributeError):
        logger.warning("Invalid background color %r, using white", color)
        return (255, 255, 255, 255)


class DrawTarget:
    """RGBA canvas with 2D-context style smoothing settings."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.image = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        self.image_smoothing_enabled = True
        self.image_smoothing_quality = SmoothingQuality.LOW

    def fill(self, color: str) -> None:
        self.image.paste(parse_color(color), (0, 0, self.width, self.height))

    def clear(self) -> None:
        self.image.paste((0, 0, 0, 0), (0, 0, self.width, self.height))

    @property
    def resample(self) -> Image.Resampling:
        if not self.image_smoothing_enabled:
            return Image.Resampling.NEAREST
        return SMOOTHING_FILTERS.get(SmoothingQuality(self.image_smoothing_quality), Image.Resampling.BILINEAR)


class PillowBackend:
    """Decode/draw/encode collaborators backed by Pillow."""

    def __init__(self, fast_bitmap: bool = FAST_BITMAP, max_pixels: int = MAX_OUTPUT_PIXELS):
        self.fast_bitmap = fast_bitmap
        self.max_pixels = max_pixels

    @property
    def supports_bitmap_resize(self) -> bool:
        return self.fast_bitmap

    def decode(self, data: bytes, declared_type: Optional[str] = None) -> DecodedSurface:
        """Decode bytes with EXIF orientation applied. declared_type is advisory."""
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                oriented = ImageOps.exif_transpose(img)
                image = oriented.convert("RGBA")
        except (UnidentifiedImageError, Image.DecompressionBombError) as e:
            raise DecodeFailure(f"Cannot decode image ({declared_type or 'unknown type'})") from e
        except (OSError, ValueError, SyntaxError) as e:
            raise DecodeFailure(f"Cannot decode image: {e}") from e
        width, height = image.size
        if self.fast_bitmap:
            return BitmapSurface(image, width, height, release_fn=image.close)
        return FallbackSurface(image, width, height)

    def make_surface(self, width: int, height: int) -> DrawTarget:
        if width < 1 or height < 1 or width * height > self.max_pixels:
            raise SurfaceUnavailable(f"Canvas of {width}x{height} is not available.")
        try:
            return DrawTarget(width, height)
        except (MemoryError, ValueError) as e:
            raise SurfaceUnavailable(f"Canvas of {width}x{height} is not available.") from e

    def draw(self, target: DrawTarget, surface: DecodedSurface, rect: DrawRect) -> None:
        """Composite the rect.source_box of surface onto the destination box of target."""
        if rect.sw < 1 or rect.sh < 1 or rect.dw < 1 or rect.dh < 1:
            return
        src = surface.handle
        if src.mode != "RGBA":
            src = src.convert("RGBA")
        if (rect.sx, rect.sy, rect.sw, rect.sh) != (0, 0, src.width, src.height):
            src = src.crop(rect.source_box)
        if (rect.dw, rect.dh) != src.size:
            src = src.resize((rect.dw, rect.dh), target.resample)
        target.image.alpha_composite(src, (rect.dx, rect.dy))

    def resize_bitmap(self, surface: BitmapSurface, width: int, height: int, quality: ResizeQuality) -> BitmapSurface:
        resample = RESIZE_FILTERS.get(ResizeQuality(quality), Image.Resampling.BILINEAR)
        resized = surface.handle.resize((width, height), resample)
        return BitmapSurface(resized, width, height, release_fn=resized.close)

    def encode(self, target: DrawTarget, mime: str, quality: Optional[float] = None) -> bytes:
        """Encode the canvas. quality (0-1) is only used by lossy types."""
        fmt = MIME_TO_FORMAT.get(mime)
        if fmt is None:
            raise EncodeFailure(f"Unsupported output type: {mime}")
        save_kw: dict = {"format": fmt}
        if mime in QUALITY_MIMES and quality is not None:
            save_kw["quality"] = max(0, min(100, int(round(quality * 100))))
        if fmt == "PNG":
            save_kw["optimize"] = True
        image = target.image if fmt != "JPEG" else target.image.convert("RGB")
        buf = io.BytesIO()
        try:
            image.save(buf, **save_kw)
        except (KeyError, OSError, ValueError) as e:
            raise EncodeFailure(f"Encoding to {mime} failed: {e}") from e
        data = buf.getvalue()
        if not data:
            raise EncodeFailure("Canvas encoding failed.")
        return data

    def detect_supported_types(self) -> list[str]:
        """Trial-encode a small semi-transparent canvas in every candidate type."""
        canvas = DrawTarget(2, 2)
        canvas.fill("#ff000080")
        supported = []
        for mime in CANDIDATE_EXPORT_MIMES:
            try:
                if self.encode(canvas, mime, 0.9):
                    supported.append(mime)
            except EncodeFailure as e:
                logger.info("Output type %s not supported: %s", mime, e)
        return supported


# Singleton
_backend: Optional[PillowBackend] = None


def get_backend() -> PillowBackend:
    global _backend
    if _backend is None:
        _backend = PillowBackend()
        logger.info("PillowBackend initialized (fast_bitmap=%s)", _backend.fast_bitmap)
    return _backend
