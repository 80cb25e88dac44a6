"""Conversion items, options and drawing primitives."""
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from math import floor
from typing import Any, Callable, Optional

from converter.config import DEFAULT_BACKGROUND, DEFAULT_QUALITY, DEFAULT_TYPE


class ItemStatus(str, Enum):
    READY = "ready"
    CONVERTING = "converting"
    DONE = "done"
    ERROR = "error"


class SizeMode(str, Enum):
    NONE = "none"
    PIXELS = "pixels"
    SCALE = "scale"


class FitMode(str, Enum):
    KEEP = "keep"
    CONTAIN = "contain"
    COVER = "cover"
    STRETCH = "stretch"


class SmoothingQuality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ResizeQuality(str, Enum):
    OFF = "off"
    PIXELATED = "pixelated"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ConversionOptions:
    """Options for one conversion call. Shared unchanged by every item of a batch."""

    type: str = DEFAULT_TYPE
    quality: float = DEFAULT_QUALITY
    size_mode: SizeMode = SizeMode.NONE
    width: int = 0
    height: int = 0
    scale_pct: Optional[float] = 100
    fit: FitMode = FitMode.KEEP
    background: str = DEFAULT_BACKGROUND
    smoothing: bool = True
    smoothing_quality: SmoothingQuality = SmoothingQuality.HIGH
    bmp_resize_quality: ResizeQuality = ResizeQuality.OFF

    def normalized(self) -> "ConversionOptions":
        """
        Clamp raw form values the way the options panel reads them:
        quality to [0, 1], pixel sides floored (>= 1, or 0 when unset/not in
        pixel mode), scale to [1, 1000] (100 when unset or not in scale mode).
        """
        size_mode = SizeMode(self.size_mode)
        width = max(1, floor(self.width)) if size_mode == SizeMode.PIXELS and self.width else 0
        height = max(1, floor(self.height)) if size_mode == SizeMode.PIXELS and self.height else 0
        scale_pct = self.scale_pct if self.scale_pct is not None else 100
        scale_pct = min(1000, max(1, scale_pct)) if size_mode == SizeMode.SCALE else 100
        return replace(
            self,
            quality=min(1.0, max(0.0, float(self.quality))),
            size_mode=size_mode,
            width=width,
            height=height,
            scale_pct=scale_pct,
            fit=FitMode(self.fit),
            background=(self.background or "").strip() or DEFAULT_BACKGROUND,
            smoothing_quality=SmoothingQuality(self.smoothing_quality),
            bmp_resize_quality=ResizeQuality(self.bmp_resize_quality),
        )


@dataclass(frozen=True)
class DrawRect:
    """Source (sx, sy, sw, sh) and destination (dx, dy, dw, dh) of one composite draw."""

    sx: int
    sy: int
    sw: int
    sh: int
    dx: int
    dy: int
    dw: int
    dh: int

    @property
    def source_box(self) -> tuple[int, int, int, int]:
        return (self.sx, self.sy, self.sx + self.sw, self.sy + self.sh)


class DecodedSurface:
    """A decoded image ready to be drawn. `handle` is backend specific."""

    kind = "fallback"

    def __init__(self, handle: Any, width: int, height: int):
        self.handle = handle
        self.width = width
        self.height = height

    def dimensions(self) -> tuple[int, int]:
        return self.width, self.height

    def release(self) -> None:
        pass


class FallbackSurface(DecodedSurface):
    """Drawable element without native resize support. Nothing to release."""


class BitmapSurface(DecodedSurface):
    """Fast-path bitmap. Owned by one pipeline run and released exactly once."""

    kind = "bitmap"

    def __init__(self, handle: Any, width: int, height: int, release_fn: Optional[Callable[[], None]] = None):
        super().__init__(handle, width, height)
        self._release_fn = release_fn
        self.released = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        if self._release_fn is not None:
            self._release_fn()


@dataclass
class SourceHandle:
    data: bytes
    type: str
    name: str
    size: int = -1

    def __post_init__(self) -> None:
        if self.size < 0:
            self.size = len(self.data)


@dataclass
class OutputArtifact:
    data: bytes
    type: str
    name: str
    size: int
    width: int
    height: int


@dataclass
class ConversionItem:
    """In-memory item state. Mutated in place by the pipeline."""

    source: SourceHandle
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    width: Optional[int] = None  # probed source size, informational only
    height: Optional[int] = None
    status: ItemStatus = ItemStatus.READY
    error: Optional[str] = None
    output: Optional[OutputArtifact] = None

    @property
    def name(self) -> str:
        return self.source.name
