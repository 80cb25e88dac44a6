from __future__ import annotations

import io

import pytest
from PIL import Image

from converter.conversion.models import BitmapSurface, ConversionItem, FallbackSurface, SourceHandle


def make_png(width: int = 100, height: int = 100, color=(255, 0, 0, 255), mode: str = "RGBA") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class FakeTarget:
    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.ops: list[tuple] = []
        self.image_smoothing_enabled = True
        self.image_smoothing_quality = "low"

    def fill(self, color: str) -> None:
        self.ops.append(("fill", color))

    def clear(self) -> None:
        self.ops.append(("clear",))


class FakeBackend:
    """Records every collaborator call; any step can be made to fail."""

    def __init__(
        self,
        width: int = 100,
        height: int = 100,
        kind: str = "bitmap",
        supports_bitmap_resize: bool = True,
        decode_error: BaseException | None = None,
        surface_error: BaseException | None = None,
        draw_error: BaseException | None = None,
        resize_error: BaseException | None = None,
        encode_error: BaseException | None = None,
    ):
        self.width = width
        self.height = height
        self.kind = kind
        self.supports_bitmap_resize = supports_bitmap_resize
        self.decode_error = decode_error
        self.surface_error = surface_error
        self.draw_error = draw_error
        self.resize_error = resize_error
        self.encode_error = encode_error
        self.releases: list[str] = []
        self.targets: list[FakeTarget] = []
        self.draws: list[tuple] = []
        self.resizes: list[tuple] = []
        self.encodes: list[tuple] = []

    def decode(self, data, declared_type=None):
        if self.decode_error is not None:
            raise self.decode_error
        if self.kind == "bitmap":
            return BitmapSurface("decoded", self.width, self.height, release_fn=lambda: self.releases.append("decoded"))
        return FallbackSurface("decoded", self.width, self.height)

    def make_surface(self, width, height):
        if self.surface_error is not None:
            raise self.surface_error
        target = FakeTarget(width, height)
        self.targets.append(target)
        return target

    def draw(self, target, surface, rect):
        if self.draw_error is not None:
            raise self.draw_error
        self.draws.append((surface.handle, rect))
        target.ops.append(("draw", rect))

    def resize_bitmap(self, surface, width, height, quality):
        if self.resize_error is not None:
            raise self.resize_error
        self.resizes.append((width, height, quality))
        return BitmapSurface("resized", width, height, release_fn=lambda: self.releases.append("resized"))

    def encode(self, target, mime, quality=None):
        if self.encode_error is not None:
            raise self.encode_error
        self.encodes.append((mime, quality))
        return b"encoded-" + mime.encode()

    def detect_supported_types(self):
        return ["image/png", "image/jpeg", "image/webp"]


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def item() -> ConversionItem:
    return ConversionItem(source=SourceHandle(data=b"test", type="image/png", name="test.png"))
