import io

import pytest
from PIL import Image

from conftest import make_png
from converter.conversion.errors import DecodeFailure, EncodeFailure, SurfaceUnavailable
from converter.conversion.models import BitmapSurface, DrawRect, FallbackSurface, ResizeQuality, SmoothingQuality
from converter.conversion.surface import DrawTarget, PillowBackend, parse_color


def test_parse_color():
    assert parse_color("#ff0000") == (255, 0, 0, 255)
    assert parse_color("#FFF") == (255, 255, 255, 255)
    assert parse_color("#00ff0080") == (0, 255, 0, 128)
    assert parse_color("  blue ") == (0, 0, 255, 255)
    assert parse_color("not-a-color") == (255, 255, 255, 255)


def test_decode_fast_path_returns_bitmap():
    surface = PillowBackend(fast_bitmap=True).decode(make_png(30, 20), "image/png")
    assert isinstance(surface, BitmapSurface)
    assert surface.dimensions() == (30, 20)
    surface.release()
    assert surface.released


def test_decode_fallback_path():
    surface = PillowBackend(fast_bitmap=False).decode(make_png(30, 20, mode="RGB", color=(1, 2, 3)))
    assert isinstance(surface, FallbackSurface)
    assert surface.kind == "fallback"
    assert surface.handle.mode == "RGBA"


def test_decode_applies_exif_orientation():
    img = Image.new("RGB", (40, 10), (0, 0, 0))
    exif = img.getexif()
    exif[0x0112] = 6  # rotate 90 CW
    buf = io.BytesIO()
    img.save(buf, format="JPEG", exif=exif)
    surface = PillowBackend().decode(buf.getvalue(), "image/jpeg")
    assert surface.dimensions() == (10, 40)


def test_decode_garbage_raises():
    with pytest.raises(DecodeFailure):
        PillowBackend().decode(b"\x00\x01garbage", "image/png")


def test_decode_truncated_raises():
    buf = io.BytesIO()
    Image.effect_noise((128, 128), 64).save(buf, format="PNG")
    data = buf.getvalue()
    with pytest.raises(DecodeFailure):
        PillowBackend().decode(data[: len(data) // 2], "image/png")


def test_make_surface_limits():
    backend = PillowBackend(max_pixels=100)
    assert isinstance(backend.make_surface(10, 10), DrawTarget)
    with pytest.raises(SurfaceUnavailable):
        backend.make_surface(11, 10)
    with pytest.raises(SurfaceUnavailable):
        backend.make_surface(0, 10)


def test_fill_and_clear():
    target = DrawTarget(4, 4)
    target.fill("#102030")
    assert target.image.getpixel((3, 3)) == (16, 32, 48, 255)
    target.clear()
    assert target.image.getpixel((0, 0)) == (0, 0, 0, 0)


def test_resample_filter_follows_smoothing():
    target = DrawTarget(1, 1)
    target.image_smoothing_quality = SmoothingQuality.HIGH
    assert target.resample == Image.Resampling.LANCZOS
    target.image_smoothing_enabled = False
    assert target.resample == Image.Resampling.NEAREST


def test_draw_crops_scales_and_offsets():
    backend = PillowBackend()
    src = Image.new("RGBA", (20, 10), (255, 0, 0, 255))
    src.paste((0, 0, 255, 255), (10, 0, 20, 10))  # right half blue
    surface = FallbackSurface(src, 20, 10)
    target = backend.make_surface(10, 10)
    backend.draw(target, surface, DrawRect(10, 0, 10, 10, 2, 2, 6, 6))
    assert target.image.getpixel((0, 0))[3] == 0
    assert target.image.getpixel((5, 5)) == (0, 0, 255, 255)
    assert target.image.getpixel((8, 8))[3] == 0


def test_draw_skips_empty_rects():
    backend = PillowBackend()
    target = backend.make_surface(4, 4)
    backend.draw(target, FallbackSurface(Image.new("RGBA", (4, 4), "red"), 4, 4), DrawRect(0, 0, 4, 4, 0, 0, 0, 4))
    assert target.image.getpixel((0, 0)) == (0, 0, 0, 0)


def test_resize_bitmap_returns_new_bitmap():
    backend = PillowBackend()
    surface = backend.decode(make_png(40, 40))
    resized = backend.resize_bitmap(surface, 10, 5, ResizeQuality.HIGH)
    assert isinstance(resized, BitmapSurface)
    assert resized.dimensions() == (10, 5)
    assert resized.handle.size == (10, 5)
    assert not surface.released


@pytest.mark.parametrize("mime,fmt", [("image/png", "PNG"), ("image/jpeg", "JPEG"), ("image/webp", "WEBP")])
def test_encode_formats(mime, fmt):
    backend = PillowBackend()
    target = backend.make_surface(8, 6)
    target.fill("#336699")
    data = backend.encode(target, mime, 0.8)
    with Image.open(io.BytesIO(data)) as img:
        assert img.format == fmt
        assert img.size == (8, 6)


def test_encode_unknown_type_fails():
    backend = PillowBackend()
    with pytest.raises(EncodeFailure):
        backend.encode(backend.make_surface(2, 2), "image/x-nope", 0.5)


def test_detect_supported_types_includes_common_types():
    supported = PillowBackend().detect_supported_types()
    assert {"image/png", "image/jpeg", "image/webp"} <= set(supported)
    assert supported[0] == "image/png"
