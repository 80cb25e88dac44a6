import asyncio

import pytest

from conftest import FakeBackend
from converter.conversion.models import BitmapSurface, ConversionOptions, FallbackSurface, FitMode, ResizeQuality
from converter.conversion.resample import maybe_resize_bitmap


def _bitmap(backend, w=100, h=80):
    return BitmapSurface("decoded", w, h, release_fn=lambda: backend.releases.append("decoded"))


def _run(backend, surface, dest, **kw):
    opts = ConversionOptions(**{"fit": FitMode.STRETCH, "bmp_resize_quality": ResizeQuality.MEDIUM, **kw})
    return asyncio.run(maybe_resize_bitmap(backend, surface, dest[0], dest[1], opts))


def test_resizes_and_releases_original():
    backend = FakeBackend()
    original = _bitmap(backend)
    resized = _run(backend, original, (50, 40))
    assert resized is not original
    assert resized.dimensions() == (50, 40)
    assert original.released
    assert backend.releases == ["decoded"]
    assert backend.resizes == [(50, 40, ResizeQuality.MEDIUM)]


@pytest.mark.parametrize(
    "kw,dest,supports",
    [
        ({"bmp_resize_quality": ResizeQuality.OFF}, (50, 40), True),
        ({"fit": FitMode.CONTAIN}, (50, 40), True),
        ({"fit": FitMode.COVER}, (50, 40), True),
        ({}, (100, 80), True),
        ({}, (50, 40), False),
    ],
)
def test_preconditions_return_original_untouched(kw, dest, supports):
    backend = FakeBackend(supports_bitmap_resize=supports)
    original = _bitmap(backend)
    assert _run(backend, original, dest, **kw) is original
    assert not original.released
    assert backend.resizes == []


def test_keep_with_size_change_is_resampled():
    backend = FakeBackend()
    assert _run(backend, _bitmap(backend), (10, 8), fit=FitMode.KEEP).dimensions() == (10, 8)


def test_fallback_surface_is_returned_as_is():
    backend = FakeBackend()
    surface = FallbackSurface("img", 100, 80)
    assert _run(backend, surface, (50, 40)) is surface


def test_failed_resize_leaves_original_owned_by_caller():
    backend = FakeBackend(resize_error=MemoryError("out of memory"))
    original = _bitmap(backend)
    with pytest.raises(MemoryError):
        _run(backend, original, (50, 40))
    assert not original.released
