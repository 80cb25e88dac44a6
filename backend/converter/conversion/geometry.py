"""Output size and draw-rectangle math for resize/fit."""
import logging
from math import floor

from converter.conversion.models import ConversionOptions, DrawRect, FitMode, SizeMode

logger = logging.getLogger("converter.geometry")


def round_half_away(value: float) -> int:
    """Round to nearest integer, halves away from zero (2.5 -> 3, -2.5 -> -3)."""
    if value < 0:
        return -floor(-value + 0.5)
    return floor(value + 0.5)


def clamp(value, low, high):
    return min(high, max(low, value))


def compute_output_size(source_width: int, source_height: int, options: ConversionOptions) -> tuple[int, int]:
    """
    Target (width, height) for a decoded source.
    - none: source size.
    - scale: percent clamped to 1-1000, each side at least 1.
    - pixels: both sides exact; one side given derives the other from the
      source aspect ratio; neither given keeps the source size.
    """
    if options.size_mode == SizeMode.NONE:
        return source_width, source_height

    if options.size_mode == SizeMode.SCALE:
        scale = clamp(options.scale_pct, 1, 1000) / 100
        return (
            max(1, round_half_away(source_width * scale)),
            max(1, round_half_away(source_height * scale)),
        )

    aspect = source_width / source_height
    width, height = source_width, source_height
    if options.width and options.height:
        width, height = options.width, options.height
    elif options.width:
        width = options.width
        height = round_half_away(options.width / aspect)
    elif options.height:
        width = round_half_away(options.height * aspect)
        height = options.height
    return max(1, width), max(1, height)


def compute_draw_rect(
    source_width: int,
    source_height: int,
    dest_width: int,
    dest_height: int,
    fit: FitMode,
) -> DrawRect:
    """
    Source/destination rectangles for a single draw.
    - keep: identity; degrades to stretch when sizes differ.
    - stretch: full source onto full canvas.
    - contain: full source letterboxed, centred in the canvas.
    - cover: centred source crop filling the whole canvas.
    """
    if not dest_width or not dest_height:
        return DrawRect(0, 0, source_width, source_height, 0, 0, source_width, source_height)

    if fit == FitMode.KEEP and (dest_width != source_width or dest_height != source_height):
        fit = FitMode.STRETCH

    if fit == FitMode.KEEP:
        return DrawRect(0, 0, source_width, source_height, 0, 0, source_width, source_height)
    if fit == FitMode.STRETCH:
        return DrawRect(0, 0, source_width, source_height, 0, 0, dest_width, dest_height)

    source_aspect = source_width / source_height
    dest_aspect = dest_width / dest_height
    wider = source_aspect > dest_aspect

    if fit == FitMode.CONTAIN:
        dw = dest_width if wider else round_half_away(dest_height * source_aspect)
        dh = round_half_away(dest_width / source_aspect) if wider else dest_height
        dx = floor((dest_width - dw) / 2)
        dy = floor((dest_height - dh) / 2)
        return DrawRect(0, 0, source_width, source_height, dx, dy, dw, dh)

    if fit != FitMode.COVER:
        logger.warning("Unknown fit mode %s, using cover", fit)
    sw = round_half_away(source_height * dest_aspect) if wider else source_width
    sh = source_height if wider else round_half_away(source_width / dest_aspect)
    sx = floor((source_width - sw) / 2)
    sy = floor((source_height - sh) / 2)
    return DrawRect(sx, sy, sw, sh, 0, 0, dest_width, dest_height)
