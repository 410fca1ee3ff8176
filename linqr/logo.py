"""Logo compositor: circular user logo or corner watermark over a rendered symbol."""

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from linqr.config import DEFAULT_CONFIG, PipelineConfig
from linqr.cropper import crop_image
from linqr.errors import ImageDecodeError
from linqr.logging import audit, get_logger, trace
from linqr.models import ImageAsset, SymbolGeometry

log = get_logger("logo")

LOGO = "logo"
WATERMARK = "watermark"

RING_COLOR = (255, 255, 255)
PLATE_COLOR = (255, 255, 255)
TEXT_COLOR = (0, 0, 0)
PLATE_RADIUS = 8

Box = tuple[int, int, int, int]


# ---------------------------------------------------------------------------
# Geometry helpers
# ---------------------------------------------------------------------------

def _default_geometry(image: Image.Image) -> SymbolGeometry:
    """Worst case layout when the caller has none: a version-1 grid with a 2-module margin."""
    return SymbolGeometry(version=1, modules=21, margin=2, size_px=min(image.size))


def _intersects(a: Box, b: Box) -> bool:
    return a[0] < b[2] and b[0] < a[2] and a[1] < b[3] and b[1] < a[3]


def finder_boxes(geometry: SymbolGeometry) -> list[Box]:
    """Pixel boxes of the three position-detection patterns."""
    return geometry.finder_boxes()


def circle_mask(side: int, supersample: int = 4) -> Image.Image:
    """Anti-aliased disc mask (mode 'L', 255 inside)."""
    big = side * supersample
    mask = Image.new("L", (big, big), 0)
    ImageDraw.Draw(mask).ellipse([0, 0, big - 1, big - 1], fill=255)
    return mask.resize((side, side), Image.LANCZOS)


def painted_fraction(before: Image.Image, after: Image.Image, geometry: SymbolGeometry | None = None,
                     tolerance: int = 8) -> float:
    """Fraction of the symbol area whose pixels the compositor changed."""
    geometry = geometry or _default_geometry(before)
    x0, y0, x1, y1 = geometry.symbol_box
    a = np.asarray(before.convert("RGB"), dtype=np.int16)[y0:y1, x0:x1]
    b = np.asarray(after.convert("RGB"), dtype=np.int16)[y0:y1, x0:x1]
    changed = np.abs(a - b).max(axis=2) > tolerance
    return float(changed.sum()) / changed.size if changed.size else 0.0


def _fit_under_ceiling(side: int, area_of, budget: float) -> int:
    """Shrink ``side`` by 10% steps until ``area_of(side)`` fits ``budget``."""
    while side > 1 and area_of(side) > budget:
        side = int(side * 0.9)
    return max(1, side)


# ---------------------------------------------------------------------------
# User logo
# ---------------------------------------------------------------------------

@trace
def composite_user_logo(
    qr_image: Image.Image,
    logo: Image.Image,
    geometry: SymbolGeometry | None = None,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> Image.Image:
    """Paste ``logo`` centred, clipped to a circle, with a light ring around the edge."""
    geometry = geometry or _default_geometry(qr_image)
    w, h = qr_image.size
    ring = config.logo_ring_px

    budget = config.max_mark_coverage * geometry.symbol_area
    side = _fit_under_ceiling(
        int(min(w, h) * config.logo_ratio),
        lambda s: np.pi * (s / 2 + ring) ** 2,
        budget,
    )

    square = crop_image(logo, side, side).convert("RGBA")
    mask = circle_mask(side)
    alpha = np.minimum(np.asarray(mask, dtype=np.uint16), np.asarray(square.split()[3], dtype=np.uint16))
    clip = Image.fromarray(alpha.astype(np.uint8))

    x = (w - side) // 2
    y = (h - side) // 2
    result = qr_image.convert("RGB")
    # Light disc under transparent logo pixels.
    result.paste(Image.new("RGB", (side, side), RING_COLOR), (x, y), mask)
    result.paste(square.convert("RGB"), (x, y), clip)

    draw = ImageDraw.Draw(result)
    draw.ellipse([x - ring // 2, y - ring // 2, x + side - 1 + ring // 2, y + side - 1 + ring // 2],
                 outline=RING_COLOR, width=ring)

    audit("mark.logo", logger=log, qr_size=f"{w}x{h}", logo_px=side, ring_px=ring)
    return result


# ---------------------------------------------------------------------------
# Default watermark
# ---------------------------------------------------------------------------

def watermark_box(image_size: tuple[int, int], geometry: SymbolGeometry,
                  config: PipelineConfig = DEFAULT_CONFIG) -> Box:
    """Backing-plate box in the bottom-right corner, clear of all finder patterns.

    The plate is ``1.5 x 1.25`` times the mark size and is shrunk until it
    fits the coverage ceiling and touches no finder box.
    """
    w, h = image_size
    inset = config.watermark_inset_px
    budget = config.max_mark_coverage * geometry.symbol_area
    finders = finder_boxes(geometry)

    size = _fit_under_ceiling(
        int(min(w, h) * config.watermark_ratio),
        lambda s: (s * 1.5) * (s * 1.25),
        budget,
    )
    while True:
        plate_w = int(size * 1.5)
        plate_h = int(size * 1.25)
        box = (w - inset - plate_w, h - inset - plate_h, w - inset, h - inset)
        if size <= 4 or not any(_intersects(box, f) for f in finders):
            return box
        size = int(size * 0.9)


def _load_font(size: int):
    return ImageFont.load_default(size=size)


@trace
def draw_watermark(
    qr_image: Image.Image,
    geometry: SymbolGeometry | None = None,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> Image.Image:
    """Draw the brand text on a rounded opaque plate in the bottom-right corner."""
    geometry = geometry or _default_geometry(qr_image)
    result = qr_image.convert("RGB")
    x0, y0, x1, y1 = watermark_box(result.size, geometry, config)
    draw = ImageDraw.Draw(result)
    draw.rounded_rectangle([x0, y0, x1 - 1, y1 - 1], radius=min(PLATE_RADIUS, (y1 - y0) // 2), fill=PLATE_COLOR)

    text = config.watermark_text
    plate_w, plate_h = x1 - x0, y1 - y0
    font_size = max(6, int(plate_h * 0.45))
    font = _load_font(font_size)
    while font_size > 6 and draw.textlength(text, font=font) > plate_w * 0.85:
        font_size -= 1
        font = _load_font(font_size)
    if text:
        draw.text(((x0 + x1) / 2, (y0 + y1) / 2), text, fill=TEXT_COLOR, font=font, anchor="mm")

    audit("mark.watermark", logger=log, box=(x0, y0, x1, y1), text=text, font_px=font_size)
    return result


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

@trace
def apply_mark(
    qr_raster: Image.Image,
    mark: ImageAsset | None,
    is_user_logo: bool,
    geometry: SymbolGeometry | None = None,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> tuple[Image.Image, str]:
    """Overlay the user's logo or the default watermark.

    ``is_user_logo`` must already include the entitlement check. A logo that
    cannot be decoded falls back to the watermark.

    Returns:
        (marked image, ``"logo"`` or ``"watermark"``)
    """
    if mark is not None and is_user_logo:
        try:
            logo = mark.open()
        except ImageDecodeError as e:
            audit("mark.logo_undecodable", logger=log, error=str(e))
        else:
            return composite_user_logo(qr_raster, logo, geometry, config), LOGO
    return draw_watermark(qr_raster, geometry, config), WATERMARK
