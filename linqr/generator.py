"""QR symbol generator: level-H module matrix plus styled and basic raster tiers."""

import math
from dataclasses import dataclass

import numpy as np
import qrcode
import qrcode.constants
import qrcode.exceptions
import qrcode.util
from PIL import Image, ImageDraw

from linqr.errors import RenderFailure
from linqr.logging import audit, get_logger, trace
from linqr.models import EncodedPayload, RenderStyle, SymbolGeometry

log = get_logger("generator")

ERROR_CORRECTION = qrcode.constants.ERROR_CORRECT_H  # ~30% recoverable

STYLED = "styled"
BASIC = "basic"


@dataclass(frozen=True)
class RenderedSymbol:
    image: Image.Image
    tier: str
    geometry: SymbolGeometry


def _make_qr(data: str, box_size: int = 1, border: int = 0) -> qrcode.QRCode:
    """Build a fitted level-H QRCode.

    Raises:
        RenderFailure: ``reason="capacity"`` when no version can hold ``data``.
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECTION,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    try:
        qr.make(fit=True)
    except qrcode.exceptions.DataOverflowError as e:
        byte_length = len(data.encode("utf-8"))
        raise RenderFailure(
            f"payload of {byte_length} bytes exceeds level-H symbol capacity",
            reason="capacity", byte_length=byte_length,
        ) from e
    return qr


def _finder_and_separator(size: int) -> set[tuple[int, int]]:
    positions = set()
    for r in range(8):
        for c in range(8):
            positions.add((r, c))                  # top-left
            positions.add((r, size - 8 + c))       # top-right
            positions.add((size - 8 + r, c))       # bottom-left
    return positions


def _version_info(version: int, size: int) -> set[tuple[int, int]]:
    if version < 7:
        return set()
    positions = set()
    for i in range(6):
        for j in range(3):
            positions.add((i, size - 11 + j))
            positions.add((size - 11 + j, i))
    return positions


@trace
def get_module_map(data: str) -> dict:
    """Analyze the level-H symbol for ``data``: which module is what.

    Returns a dict with:
        - 'version': QR version chosen by fit
        - 'size': grid side in modules
        - 'modules': the bool matrix (True = dark)
        - 'finder_positions': finder patterns plus their separators
        - 'alignment_positions': alignment patterns
        - 'timing_positions': row/column 6 timing patterns
        - 'format_positions': format info, version info and the dark module
        - 'data_positions': everything else (data + ECC codewords)
    """
    qr = _make_qr(data)
    version = qr.version
    size = qr.modules_count
    modules = qr.modules

    finder_pos = _finder_and_separator(size)

    timing_pos = set()
    for i in range(8, size - 8):
        timing_pos.add((6, i))
        timing_pos.add((i, 6))

    alignment_pos = set()
    centers = qrcode.util.pattern_position(version)
    for ar in centers:
        for ac in centers:
            block = {(r, c) for r in range(ar - 2, ar + 3) for c in range(ac - 2, ac + 3)}
            if block & finder_pos:
                continue
            alignment_pos |= block
    timing_pos -= alignment_pos

    format_pos = set()
    for i in range(9):
        if i != 6:
            format_pos.add((8, i))
            format_pos.add((i, 8))
    for i in range(8):
        format_pos.add((8, size - 8 + i))
    for i in range(7):
        format_pos.add((size - 7 + i, 8))
    format_pos.add((size - 8, 8))  # dark module
    format_pos |= _version_info(version, size)
    format_pos -= finder_pos

    fixed = finder_pos | alignment_pos | timing_pos | format_pos
    data_pos = {(r, c) for r in range(size) for c in range(size) if (r, c) not in fixed}

    audit("qr.module_map", logger=log,
          version=version, size=f"{size}x{size}",
          finder=len(finder_pos), alignment=len(alignment_pos),
          timing=len(timing_pos), format=len(format_pos),
          data_ecc=len(data_pos))

    return {
        "version": version,
        "size": size,
        "modules": modules,
        "finder_positions": finder_pos,
        "alignment_positions": alignment_pos,
        "timing_positions": timing_pos,
        "format_positions": format_pos,
        "data_positions": data_pos,
    }


def _box_size(size: int, style: RenderStyle, minimum: int = 1) -> int:
    """Module pixel size so the native render is at least ``style.size_px`` wide."""
    return max(minimum, math.ceil(style.size_px / (size + 2 * style.margin)))


# ---------------------------------------------------------------------------
# Styled tier
# ---------------------------------------------------------------------------

def _draw_module(draw: ImageDraw.ImageDraw, px: int, py: int, box: int, margin: int, fill, shape: str):
    """Draw a single module with the given shape."""
    if shape == "circle":
        cx = px + box // 2
        cy = py + box // 2
        r = (box - margin * 2) // 2
        draw.ellipse([cx - r, cy - r, cx + r, cy + r], fill=fill)
    elif shape == "rounded":
        draw.rounded_rectangle(
            [px + margin, py + margin, px + box - margin, py + box - margin],
            radius=max(1, box // 4), fill=fill,
        )
    elif shape == "square":
        draw.rectangle([px, py, px + box - 1, py + box - 1], fill=fill)
    else:
        raise ValueError(f"unknown module shape {shape!r}")


def _draw_styled_finders(draw: ImageDraw.ImageDraw, size: int, box: int, border: int, style: RenderStyle):
    """Draw the three 7x7 finder patterns as rounded squares with a dot or rounded centre."""
    for orig_r, orig_c in [(0, 0), (0, size - 7), (size - 7, 0)]:
        ox = (orig_c + border) * box
        oy = (orig_r + border) * box
        fpx = 7 * box

        if style.finder_style == "standard":
            draw.rectangle([ox, oy, ox + fpx - 1, oy + fpx - 1], fill=style.corner_square_color)
            draw.rectangle([ox + box, oy + box, ox + fpx - 1 - box, oy + fpx - 1 - box], fill=style.background)
            draw.rectangle([ox + 2 * box, oy + 2 * box, ox + fpx - 1 - 2 * box, oy + fpx - 1 - 2 * box],
                           fill=style.corner_dot_color)
            continue
        if style.finder_style not in ("rounded", "dots"):
            raise ValueError(f"unknown finder style {style.finder_style!r}")

        # Radius of one module keeps every finder module centre inside the shape.
        radius = box
        draw.rounded_rectangle([ox, oy, ox + fpx - 1, oy + fpx - 1], radius=radius,
                               fill=style.corner_square_color)
        draw.rounded_rectangle([ox + box, oy + box, ox + fpx - 1 - box, oy + fpx - 1 - box],
                               radius=max(1, radius // 2), fill=style.background)
        m2 = 2 * box
        if style.finder_style == "dots":
            cx = ox + fpx // 2
            cy = oy + fpx // 2
            cr = int(box * 1.5)
            draw.ellipse([cx - cr, cy - cr, cx + cr, cy + cr], fill=style.corner_dot_color)
        else:
            draw.rounded_rectangle([ox + m2, oy + m2, ox + fpx - 1 - m2, oy + fpx - 1 - m2],
                                   radius=max(1, radius // 3), fill=style.corner_dot_color)


def _horizontal_gradient(width: int, height: int, start, end) -> Image.Image:
    t = np.linspace(0.0, 1.0, width, dtype=np.float32)[None, :, None]
    row = (1 - t) * np.array(start, dtype=np.float32) + t * np.array(end, dtype=np.float32)
    arr = np.repeat(row, height, axis=0).round().astype(np.uint8)
    return Image.fromarray(arr)


@trace
def render_styled(module_map: dict, style: RenderStyle) -> Image.Image:
    """Render the module map with rounded modules, a colour gradient and styled finders.

    Purely cosmetic: every dark module of the matrix is drawn dark, every
    light one is left as background.
    """
    size = module_map["size"]
    modules = module_map["modules"]
    finder_set = module_map["finder_positions"]
    format_set = module_map["format_positions"]

    box = _box_size(size, style, minimum=8)
    border = style.margin
    total_px = (size + border * 2) * box
    margin = max(1, box // 8)

    img = Image.new("RGB", (total_px, total_px), style.background)
    draw = ImageDraw.Draw(img)

    # 1) Finder patterns as cohesive blocks
    _draw_styled_finders(draw, size, box, border, style)

    # 2) Everything else goes through a mask filled with the gradient
    ink = Image.new("L", (total_px, total_px), 0)
    ink_draw = ImageDraw.Draw(ink)
    for r in range(size):
        for c in range(size):
            if (r, c) in finder_set or not modules[r][c]:
                continue
            px = (c + border) * box
            py = (r + border) * box
            # Format info stays square.
            shape = "square" if (r, c) in format_set else style.module_shape
            _draw_module(ink_draw, px, py, box, margin, 255, shape)

    gradient = _horizontal_gradient(total_px, total_px, style.gradient_start, style.gradient_end)
    img.paste(gradient, (0, 0), ink)

    if total_px != style.size_px:
        img = img.resize((style.size_px, style.size_px), Image.LANCZOS)
    return img


# ---------------------------------------------------------------------------
# Basic tier
# ---------------------------------------------------------------------------

@trace
def render_basic(data: str, style: RenderStyle) -> Image.Image:
    """Plain black-on-white symbol, resampled to ``style.size_px``."""
    sizing = _make_qr(data)
    box = _box_size(sizing.modules_count, style)
    qr = _make_qr(data, box_size=box, border=style.margin)
    img = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    if img.size != (style.size_px, style.size_px):
        img = img.resize((style.size_px, style.size_px), Image.NEAREST)
    return img


# ---------------------------------------------------------------------------
# Tiered render
# ---------------------------------------------------------------------------

@trace
def render(payload: EncodedPayload, style: RenderStyle | None = None) -> RenderedSymbol:
    """Render ``payload`` at ECC level H, styled tier first, basic tier on any failure.

    Raises:
        RenderFailure: When the basic tier fails too. ``reason`` is
            ``"capacity"`` if the payload does not fit any symbol version.
    """
    style = style or RenderStyle()
    try:
        module_map = get_module_map(payload.text)
        image = render_styled(module_map, style)
        tier = STYLED
        version, size = module_map["version"], module_map["size"]
    except Exception as e:
        audit("render.styled_failed", logger=log,
              error=f"{type(e).__name__}: {e}", byte_length=payload.byte_length)
        try:
            image = render_basic(payload.text, style)
            sizing = _make_qr(payload.text)
        except RenderFailure as failure:
            failure.tier = BASIC
            raise
        except Exception as basic_error:
            raise RenderFailure(
                f"basic renderer failed: {type(basic_error).__name__}: {basic_error}",
                reason="renderer", tier=BASIC, byte_length=payload.byte_length,
            ) from basic_error
        tier = BASIC
        version, size = sizing.version, sizing.modules_count

    geometry = SymbolGeometry(version=version, modules=size, margin=style.margin, size_px=style.size_px)
    audit("render.rendered", logger=log,
          tier=tier, version=version, size=f"{size}x{size}",
          byte_length=payload.byte_length, image_px=f"{image.width}x{image.height}")
    return RenderedSymbol(image=image, tier=tier, geometry=geometry)
