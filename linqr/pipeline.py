"""vCard QR pipeline: payload selection, tiered render, branding, export."""

import io
import re

from PIL import Image

from linqr.budget import select_payload
from linqr.config import DEFAULT_CONFIG, PipelineConfig
from linqr.cropper import auto_crop
from linqr.encoder import encode
from linqr.errors import GenerationFailed, RenderFailure, UploadRejected
from linqr.generator import render
from linqr.logging import audit, get_logger, trace
from linqr.logo import apply_mark
from linqr.models import (
    ContactRecord,
    DegradationPath,
    ImageAsset,
    QRRenderRequest,
    QRRenderResult,
    RenderStyle,
)
from linqr.preview import render_preview

log = get_logger("pipeline")

DEFAULT_QR_FILENAME = "vcard-qr-code.png"
DEFAULT_VCF_FILENAME = "vcard.vcf"
DEFAULT_CARD_FILENAME = "digital-card.png"

_UNSAFE = re.compile(r"[^\w.-]+")


def _mark_and_finish(symbol, payload, logo, logo_unlocked, path, config) -> QRRenderResult:
    if logo is not None:
        try:
            logo.validate(config.max_logo_bytes, "logo")
        except UploadRejected as e:
            audit("mark.logo_rejected", logger=log, reason=e.reason, logo_bytes=len(logo.data),
                  media_type=logo.media_type)
            logo = None
    raster, mark = apply_mark(
        symbol.image, logo,
        is_user_logo=logo is not None and logo_unlocked,
        geometry=symbol.geometry, config=config,
    )
    result = QRRenderResult(
        raster=raster,
        used_style=symbol.tier,
        photo_included=payload.includes_photo,
        payload=payload,
        geometry=symbol.geometry,
        path=tuple(path),
        mark=mark,
    )
    audit("pipeline.done", logger=log,
          tier=result.used_style, photo_included=result.photo_included,
          path=[p.value for p in result.path], mark=mark,
          version=symbol.geometry.version, byte_length=payload.byte_length)
    return result


def _failed(failure: RenderFailure) -> GenerationFailed:
    audit("pipeline.failed", logger=log,
          reason=failure.reason, tier=failure.tier, byte_length=failure.byte_length)
    return GenerationFailed(f"QR generation failed: {failure}")


@trace
def generate_vcard_qr(
    record: ContactRecord,
    *,
    style: RenderStyle | None = None,
    logo: ImageAsset | None = None,
    logo_unlocked: bool = False,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> QRRenderResult:
    """Turn a contact record into a branded, scannable QR raster.

    Args:
        record: Current contact form snapshot; its photo is optional.
        style: Cosmetic options for the styled tier.
        logo: Custom logo to centre on the symbol.
        logo_unlocked: Entitlement flag. Without it the default watermark is used.
        config: Pipeline limits and mark sizes.

    Raises:
        GenerationFailed: Neither render tier could produce the symbol.
    """
    style = style or RenderStyle()
    selection = select_payload(record, config=config)
    payload = selection.payload
    path = [selection.path]

    try:
        symbol = render(payload, style)
    except RenderFailure as failure:
        if not (failure.is_capacity and payload.includes_photo):
            raise _failed(failure) from failure
        audit("pipeline.photo_dropped_at_render", logger=log, byte_length=payload.byte_length)
        payload = encode(record, include_photo=False)
        path.append(DegradationPath.PHOTO_DROPPED_AT_RENDER)
        try:
            symbol = render(payload, style)
        except RenderFailure as retry_failure:
            raise _failed(retry_failure) from retry_failure

    return _mark_and_finish(symbol, payload, logo, logo_unlocked, path, config)


@trace
def render_request(request: QRRenderRequest, config: PipelineConfig = DEFAULT_CONFIG) -> QRRenderResult:
    """Render an already-encoded payload (no photo re-encoding)."""
    try:
        symbol = render(request.payload, request.style)
    except RenderFailure as failure:
        raise _failed(failure) from failure
    path = [DegradationPath.PHOTO_ACCEPTED if request.payload.includes_photo else DegradationPath.NO_PHOTO]
    return _mark_and_finish(symbol, request.payload, request.logo,
                            request.logo_unlocked, path, config)


def export_png(result: QRRenderResult) -> bytes:
    """PNG bytes of the final raster, for download or inline display."""
    buf = io.BytesIO()
    result.raster.save(buf, format="PNG")
    return buf.getvalue()


def _name_stem(record: ContactRecord) -> str:
    parts = (_UNSAFE.sub("-", p.strip()).strip("-") for p in (record.first_name, record.last_name))
    return "_".join(p for p in parts if p)


def qr_filename(record: ContactRecord) -> str:
    """``First_Last_qr.png``, or ``vcard-qr-code.png`` for a nameless card."""
    stem = _name_stem(record)
    return f"{stem}_qr.png" if stem else DEFAULT_QR_FILENAME


def vcf_filename(record: ContactRecord) -> str:
    """``First_Last_vcard.vcf``, or ``vcard.vcf`` for a nameless card."""
    stem = _name_stem(record)
    return f"{stem}_vcard.vcf" if stem else DEFAULT_VCF_FILENAME


def digital_card_filename(record: ContactRecord) -> str:
    """``First_Last_DigitalCard.png``, or ``digital-card.png`` for a nameless card."""
    stem = _name_stem(record)
    return f"{stem}_DigitalCard.png" if stem else DEFAULT_CARD_FILENAME


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------

def _check_upload(asset: ImageAsset, max_bytes: int, kind: str):
    try:
        asset.validate(max_bytes, kind)
    except UploadRejected as e:
        audit("upload.rejected", logger=log, kind=kind, reason=e.reason,
              bytes=len(asset.data), media_type=asset.media_type)
        raise


@trace
def accept_photo(asset: ImageAsset, config: PipelineConfig = DEFAULT_CONFIG) -> ImageAsset:
    """Check a profile picture upload and auto-crop it to the card photo frame.

    Raises:
        UploadRejected: Not ``image/*`` or larger than ``config.max_photo_bytes``.
    """
    _check_upload(asset, config.max_photo_bytes, "photo")
    return auto_crop(asset, config)


@trace
def accept_logo(asset: ImageAsset, config: PipelineConfig = DEFAULT_CONFIG) -> ImageAsset:
    """Check a QR logo upload.

    Raises:
        UploadRejected: Not ``image/*`` or larger than ``config.max_logo_bytes``.
    """
    _check_upload(asset, config.max_logo_bytes, "logo")
    return asset


# ---------------------------------------------------------------------------
# Digital card
# ---------------------------------------------------------------------------

@trace
def render_digital_card(record: ContactRecord, result: QRRenderResult,
                        width: int = 300, height: int = 420) -> Image.Image:
    """The preview card with the generated symbol in its QR slot."""
    return render_preview(record, width, height, qr=result.raster)


def export_digital_card(record: ContactRecord, result: QRRenderResult) -> bytes:
    """PNG bytes of the digital card, saved as :func:`digital_card_filename`."""
    buf = io.BytesIO()
    render_digital_card(record, result).save(buf, format="PNG")
    return buf.getvalue()
