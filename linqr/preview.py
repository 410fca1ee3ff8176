"""Live card preview shown while the contact form is edited."""

from PIL import Image, ImageDraw, ImageFont

from linqr.cropper import crop_image
from linqr.errors import ImageDecodeError
from linqr.logging import get_logger
from linqr.models import ContactRecord

log = get_logger("preview")

THEME = {
    "primary": (0x4C, 0x1D, 0x95),
    "background": (255, 255, 255),
    "photo_area": (0xF3, 0xF4, 0xF6),
    "band": (0x4C, 0x1D, 0x95),
    "text": (0x1F, 0x29, 0x37),
    "band_text": (255, 255, 255),
}

ADDRESS_MAX = 20
AVATAR_SIZE = (80, 100)
QR_SLOT_RATIO = 0.25


def _name_line(record: ContactRecord) -> str:
    first = record.first_name.strip() or "YOUR"
    last = record.last_name.strip() or "NAME"
    return f"{first} {last}".upper()


def summarize(record: ContactRecord) -> list[str]:
    """Text lines of the preview card, top to bottom."""
    lines = [_name_line(record), (record.job_title.strip() or "PROFESSIONAL").upper()]
    company = record.company.strip()
    department = record.department.strip()
    if company or department:
        lines.append(" / ".join(p for p in (company, department) if p))
    if record.mobile_phone.strip():
        lines.append(f"Mobile: {record.mobile_phone.strip()}")
    if record.work_phone.strip():
        lines.append(f"Office: {record.work_phone.strip()}")
    if record.email.strip():
        lines.append(record.email.strip())
    if record.website.strip():
        lines.append(record.website.strip())
    address = record.address.strip()
    if address:
        lines.append(address[:ADDRESS_MAX] + "..." if len(address) > ADDRESS_MAX else address)
    social = [label for label, _ in record.social_urls]
    if social:
        lines.append(" · ".join(social))
    return lines


def _avatar(record: ContactRecord) -> Image.Image | None:
    if record.photo is None:
        return None
    try:
        return crop_image(record.photo.open(), *AVATAR_SIZE).convert("RGB")
    except ImageDecodeError:
        log.debug("preview avatar undecodable, using placeholder")
        return None


def qr_slot(width: int, height: int) -> tuple[int, int, int, int]:
    """Box of the QR slot, right-aligned under the name band."""
    q = max(40, int(width * QR_SLOT_RATIO))
    x = width - q - 15
    y = height // 2 + 36 + 10
    return x, y, x + q, y + q


def render_preview(record: ContactRecord, width: int = 300, height: int = 420,
                   qr: Image.Image | None = None) -> Image.Image:
    """Draw the business-card preview for ``record``.

    Top half is the photo area with the avatar (or a placeholder block), then
    a band with name and title, then the contact lines and the QR slot. The
    slot holds ``qr`` with rounded corners when given, a placeholder glyph
    otherwise.
    """
    img = Image.new("RGB", (width, height), THEME["background"])
    draw = ImageDraw.Draw(img)
    font = ImageFont.load_default(size=12)
    small = ImageFont.load_default(size=10)

    profile_h = height // 2
    draw.rectangle([0, 0, width, profile_h], fill=THEME["photo_area"])

    aw, ah = AVATAR_SIZE
    ax, ay = width // 2 - aw // 2, 40
    avatar = _avatar(record)
    if avatar is not None:
        img.paste(avatar, (ax, ay))
    else:
        draw.rectangle([ax, ay, ax + aw - 1, ay + ah - 1], fill=THEME["primary"])

    lines = summarize(record)
    band_h = 36
    draw.rectangle([0, profile_h, width, profile_h + band_h], fill=THEME["band"])
    draw.text((width / 2, profile_h + 11), lines[0], fill=THEME["band_text"], font=font, anchor="mm")
    draw.text((width / 2, profile_h + 26), lines[1], fill=THEME["band_text"], font=small, anchor="mm")

    y = profile_h + band_h + 12
    for line in lines[2:]:
        if y > height - 12:
            break
        draw.text((15, y), line, fill=THEME["text"], font=small)
        y += 14

    qx, qy, qx1, qy1 = qr_slot(width, height)
    q = qx1 - qx
    if qr is not None:
        mask = Image.new("L", (q, q), 0)
        ImageDraw.Draw(mask).rounded_rectangle([0, 0, q - 1, q - 1], radius=8, fill=255)
        img.paste(qr.convert("RGB").resize((q, q), Image.LANCZOS), (qx, qy), mask)
    else:
        draw.rectangle([qx, qy, qx1, qy1], fill=(0, 0, 0))
        draw.rectangle([qx + 2, qy + 2, qx1 - 2, qy1 - 2], fill=(255, 255, 255))
        draw.rectangle([qx + 6, qy + 6, qx1 - 6, qy1 - 6], fill=(0, 0, 0))
    return img
