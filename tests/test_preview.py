from PIL import Image

from linqr.models import ContactRecord, ImageAsset
from linqr.preview import AVATAR_SIZE, THEME, qr_slot, render_preview, summarize


def _avatar_centre(width=300):
    return width // 2, 40 + AVATAR_SIZE[1] // 2


def test_placeholders_for_an_empty_form():
    assert summarize(ContactRecord()) == ["YOUR NAME", "PROFESSIONAL"]


def test_partial_name_keeps_placeholder():
    assert summarize(ContactRecord(first_name="ava"))[0] == "AVA NAME"


def test_full_summary(full_record):
    lines = summarize(full_record)
    assert lines == [
        "AVA LEE",
        "HEAD OF DESIGN",
        "Lee, Park & Co / R&D; Labs",
        "Mobile: +1 555 0100",
        "Office: +1 555 0199",
        "ava@x.com",
        "https://ava.example",
        "1 Main St\nSpringfiel...",
        "LinkedIn · X · Facebook · Instagram",
    ]


def test_short_address_is_not_truncated():
    assert summarize(ContactRecord(address="1 Main St"))[-1] == "1 Main St"


def test_preview_without_photo_uses_placeholder():
    img = render_preview(ContactRecord(first_name="Ava"))
    assert img.size == (300, 420)
    assert img.getpixel(_avatar_centre()) == THEME["primary"]


def test_preview_with_photo(make_asset):
    record = ContactRecord(first_name="Ava").with_photo(make_asset(640, 480, (0, 200, 0), "JPEG"))
    r, g, b = render_preview(record).getpixel(_avatar_centre())
    assert g > 150 and r < 60


def test_preview_with_broken_photo():
    record = ContactRecord().with_photo(ImageAsset(b"\xff\xd8 truncated"))
    assert render_preview(record).getpixel(_avatar_centre()) == THEME["primary"]


def test_qr_slot_sits_right_of_the_details():
    assert qr_slot(300, 420) == (210, 256, 285, 331)
    x0, _, x1, _ = qr_slot(100, 420)
    assert x1 - x0 == 40


def test_preview_slot_without_symbol_shows_the_placeholder():
    x0, y0, x1, y1 = qr_slot(300, 420)
    img = render_preview(ContactRecord(first_name="Ava"))
    assert img.getpixel((x0, y0)) == (0, 0, 0)
    assert img.getpixel((x0 + 3, y0 + 3)) == (255, 255, 255)
    assert img.getpixel(((x0 + x1) // 2, (y0 + y1) // 2)) == (0, 0, 0)


def test_preview_slot_holds_the_symbol():
    x0, y0, x1, y1 = qr_slot(300, 420)
    img = render_preview(ContactRecord(first_name="Ava"), qr=Image.new("RGB", (100, 100), (255, 0, 0)))
    assert img.getpixel(((x0 + x1) // 2, (y0 + y1) // 2)) == (255, 0, 0)
    # Rounded corner keeps the card background.
    assert img.getpixel((x0, y0)) != (255, 0, 0)
