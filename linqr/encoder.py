"""vCard 3.0 encoder: ContactRecord -> QR payload text."""

import base64
import re

from linqr.logging import audit, get_logger, trace
from linqr.models import ContactRecord, EncodedPayload

log = get_logger("encoder")

BEGIN = "BEGIN:VCARD"
VERSION = "VERSION:3.0"
END = "END:VCARD"
LINE_SEP = "\n"

_NEWLINES = re.compile(r"\r\n|\r|\n")


def escape_value(value: str) -> str:
    """Escape a text value for a vCard content line.

    Backslash, semicolon and comma get a backslash prefix; any line break
    becomes the two characters ``\\n``.
    """
    value = value.replace("\\", "\\\\")
    value = value.replace(";", "\\;")
    value = value.replace(",", "\\,")
    return _NEWLINES.sub("\\\\n", value)


def unescape_value(value: str) -> str:
    """Inverse of :func:`escape_value`."""
    out = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == "\\" and i + 1 < len(value):
            nxt = value[i + 1]
            out.append("\n" if nxt in "nN" else nxt)
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _field_lines(record: ContactRecord) -> list[str]:
    first = record.first_name.strip()
    last = record.last_name.strip()
    lines = [
        BEGIN,
        VERSION,
        f"FN:{escape_value(record.full_name)}",
        f"N:{escape_value(last)};{escape_value(first)};;;",
    ]

    def emit(tag: str, value: str):
        value = value.strip()
        if value:
            lines.append(f"{tag}:{escape_value(value)}")

    emit("TITLE", record.job_title)

    company = record.company.strip()
    department = record.department.strip()
    if company or department:
        org = escape_value(company)
        if department:
            org += f";{escape_value(department)}"
        lines.append(f"ORG:{org}")

    emit("TEL;TYPE=CELL", record.mobile_phone)
    emit("TEL;TYPE=WORK", record.work_phone)
    emit("EMAIL", record.email)

    # Each distinct URL once, website first, then social slots in order.
    seen = set()
    website = record.website.strip()
    if website:
        lines.append(f"URL:{escape_value(website)}")
        seen.add(website)

    address = record.address.strip()
    if address:
        lines.append(f"ADR:;;{escape_value(address)};;;;")

    for _, url in record.social_urls:
        if url in seen:
            continue
        seen.add(url)
        lines.append(f"URL:{escape_value(url)}")
    return lines


def photo_line(record: ContactRecord) -> str | None:
    """``PHOTO`` content line for the record's photo, or None without one."""
    if record.photo is None or not record.photo.data:
        return None
    data = base64.b64encode(record.photo.data).decode("ascii")
    return f"PHOTO;ENCODING=BASE64;TYPE={record.photo.vcard_type}:{data}"


@trace
def encode(record: ContactRecord, include_photo: bool = False) -> EncodedPayload:
    """Serialize ``record`` into vCard text for a QR symbol.

    A record with no name still encodes; the live preview calls this on every
    keystroke. The photo line is only added when ``include_photo`` is set and
    the record carries a photo.
    """
    lines = _field_lines(record)
    has_photo = False
    if include_photo:
        line = photo_line(record)
        if line is not None:
            lines.append(line)
            has_photo = True
    lines.append(END)

    payload = EncodedPayload.from_text(LINE_SEP.join(lines), includes_photo=has_photo)
    audit("payload.encoded", logger=log,
          byte_length=payload.byte_length, includes_photo=has_photo, lines=len(lines))
    return payload


def encode_full(record: ContactRecord) -> str:
    """vCard text for the downloadable ``.vcf`` file. Always carries the photo."""
    return encode(record, include_photo=True).text


def _split_unescaped(value: str, sep: str) -> list[str]:
    parts, current, i = [], [], 0
    while i < len(value):
        ch = value[i]
        if ch == "\\" and i + 1 < len(value):
            current.append(value[i:i + 2])
            i += 2
            continue
        if ch == sep:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    parts.append("".join(current))
    return parts


def parse_vcard(text: str) -> dict:
    """Parse vCard text produced by :func:`encode` back into field values.

    Returns a dict with ``fn``, ``first_name``, ``last_name``, ``title``,
    ``org``, ``department``, ``tel`` (type -> number), ``email``, ``urls``
    (list), ``address`` and ``photo`` (``(type, bytes)`` or None).

    Raises:
        ValueError: If the BEGIN/END markers are missing.
    """
    lines = [line for line in _NEWLINES.split(text) if line]
    if not lines or lines[0] != BEGIN or lines[-1] != END:
        raise ValueError("not a vCard: missing BEGIN:VCARD/END:VCARD")

    result = {
        "fn": "", "first_name": "", "last_name": "", "title": "", "org": "",
        "department": "", "tel": {}, "email": "", "urls": [], "address": "",
        "photo": None,
    }
    for line in lines[1:-1]:
        name, _, value = line.partition(":")
        tag, *params = name.split(";")
        tag = tag.upper()
        if tag == "FN":
            result["fn"] = unescape_value(value)
        elif tag == "N":
            parts = _split_unescaped(value, ";") + ["", ""]
            result["last_name"] = unescape_value(parts[0])
            result["first_name"] = unescape_value(parts[1])
        elif tag == "TITLE":
            result["title"] = unescape_value(value)
        elif tag == "ORG":
            parts = _split_unescaped(value, ";")
            result["org"] = unescape_value(parts[0])
            if len(parts) > 1:
                result["department"] = unescape_value(parts[1])
        elif tag == "TEL":
            kind = next((p.split("=", 1)[1].upper() for p in params if p.upper().startswith("TYPE=")), "VOICE")
            result["tel"][kind] = unescape_value(value)
        elif tag == "EMAIL":
            result["email"] = unescape_value(value)
        elif tag == "URL":
            result["urls"].append(unescape_value(value))
        elif tag == "ADR":
            parts = _split_unescaped(value, ";") + [""] * 7
            result["address"] = unescape_value(parts[2])
        elif tag == "PHOTO":
            kind = next((p.split("=", 1)[1].upper() for p in params if p.upper().startswith("TYPE=")), "")
            result["photo"] = (kind, base64.b64decode(value))
    return result
