"""Value objects shared by every pipeline stage.

All of them are frozen: a stage never mutates what it receives, it returns a
new value instead.
"""

import io
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

from PIL import ExifTags, Image, ImageOps

from linqr.errors import ImageDecodeError, UploadRejected

_MEDIA_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
    "BMP": "image/bmp",
}

_DECODE_ERRORS = (OSError, SyntaxError, ValueError, Image.DecompressionBombError)

# EXIF orientations that swap width and height when applied.
_TRANSPOSED = {5, 6, 7, 8}


@dataclass(frozen=True)
class ImageAsset:
    """Encoded image bytes (upload, camera capture or crop output)."""

    data: bytes
    media_type: str = "image/jpeg"

    @classmethod
    def from_path(cls, path: str | Path) -> "ImageAsset":
        path = Path(path)
        suffix = path.suffix.lower().lstrip(".")
        fmt = {"jpg": "JPEG", "jpeg": "JPEG"}.get(suffix, suffix.upper())
        return cls(path.read_bytes(), _MEDIA_TYPES.get(fmt, "application/octet-stream"))

    @classmethod
    def from_image(cls, image: Image.Image, fmt: str = "PNG", **save_kwargs) -> "ImageAsset":
        """Encode a PIL image. JPEG output is flattened to RGB first."""
        fmt = fmt.upper()
        if fmt == "JPEG" and image.mode != "RGB":
            image = _flatten(image)
        buf = io.BytesIO()
        image.save(buf, format=fmt, **save_kwargs)
        return cls(buf.getvalue(), _MEDIA_TYPES.get(fmt, f"image/{fmt.lower()}"))

    def _decode_error(self, e: Exception) -> ImageDecodeError:
        return ImageDecodeError(f"cannot decode {self.media_type} asset ({len(self.data)} bytes): {e}")

    def open(self) -> Image.Image:
        """Decode to a fully loaded PIL image, upright per its EXIF orientation.

        Raises:
            ImageDecodeError: If the bytes are not a readable raster.
        """
        try:
            with Image.open(io.BytesIO(self.data)) as img:
                img.load()
                return ImageOps.exif_transpose(img)
        except _DECODE_ERRORS as e:
            raise self._decode_error(e) from e

    @property
    def size(self) -> tuple[int, int]:
        """Upright (width, height), read from the header without decoding pixels."""
        try:
            with Image.open(io.BytesIO(self.data)) as img:
                width, height = img.size
                orientation = img.getexif().get(ExifTags.Base.Orientation, 1)
        except _DECODE_ERRORS as e:
            raise self._decode_error(e) from e
        return (height, width) if orientation in _TRANSPOSED else (width, height)

    @property
    def width(self) -> int:
        return self.size[0]

    @property
    def height(self) -> int:
        return self.size[1]

    def validate(self, max_bytes: int, kind: str = "image") -> "ImageAsset":
        """Check an upload's media type and byte size; returns the asset unchanged.

        Raises:
            UploadRejected: ``reason="media_type"`` for anything that is not
                ``image/*``, ``reason="too_large"`` above ``max_bytes``.
        """
        if not self.media_type.startswith("image/"):
            raise UploadRejected(f"{kind} upload has media type {self.media_type!r}, expected image/*",
                                 reason="media_type", kind=kind)
        if len(self.data) > max_bytes:
            raise UploadRejected(f"{kind} upload is {len(self.data)} bytes, limit is {max_bytes}",
                                 reason="too_large", kind=kind, limit=max_bytes)
        return self

    @property
    def vcard_type(self) -> str:
        """TYPE parameter for a vCard PHOTO line, e.g. ``JPEG``."""
        subtype = self.media_type.rsplit("/", 1)[-1].upper()
        return "JPEG" if subtype == "JPG" else subtype


def _flatten(image: Image.Image, background=(255, 255, 255)) -> Image.Image:
    """Composite any alpha channel onto a solid background, returning RGB."""
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        base = Image.new("RGB", rgba.size, background)
        base.paste(rgba, mask=rgba.split()[3])
        return base
    return image.convert("RGB")


# Social platforms in emission order: (field name, display label, form key).
SOCIAL_PLATFORMS = (
    ("linkedin", "LinkedIn", "linkedin"),
    ("x", "X", "x"),
    ("facebook", "Facebook", "facebook"),
    ("instagram", "Instagram", "instagram"),
    ("youtube", "YouTube", "youtube"),
)

# Contact form keys -> ContactRecord fields.
FORM_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "jobTitle": "job_title",
    "company": "company",
    "department": "department",
    "mobile": "mobile_phone",
    "workPhone": "work_phone",
    "email": "email",
    "website": "website",
    "address": "address",
    **{form_key: name for name, _, form_key in SOCIAL_PLATFORMS},
}


@dataclass(frozen=True)
class ContactRecord:
    """One snapshot of the contact form. Rebuilt on every edit."""

    first_name: str = ""
    last_name: str = ""
    job_title: str = ""
    company: str = ""
    department: str = ""
    mobile_phone: str = ""
    work_phone: str = ""
    email: str = ""
    website: str = ""
    address: str = ""
    linkedin: str = ""
    x: str = ""
    facebook: str = ""
    instagram: str = ""
    youtube: str = ""
    photo: ImageAsset | None = field(default=None, repr=False)

    @classmethod
    def from_form(cls, form: dict, photo: ImageAsset | None = None) -> "ContactRecord":
        """Build a record from raw form values, trimming each one. Unknown keys are ignored."""
        values = {}
        for key, name in FORM_FIELDS.items():
            raw = form.get(key)
            if raw is None:
                raw = form.get(name)
            values[name] = str(raw).strip() if raw is not None else ""
        return cls(**values, photo=photo)

    def with_photo(self, photo: ImageAsset | None) -> "ContactRecord":
        return replace(self, photo=photo)

    @property
    def full_name(self) -> str:
        return f"{self.first_name.strip()} {self.last_name.strip()}".strip()

    @property
    def social_urls(self) -> list[tuple[str, str]]:
        """(platform label, url) for each populated social slot, in slot order."""
        urls = []
        for name, label, _ in SOCIAL_PLATFORMS:
            value = getattr(self, name).strip()
            if value:
                urls.append((label, value))
        return urls

    @property
    def is_empty(self) -> bool:
        return self.photo is None and not any(
            getattr(self, name).strip() for name in FORM_FIELDS.values()
        )


@dataclass(frozen=True)
class EncodedPayload:
    """vCard text ready for the symbol generator."""

    text: str
    byte_length: int
    includes_photo: bool = False

    @classmethod
    def from_text(cls, text: str, includes_photo: bool = False) -> "EncodedPayload":
        return cls(text, len(text.encode("utf-8")), includes_photo)

    @property
    def data(self) -> bytes:
        return self.text.encode("utf-8")


class DegradationPath(Enum):
    """Which branch of the payload policy produced the final payload."""

    NO_PHOTO = "no_photo"
    PHOTO_ACCEPTED = "photo_accepted"
    PHOTO_DROPPED = "photo_dropped"
    PHOTO_DROPPED_AT_RENDER = "photo_dropped_at_render"


@dataclass(frozen=True)
class PayloadSelection:
    payload: EncodedPayload
    path: DegradationPath


@dataclass(frozen=True)
class RenderStyle:
    """Cosmetic options. None of them change the encoded bit matrix."""

    size_px: int = 512
    margin: int = 2
    module_shape: str = "rounded"      # rounded | circle | square
    finder_style: str = "rounded"      # rounded | dots | standard
    gradient_start: tuple[int, int, int] = (0x66, 0x7E, 0xEA)
    gradient_end: tuple[int, int, int] = (0x76, 0x4B, 0xA2)
    corner_square_color: tuple[int, int, int] = (0x66, 0x7E, 0xEA)
    corner_dot_color: tuple[int, int, int] = (0x76, 0x4B, 0xA2)
    background: tuple[int, int, int] = (255, 255, 255)


@dataclass(frozen=True)
class SymbolGeometry:
    """Pixel layout of a rendered symbol: grid side, quiet zone and raster size."""

    version: int
    modules: int
    margin: int
    size_px: int

    @property
    def module_px(self) -> float:
        return self.size_px / (self.modules + 2 * self.margin)

    def module_box(self, row: float, col: float, rows: float = 1, cols: float = 1) -> tuple[int, int, int, int]:
        """Pixel box (x0, y0, x1, y1), end-exclusive, of a block of modules."""
        mp = self.module_px
        x0 = round((col + self.margin) * mp)
        y0 = round((row + self.margin) * mp)
        return x0, y0, round((col + cols + self.margin) * mp), round((row + rows + self.margin) * mp)

    @property
    def symbol_box(self) -> tuple[int, int, int, int]:
        return self.module_box(0, 0, self.modules, self.modules)

    @property
    def symbol_area(self) -> int:
        x0, y0, x1, y1 = self.symbol_box
        return (x1 - x0) * (y1 - y0)

    def finder_boxes(self) -> list[tuple[int, int, int, int]]:
        """Top-left, top-right and bottom-left finder patterns including separators."""
        n = self.modules
        return [
            self.module_box(0, 0, 8, 8),
            self.module_box(0, n - 8, 8, 8),
            self.module_box(n - 8, 0, 8, 8),
        ]


@dataclass(frozen=True)
class QRRenderRequest:
    payload: EncodedPayload
    style: RenderStyle = field(default_factory=RenderStyle)
    logo: ImageAsset | None = None
    logo_unlocked: bool = False


@dataclass(frozen=True)
class QRRenderResult:
    """Terminal output of one generate request."""

    raster: Image.Image
    used_style: str                     # "styled" | "basic"
    photo_included: bool
    payload: EncodedPayload
    geometry: SymbolGeometry
    path: tuple[DegradationPath, ...] = ()
    mark: str = "watermark"             # "logo" | "watermark"
