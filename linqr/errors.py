"""Exception types raised by the vCard QR pipeline."""


class LinQRError(Exception):
    """Base class for all pipeline errors."""


class ImageDecodeError(LinQRError, ValueError):
    """Raised when an image asset's bytes are not a decodable raster."""


class UploadRejected(LinQRError, ValueError):
    """A photo or logo upload failed the media-type or size check.

    ``reason`` is ``"media_type"`` or ``"too_large"``; ``kind`` names the
    upload slot (``"photo"``, ``"logo"``).
    """

    def __init__(self, message: str, reason: str, kind: str = "image", limit: int | None = None):
        super().__init__(message)
        self.reason = reason
        self.kind = kind
        self.limit = limit

    @property
    def user_message(self) -> str:
        if self.reason == "too_large":
            label = "Logo file" if self.kind == "logo" else "File"
            mb = 1024 * 1024
            limit = f"{self.limit // mb}MB" if self.limit >= mb else f"{self.limit} bytes"
            return f"{label} size must be less than {limit}"
        return "Please select a valid image file"


class RenderFailure(LinQRError):
    """The QR symbol could not be rendered by any tier.

    ``reason`` is ``"capacity"`` when the payload does not fit a level-H
    symbol, ``"renderer"`` otherwise.
    """

    def __init__(self, message: str, reason: str = "renderer", tier: str | None = None,
                 byte_length: int | None = None):
        super().__init__(message)
        self.reason = reason
        self.tier = tier
        self.byte_length = byte_length

    @property
    def is_capacity(self) -> bool:
        return self.reason == "capacity"


class GenerationFailed(LinQRError):
    """Terminal, user-visible failure of a whole generate request."""

    DEFAULT_MESSAGE = "Could not generate QR code. Please try again."

    def __init__(self, message: str, user_message: str = DEFAULT_MESSAGE):
        super().__init__(message)
        self.user_message = user_message
