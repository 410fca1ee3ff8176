"""Pipeline configuration: tunable constants with environment overrides."""

import os
from dataclasses import dataclass, fields, replace

ECC_LEVEL = "H"

# Largest 8-bit payload a version-40 symbol holds at ECC level H.
MAX_SYMBOL_BYTES_H = 1273

# Ceiling for a payload that carries the embedded photo line.
MAX_PHOTO_PAYLOAD_BYTES = 2000

# Upload limits for the raw files, before any cropping.
MAX_PHOTO_UPLOAD_BYTES = 5 * 1024 * 1024
MAX_LOGO_UPLOAD_BYTES = 2 * 1024 * 1024

ENV_PREFIX = "LINQR_"


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable knobs for one pipeline run."""

    max_photo_payload_bytes: int = MAX_PHOTO_PAYLOAD_BYTES
    max_photo_bytes: int = MAX_PHOTO_UPLOAD_BYTES
    max_logo_bytes: int = MAX_LOGO_UPLOAD_BYTES
    photo_frame_width: int = 400   # digital card photo section
    photo_frame_height: int = 350
    jpeg_quality: int = 90
    logo_ratio: float = 0.15       # of the shorter raster side
    logo_ring_px: int = 3
    watermark_ratio: float = 0.10
    watermark_inset_px: int = 10
    watermark_text: str = "LinQR"
    max_mark_coverage: float = 0.20

    @property
    def photo_frame(self) -> tuple[int, int]:
        return self.photo_frame_width, self.photo_frame_height

    @classmethod
    def from_env(cls, environ=None) -> "PipelineConfig":
        """Build a config, overriding defaults from ``LINQR_<FIELD>`` variables.

        Raises:
            ValueError: If a numeric override cannot be parsed.
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            kind = type(f.default)
            try:
                overrides[f.name] = kind(raw) if kind is not str else raw
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}{f.name.upper()}={raw!r} is not a valid {kind.__name__}") from None
        return replace(cls(), **overrides)


DEFAULT_CONFIG = PipelineConfig()
