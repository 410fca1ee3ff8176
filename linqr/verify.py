"""Scan verification: read rendered symbols back, by decoder or by module sampling."""

import time
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image

from linqr.logging import audit, get_logger, trace
from linqr.models import SymbolGeometry

log = get_logger("verify")


@dataclass
class ScanResult:
    """Result of a single scan attempt."""
    success: bool
    decoded_data: str | None = None
    decode_time_ms: float = 0.0
    decoder: str = ""
    error: str | None = None


def sample_modules(image: Image.Image, geometry: SymbolGeometry, threshold: int = 192) -> list[list[bool]]:
    """Read the module matrix back from a raster by sampling each module centre.

    A module is dark when the grey level at its centre is below ``threshold``,
    which accepts coloured (gradient) modules on a white background.
    """
    gray = np.asarray(image.convert("L"))
    mp = geometry.module_px
    n = geometry.modules
    centers = ((np.arange(n) + geometry.margin + 0.5) * mp).astype(int)
    centers = np.clip(centers, 0, min(gray.shape) - 1)
    grid = gray[np.ix_(centers, centers)] < threshold
    return grid.tolist()


def normalize(image: Image.Image, geometry: SymbolGeometry, threshold: int = 192,
              module_px: int = 8, quiet: int = 4) -> Image.Image:
    """Redraw the sampled module grid as a crisp black-on-white symbol.

    Styled finders and gradient fills are reduced to square black modules on
    a ``quiet``-module white border, which any QR detector can locate.
    """
    dark = np.array(sample_modules(image, geometry, threshold), dtype=bool)
    light = np.pad(~dark, quiet, constant_values=True)
    pixels = np.where(light, 255, 0).astype(np.uint8)
    pixels = np.kron(pixels, np.ones((module_px, module_px), dtype=np.uint8))
    return Image.fromarray(pixels)


def _result(decoder: str, start: float, data: str | None, error: str | None = None) -> ScanResult:
    elapsed = (time.perf_counter() - start) * 1000
    if data:
        audit("scan.verified", logger=log, decoder=decoder, success=True,
              time_ms=round(elapsed, 1), bytes=len(data.encode("utf-8")))
        return ScanResult(success=True, decoded_data=data, decode_time_ms=elapsed, decoder=decoder)
    error = error or "No QR code detected"
    audit("scan.verified", logger=log, decoder=decoder, success=False, time_ms=round(elapsed, 1), error=error)
    return ScanResult(success=False, decode_time_ms=elapsed, decoder=decoder, error=error)


def _opencv_decode(image: Image.Image, decoder: str) -> ScanResult:
    start = time.perf_counter()
    try:
        gray = np.asarray(image.convert("L"))
        data, _, _ = cv2.QRCodeDetector().detectAndDecode(gray)
    except cv2.error as e:
        audit("scan.error", logger=log, decoder=decoder, error=str(e))
        return _result(decoder, start, None, error=str(e))
    return _result(decoder, start, data or None)


@trace
def scan_opencv(image: Image.Image) -> ScanResult:
    """Scan with OpenCV's built-in QR detector."""
    return _opencv_decode(image, "opencv")


@trace
def scan_normalized(image: Image.Image, geometry: SymbolGeometry) -> ScanResult:
    """Scan the module grid of a styled raster, re-drawn by :func:`normalize`, with OpenCV."""
    return _opencv_decode(normalize(image, geometry), "opencv/normalized")


@trace
def scan_pyzbar(image: Image.Image) -> ScanResult:
    """Scan with ZBar through pyzbar. Needs the zbar shared library at runtime."""
    start = time.perf_counter()
    try:
        from pyzbar.pyzbar import decode as pyzbar_decode
    except ImportError as e:
        audit("scan.error", logger=log, decoder="pyzbar/zbar", error=str(e))
        return _result("pyzbar/zbar", start, None, error=f"pyzbar unavailable: {e}")

    results = pyzbar_decode(image)
    data = results[0].data.decode("utf-8", errors="replace") if results else None
    return _result("pyzbar/zbar", start, data)


@trace
def verify(image: Image.Image, expected_data: str | None = None,
           geometry: SymbolGeometry | None = None) -> list[ScanResult]:
    """Run every decoder on ``image``; a decode that differs from ``expected_data`` fails.

    With ``geometry`` the normalized module grid is scanned as well, which
    reads styled finders that OpenCV cannot locate on the raw raster.
    """
    results = [scan_pyzbar(image), scan_opencv(image)]
    if geometry is not None:
        results.append(scan_normalized(image, geometry))
    for result in results:
        if result.success and expected_data is not None and result.decoded_data != expected_data:
            result.success = False
            result.error = "decoded data does not match the payload"
    return results
