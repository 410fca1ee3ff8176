from PIL import Image

import linqr.verify as verify_mod
from linqr.models import SymbolGeometry
from linqr.pipeline import generate_vcard_qr
from linqr.verify import ScanResult, normalize, sample_modules, scan_normalized, scan_opencv, verify


def test_sample_modules_reads_a_checkerboard():
    geometry = SymbolGeometry(version=1, modules=3, margin=1, size_px=50)
    img = Image.new("RGB", (50, 50), (255, 255, 255))
    for r in range(3):
        for c in range(3):
            if (r + c) % 2 == 0:
                img.paste((0x76, 0x4B, 0xA2), geometry.module_box(r, c))
    assert sample_modules(img, geometry) == [
        [True, False, True],
        [False, True, False],
        [True, False, True],
    ]


def test_blank_image_has_no_symbol():
    result = scan_opencv(Image.new("RGB", (200, 200), "white"))
    assert result.success is False
    assert result.decoder == "opencv"
    assert result.error


def test_verify_flags_mismatched_payload(monkeypatch):
    def fake_scanner(name, data):
        return lambda image: ScanResult(success=True, decoded_data=data, decoder=name)

    monkeypatch.setattr(verify_mod, "scan_pyzbar", fake_scanner("pyzbar/zbar", "BEGIN:VCARD"))
    monkeypatch.setattr(verify_mod, "scan_opencv", fake_scanner("opencv", "something else"))

    results = verify(Image.new("RGB", (10, 10)), expected_data="BEGIN:VCARD")

    assert [r.success for r in results] == [True, False]
    assert results[1].error == "decoded data does not match the payload"


def test_normalize_redraws_the_grid_with_a_quiet_zone(ava_symbol):
    geometry = ava_symbol.geometry
    img = normalize(ava_symbol.image, geometry, module_px=4)

    assert img.mode == "L"
    assert img.size == ((geometry.modules + 8) * 4,) * 2
    assert img.getpixel((0, 0)) == 255
    # Top-left finder corner starts right after the four-module border.
    assert img.getpixel((16, 16)) == 0
    redrawn = SymbolGeometry(version=geometry.version, modules=geometry.modules, margin=4, size_px=img.size[0])
    assert sample_modules(img, redrawn) == sample_modules(ava_symbol.image, geometry)


def test_styled_symbol_decodes_after_normalizing(ava_symbol):
    result = scan_normalized(ava_symbol.image, ava_symbol.geometry)
    assert result.success, result.error
    assert result.decoder == "opencv/normalized"
    assert result.decoded_data.startswith("BEGIN:VCARD")


def test_verify_styled_raster_with_geometry(ava):
    result = generate_vcard_qr(ava)

    results = verify(result.raster, expected_data=result.payload.text, geometry=result.geometry)

    assert [r.decoder for r in results] == ["pyzbar/zbar", "opencv", "opencv/normalized"]
    normalized = results[-1]
    assert normalized.success, normalized.error
    assert normalized.decoded_data == result.payload.text


def test_verify_mismatch_applies_to_normalized_scan(ava_symbol, monkeypatch):
    failed = ScanResult(success=False, decoder="stub", error="nothing")
    monkeypatch.setattr(verify_mod, "scan_pyzbar", lambda image: failed)
    monkeypatch.setattr(verify_mod, "scan_opencv", lambda image: failed)

    results = verify(ava_symbol.image, expected_data="BEGIN:VCARD\nother", geometry=ava_symbol.geometry)

    assert results[-1].decoder == "opencv/normalized"
    assert results[-1].success is False
    assert results[-1].error == "decoded data does not match the payload"
