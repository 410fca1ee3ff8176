import pytest

import linqr.generator as generator
from linqr.encoder import encode
from linqr.errors import RenderFailure
from linqr.generator import BASIC, STYLED, get_module_map, render
from linqr.models import EncodedPayload, RenderStyle
from linqr.verify import sample_modules


def _failing(*args, **kwargs):
    raise RuntimeError("renderer exploded")


class TestModuleMap:
    def test_regions_partition_the_grid(self, ava):
        mm = get_module_map(encode(ava).text)
        regions = [mm[k] for k in ("finder_positions", "alignment_positions", "timing_positions",
                                   "format_positions", "data_positions")]
        size = mm["size"]
        union = set().union(*regions)
        assert union == {(r, c) for r in range(size) for c in range(size)}
        assert sum(len(r) for r in regions) == size * size

    def test_finders_and_separators(self, ava):
        mm = get_module_map(encode(ava).text)
        assert len(mm["finder_positions"]) == 3 * 64
        assert mm["size"] == 4 * mm["version"] + 17

    def test_version_info_is_format_for_large_symbols(self):
        mm = get_module_map("A" * 300)
        size = mm["size"]
        assert mm["version"] >= 7
        assert (0, size - 11) in mm["format_positions"]
        assert (size - 11, 0) in mm["format_positions"]

    def test_overflow_is_a_capacity_failure(self):
        with pytest.raises(RenderFailure) as exc:
            get_module_map("x" * 3000)
        assert exc.value.is_capacity
        assert exc.value.byte_length == 3000


class TestRender:
    def test_styled_tier_is_default(self, ava_symbol):
        assert ava_symbol.tier == STYLED
        assert ava_symbol.image.size == (512, 512)
        assert ava_symbol.geometry.margin == 2

    def test_styled_raster_carries_the_level_h_matrix(self, ava, ava_symbol):
        mm = get_module_map(encode(ava).text)
        assert ava_symbol.geometry.version == mm["version"]
        assert sample_modules(ava_symbol.image, ava_symbol.geometry) == mm["modules"]

    @pytest.mark.parametrize("shape", ["circle", "square"])
    @pytest.mark.parametrize("finders", ["standard", "dots"])
    def test_style_options_do_not_change_the_matrix(self, ava, shape, finders):
        payload = encode(ava)
        symbol = render(payload, RenderStyle(module_shape=shape, finder_style=finders))
        assert symbol.tier == STYLED
        assert sample_modules(symbol.image, symbol.geometry) == get_module_map(payload.text)["modules"]

    def test_custom_size(self, ava):
        symbol = render(encode(ava), RenderStyle(size_px=300))
        assert symbol.image.size == (300, 300)
        assert symbol.geometry.size_px == 300

    def test_falls_back_to_basic(self, ava, monkeypatch, caplog):
        payload = encode(ava)
        monkeypatch.setattr(generator, "render_styled", _failing)

        symbol = render(payload)

        assert symbol.tier == BASIC
        assert symbol.image.size == (512, 512)
        assert sample_modules(symbol.image, symbol.geometry) == get_module_map(payload.text)["modules"]
        assert "render.styled_failed" in [getattr(r, "event", None) for r in caplog.records]

    def test_unknown_shape_falls_back_to_basic(self, ava):
        assert render(encode(ava), RenderStyle(module_shape="hexagon")).tier == BASIC

    def test_both_tiers_failing(self, ava, monkeypatch):
        monkeypatch.setattr(generator, "render_styled", _failing)
        monkeypatch.setattr(generator, "render_basic", _failing)

        with pytest.raises(RenderFailure) as exc:
            render(encode(ava))
        assert exc.value.reason == "renderer"
        assert exc.value.tier == BASIC
        assert isinstance(exc.value.__cause__, RuntimeError)

    def test_oversized_payload(self):
        with pytest.raises(RenderFailure) as exc:
            render(EncodedPayload.from_text("x" * 3000))
        assert exc.value.is_capacity
        assert exc.value.tier == BASIC

    def test_largest_level_h_payload_still_renders(self):
        symbol = render(EncodedPayload.from_text("\x01" * 1273))
        assert symbol.geometry.version == 40
        assert symbol.geometry.modules == 177
