import logging

import numpy as np
import pytest
from PIL import Image

from linqr.encoder import encode
from linqr.generator import render
from linqr.models import ContactRecord, ImageAsset


@pytest.fixture(autouse=True)
def _linqr_logging():
    """Keep the linqr logger propagating at its default level between tests."""
    log = logging.getLogger("linqr")
    level, handlers = log.level, list(log.handlers)
    yield
    log.setLevel(level)
    log.handlers[:] = handlers


@pytest.fixture
def make_asset():
    def _make(width, height, color=(200, 40, 40), fmt="PNG", mode="RGB"):
        return ImageAsset.from_image(Image.new(mode, (width, height), color), fmt)
    return _make


@pytest.fixture
def noise_asset():
    def _make(width, height, fmt="JPEG", seed=0):
        rng = np.random.default_rng(seed)
        arr = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
        kwargs = {"quality": 90} if fmt == "JPEG" else {}
        return ImageAsset.from_image(Image.fromarray(arr), fmt, **kwargs)
    return _make


@pytest.fixture
def ava():
    return ContactRecord(first_name="Ava", last_name="Lee", email="ava@x.com")


@pytest.fixture
def tiny_photo(make_asset):
    return make_asset(2, 2, (10, 120, 200), "PNG")


@pytest.fixture
def big_photo(noise_asset):
    """500x500 photo far beyond the photo payload budget."""
    return noise_asset(500, 500)


@pytest.fixture
def full_record():
    return ContactRecord(
        first_name="Ava",
        last_name="Lee",
        job_title="Head of Design",
        company="Lee, Park & Co",
        department="R&D; Labs",
        mobile_phone="+1 555 0100",
        work_phone="+1 555 0199",
        email="ava@x.com",
        website="https://ava.example",
        address="1 Main St\nSpringfield",
        linkedin="https://linkedin.com/in/ava",
        x="https://x.com/ava",
        facebook="https://ava.example",
        instagram="https://x.com/ava",
        youtube="",
    )


@pytest.fixture
def ava_symbol(ava):
    return render(encode(ava))
