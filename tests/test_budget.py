import base64

from linqr.budget import select_payload
from linqr.config import MAX_PHOTO_PAYLOAD_BYTES, PipelineConfig
from linqr.encoder import encode
from linqr.models import ContactRecord, DegradationPath, ImageAsset


def _events(caplog):
    return [getattr(r, "event", None) for r in caplog.records]


def test_no_photo(ava):
    selection = select_payload(ava)
    assert selection.path is DegradationPath.NO_PHOTO
    assert selection.payload == encode(ava)


def test_small_photo_is_accepted(ava, tiny_photo):
    selection = select_payload(ava.with_photo(tiny_photo))
    assert selection.path is DegradationPath.PHOTO_ACCEPTED
    assert selection.payload.includes_photo
    assert selection.payload.byte_length <= MAX_PHOTO_PAYLOAD_BYTES


def test_large_photo_is_dropped(ava, big_photo, caplog):
    assert len(base64.b64encode(big_photo.data)) > MAX_PHOTO_PAYLOAD_BYTES
    record = ava.with_photo(big_photo)

    selection = select_payload(record)

    assert selection.path is DegradationPath.PHOTO_DROPPED
    assert selection.payload == encode(ava)
    assert not selection.payload.includes_photo
    assert record.photo is big_photo
    assert "payload.capacity_exceeded" in _events(caplog)


def test_photo_argument_overrides_record_photo(ava, tiny_photo):
    selection = select_payload(ava, tiny_photo)
    assert selection.path is DegradationPath.PHOTO_ACCEPTED
    assert ava.photo is None


def test_limit_is_configurable(ava, tiny_photo):
    strict = PipelineConfig(max_photo_payload_bytes=10)
    assert select_payload(ava.with_photo(tiny_photo), config=strict).path is DegradationPath.PHOTO_DROPPED


def test_limit_is_inclusive(ava, tiny_photo):
    record = ava.with_photo(tiny_photo)
    exact = encode(record, include_photo=True).byte_length
    config = PipelineConfig(max_photo_payload_bytes=exact)
    assert select_payload(record, config=config).path is DegradationPath.PHOTO_ACCEPTED


def test_empty_photo_bytes_count_as_no_photo(ava):
    selection = select_payload(ava.with_photo(ImageAsset(b"")))
    assert selection.path is DegradationPath.NO_PHOTO
    assert not selection.payload.includes_photo


def test_never_raises_for_odd_records(noise_asset):
    record = ContactRecord(first_name="\n;,\\", address="x" * 5000).with_photo(noise_asset(64, 64))
    selection = select_payload(record)
    assert selection.path is DegradationPath.PHOTO_DROPPED


def test_non_image_photo_is_dropped(ava, caplog):
    selection = select_payload(ava.with_photo(ImageAsset(b"hello", "text/plain")))
    assert selection.path is DegradationPath.PHOTO_DROPPED
    assert selection.payload == encode(ava)
    assert "payload.photo_rejected" in _events(caplog)


def test_oversize_photo_upload_is_dropped(ava, tiny_photo, caplog):
    config = PipelineConfig(max_photo_bytes=10)
    selection = select_payload(ava.with_photo(tiny_photo), config=config)
    assert selection.path is DegradationPath.PHOTO_DROPPED
    assert not selection.payload.includes_photo
    assert "payload.photo_rejected" in _events(caplog)
    assert "payload.capacity_exceeded" not in _events(caplog)
