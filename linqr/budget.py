"""Payload budget policy: decide whether the photo can ride along in the QR payload."""

from linqr.config import DEFAULT_CONFIG, PipelineConfig
from linqr.encoder import encode
from linqr.errors import UploadRejected
from linqr.logging import audit, get_logger, trace
from linqr.models import ContactRecord, DegradationPath, ImageAsset, PayloadSelection

log = get_logger("budget")


@trace
def select_payload(
    record: ContactRecord,
    photo: ImageAsset | None = None,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> PayloadSelection:
    """Pick the payload to render for ``record``.

    Order:
        1. No photo: the no-photo encoding.
        2. Photo failing the upload check (``image/*``, at most
           ``max_photo_bytes``): dropped before it is base64-encoded.
        3. Photo payload within ``max_photo_payload_bytes``: use it.
        4. Otherwise: the no-photo encoding, logged as a capacity event.

    ``photo`` defaults to ``record.photo``. The record itself is never
    changed, and this function does not raise for any record.
    """
    photo = record.photo if photo is None else photo
    if photo is None:
        selection = PayloadSelection(encode(record, include_photo=False), DegradationPath.NO_PHOTO)
        _log_selection(selection)
        return selection

    try:
        photo.validate(config.max_photo_bytes, "photo")
    except UploadRejected as e:
        audit("payload.photo_rejected", logger=log, reason=e.reason, photo_bytes=len(photo.data),
              media_type=photo.media_type)
        selection = PayloadSelection(encode(record, include_photo=False), DegradationPath.PHOTO_DROPPED)
        _log_selection(selection)
        return selection

    with_photo = encode(record.with_photo(photo), include_photo=True)
    limit = config.max_photo_payload_bytes
    if with_photo.byte_length <= limit:
        path = DegradationPath.PHOTO_ACCEPTED if with_photo.includes_photo else DegradationPath.NO_PHOTO
        selection = PayloadSelection(with_photo, path)
        _log_selection(selection)
        return selection

    audit("payload.capacity_exceeded", logger=log,
          byte_length=with_photo.byte_length, limit=limit,
          photo_bytes=len(photo.data))
    selection = PayloadSelection(encode(record, include_photo=False), DegradationPath.PHOTO_DROPPED)
    _log_selection(selection)
    return selection


def _log_selection(selection: PayloadSelection):
    audit("payload.selected", logger=log,
          path=selection.path.value,
          byte_length=selection.payload.byte_length,
          includes_photo=selection.payload.includes_photo)
