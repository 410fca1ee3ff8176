"""Photo auto-crop: centre-crop any upload to fill a fixed frame exactly."""

from PIL import Image

from linqr.config import DEFAULT_CONFIG, PipelineConfig
from linqr.errors import ImageDecodeError
from linqr.logging import audit, get_logger, trace
from linqr.models import ImageAsset

log = get_logger("cropper")


def crop_box(width: int, height: int, target_width: int, target_height: int) -> tuple[float, float, float, float]:
    """Source rectangle (left, top, right, bottom) to cut from a ``width x height`` image.

    The wider relative dimension is trimmed symmetrically so the rectangle has
    the target aspect ratio. The result always lies inside the source image
    and is at least one pixel on each side.
    """
    if target_width <= 0 or target_height <= 0:
        raise ValueError(f"target size must be positive, got {target_width}x{target_height}")
    if width <= 0 or height <= 0:
        raise ValueError(f"source size must be positive, got {width}x{height}")

    img_aspect = width / height
    target_aspect = target_width / target_height

    if img_aspect > target_aspect:
        # Wider than the frame: keep full height, trim the sides.
        source_h = float(height)
        source_w = height * target_aspect
        source_x = max(0.0, (width - source_w) / 2)
        source_y = 0.0
    else:
        # Taller than the frame: keep full width, trim top and bottom.
        source_w = float(width)
        source_h = width / target_aspect
        source_x = 0.0
        source_y = max(0.0, (height - source_h) / 2)

    source_w = max(1.0, min(source_w, width - source_x))
    source_h = max(1.0, min(source_h, height - source_y))
    source_x = min(source_x, width - source_w)
    source_y = min(source_y, height - source_h)
    return source_x, source_y, source_x + source_w, source_y + source_h


def crop_image(image: Image.Image, target_width: int, target_height: int) -> Image.Image:
    """Crop and resample a decoded image to exactly ``target_width x target_height``."""
    box = crop_box(image.width, image.height, target_width, target_height)
    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA" if "A" in image.getbands() or "transparency" in image.info else "RGB")
    return image.resize((target_width, target_height), Image.LANCZOS, box=box)


@trace
def crop(
    image: ImageAsset,
    target_width: int,
    target_height: int,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> ImageAsset:
    """Return ``image`` centre-cropped to fill ``target_width x target_height``, as JPEG.

    An asset that cannot be decoded comes back unchanged.
    """
    if target_width <= 0 or target_height <= 0:
        raise ValueError(f"target size must be positive, got {target_width}x{target_height}")
    try:
        decoded = image.open()
    except ImageDecodeError as e:
        audit("crop.passthrough", logger=log, reason=str(e), bytes=len(image.data))
        return image

    cropped = crop_image(decoded, target_width, target_height)
    result = ImageAsset.from_image(cropped, "JPEG", quality=config.jpeg_quality)
    audit("crop.cropped", logger=log,
          source=f"{decoded.width}x{decoded.height}",
          target=f"{target_width}x{target_height}",
          bytes=len(result.data))
    return result


def auto_crop(image: ImageAsset, config: PipelineConfig = DEFAULT_CONFIG) -> ImageAsset:
    """Crop an upload to the digital card photo frame."""
    return crop(image, config.photo_frame_width, config.photo_frame_height, config=config)
