"""Image preprocessing pipeline.

Decodes an image, takes a padded center crop, resizes it to the checkpoint's
input resolution, and encodes the pixels into the ``(1, R, R, 3)`` float32
tensor the EfficientNet graph expects.

Crop geometry and the ``reference`` pixel normalization reproduce the
published model's preprocessing exactly, quirks included:

* the width offset carries an extra ``+1`` that the height offset does not;
* channels are scaled with ``trunc((c - 1) / 127)``, which collapses bytes to
  ``{0, 1, 2}`` rather than the usual ``[-1, 1]`` floats.

Both look like upstream off-by-one / integer-division slips. They are kept so
scores stay comparable with the reference model; ``normalization="standard"``
opts into the conventional ``c / 127.5 - 1`` scaling.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Literal

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from efficientnetx.errors import ImageDecodeError, InvalidImageDimensionsError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

CROP_PADDING = 32
NUM_CHANNELS = 3

ImageSource = str | Path | bytes
Normalization = Literal["reference", "standard"]


def center_crop_box(width: int, height: int, resolution: int) -> tuple[int, int, int, int]:
    """Return the ``(left, upper, right, lower)`` crop box for an image.

    Raises:
        InvalidImageDimensionsError: If the box is empty or leaves the image.
    """
    crop_size = int((resolution / (resolution + CROP_PADDING)) * min(height, width))
    offset_height = (height - crop_size + 1) // 2
    offset_width = (width - crop_size + 1) // 2 + 1

    if crop_size < 1 or offset_width + crop_size > width or offset_height + crop_size > height:
        raise InvalidImageDimensionsError(
            f"Image of {width}x{height} is too small for a {resolution}px center crop "
            f"(crop {crop_size}px at x={offset_width}, y={offset_height})"
        )
    return offset_width, offset_height, offset_width + crop_size, offset_height + crop_size


def _to_8bit(image: Image.Image) -> Image.Image:
    """Scale 16-bit grayscale samples down to 8 bits by keeping the high byte.

    Pillow's own ``convert`` clamps values above 255 instead of rescaling them.
    """
    if image.mode != "I" and not image.mode.startswith("I;16"):
        return image
    samples = np.clip(np.asarray(image).astype(np.int64), 0, 0xFFFF) >> 8
    return Image.fromarray(samples.astype(np.uint8))


class ImagePreprocessor:
    """Turns raw images into model-ready tensors. Stateless and thread-safe."""

    def __init__(
        self,
        max_image_pixels: int | None = None,
        normalization: Normalization = "reference",
    ) -> None:
        if normalization not in ("reference", "standard"):
            raise ValueError(f"Unknown normalization: {normalization!r}")
        self._max_image_pixels = max_image_pixels
        self._normalization = normalization

    @property
    def normalization(self) -> Normalization:
        return self._normalization

    def decode_image(self, source: ImageSource) -> Image.Image:
        """Decode an image file or buffer into an RGBA Pillow image.

        Args:
            source: Filesystem path or raw encoded bytes (any Pillow format).

        Returns:
            The fully loaded image in RGBA mode, rotated upright according to
            its EXIF orientation tag. 16-bit grayscale is reduced to 8 bits.

        Raises:
            ImageDecodeError: If the source is missing, unreadable, or corrupt.
            InvalidImageDimensionsError: If the image exceeds ``max_image_pixels``.
        """
        fp = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else Path(source)
        try:
            with Image.open(fp) as img:
                width, height = img.size
                if self._max_image_pixels is not None and width * height > self._max_image_pixels:
                    logger.warning("Rejecting %dx%d image (limit %d pixels)", width, height, self._max_image_pixels)
                    raise InvalidImageDimensionsError(
                        f"Image of {width}x{height} exceeds the {self._max_image_pixels} pixel limit"
                    )
                img.load()
                upright = ImageOps.exif_transpose(img)
                return _to_8bit(upright).convert("RGBA")
        except (UnidentifiedImageError, OSError, SyntaxError, Image.DecompressionBombError) as exc:
            raise ImageDecodeError(f"Cannot decode image: {exc}") from exc

    def crop_and_resize(self, image: Image.Image, resolution: int) -> Image.Image:
        """Take the padded center crop and resize it to ``resolution x resolution``."""
        cropped = image.crop(center_crop_box(image.width, image.height, resolution))
        # Bands are resized one by one; Pillow premultiplies RGB by alpha when resizing RGBA.
        bands = [band.resize((resolution, resolution), Image.Resampling.BICUBIC) for band in cropped.split()]
        return Image.merge(cropped.mode, bands)

    def create_tensor(self, image: Image.Image, resolution: int) -> NDArray[np.float32]:
        """Encode an ``R x R`` image as a ``(1, R, R, 3)`` float32 tensor.

        Pixels are laid out in raster order with R, G, B interleaved; alpha is
        dropped.
        """
        if image.size != (resolution, resolution):
            raise InvalidImageDimensionsError(
                f"Expected a {resolution}x{resolution} image, got {image.width}x{image.height}"
            )
        rgb = np.asarray(image.convert("RGB"), dtype=np.float32)

        if self._normalization == "reference":
            # + 0.0 folds the -0.0 produced for zero-valued channels into 0.0
            values = np.trunc((rgb - 1.0) / 127.0) + 0.0
        else:
            values = rgb / 127.5 - 1.0

        return values.reshape(1, resolution, resolution, NUM_CHANNELS).astype(np.float32)

    def prepare(self, image: Image.Image, resolution: int) -> NDArray[np.float32]:
        """Crop, resize, and encode an image for a model of the given resolution."""
        return self.create_tensor(self.crop_and_resize(image, resolution), resolution)
