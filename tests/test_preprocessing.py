"""Tests for the image preprocessing pipeline."""

from __future__ import annotations

import io
from pathlib import Path

import numpy as np
import pytest
from conftest import image_bytes
from PIL import Image

from efficientnetx.errors import ImageDecodeError, InvalidImageDimensionsError
from efficientnetx.ml.checkpoints import INPUT_RESOLUTIONS
from efficientnetx.ml.preprocessing import ImagePreprocessor, center_crop_box

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _image_from_array(rgb: np.ndarray) -> Image.Image:
    return Image.fromarray(rgb.astype(np.uint8)).convert("RGBA")


def _expected_reference(values: np.ndarray) -> np.ndarray:
    # 0..127 -> 0, 128..254 -> 1, 255 -> 2
    return np.select([values < 128, values < 255], [0.0, 1.0], default=2.0)


# ---------------------------------------------------------------------------
# Crop geometry
# ---------------------------------------------------------------------------


class TestCenterCropBox:
    def test_square_image(self) -> None:
        # crop = floor(224 / 256 * 500) = 437
        assert center_crop_box(500, 500, 224) == (33, 32, 470, 469)

    def test_landscape_image(self) -> None:
        # crop = floor(0.875 * 480) = 420, offsets (110 + 1, 30)
        assert center_crop_box(640, 480, 224) == (111, 30, 531, 450)

    def test_portrait_image(self) -> None:
        assert center_crop_box(480, 640, 224) == (31, 110, 451, 530)

    def test_width_offset_is_one_more_than_height_offset(self) -> None:
        left, upper, _, _ = center_crop_box(300, 300, 300)
        assert left == upper + 1

    def test_smallest_accepted_square_for_b0(self) -> None:
        assert center_crop_box(9, 9, 224) == (2, 1, 9, 8)

    @pytest.mark.parametrize("side", [1, 2, 8])
    def test_too_small_square_rejected(self, side: int) -> None:
        with pytest.raises(InvalidImageDimensionsError, match="too small"):
            center_crop_box(side, side, 224)

    def test_one_pixel_of_width_slack_rejected(self) -> None:
        # crop = floor(0.875 * 8) = 7 leaves one column, the +1 bias pushes past it
        with pytest.raises(InvalidImageDimensionsError):
            center_crop_box(8, 100, 224)


class TestCropAndResize:
    @pytest.mark.parametrize("side", [9, 64, 224, 500, 1024])
    def test_square_output_for_b0(self, side: int) -> None:
        image = Image.new("RGBA", (side, side), (10, 20, 30, 255))
        out = ImagePreprocessor().crop_and_resize(image, 224)
        assert out.size == (224, 224)

    @pytest.mark.parametrize("resolution", INPUT_RESOLUTIONS)
    def test_every_checkpoint_resolution(self, resolution: int) -> None:
        image = Image.new("RGBA", (320, 200), (10, 20, 30, 255))
        out = ImagePreprocessor().crop_and_resize(image, resolution)
        assert out.size == (resolution, resolution)

    def test_crop_takes_the_biased_center(self) -> None:
        # Mark the pixel just left of the crop box; it must not survive the crop.
        rgb = np.zeros((500, 500, 3), dtype=np.uint8)
        rgb[:, 32] = 255
        cropped = _image_from_array(rgb).crop(center_crop_box(500, 500, 224))
        assert np.asarray(cropped)[..., 0].max() == 0

    def test_too_small_image_rejected(self) -> None:
        image = Image.new("RGBA", (4, 4))
        with pytest.raises(InvalidImageDimensionsError):
            ImagePreprocessor().crop_and_resize(image, 224)


# ---------------------------------------------------------------------------
# Tensor encoding
# ---------------------------------------------------------------------------


class TestCreateTensor:
    def test_shape_and_dtype(self) -> None:
        image = Image.new("RGBA", (224, 224), (1, 2, 3, 255))
        tensor = ImagePreprocessor().create_tensor(image, 224)
        assert tensor.shape == (1, 224, 224, 3)
        assert tensor.dtype == np.float32
        assert tensor.size == 224 * 224 * 3

    def test_reference_normalization_for_every_byte(self) -> None:
        values = np.arange(256).reshape(16, 16)
        rgb = np.stack([values, 255 - values, values], axis=-1)
        tensor = ImagePreprocessor().create_tensor(_image_from_array(rgb), 16)

        assert np.array_equal(tensor[0, ..., 0], _expected_reference(values))
        assert np.array_equal(tensor[0, ..., 1], _expected_reference(255 - values))
        assert set(np.unique(tensor)) <= {0.0, 1.0, 2.0}

    def test_zero_channel_is_positive_zero(self) -> None:
        tensor = ImagePreprocessor().create_tensor(Image.new("RGBA", (4, 4), (0, 0, 0, 255)), 4)
        assert not np.signbit(tensor).any()

    def test_raster_order_with_interleaved_channels(self) -> None:
        rgb = np.array(
            [
                [[0, 128, 255], [255, 0, 0]],
                [[128, 128, 128], [0, 0, 255]],
            ]
        )
        tensor = ImagePreprocessor().create_tensor(_image_from_array(rgb), 2)
        assert tensor.ravel().tolist() == [0, 1, 2, 2, 0, 0, 1, 1, 1, 0, 0, 2]

    def test_alpha_is_ignored(self) -> None:
        preprocessor = ImagePreprocessor()
        opaque = preprocessor.create_tensor(Image.new("RGBA", (8, 8), (200, 50, 255, 255)), 8)
        clear = preprocessor.create_tensor(Image.new("RGBA", (8, 8), (200, 50, 255, 0)), 8)
        assert np.array_equal(opaque, clear)

    def test_standard_normalization(self) -> None:
        rgb = np.array([[[0, 255, 0], [255, 0, 255]], [[0, 0, 0], [255, 255, 255]]])
        tensor = ImagePreprocessor(normalization="standard").create_tensor(_image_from_array(rgb), 2)
        assert tensor.min() == pytest.approx(-1.0)
        assert tensor.max() == pytest.approx(1.0)

    def test_unknown_normalization_rejected(self) -> None:
        with pytest.raises(ValueError, match="normalization"):
            ImagePreprocessor(normalization="imagenet")  # type: ignore[arg-type]

    def test_wrong_size_rejected(self) -> None:
        with pytest.raises(InvalidImageDimensionsError, match="224x224"):
            ImagePreprocessor().create_tensor(Image.new("RGBA", (100, 224)), 224)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


class TestDecodeImage:
    def test_decode_bytes(self) -> None:
        image = ImagePreprocessor().decode_image(image_bytes((40, 30)))
        assert image.mode == "RGBA"
        assert image.size == (40, 30)

    def test_decode_path(self, tmp_path: Path) -> None:
        path = tmp_path / "photo.jpg"
        path.write_bytes(image_bytes((64, 48), fmt="JPEG"))
        for source in (path, str(path)):
            image = ImagePreprocessor().decode_image(source)
            assert image.size == (64, 48)
            assert image.mode == "RGBA"

    def test_corrupt_bytes(self) -> None:
        with pytest.raises(ImageDecodeError):
            ImagePreprocessor().decode_image(b"fake image data")

    def test_truncated_image(self) -> None:
        data = image_bytes((200, 200), fmt="JPEG")
        with pytest.raises(ImageDecodeError):
            ImagePreprocessor().decode_image(data[: len(data) // 2])

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ImageDecodeError):
            ImagePreprocessor().decode_image(tmp_path / "missing.png")

    def test_pixel_limit(self) -> None:
        with pytest.raises(InvalidImageDimensionsError, match="pixel limit"):
            ImagePreprocessor(max_image_pixels=100).decode_image(image_bytes((20, 20)))

    def test_exif_orientation_applied(self) -> None:
        exif = Image.Exif()
        exif[0x0112] = 6  # rotate 90 degrees clockwise
        buffer = io.BytesIO()
        Image.new("RGB", (600, 300), (200, 100, 30)).save(buffer, format="JPEG", exif=exif)

        image = ImagePreprocessor().decode_image(buffer.getvalue())

        assert image.size == (300, 600)
        assert image.mode == "RGBA"

    def test_sixteen_bit_grayscale_rescaled(self) -> None:
        buffer = io.BytesIO()
        Image.fromarray(np.full((40, 60), 40000, dtype=np.uint16)).save(buffer, format="PNG")
        preprocessor = ImagePreprocessor()

        image = preprocessor.decode_image(buffer.getvalue())

        assert image.size == (60, 40)
        assert image.getpixel((10, 10)) == (156, 156, 156, 255)
        tensor = preprocessor.create_tensor(image.resize((224, 224)), 224)
        assert np.unique(tensor).tolist() == [1.0]


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------


class TestPrepare:
    def test_solid_color_b0(self) -> None:
        preprocessor = ImagePreprocessor()
        image = preprocessor.decode_image(image_bytes((500, 500), (200, 100, 30)))
        tensor = preprocessor.prepare(image, 224)

        assert tensor.shape == (1, 224, 224, 3)
        for channel, expected in enumerate((1.0, 0.0, 0.0)):
            assert np.unique(tensor[..., channel]).tolist() == [expected]

    def test_landscape_image_b3(self) -> None:
        preprocessor = ImagePreprocessor()
        image = preprocessor.decode_image(image_bytes((800, 450)))
        assert preprocessor.prepare(image, 300).shape == (1, 300, 300, 3)
