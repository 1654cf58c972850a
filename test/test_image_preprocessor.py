import io

import pytest
from PIL import Image

from app.models.plant_analysis import ImageData
from app.services.exceptions import ImageProcessingError
from app.services.image_preprocessor import ImagePreprocessor, scaled_size

from conftest import image_bytes


def _open(image: ImageData) -> Image.Image:
    return Image.open(io.BytesIO(image.data))


def test_scaled_size_keeps_aspect_ratio():
    assert scaled_size(2048, 1024, 1024, 1024) == (1024, 512)
    assert scaled_size(1000, 3000, 1024, 1024) == (341, 1024)
    assert scaled_size(800, 600, 1024, 1024) == (800, 600)


def test_describe_reads_format_and_size(preprocessor):
    described = preprocessor.describe(image_bytes((120, 80), fmt="WEBP"))
    assert described.mime_type == "image/webp"
    assert (described.width, described.height) == (120, 80)


def test_describe_rejects_non_images(preprocessor):
    with pytest.raises(ImageProcessingError):
        preprocessor.describe(b"definitely not an image")


def test_small_supported_image_is_returned_unchanged(preprocessor, png_image):
    normalized = preprocessor.normalize(png_image)
    assert normalized.data == png_image.data
    assert normalized.mime_type == "image/png"


def test_oversized_image_is_downscaled(preprocessor):
    original = ImageData(data=image_bytes((3000, 1500), fmt="JPEG"), mime_type="image/jpeg")
    normalized = preprocessor.normalize(original)

    assert (normalized.width, normalized.height) == (1024, 512)
    assert normalized.mime_type == "image/jpeg"
    assert _open(normalized).size == (1024, 512)


def test_oversized_png_stays_png():
    preprocessor = ImagePreprocessor(max_dimension=100)
    original = ImageData(data=image_bytes((400, 200)), mime_type="image/png")
    normalized = preprocessor.normalize(original)

    assert normalized.mime_type == "image/png"
    assert _open(normalized).format == "PNG"
    assert _open(normalized).size == (100, 50)


def test_unsupported_encoding_is_transcoded_to_jpeg(preprocessor):
    original = ImageData(data=image_bytes((200, 100), fmt="WEBP"), mime_type="image/webp")
    normalized = preprocessor.normalize(original)

    assert normalized.mime_type == "image/jpeg"
    assert _open(normalized).format == "JPEG"
    assert (normalized.width, normalized.height) == (200, 100)


def test_transparent_gif_is_transcoded(preprocessor):
    original = ImageData(data=image_bytes((50, 50), fmt="GIF", mode="P", color=0), mime_type="image/gif")
    normalized = preprocessor.normalize(original)
    assert _open(normalized).format == "JPEG"


def test_normalize_falls_back_to_original_on_garbage(preprocessor):
    broken = ImageData(data=b"\x00\x01broken", mime_type="image/webp")
    assert preprocessor.normalize(broken) is broken


def test_compress_for_storage_produces_smaller_jpeg(preprocessor):
    buffer = io.BytesIO()
    Image.effect_noise((400, 400), 64).convert("RGB").save(buffer, format="PNG")
    original = ImageData(data=buffer.getvalue(), mime_type="image/png")
    high = ImagePreprocessor(storage_quality=95).compress_for_storage(original)
    low = preprocessor.compress_for_storage(original)

    assert low.mime_type == "image/jpeg"
    assert len(low.data) < len(high.data)


def test_compress_for_storage_raises_on_garbage(preprocessor):
    with pytest.raises(ImageProcessingError):
        preprocessor.compress_for_storage(ImageData(data=b"nope", mime_type="image/jpeg"))


def test_decompression_bomb_is_reported_as_processing_error(preprocessor, png_image, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

    with pytest.raises(ImageProcessingError):
        preprocessor.describe(png_image.data)
    with pytest.raises(ImageProcessingError):
        preprocessor.compress_for_storage(png_image)
    assert preprocessor.normalize(png_image) == png_image
