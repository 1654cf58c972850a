# app/services/image_preprocessor.py
import logging
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from app.models.plant_analysis import ImageData
from app.services.exceptions import ImageProcessingError

logger = logging.getLogger(__name__)

# Encodings Gemini reliably accepts as inline data; anything else is transcoded to JPEG
SUPPORTED_MIME_TYPES = {"image/jpeg", "image/png"}

PIL_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
}


def scaled_size(width: int, height: int, max_width: int, max_height: int) -> Tuple[int, int]:
    """
    Shrink (width, height) proportionally until it fits into the bounds.

    Width is clamped first, then height, so the result always satisfies both
    limits while keeping the aspect ratio. Sizes already within bounds are
    returned unchanged.
    """
    new_width, new_height = float(width), float(height)
    if new_width > max_width:
        new_height = new_height * max_width / new_width
        new_width = max_width
    if new_height > max_height:
        new_width = new_width * max_height / new_height
        new_height = max_height
    return max(1, int(round(new_width))), max(1, int(round(new_height)))


class ImagePreprocessor:
    """Prepares images for the AI service and for the result history."""

    def __init__(self, max_dimension: int = 1024, normalize_quality: int = 90, storage_quality: int = 60):
        self.max_dimension = max_dimension
        self.normalize_quality = normalize_quality
        self.storage_quality = storage_quality

    def describe(self, data: bytes, mime_type: Optional[str] = None) -> ImageData:
        """Read MIME type and dimensions from raw bytes."""
        if not data:
            raise ImageProcessingError("Image data is empty")
        try:
            with Image.open(BytesIO(data)) as img:
                width, height = img.size
                detected = Image.MIME.get(img.format or "")
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
            raise ImageProcessingError(f"Could not read image: {e}") from e
        return ImageData(data=data, mime_type=detected or mime_type or "image/jpeg", width=width, height=height)

    def normalize(self, image: ImageData) -> ImageData:
        """
        Make an image acceptable to the AI service.

        Unsupported encodings are transcoded to JPEG and oversized images are
        scaled down to fit ``max_dimension``. Any failure is logged and the
        original image is returned; this step never aborts an analysis.
        """
        try:
            return self._normalize(image)
        except Exception as e:
            logger.warning(f"Image normalization failed, using original image: {e}", exc_info=True)
            return image

    def _normalize(self, image: ImageData) -> ImageData:
        needs_transcode = image.mime_type not in SUPPORTED_MIME_TYPES

        with Image.open(BytesIO(image.data)) as img:
            width, height = img.size
            needs_resize = width > self.max_dimension or height > self.max_dimension

            if not needs_transcode and not needs_resize:
                if image.width == width and image.height == height:
                    return image
                return image.model_copy(update={"width": width, "height": height})

            target_mime = "image/jpeg" if needs_transcode else image.mime_type
            working = img
            if needs_resize:
                new_size = scaled_size(width, height, self.max_dimension, self.max_dimension)
                working = img.resize(new_size, Image.LANCZOS)
                logger.debug(f"Resized image from {width}x{height} to {new_size[0]}x{new_size[1]}")
            if needs_transcode:
                logger.debug(f"Transcoding image from {image.mime_type} to {target_mime}")

            return self._encode(working, target_mime, self.normalize_quality)

    def compress_for_storage(self, image: ImageData) -> ImageData:
        """Re-encode as a small JPEG for the result history."""
        try:
            with Image.open(BytesIO(image.data)) as img:
                return self._encode(img, "image/jpeg", self.storage_quality)
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            raise ImageProcessingError(f"Could not compress image for storage: {e}") from e

    @staticmethod
    def _encode(img: Image.Image, mime_type: str, quality: int) -> ImageData:
        pil_format = PIL_FORMATS[mime_type]
        if pil_format == "JPEG" and img.mode not in ("RGB", "L"):
            img = img.convert("RGB")

        buffer = BytesIO()
        if pil_format == "JPEG":
            img.save(buffer, format=pil_format, quality=quality)
        else:
            img.save(buffer, format=pil_format, optimize=True)
        width, height = img.size
        return ImageData(data=buffer.getvalue(), mime_type=mime_type, width=width, height=height)
