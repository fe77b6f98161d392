"""Image normalization before upload."""

import io
import re
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from .logging_config import get_logger
from .models import Dimensions, TargetFormat

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ImageTranscoder:
    """Pure image conversion service with no I/O dependencies."""

    def __init__(self, jpeg_quality: int = 90):
        self._quality = jpeg_quality
        self._logger = get_logger("product-images.transcoder")

    def transcode(
        self,
        image_bytes: bytes,
        target_format: TargetFormat,
        dimensions: Optional[Dimensions] = None,
    ) -> bytes:
        """
        Re-encode ``image_bytes`` as ``target_format``.

        The image is rotated per its EXIF orientation and, when
        ``dimensions`` is given, fitted into exactly that size with the
        aspect ratio preserved. On failure the original bytes are returned
        unchanged; the caller still labels them with the requested format.

        Args:
            image_bytes: Encoded input image
            target_format: Output encoding
            dimensions: Optional exact output size

        Returns:
            Encoded image bytes
        """
        try:
            image = Image.open(io.BytesIO(image_bytes))
            image.load()
            image = ImageOps.exif_transpose(image)

            image = self._convert_mode(image, target_format)

            if dimensions is not None:
                image = ImageOps.pad(
                    image,
                    (dimensions.width, dimensions.height),
                    method=Image.Resampling.LANCZOS,
                    color=self._background(image),
                )

            output = io.BytesIO()
            if target_format is TargetFormat.PNG:
                image.save(output, format="PNG", optimize=True)
            else:
                image.save(output, format=target_format.value, quality=self._quality)
            return output.getvalue()

        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
            self._logger.warning(
                f"Transcoding to {target_format.value} failed, passing original bytes through: {exc}"
            )
            return image_bytes

    @staticmethod
    def _convert_mode(image: Image.Image, target_format: TargetFormat) -> Image.Image:
        has_alpha = image.mode in ("RGBA", "LA") or (
            image.mode == "P" and "transparency" in image.info
        )
        if target_format is TargetFormat.JPEG:
            if has_alpha:
                rgba = image.convert("RGBA")
                flattened = Image.new("RGB", rgba.size, (255, 255, 255))
                flattened.paste(rgba, mask=rgba.getchannel("A"))
                return flattened
            return image.convert("RGB")
        if has_alpha:
            return image.convert("RGBA")
        return image.convert("RGB")

    @staticmethod
    def _background(image: Image.Image):
        if image.mode == "RGBA":
            return (255, 255, 255, 0)
        return (255, 255, 255)


def build_upload_filename(
    code: str,
    product_title: str,
    dimensions: Optional[Dimensions],
    target_format: TargetFormat,
) -> str:
    """Name the staged file ``<code>_<w>x<h>_<title words>.<ext>``."""
    width = dimensions.width if dimensions else "auto"
    height = dimensions.height if dimensions else "auto"
    title_part = "_".join(product_title.split()[:3])
    stem = f"{code}_{width}x{height}"
    if title_part:
        stem = f"{stem}_{title_part}"
    stem = _UNSAFE_FILENAME_CHARS.sub("-", stem).strip("-") or "image"
    return f"{stem}.{target_format.extension}"
