import base64
import io
import logging

from PIL import Image, UnidentifiedImageError

from revision.models.schemas import ImageInfo

logger = logging.getLogger(__name__)


class ImageProcessor:
    """Service for image format sniffing, metadata and encoding."""

    def detect_mime_type(self, image_data: bytes) -> str | None:
        """
        Identify the image type from its leading signature bytes.

        Only the formats accepted by the pipeline are recognised: JPEG, PNG,
        WebP and GIF. Returns None for anything else.
        """
        if image_data[:3] == b"\xff\xd8\xff":
            return "image/jpeg"
        if image_data[:8] == b"\x89PNG\r\n\x1a\n":
            return "image/png"
        if len(image_data) >= 12 and image_data[:4] == b"RIFF" and image_data[8:12] == b"WEBP":
            return "image/webp"
        if image_data[:4] == b"GIF8":
            return "image/gif"
        return None

    def describe_image(self, image_data: bytes) -> ImageInfo:
        """
        Read dimensions and format without decoding the full pixel data.

        Images Pillow cannot identify still get a size-only description so
        the caller never fails on metadata.
        """
        try:
            with Image.open(io.BytesIO(image_data)) as image:
                width, height = image.size
                return ImageInfo(
                    width=width,
                    height=height,
                    format=image.format,
                    size_bytes=len(image_data),
                )
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            logger.debug("Could not read image metadata: %s", e)
            return ImageInfo(size_bytes=len(image_data))

    def to_data_uri(self, image_data: bytes) -> str:
        """Encode image bytes as a base64 data URI using the sniffed MIME type."""
        mime_type = self.detect_mime_type(image_data) or "image/png"
        base64_data = base64.b64encode(image_data).decode("utf-8")
        return f"data:{mime_type};base64,{base64_data}"


image_processor = ImageProcessor()
