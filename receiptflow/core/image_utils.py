"""Image encoding utilities for vision OCR providers.

Provides functions to encode document scans for provider requests, handling
resize, format conversion, and base64 encoding.
"""

import base64
import io
import logging
import mimetypes
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"


@dataclass(frozen=True)
class EncodedImage:
    """Base64 payload plus the media type the provider should be told."""
    media_type: str
    data: str

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"


def sniff_media_type(file_bytes: bytes, filename: str | None = None) -> str:
    """Best-effort media type from magic bytes, then the filename."""
    if file_bytes.startswith(PDF_MAGIC):
        return "application/pdf"
    if file_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if file_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if file_bytes[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed
    return "application/octet-stream"


def encode_image_for_vl(
    file_bytes: bytes,
    filename: str | None = None,
    max_size: int = 1568,
    quality: int = 85,
) -> EncodedImage:
    """Encode a scanned document to base64 for a vision model request.

    Raster images are converted to RGB JPEG and downscaled so that neither
    side exceeds ``max_size``. PDFs and anything Pillow cannot decode are
    passed through unchanged with a sniffed media type.

    Args:
        file_bytes: Raw file content
        filename: Original filename, used as a media type hint
        max_size: Maximum dimension (width or height) in pixels
        quality: JPEG compression quality (1-100)

    Returns:
        EncodedImage with the media type and base64 data.

    Example:
        >>> encoded = encode_image_for_vl(path.read_bytes(), path.name)
        >>> encoded.media_type
        'image/jpeg'
    """
    if file_bytes.startswith(PDF_MAGIC):
        return EncodedImage("application/pdf", base64.b64encode(file_bytes).decode("utf-8"))

    try:
        with Image.open(io.BytesIO(file_bytes)) as img:
            original_size = f"{img.width}x{img.height}"

            # Convert to RGB if necessary (handles RGBA, P, L modes, etc.)
            if img.mode != "RGB":
                img = img.convert("RGB")

            resized = False
            if img.width > max_size or img.height > max_size:
                img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
                resized = True

            buffer = io.BytesIO()
            img.save(buffer, format="JPEG", quality=quality, optimize=True)
            encoded = base64.b64encode(buffer.getvalue()).decode("utf-8")

            logger.debug(
                f"Encoded image: {filename or '<bytes>'}, "
                f"original={original_size}, "
                f"final={img.width}x{img.height}, "
                f"resized={resized}, "
                f"encoded_size={len(encoded)} chars"
            )
            return EncodedImage("image/jpeg", encoded)

    except (UnidentifiedImageError, OSError, ValueError) as e:
        media_type = sniff_media_type(file_bytes, filename)
        logger.info(f"Sending {filename or '<bytes>'} unconverted as {media_type}: {e}")
        return EncodedImage(media_type, base64.b64encode(file_bytes).decode("utf-8"))
