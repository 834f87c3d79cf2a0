"""
Image encoding for the analysis request.

Uploads are read in full and turned into base64 text for the inline image
part of the request. No size limit is applied here.
"""

import base64
import re
from typing import BinaryIO

from config.logging_config import get_logger
from services.errors import ImageReadError, UnsupportedImageError

logger = get_logger(__name__)

DATA_URL_PREFIX = re.compile(r"^data:(.*,)?")


def ensure_image_type(mime_type: str | None) -> str:
    """
    Check that an upload declares an image MIME type.

    Returns:
        The normalised MIME type.

    Raises:
        UnsupportedImageError: For anything outside image/*.
    """
    normalized = (mime_type or "").strip().lower()
    if not normalized.startswith("image/"):
        logger.warning("Rejected non-image upload", mime_type=mime_type)
        raise UnsupportedImageError(f"Unsupported content type: {mime_type!r}")
    return normalized


def to_data_url(data: bytes, mime_type: str) -> str:
    """Build a data URL (data:<mime>;base64,<payload>) for raw bytes."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def strip_data_url_prefix(value: str) -> str:
    """Remove a leading data:...; prefix, leaving only the payload."""
    return DATA_URL_PREFIX.sub("", value, count=1)


def pad_base64(encoded: str) -> str:
    """Pad a base64 string with '=' so its length is a multiple of 4."""
    remainder = len(encoded) % 4
    if remainder:
        encoded += "=" * (4 - remainder)
    return encoded


def read_image(source: bytes | BinaryIO) -> bytes:
    """
    Read an image source fully.

    Args:
        source: Raw bytes or a binary file object.

    Raises:
        ImageReadError: If the file cannot be read.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)
    try:
        data = source.read()
    except (OSError, ValueError) as e:
        # ValueError covers reads from closed files
        logger.error("Failed to read image file", error=str(e))
        raise ImageReadError(str(e)) from e
    if not isinstance(data, (bytes, bytearray)):
        raise ImageReadError("Image source did not return bytes")
    return bytes(data)


def encode_image(source: bytes | BinaryIO, mime_type: str) -> str:
    """
    Encode an image to padded base64 text.

    The payload is produced in data-URL form and the prefix stripped, then
    padded to a valid block length.

    Args:
        source: Raw bytes or a binary file object.
        mime_type: Declared MIME type of the image.

    Returns:
        Base64 text whose length is a multiple of 4.

    Raises:
        ImageReadError: If the file cannot be read or is empty.
    """
    data = read_image(source)
    encoded = pad_base64(strip_data_url_prefix(to_data_url(data, mime_type)))
    if not encoded:
        raise ImageReadError("Image file is empty")

    logger.debug("Image encoded", mime_type=mime_type, size_bytes=len(data), encoded_length=len(encoded))
    return encoded
