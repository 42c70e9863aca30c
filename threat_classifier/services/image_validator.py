"""
Image validation service for base64 uploads.

Provides security checks including:
- data: URL / raw base64 decoding
- Decoded size limits
- MIME type validation from content (not from the declared type)
- Content hash calculation for log correlation
"""

import base64
import binascii
import hashlib
import re
from typing import Optional, Tuple

import magic
from fastapi import HTTPException

from threat_classifier.config import get_settings

# Constants
ALLOWED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/heic",
    "image/heif",
})

_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?:;[\w=-]+)*;base64,", re.IGNORECASE)


def split_data_url(image_base64: str) -> Tuple[Optional[str], str]:
    """Split a data: URL into its declared MIME type and base64 payload.

    Raw base64 strings are returned unchanged with no declared type.
    """
    value = image_base64.strip()
    match = _DATA_URL_PATTERN.match(value)
    if not match:
        return None, value
    return match.group("mime"), value[match.end():]


def decode_image(image_base64: str) -> Tuple[bytes, str, str]:
    """
    Decode and validate a base64 image and return content, MIME type and hash.

    Args:
        image_base64: Raw base64 data or a data: URL

    Returns:
        Tuple of (image_bytes, mime_type, sha256_hash)

    Raises:
        HTTPException: 400 for validation errors, 413 for images too large

    Security checks:
        - Payload is valid base64
        - Image not empty
        - Image size <= MAX_IMAGE_SIZE_MB
        - Detected MIME type is a supported image format
    """
    _, payload = split_data_url(image_base64)
    payload = re.sub(r"\s+", "", payload)

    try:
        content = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Invalid base64 image data")

    # Check image not empty
    if len(content) == 0:
        raise HTTPException(status_code=400, detail="Image is empty")

    # Check image size
    max_size_mb = get_settings().max_image_size_mb
    if len(content) > max_size_mb * 1024 * 1024:
        raise HTTPException(
            status_code=413,
            detail=f"Image too large. Maximum size is {max_size_mb}MB"
        )

    # Validate MIME type using python-magic
    mime_type = magic.from_buffer(content, mime=True)
    if mime_type not in ALLOWED_MIME_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid image type. Expected one of {', '.join(sorted(ALLOWED_MIME_TYPES))}, got {mime_type}"
        )

    image_hash = hashlib.sha256(content).hexdigest()

    return content, mime_type, image_hash
