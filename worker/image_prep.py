"""
Image preparation for the vision request: decode, upright, bound, re-encode.

Phone photos of time-cards usually arrive as large JPEGs whose pixels are
stored sideways with an EXIF orientation tag. The OCR service reads rows far
more reliably from an upright, moderately sized image.
"""
import base64
import logging
import os
import struct
from typing import Optional

import cv2
import numpy as np

logger = logging.getLogger('timecard_worker.image_prep')

VISION_MAX_DIMENSION = max(1024, int(os.environ.get("OPENAI_VISION_MAX_DIMENSION", "2200")))
VISION_JPEG_QUALITY = min(95, max(50, int(os.environ.get("OPENAI_VISION_JPEG_QUALITY", "85"))))

EXIF_ORIENTATION_TAG = 0x0112
JPEG_SOI = b"\xFF\xD8"
APP1_MARKER = 0xE1
END_OF_HEADERS = (0xDA, 0xD9)


def _orientation_from_tiff(tiff: bytes) -> Optional[int]:
    if len(tiff) < 8:
        return None
    prefix = {b"II": "<", b"MM": ">"}.get(tiff[:2])
    if prefix is None:
        return None
    magic, ifd_offset = struct.unpack(prefix + "HI", tiff[2:8])
    if magic != 42 or ifd_offset + 2 > len(tiff):
        return None

    (count,) = struct.unpack(prefix + "H", tiff[ifd_offset:ifd_offset + 2])
    for index in range(count):
        start = ifd_offset + 2 + index * 12
        if start + 12 > len(tiff):
            return None
        tag, field_type, _count = struct.unpack(prefix + "HHI", tiff[start:start + 8])
        if tag != EXIF_ORIENTATION_TAG:
            continue
        # SHORT values are stored inline in the first two bytes of the value slot.
        if field_type != 3:
            return None
        (value,) = struct.unpack(prefix + "H", tiff[start + 8:start + 10])
        return value if 1 <= value <= 8 else None
    return None


def read_exif_orientation(image_bytes: bytes) -> Optional[int]:
    """EXIF orientation (1-8) of a JPEG, or None for other formats or no tag."""
    if not image_bytes.startswith(JPEG_SOI):
        return None

    cursor = 2
    while cursor + 4 <= len(image_bytes):
        if image_bytes[cursor] != 0xFF:
            cursor += 1
            continue
        marker = image_bytes[cursor + 1]
        if marker in END_OF_HEADERS:
            return None
        (length,) = struct.unpack(">H", image_bytes[cursor + 2:cursor + 4])
        segment = image_bytes[cursor + 4:cursor + 2 + length]
        if length < 2 or len(segment) != length - 2:
            return None
        if marker == APP1_MARKER and segment.startswith(b"Exif\x00\x00"):
            return _orientation_from_tiff(segment[6:])
        cursor += 2 + length
    return None


def apply_orientation(image: np.ndarray, orientation: Optional[int]) -> np.ndarray:
    """Rotate/flip pixels so an image with the given EXIF orientation is upright."""
    if orientation == 2:
        return cv2.flip(image, 1)
    if orientation == 3:
        return cv2.rotate(image, cv2.ROTATE_180)
    if orientation == 4:
        return cv2.flip(image, 0)
    if orientation == 5:
        return cv2.transpose(image)
    if orientation == 6:
        return cv2.rotate(image, cv2.ROTATE_90_CLOCKWISE)
    if orientation == 7:
        return cv2.flip(cv2.transpose(image), -1)
    if orientation == 8:
        return cv2.rotate(image, cv2.ROTATE_90_COUNTERCLOCKWISE)
    return image


def decode_image(image_bytes: bytes) -> np.ndarray:
    """Decode bytes into an upright BGR array. Raises ValueError when undecodable."""
    if not image_bytes:
        raise ValueError("Image is empty")
    buffer = np.frombuffer(image_bytes, np.uint8)
    # Orientation is handled explicitly below so it is applied exactly once.
    try:
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR | cv2.IMREAD_IGNORE_ORIENTATION)
    except cv2.error as e:
        raise ValueError(f"Could not decode image: {e}") from e
    if image is None:
        raise ValueError("Could not decode image")

    orientation = read_exif_orientation(image_bytes)
    if orientation and orientation != 1:
        logger.debug("Applying EXIF orientation %s", orientation)
        image = apply_orientation(image, orientation)
    return image


def encode_for_vision(image: np.ndarray) -> str:
    """Downscale to the configured bound and return base64 JPEG data."""
    height, width = image.shape[:2]
    longest = max(width, height)
    if longest > VISION_MAX_DIMENSION:
        scale = VISION_MAX_DIMENSION / float(longest)
        size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
        image = cv2.resize(image, size, interpolation=cv2.INTER_AREA)
        logger.debug("Downscaled image from %sx%s to %sx%s", width, height, size[0], size[1])

    success, encoded = cv2.imencode('.jpg', image, [int(cv2.IMWRITE_JPEG_QUALITY), VISION_JPEG_QUALITY])
    if not success:
        raise ValueError("Could not encode image for the vision request")
    return base64.b64encode(encoded).decode('utf-8')


def prepare_image(image_bytes: bytes) -> str:
    """Full preparation path: bytes in, base64 JPEG out."""
    return encode_for_vision(decode_image(image_bytes))
