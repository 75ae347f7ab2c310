# Overview: Image storage collaborator and upload helpers used by sale attachments.

"""
Image storage for sale photos.

ImageStorage is a placeholder for a hosted image CDN: it validates the file and
returns the URL the image would be served from, without persisting bytes.
Swap it by assigning another object with the same upload() signature to
app.extensions["image_storage"].

Uploads run on a worker thread and are bounded by IMAGE_UPLOAD_TIMEOUT, so a
slow storage backend surfaces as a retryable 503 instead of a hung request.
"""

from __future__ import annotations

import hashlib
import logging
import os
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass

from flask import current_app

from ..errors import ServiceUnavailableError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = ("jpg", "jpeg", "png", "webp")

# Per-type delivery transformation (width, height, quality)
TYPE_TRANSFORMATIONS = {
    "sealed": (800, 600, 90),
    "full_product": (1200, 900, 85),
    # Highest quality so the serial stays legible
    "serial_number": (1920, 1080, 95),
}
DEFAULT_TRANSFORMATION = (1920, 1080, 80)

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="image-io")


@dataclass(frozen=True)
class UploadedImage:
    """One file from a multipart request, tagged with its declared type."""
    image_type: str
    data: bytes
    filename: str


def file_extension(filename: str) -> str:
    _, ext = os.path.splitext(filename or "")
    return ext.lstrip(".").lower()


def validate_image_file(data: bytes, filename: str, *, max_size: int) -> None:
    if not filename:
        raise ValidationError("Image file must have a filename")
    if file_extension(filename) not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            "Only image files are allowed",
            {"filename": filename, "allowed": list(ALLOWED_EXTENSIONS)},
        )
    if not data:
        raise ValidationError("Image file is empty", {"filename": filename})
    if len(data) > max_size:
        raise ValidationError(
            f"Image too large (max {max_size // (1024 * 1024)}MB)",
            {"filename": filename, "size": len(data)},
        )


class ImageStorage:
    def __init__(self, base_url: str, max_size: int):
        self.base_url = base_url.rstrip("/")
        self.max_size = max_size

    def upload(self, data: bytes, filename: str, type_hint: str) -> dict:
        """Return {url, public_id, size, width, height} for the stored image."""
        validate_image_file(data, filename, max_size=self.max_size)

        width, height, quality = TYPE_TRANSFORMATIONS.get(type_hint, DEFAULT_TRANSFORMATION)
        stem = os.path.splitext(os.path.basename(filename))[0]
        digest = hashlib.sha256(data).hexdigest()[:16]
        public_id = f"sales-system/{type_hint}/{digest}-{stem}"
        url = f"{self.base_url}/w_{width},h_{height},c_fit,q_{quality}/{public_id}.jpg"

        return {
            "url": url,
            "public_id": public_id,
            "size": len(data),
            "width": width,
            "height": height,
        }

    def delete(self, public_id: str) -> bool:
        logger.info("Image %s released", public_id)
        return True


def get_storage():
    storage = current_app.extensions.get("image_storage")
    if storage is None:
        storage = ImageStorage(
            current_app.config["IMAGE_BASE_URL"],
            current_app.config["MAX_IMAGE_SIZE"],
        )
        current_app.extensions["image_storage"] = storage
    return storage


def call_with_timeout(func, *args, timeout: float | None = None):
    """Run a collaborator call on the I/O pool and wait at most `timeout` seconds."""
    if timeout is None:
        timeout = current_app.config.get("IMAGE_UPLOAD_TIMEOUT", 10.0)
    future = _executor.submit(func, *args)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        future.cancel()
        logger.warning("%s timed out after %.1fs", getattr(func, "__qualname__", func), timeout)
        raise ServiceUnavailableError("Image service timed out, please retry")


def upload_image(image: UploadedImage) -> dict:
    storage = get_storage()
    return call_with_timeout(storage.upload, image.data, image.filename, image.image_type)
