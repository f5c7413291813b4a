"""
Image compression and upload helpers for product, subcategory and banner images.
"""

from __future__ import annotations

import io
import logging
import time
import uuid
from typing import Iterable, Optional

from PIL import Image, UnidentifiedImageError

from catalog_backend.config import Settings, get_settings
from catalog_backend.errors import ApiError
from catalog_backend.storage import StorageClient

logger = logging.getLogger(__name__)

JPEG_CONTENT_TYPE = "image/jpeg"


def compress_image(data: bytes, max_width: int = 800, quality: int = 80) -> bytes:
    """Resize to ``max_width`` pixels wide and re-encode as JPEG."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ApiError(400, "Invalid image file") from exc

    if image.mode in ("RGBA", "LA") or (
        image.mode == "P" and "transparency" in image.info
    ):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        image = background
    elif image.mode != "RGB":
        image = image.convert("RGB")

    width, height = image.size
    if width != max_width:
        new_height = max(1, round(height * max_width / width))
        image = image.resize((max_width, new_height), Image.Resampling.LANCZOS)

    out = io.BytesIO()
    image.save(out, format="JPEG", quality=quality)
    return out.getvalue()


def build_object_key(folder: str, original_name: str, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    name = "-".join((original_name or "image").lower().split(" "))
    return f"{folder}/{now_ms}-{uuid.uuid4().hex[:8]}-{name}"


def process_and_upload(
    storage: StorageClient,
    data: bytes,
    filename: str,
    settings: Optional[Settings] = None,
) -> str:
    """Compress an uploaded image, store it and return its public URL."""
    settings = settings or get_settings()
    processed = compress_image(
        data, max_width=settings.image_max_width, quality=settings.image_quality
    )
    key = build_object_key(settings.upload_folder, filename)
    storage.upload_bytes(key, processed, content_type=JPEG_CONTENT_TYPE)
    return storage.public_url(key)


def delete_images(storage: StorageClient, urls: Iterable[Optional[str]]) -> None:
    """Best-effort removal of stored images; failures are logged, not raised."""
    for url in urls:
        if not url:
            continue
        try:
            storage.delete(url)
        except Exception:
            logger.exception("Failed to delete stored image %s", url)
