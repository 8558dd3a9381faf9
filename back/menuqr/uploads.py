"""
Image uploads for restaurant logos and product photos.

Files live under `{uploads_dir}/{restaurant_id}/{kind}/` and are served by the
`/uploads` static mount; the stored reference is the public URL path.
"""

import logging
from io import BytesIO
from pathlib import Path
from uuid import uuid4

from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from .errors import ValidationFailed
from .settings import settings

logger = logging.getLogger(__name__)

UPLOADS_URL_PREFIX = "/uploads"
ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/tiff"}
_FORMAT_EXTENSIONS = {"JPEG": ".jpg", "PNG": ".png", "WEBP": ".webp", "TIFF": ".tiff"}

# Image optimization settings
MAX_IMAGE_WIDTH = 1920
MAX_IMAGE_HEIGHT = 1920
JPEG_QUALITY = 85
WEBP_QUALITY = 85
PNG_OPTIMIZE = True


def uploads_root() -> Path:
    root = Path(settings.uploads_dir)
    root.mkdir(parents=True, exist_ok=True)
    return root


def optimize_image(image_data: bytes, content_type: str) -> tuple[bytes, str]:
    """
    Optimize image locally using Pillow.
    - Resizes if too large
    - Compresses JPEG/WebP with quality settings
    - Optimizes PNG files
    Returns the optimized bytes and the file extension matching their format.
    """
    try:
        image = Image.open(BytesIO(image_data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationFailed("File is not a readable image") from e

    original_format = image.format
    original_size = len(image_data)

    try:
        if content_type == "image/png" or original_format == "PNG":
            target_format, ext = "PNG", ".png"
        elif content_type == "image/webp" or original_format == "WEBP":
            target_format, ext = "WEBP", ".webp"
        else:
            # JPEG and TIFF end up as JPEG
            target_format, ext = "JPEG", ".jpg"

        # JPEG doesn't support transparency: flatten on white
        if target_format == "JPEG" and image.mode in ("RGBA", "LA", "P"):
            if image.mode != "RGBA":
                image = image.convert("RGBA")
            background = Image.new("RGB", image.size, (255, 255, 255))
            background.paste(image, mask=image.split()[-1])
            image = background
        elif target_format == "JPEG" and image.mode not in ("RGB", "L"):
            image = image.convert("RGB")

        width, height = image.size
        if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
            ratio = min(MAX_IMAGE_WIDTH / width, MAX_IMAGE_HEIGHT / height)
            new_width = int(width * ratio)
            new_height = int(height * ratio)
            image = image.resize((new_width, new_height), Image.Resampling.LANCZOS)
            logger.info(f"Image resized: {width}x{height} -> {new_width}x{new_height}")

        output = BytesIO()
        if target_format == "JPEG":
            image.save(output, format="JPEG", quality=JPEG_QUALITY, optimize=True)
        elif target_format == "WEBP":
            image.save(output, format="WEBP", quality=WEBP_QUALITY, method=6)
        else:
            image.save(output, format="PNG", optimize=PNG_OPTIMIZE)
    except (OSError, ValueError) as e:
        logger.warning(f"Error optimizing image: {e}, using original image")
        return image_data, _FORMAT_EXTENSIONS.get(original_format, ".jpg")

    optimized_data = output.getvalue()
    reduction = ((original_size - len(optimized_data)) / original_size) * 100
    logger.info(
        f"Image optimized: {original_size / 1024:.1f}KB -> "
        f"{len(optimized_data) / 1024:.1f}KB ({reduction:.1f}% reduction)"
    )
    return optimized_data, ext


async def store_image(file: UploadFile, restaurant_id: int, kind: str) -> str:
    """Validate, optimize and save an uploaded image. Returns its URL path."""
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationFailed(
            f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_IMAGE_TYPES))}"
        )

    contents = await file.read()
    max_bytes = settings.max_upload_mb * 1024 * 1024
    if len(contents) > max_bytes:
        raise ValidationFailed(f"File too large. Max size: {settings.max_upload_mb}MB")
    if not contents:
        raise ValidationFailed("Empty file")

    contents, ext = optimize_image(contents, file.content_type)

    target_dir = uploads_root() / str(restaurant_id) / kind
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = f"{uuid4()}{ext}"
    (target_dir / filename).write_bytes(contents)

    return f"{UPLOADS_URL_PREFIX}/{restaurant_id}/{kind}/{filename}"


def remove_image(url: str | None) -> None:
    """Delete a previously stored image; unknown or foreign references are ignored."""
    if not url or not url.startswith(f"{UPLOADS_URL_PREFIX}/"):
        return
    root = uploads_root().resolve()
    path = (root / url[len(UPLOADS_URL_PREFIX) + 1:]).resolve()
    if root not in path.parents:
        return
    if path.exists():
        path.unlink()
