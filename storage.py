import logging
import os
import uuid
from typing import Optional

from fastapi import HTTPException, UploadFile

from config import Settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}
PUBLIC_PREFIX = "/uploads"


def save_image(upload: Optional[UploadFile], settings: Settings) -> str:
    """Write an uploaded image to the upload directory and return its public path."""
    if upload is None or not upload.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if upload.content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="Only image files are allowed")

    content = upload.file.read()
    if len(content) > settings.max_upload_mb * 1024 * 1024:
        raise HTTPException(status_code=400, detail=f"File too large, limit is {settings.max_upload_mb}MB")

    ext = os.path.splitext(upload.filename)[1].lower() or ALLOWED_IMAGE_TYPES[upload.content_type]
    filename = f"image-{uuid.uuid4().hex}{ext}"
    os.makedirs(settings.upload_dir, exist_ok=True)
    with open(os.path.join(settings.upload_dir, filename), "wb") as f:
        f.write(content)
    logger.info("Stored upload %s (%d bytes)", filename, len(content))
    return f"{PUBLIC_PREFIX}/{filename}"


def discard_image(public_path: str, settings: Settings):
    """Remove a stored upload given the public path ``save_image`` returned."""
    path = os.path.join(settings.upload_dir, os.path.basename(public_path))
    if os.path.exists(path):
        os.remove(path)
        logger.info("Discarded upload %s", os.path.basename(path))
