import logging
import os
import time
import uuid
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile

from .. import auth
from ..config import MAX_UPLOAD_SIZE, UPLOAD_DIR
from ..errors import ValidationError

logger = logging.getLogger(__name__)

# All routes require admin authentication
router = APIRouter(dependencies=[Depends(auth.require_admin)])

ALLOWED_TYPES = {
    "image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif",
    "video/mp4", "video/webm", "video/quicktime",
}
MAX_FILES = 10
CHUNK_SIZE = 1024 * 1024


def media_type(content_type: str) -> str:
    return "video" if content_type.startswith("video/") else "image"


async def store_upload(upload: UploadFile, folder: str) -> str:
    """Write ``upload`` under ``UPLOAD_DIR/folder`` and return its public URL."""
    if upload.content_type not in ALLOWED_TYPES:
        raise ValidationError(
            "Invalid file type. Only images (JPEG, PNG, WebP, GIF) and videos (MP4, WebM, MOV) are allowed."
        )
    ext = os.path.splitext(upload.filename or "")[1]
    filename = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}{ext}"
    target_dir = os.path.join(UPLOAD_DIR, folder)
    os.makedirs(target_dir, exist_ok=True)
    path = os.path.join(target_dir, filename)

    written = 0
    with open(path, "wb") as out:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk or written + len(chunk) > MAX_UPLOAD_SIZE:
                break
            written += len(chunk)
            out.write(chunk)
    if chunk:
        os.remove(path)
        raise ValidationError(f"File size too large. Maximum size is {MAX_UPLOAD_SIZE // (1024 * 1024)}MB.")

    logger.info("stored upload %s (%s bytes)", path, written)
    return f"/uploads/{folder}/{filename}"


@router.post("/product")
async def upload_product_file(image: UploadFile = File(None)):
    if image is None:
        raise ValidationError("No file uploaded")
    url = await store_upload(image, "products")
    return {
        "message": "File uploaded successfully",
        "imageUrl": url,
        "filename": os.path.basename(url),
        "type": media_type(image.content_type),
    }


@router.post("/product/multiple")
async def upload_product_files(files: List[UploadFile] = File(None)):
    if not files:
        raise ValidationError("No files uploaded")
    if len(files) > MAX_FILES:
        raise ValidationError(f"At most {MAX_FILES} files per upload")
    stored = []
    for upload in files:
        url = await store_upload(upload, "products")
        stored.append({"url": url, "type": media_type(upload.content_type), "filename": os.path.basename(url)})
    return {"message": "Files uploaded successfully", "files": stored}


@router.post("/category")
async def upload_category_image(image: UploadFile = File(None)):
    if image is None:
        raise ValidationError("No file uploaded")
    url = await store_upload(image, "categories")
    return {"message": "Image uploaded successfully", "imageUrl": url, "filename": os.path.basename(url)}
