"""
Image upload pipeline: temp file -> JPEG recompression (Pillow) -> S3 (boto3).

Temp files are always removed, whether the upload succeeds or fails.
"""

import hashlib
import logging
import os
import re
import time
import uuid

import boto3
from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from config import settings
from errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_FILES = 10
MAX_DIMENSION = 1200
JPEG_QUALITY = 80
KEY_PREFIX = "products"
CACHE_CONTROL = "public, max-age=31536000, immutable"


class S3Storage:
    """Thin wrapper over an S3 bucket that returns public URLs."""

    def __init__(self, bucket=None, region=None, cdn_domain=None, client=None):
        self.bucket = bucket or settings.S3_BUCKET_NAME
        self.region = region or settings.AWS_REGION
        self.cdn_domain = cdn_domain if cdn_domain is not None else settings.CLOUDFRONT_DOMAIN
        self.client = client or boto3.client(
            "s3",
            region_name=self.region,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        )

    def public_url(self, key: str) -> str:
        if self.cdn_domain:
            return f"https://{self.cdn_domain}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def upload_file(self, path: str, key: str, content_type: str = "image/jpeg") -> str:
        with open(path, "rb") as fh:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=fh,
                ContentType=content_type,
                CacheControl=CACHE_CONTROL,
            )
        return self.public_url(key)


_storage = None


def get_storage() -> S3Storage:
    global _storage
    if _storage is None:
        _storage = S3Storage()
    return _storage


def check_image(upload: UploadFile) -> None:
    ext = os.path.splitext(upload.filename or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS or (upload.content_type or "").lower() not in ALLOWED_CONTENT_TYPES:
        raise ValidationError("Only image files are allowed")


def safe_name(filename: str) -> str:
    base = os.path.splitext(os.path.basename(filename or "image"))[0]
    base = re.sub(r"\s+", "_", base)
    return re.sub(r"[^\w.-]", "", base, flags=re.ASCII) or "image"


def compress_image(src: str, dest: str, max_dimension: int = MAX_DIMENSION, quality: int = JPEG_QUALITY) -> None:
    """Re-encode src as a progressive JPEG that fits inside max_dimension square."""
    try:
        with Image.open(src) as img:
            img = img.convert("RGB")
            # thumbnail() never enlarges
            img.thumbnail((max_dimension, max_dimension), Image.LANCZOS)
            img.save(dest, "JPEG", quality=quality, progressive=True, optimize=True)
    except (UnidentifiedImageError, OSError, SyntaxError, Image.DecompressionBombError):
        # truncated or corrupt files can pass Image.open and fail on decode
        logger.warning("Rejected unreadable image %s", src, exc_info=True)
        raise ValidationError("Only image files are allowed")


def remove_quietly(path: str) -> None:
    try:
        if path and os.path.exists(path):
            os.remove(path)
    except OSError:
        logger.warning("Could not remove temp file %s", path, exc_info=True)


def process_upload(upload: UploadFile, storage: S3Storage, tmp_dir: str = None) -> dict:
    """Validate, recompress and upload one file. Returns {"url", "key"}."""
    check_image(upload)
    tmp_dir = tmp_dir or settings.UPLOAD_TMP_DIR
    os.makedirs(tmp_dir, exist_ok=True)

    stem = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe_name(upload.filename)}"
    temp_in = os.path.join(tmp_dir, stem)
    temp_out = os.path.join(tmp_dir, f"compressed-{stem}.jpg")
    try:
        digest = hashlib.sha256()
        size = 0
        with open(temp_in, "wb") as fh:
            while chunk := upload.file.read(1024 * 1024):
                size += len(chunk)
                if size > MAX_FILE_SIZE:
                    raise ValidationError("File too large, maximum size is 10MB")
                digest.update(chunk)
                fh.write(chunk)

        compress_image(temp_in, temp_out)

        key = f"{KEY_PREFIX}/{digest.hexdigest()[:16]}-{safe_name(upload.filename)}.jpg"
        url = storage.upload_file(temp_out, key, "image/jpeg")
        logger.info("Uploaded %s (%d bytes) as %s", upload.filename, size, key)
        return {"url": url, "key": key}
    finally:
        remove_quietly(temp_in)
        remove_quietly(temp_out)
