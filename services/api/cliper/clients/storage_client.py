"""
Media storage for post images.

Production stores image bytes as objects in MinIO (S3-compatible) and hands
out pre-signed URLs so clients stream media directly from MinIO without
going through the API service. An in-memory backend stands in for MinIO in
local development and tests.

Uploads are normalised with Pillow before storage: the bytes must decode as
an image, the image is downscaled to fit `image_max_dimension` on both sides
and re-encoded as JPEG.
"""
import logging
import uuid
from dataclasses import dataclass, field
from io import BytesIO
from typing import Optional, Protocol

import boto3
from botocore.client import Config
from PIL import Image, UnidentifiedImageError

from cliper.config import settings
from cliper.errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)


class MediaStorage(Protocol):
    def put_image(self, key: str, data: bytes, content_type: str) -> None:
        ...

    def get_url(self, key: str) -> Optional[str]:
        ...

    def ping(self) -> bool:
        ...


@dataclass
class InMemoryMediaStorage:
    """Keeps objects in a dict; URLs point at a fake CDN host."""

    base_url: str = "https://media.cliper.test"
    objects: dict = field(default_factory=dict)

    def put_image(self, key: str, data: bytes, content_type: str) -> None:
        self.objects[key] = (data, content_type)

    def get_url(self, key: str) -> Optional[str]:
        if key not in self.objects:
            return None
        return f"{self.base_url}/{key}"

    def ping(self) -> bool:
        return True


class MinioMediaStorage:
    def __init__(self) -> None:
        scheme = "https" if settings.minio_use_ssl else "http"
        self.bucket = settings.minio_bucket
        self._s3 = boto3.client(
            "s3",
            endpoint_url=f"{scheme}://{settings.minio_endpoint}",
            aws_access_key_id=settings.minio_access_key,
            aws_secret_access_key=settings.minio_secret_key,
            config=Config(signature_version="s3v4"),
            region_name="us-east-1",
        )

    def ensure_bucket(self) -> None:
        existing = [b["Name"] for b in self._s3.list_buckets().get("Buckets", [])]
        if self.bucket not in existing:
            self._s3.create_bucket(Bucket=self.bucket)
            logger.info("Created MinIO bucket '%s'", self.bucket)
        else:
            logger.info("MinIO bucket '%s' already exists", self.bucket)

    def put_image(self, key: str, data: bytes, content_type: str) -> None:
        self._s3.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=BytesIO(data),
            ContentType=content_type,
        )
        logger.debug("Uploaded media to MinIO: %s", key)

    def get_url(self, key: str) -> Optional[str]:
        """Generate a temporary pre-signed URL valid for `media_url_expiry` seconds."""
        try:
            return self._s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=settings.media_url_expiry,
            )
        except Exception as exc:
            logger.warning("Failed to generate presigned URL for %s: %s", key, exc)
            return None

    def ping(self) -> bool:
        try:
            self._s3.head_bucket(Bucket=self.bucket)
            return True
        except Exception as exc:
            logger.warning("MinIO ping failed: %s", exc)
            return False


_storage: Optional[MediaStorage] = None


def init_storage() -> MediaStorage:
    """Create the storage backend; with MinIO, ensure the media bucket exists."""
    global _storage
    if settings.use_in_memory_storage:
        _storage = InMemoryMediaStorage()
        logger.info("Using in-memory media storage")
    else:
        minio = MinioMediaStorage()
        minio.ensure_bucket()
        _storage = minio
    return _storage


def get_storage() -> MediaStorage:
    if _storage is None:
        raise RuntimeError("Media storage not initialised; call init_storage() at startup")
    return _storage


def media_url(key: Optional[str]) -> Optional[str]:
    if not key:
        return None
    return get_storage().get_url(key)


def normalise_image(data: bytes) -> bytes:
    """Decode, bound to image_max_dimension and re-encode as JPEG."""
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            bound = settings.image_max_dimension
            img.thumbnail((bound, bound), Image.Resampling.LANCZOS)
            if img.mode != "RGB":
                img = img.convert("RGB")
            out = BytesIO()
            img.save(out, format="JPEG", quality=settings.image_jpeg_quality, optimize=True)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise ValidationError("Uploaded file is not a valid image") from exc
    return out.getvalue()


def upload_post_image(data: bytes) -> str:
    """Normalise and store a post image; return the object key."""
    processed = normalise_image(data)
    key = f"posts/{uuid.uuid4()}.jpg"
    try:
        get_storage().put_image(key, processed, "image/jpeg")
    except Exception as exc:
        logger.error("Image upload failed: %s", exc)
        raise UpstreamError("Failed to upload image") from exc
    return key
