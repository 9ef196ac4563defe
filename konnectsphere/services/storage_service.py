"""
Media storage for pitch uploads on an S3-compatible bucket.
"""
import logging
import re
import uuid
from typing import IO, Dict, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from konnectsphere.core import config

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

ALLOWED_CONTENT_TYPES: Dict[str, tuple] = {
    "image": ("image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"),
    "video": ("video/mp4", "video/webm", "video/quicktime"),
    "document": (
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ),
}


class StorageError(Exception):
    """Raised when the media bucket rejects an operation or is not configured."""


def _safe_filename(filename: Optional[str]) -> str:
    name = (filename or "file").rsplit("/", 1)[-1]
    return re.sub(r"[^A-Za-z0-9._-]", "_", name)[:120] or "file"


class MediaStorage:
    def __init__(
        self,
        bucket: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: Optional[str] = None,
        public_base_url: Optional[str] = None,
        client=None,
    ):
        self.bucket = bucket or config.MEDIA_BUCKET
        self.endpoint_url = endpoint_url or config.MEDIA_ENDPOINT_URL
        self.public_base_url = (public_base_url or config.MEDIA_PUBLIC_BASE_URL or "").rstrip("/")
        self._client = client
        self._credentials = {
            "aws_access_key_id": access_key_id or config.MEDIA_ACCESS_KEY_ID,
            "aws_secret_access_key": secret_access_key or config.MEDIA_SECRET_ACCESS_KEY,
            "region_name": region or config.MEDIA_REGION,
        }

    @property
    def client(self):
        if self._client is None:
            if not self.bucket:
                raise StorageError("MEDIA_BUCKET not configured")
            self._client = boto3.client(
                "s3",
                endpoint_url=self.endpoint_url or None,
                config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
                **self._credentials,
            )
            logger.info(f"Media storage client initialized: bucket={self.bucket}")
        return self._client

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def upload(self, user_id: int, file_type: str, fileobj: IO, filename: str, content_type: str) -> Dict[str, str]:
        """
        Store one pitch file.

        Returns:
            Dictionary with ``public_id`` (object key), ``url`` and ``originalName``

        Raises:
            StorageError: Bucket missing or upload rejected
        """
        key = f"pitches/{user_id}/{file_type}/{uuid.uuid4().hex}-{_safe_filename(filename)}"
        try:
            fileobj.seek(0)
            self.client.upload_fileobj(fileobj, self.bucket, key, ExtraArgs={"ContentType": content_type})
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Media upload failed: key={key}, error={e}")
            raise StorageError(f"Failed to upload file: {e}") from e

        logger.info(f"Media uploaded: key={key}, content_type={content_type}")
        return {"public_id": key, "url": self.public_url(key), "originalName": filename}

    def delete(self, public_id: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=public_id)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Media delete failed: key={public_id}, error={e}")
            raise StorageError(f"Failed to delete file: {e}") from e
        logger.info(f"Media deleted: key={public_id}")
