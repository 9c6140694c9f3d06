"""
Attachment storage on S3.

Uploads arrive as multipart form files; each is stored under
``<prefix>/<YYYYMMDD>/<uuid>/<filename>`` and described by a small metadata
dict that is kept on the owning record.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from app.core.config import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Upload rejected or failed."""


def get_s3_client():
    """Get S3 client."""
    return boto3.client(
        's3',
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        region_name=settings.AWS_REGION,
        config=Config(signature_version='s3v4')
    )


class FileStorage:
    def __init__(self, client=None, bucket: str = None):
        self.client = client or get_s3_client()
        self.bucket = bucket or settings.S3_BUCKET_NAME
        self.max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    def url_for(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{settings.AWS_REGION}.amazonaws.com/{key}"

    async def upload(self, prefix: str, upload: UploadFile) -> Dict[str, Any]:
        """Store one uploaded file and return its metadata."""
        content = await upload.read()
        if len(content) > self.max_bytes:
            raise StorageError(
                f"{upload.filename} exceeds the {settings.MAX_UPLOAD_SIZE_MB} MB upload limit"
            )

        timestamp = datetime.utcnow().strftime('%Y%m%d')
        key = f"{prefix}/{timestamp}/{uuid.uuid4()}/{upload.filename}"
        content_type = upload.content_type or "application/octet-stream"

        try:
            await run_in_threadpool(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload {upload.filename} to s3://{self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to upload {upload.filename}") from e

        logger.info(f"Uploaded {upload.filename} ({len(content)} bytes) to {key}")
        return {
            "filename": upload.filename,
            "path": key,
            "size": len(content),
            "contentType": content_type,
            "url": self.url_for(key),
        }

    async def upload_many(self, prefix: str, uploads: List[UploadFile]) -> List[Dict[str, Any]]:
        return [await self.upload(prefix, f) for f in uploads if f is not None and f.filename]


def get_file_storage() -> FileStorage:
    """Dependency returning the S3-backed file storage."""
    return FileStorage()
