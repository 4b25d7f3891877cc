# backend/services/storage_gateway.py
"""
Storage Gateway

Durable home for recorded answers. Videos go to an S3-compatible bucket
(Cloudflare R2 in production) and are streamed straight from its public URL.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import StorageFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredObject:
    key: str
    url: str


def build_video_key(session_id: str, question_id: str, file_name: str) -> str:
    """Generate the object key for a recorded answer."""
    return f"videos/{session_id}/{question_id}/{file_name}"


class R2StorageGateway:
    """
    Storage gateway backed by an S3-compatible bucket.

    Args:
        bucket_name: Target bucket
        public_base_url: Base of the public/CDN URL objects are streamed from
        client: Pre-built boto3 S3 client (tests pass a mock)
        endpoint_url, access_key_id, secret_access_key: Used to build the
            client when none is given
    """

    def __init__(
        self,
        bucket_name: str,
        public_base_url: str,
        client=None,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None
    ):
        if not bucket_name:
            raise ValueError("bucket_name is required")
        if not public_base_url:
            raise ValueError("public_base_url is required")

        self.bucket_name = bucket_name
        self.public_base_url = public_base_url.rstrip("/")

        if client is None:
            client = boto3.client(
                "s3",
                region_name="auto",  # R2 ignores regions
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key
            )
        self.client = client

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> StoredObject:
        """
        Store bytes under key.

        Raises:
            StorageFailure: If the bucket rejects or never acknowledges the write
        """
        object_metadata = dict(metadata or {})
        object_metadata.setdefault("uploadedAt", datetime.now(timezone.utc).isoformat())

        logger.info(f"Uploading {len(data) / 1024 / 1024:.2f} MB to {self.bucket_name}/{key}")

        try:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=object_metadata
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Upload failed for {key}: {e}")
            raise StorageFailure(f"Failed to upload video to storage: {e}") from e

        logger.info(f"Upload completed: {key}")
        return StoredObject(key=key, url=self.public_url(key))

    def get(self, key: str) -> bytes:
        """
        Read a stored object back.

        Raises:
            StorageFailure: If the object is missing or the bucket can't be read
        """
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=key)
            data = response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Download failed for {key}: {e}")
            raise StorageFailure(f"Failed to download video from storage: {e}") from e

        logger.info(f"Downloaded {len(data) / 1024 / 1024:.2f} MB from {self.bucket_name}/{key}")
        return data

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Delete failed for {key}: {e}")
            raise StorageFailure(f"Failed to delete video from storage: {e}") from e

        logger.info(f"Deleted object: {key}")

    def check_connection(self) -> bool:
        """Return True when the bucket is reachable with our credentials."""
        try:
            self.client.head_bucket(Bucket=self.bucket_name)
            logger.info(f"Storage connection OK (bucket={self.bucket_name})")
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Storage connection failed: {e}")
            return False
