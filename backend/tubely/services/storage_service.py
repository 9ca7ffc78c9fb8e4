"""
S3-compatible object publisher for Tubely.

Wraps boto3 to stream staged media files into the media bucket and to build
the public URL of a published object. Works against AWS S3 and any
S3-compatible endpoint (MinIO, LocalStack) through a configurable endpoint URL.

Key Features:
- Managed streaming uploads (``upload_fileobj``) that switch to multipart for
  large files, so whole videos are never held in memory
- ContentType set on every object
- Async-wrapped operations for non-blocking I/O
- Public URL derivation for CDN, path-style custom endpoints and AWS
"""

import logging

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import boto3

from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from tubely.config import Settings, get_settings
from tubely.core.errors import UploadFailedError
from tubely.services.key_deriver import StorageKey
from tubely.utils.async_utils import async_wrap


logger = logging.getLogger(__name__)

# Multipart threshold and part size for managed uploads (8 MB)
MULTIPART_CHUNK_SIZE = 8 * 1024 * 1024


class StorageService:
    """
    S3-compatible publisher for staged media artifacts.

    Attributes:
        bucket_name: Bucket objects are written to
        endpoint_url: Custom S3-compatible endpoint (None for AWS S3)
        region_name: AWS region of the bucket
        public_base_url: Optional base URL that fronts the bucket (e.g. a CDN)

    Example:
        >>> service = StorageService(
        ...     bucket_name="tubely-media",
        ...     endpoint_url="http://localhost:9000",  # MinIO
        ...     access_key="minioadmin",
        ...     secret_key="minioadmin",
        ... )
        >>> url = await service.publish(Path("/tmp/x.mp4"), key, "video/mp4")
    """

    def __init__(
        self,
        bucket_name: str,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region_name: str = "us-east-1",
        public_base_url: Optional[str] = None,
        client: Any = None,
    ) -> None:
        """
        Initialize the publisher.

        Args:
            bucket_name: Bucket for all uploads
            endpoint_url: S3-compatible endpoint URL (None for AWS S3 default)
            access_key: Access key ID (None to use the default credential chain)
            secret_key: Secret access key (None to use the default credential chain)
            region_name: AWS region (default: us-east-1)
            public_base_url: Base URL for object links, overrides endpoint-derived URLs
            client: Pre-built boto3 S3 client, mainly for tests
        """
        self.bucket_name = bucket_name
        self.endpoint_url = endpoint_url.rstrip("/") if endpoint_url else None
        self.region_name = region_name
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._transfer_config = TransferConfig(
            multipart_threshold=MULTIPART_CHUNK_SIZE,
            multipart_chunksize=MULTIPART_CHUNK_SIZE,
        )

        if client is not None:
            self._client = client
            return

        client_config: Dict[str, Any] = {
            "service_name": "s3",
            "region_name": region_name,
            "config": Config(
                retries={"max_attempts": 3, "mode": "standard"},
                s3={"addressing_style": "path"} if endpoint_url else None,
            ),
        }
        if endpoint_url:
            client_config["endpoint_url"] = endpoint_url
        if access_key and secret_key:
            client_config["aws_access_key_id"] = access_key
            client_config["aws_secret_access_key"] = secret_key

        self._client = boto3.client(**client_config)

        logger.info(
            "StorageService initialized with bucket=%s, endpoint=%s",
            bucket_name,
            endpoint_url or "AWS S3 default",
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageService":
        return cls(
            bucket_name=settings.s3_bucket_name,
            endpoint_url=settings.s3_endpoint_url,
            access_key=settings.s3_access_key_id,
            secret_key=settings.s3_secret_access_key,
            region_name=settings.s3_region,
            public_base_url=settings.s3_public_base_url,
        )

    def build_object_url(self, key: StorageKey | str) -> str:
        """
        Public URL of an object.

        Preference order: ``public_base_url/key``, then
        ``endpoint/bucket/key`` for custom endpoints, then the AWS
        virtual-hosted URL.
        """
        key_path = str(key)
        if self.public_base_url:
            return f"{self.public_base_url}/{key_path}"
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket_name}/{key_path}"
        return f"https://{self.bucket_name}.s3.{self.region_name}.amazonaws.com/{key_path}"

    async def publish(
        self,
        artifact_path: Path,
        key: StorageKey | str,
        content_type: str,
    ) -> str:
        """
        Stream a local file to the bucket and return its public URL.

        Args:
            artifact_path: Staged file to upload
            key: Object key
            content_type: Value stored as the object's ContentType

        Returns:
            The public URL of the object

        Raises:
            UploadFailedError: The object store rejected the write or the file
                could not be read
        """
        key_path = str(key)
        logger.info("Uploading %s to bucket=%s key=%s", artifact_path, self.bucket_name, key_path)

        @async_wrap
        def _upload() -> None:
            with open(artifact_path, "rb") as body:
                self._client.upload_fileobj(
                    body,
                    self.bucket_name,
                    key_path,
                    ExtraArgs={"ContentType": content_type},
                    Config=self._transfer_config,
                )

        try:
            await _upload()
        except ClientError as e:
            message = e.response.get("Error", {}).get("Message", str(e))
            logger.error("S3 rejected upload of %s: %s", key_path, message)
            raise UploadFailedError("Error uploading file to S3", stage="publish") from e
        except BotoCoreError as e:
            logger.error("Storage error during upload of %s: %s", key_path, e)
            raise UploadFailedError("Error uploading file to S3", stage="publish") from e
        except OSError as e:
            logger.error("Couldn't read %s for upload: %s", artifact_path, e)
            raise UploadFailedError("Error reading staged file", stage="publish") from e

        return self.build_object_url(key_path)


@lru_cache
def get_storage_service() -> StorageService:
    """Process-wide publisher built from settings."""
    return StorageService.from_settings(get_settings())


__all__ = [
    "MULTIPART_CHUNK_SIZE",
    "StorageService",
    "get_storage_service",
]
