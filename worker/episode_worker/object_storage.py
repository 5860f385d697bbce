"""
Object Storage Gateway

Thin wrapper over an S3-compatible bucket (MinIO in development) used for:
- Downloading source episodes
- Uploading the HLS output tree
- Deleting processed sources

All boto3/botocore failures are re-raised as StorageError.
"""

import logging
import posixpath
from pathlib import Path
from typing import Any, List, Optional

import boto3
from boto3.exceptions import Boto3Error
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import StorageError
from .filesystem import PathLike, walk_files

logger = logging.getLogger(__name__)

# Content types for HLS output
CONTENT_TYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
}

_STORAGE_ERRORS = (BotoCoreError, ClientError, Boto3Error)


def object_key(*parts: str) -> str:
    """
    Join key components with "/", skipping empty ones.

    Example:
        >>> object_key("episodes", "", "ep-1/720p.m3u8")
        'episodes/ep-1/720p.m3u8'
    """
    cleaned = [part.strip("/") for part in parts if part and part.strip("/")]
    return posixpath.join(*cleaned) if cleaned else ""


def create_s3_client(settings: Settings) -> Any:
    """
    Create a boto3 S3 client for the configured MinIO endpoint.

    Path-style addressing and SigV4 are what MinIO expects.
    """
    return boto3.client(
        "s3",
        endpoint_url=settings.minio_endpoint_url,
        region_name=settings.minio_region,
        aws_access_key_id=settings.minio_access_key,
        aws_secret_access_key=settings.minio_secret_key,
        use_ssl=settings.minio_use_ssl,
        config=BotoConfig(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
        ),
    )


class ObjectStorage:
    """Bucket-scoped object operations."""

    def __init__(self, client: Any, bucket: str):
        """
        Args:
            client: boto3 S3 client (or any object with the same methods)
            bucket: Bucket every operation targets
        """
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStorage":
        return cls(create_s3_client(settings), settings.minio_bucket)

    def list_buckets(self) -> List[str]:
        """Return the names of all buckets visible to the credentials."""
        try:
            response = self.client.list_buckets()
        except _STORAGE_ERRORS as e:
            raise StorageError(f"Cannot list buckets: {e}") from e
        return [bucket["Name"] for bucket in response.get("Buckets", [])]

    def download_file(self, key: str, file_path: PathLike) -> Path:
        """
        Download an object to a local path.

        Args:
            key: Object key in the bucket
            file_path: Destination file (parent directory must exist)

        Returns:
            Path: The local file path

        Raises:
            StorageError: If the object cannot be fetched
        """
        path = Path(file_path)
        logger.info(f"Downloading s3://{self.bucket}/{key} -> {path}")
        try:
            self.client.download_file(self.bucket, key, str(path))
        except _STORAGE_ERRORS as e:
            raise StorageError(f"Cannot download {key}: {e}") from e
        return path

    def upload_file(self, file_path: PathLike, key: str, content_type: Optional[str] = None) -> str:
        """Upload a single local file to key."""
        path = Path(file_path)
        if content_type is None:
            content_type = CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream")

        try:
            self.client.upload_file(
                str(path),
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type},
            )
        except _STORAGE_ERRORS as e:
            raise StorageError(f"Cannot upload {path} to {key}: {e}") from e
        return key

    def upload_directory(self, directory: PathLike, destination: str = "") -> List[str]:
        """
        Upload every file below directory, keeping relative paths under destination.

        Args:
            directory: Local directory to upload
            destination: Key prefix for the uploaded objects

        Returns:
            List of uploaded object keys, in traversal order

        Raises:
            StorageError: If any upload fails (earlier uploads are kept)
            FilesystemError: If the directory cannot be read
        """
        keys = []
        for file_path, relative in walk_files(directory):
            keys.append(self.upload_file(file_path, object_key(destination, relative)))

        logger.info(f"Uploaded {len(keys)} files to s3://{self.bucket}/{destination}")
        return keys

    def delete_file(self, key: str) -> None:
        """Delete an object from the bucket."""
        logger.info(f"Deleting s3://{self.bucket}/{key}")
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except _STORAGE_ERRORS as e:
            raise StorageError(f"Cannot delete {key}: {e}") from e
