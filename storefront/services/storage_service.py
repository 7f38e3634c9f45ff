"""
Object Storage Service for S3-compatible storage (MinIO, AWS S3, Google Cloud Storage interop).

Architecture:
- Uses boto3 (AWS SDK for Python)
- Objects are uploaded public-read and addressed by their public URL
- Automatic bucket creation on init
"""
import json
import logging
from io import BytesIO
from typing import Optional
from urllib.parse import urlparse

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app

from storefront.exceptions import StorageError

logger = logging.getLogger(__name__)

PUBLIC_CACHE_CONTROL = 'public, max-age=31536000'


class StorageService:
    """
    S3-compatible object storage service.

    Usage:
        storage = StorageService()
        url = storage.upload_bytes(data, 'user-images/logo_1700000000000_ab12.png', 'image/png')
    """

    def __init__(self):
        """Initialize S3 client from Flask config."""
        self.endpoint = current_app.config['S3_ENDPOINT']
        self.access_key = current_app.config['S3_ACCESS_KEY']
        self.secret_key = current_app.config['S3_SECRET_KEY']
        self.bucket = current_app.config['S3_BUCKET']
        self.region = current_app.config['S3_REGION']
        self.public_url = current_app.config['S3_PUBLIC_URL'].rstrip('/')

        # Initialize boto3 S3 client
        self.client = boto3.client(
            's3',
            endpoint_url=self.endpoint,
            aws_access_key_id=self.access_key,
            aws_secret_access_key=self.secret_key,
            region_name=self.region,
            config=BotoConfig(signature_version='s3v4')
        )

        # Ensure bucket exists
        self._ensure_bucket_exists()

    def _ensure_bucket_exists(self):
        """Create bucket if it doesn't exist."""
        try:
            self.client.head_bucket(Bucket=self.bucket)
            logger.info(f"[STORAGE] Bucket '{self.bucket}' exists")
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code')
            if error_code != '404':
                logger.error(f"[STORAGE] ✗ Failed to check bucket: {e}")
                raise

            try:
                self.client.create_bucket(Bucket=self.bucket)
                logger.info(f"[STORAGE] ✓ Bucket '{self.bucket}' created")

                # Public read for banners, logos and menus
                policy = {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Effect": "Allow",
                            "Principal": {"AWS": "*"},
                            "Action": "s3:GetObject",
                            "Resource": f"arn:aws:s3:::{self.bucket}/*"
                        }
                    ]
                }
                self.client.put_bucket_policy(
                    Bucket=self.bucket,
                    Policy=json.dumps(policy)
                )
                logger.info(f"[STORAGE] ✓ Bucket '{self.bucket}' policy set to public-read")
            except ClientError as create_error:
                logger.error(f"[STORAGE] ✗ Failed to create bucket: {create_error}")
                raise

    def upload_bytes(
        self,
        data: bytes,
        object_name: str,
        content_type: str,
        metadata: Optional[dict] = None
    ) -> str:
        """
        Upload raw bytes as a publicly readable object.

        Args:
            data: Decoded file content
            object_name: S3 object key (e.g., 'user-images/banner_1700000000000_ab12.png')
            content_type: MIME type stored with the object
            metadata: Optional metadata dict

        Returns:
            Public URL of uploaded file

        Raises:
            StorageError: If the upload fails
        """
        extra_args = {
            'ContentType': content_type,
            'CacheControl': PUBLIC_CACHE_CONTROL,
            'ACL': 'public-read'  # Make file publicly accessible
        }

        if metadata:
            extra_args['Metadata'] = metadata

        try:
            logger.info(f"[STORAGE] Uploading '{object_name}' ({len(data)} bytes) to bucket '{self.bucket}'...")
            self.client.upload_fileobj(
                BytesIO(data),
                self.bucket,
                object_name,
                ExtraArgs=extra_args
            )
        except (ClientError, BotoCoreError) as e:
            logger.exception(f"[STORAGE] ✗ Upload failed: {e}")
            raise StorageError(f"Upload failed: {e}")

        url = self.get_public_url(object_name)
        logger.info(f"[STORAGE] ✓ File uploaded: {url}")
        return url

    def get_public_url(self, object_name: str) -> str:
        """Public URL (e.g., 'https://storage.googleapis.com/storefront/user-menus/menu.pdf')."""
        return f"{self.public_url}/{self.bucket}/{object_name}"


def is_storage_url(url: str, public_url: str) -> bool:
    """
    True when `url` points at the object store's public host.

    Compares scheme and host exactly; substring checks would accept
    look-alike hosts such as storage.googleapis.com.evil.example.
    """
    try:
        candidate = urlparse(url or '')
        expected = urlparse(public_url or '')
    except ValueError:
        return False
    if not candidate.scheme or not candidate.netloc:
        return False
    return (
        candidate.scheme in ('http', 'https')
        and candidate.scheme == expected.scheme
        and candidate.netloc.lower() == expected.netloc.lower()
    )


# Singleton instance
_storage_service = None


def get_storage_service() -> StorageService:
    """
    Get or create StorageService singleton.

    Returns:
        StorageService instance
    """
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
