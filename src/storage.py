"""
Object storage backends for PDF templates and generated proposals.

Two providers are supported:
- Supabase Storage (public buckets, the proposal system's default)
- AWS S3 via Heroku Bucketeer credentials

Both expose the same three operations the pipeline needs: public URL
lookup, direct object download and object upload.
"""

from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from supabase import Client, create_client

import config
from errors import StorageError
from log_setup import get_logger

logger = get_logger("storage")

PDF_CONTENT_TYPE = "application/pdf"
CACHE_CONTROL = "3600"

# Raised by boto3 for provider and transport failures, and by the client
# property when credentials are missing
S3_ERRORS = (ClientError, BotoCoreError, ValueError)


class StorageBackend:
    """Interface shared by the storage providers."""

    def get_public_url(self, bucket: str, path: str) -> Optional[str]:
        """
        Readable URL for an object, or None if the provider cannot build one.

        Raises:
            StorageError: If the provider fails
        """
        raise NotImplementedError

    def download_object(self, bucket: str, path: str) -> bytes:
        """
        Download an object.

        Raises:
            StorageError: If the object is missing or the provider fails
        """
        raise NotImplementedError

    def upload_object(self, bucket: str, path: str, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> None:
        """
        Upload an object.

        Raises:
            StorageError: If the provider rejects the upload
        """
        raise NotImplementedError


# ============================================================================
# AWS S3
# ============================================================================

class S3Storage(StorageBackend):
    """
    S3 backend. The client is created lazily on first use.

    Bucketeer buckets are private, so object URLs are presigned.
    """

    def __init__(
        self,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: Optional[str] = None,
        client=None,
        url_expires_in: int = config.S3_URL_EXPIRES_IN,
    ):
        self.access_key_id = access_key_id or config.AWS_ACCESS_KEY_ID
        self.secret_access_key = secret_access_key or config.AWS_SECRET_ACCESS_KEY
        self.region = region or config.AWS_REGION
        self.url_expires_in = url_expires_in
        self._client = client

    @property
    def client(self):
        """
        Get or create the boto3 S3 client.

        Raises:
            ValueError: If required credentials are not set
        """
        if self._client is None:
            if not all([self.access_key_id, self.secret_access_key]):
                raise ValueError(
                    "Missing required S3 environment variables. "
                    "Ensure BUCKETEER_AWS_ACCESS_KEY_ID and BUCKETEER_AWS_SECRET_ACCESS_KEY are set."
                )
            self._client = boto3.client(
                "s3",
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
                region_name=self.region
            )
            logger.info(f"S3 client initialized for region: {self.region}")
        return self._client

    def get_public_url(self, bucket: str, path: str) -> Optional[str]:
        if not bucket or not path:
            return None
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": path.lstrip("/")},
                ExpiresIn=self.url_expires_in
            )
        except S3_ERRORS as e:
            raise StorageError(f"Could not presign s3://{bucket}/{path}: {e}") from e

    def download_object(self, bucket: str, path: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=bucket, Key=path)
            return response["Body"].read()
        except S3_ERRORS as e:
            code = type(e).__name__
            if isinstance(e, ClientError):
                code = e.response.get("Error", {}).get("Code", "Unknown")
            raise StorageError(f"S3 download of s3://{bucket}/{path} failed ({code}): {e}") from e

    def upload_object(self, bucket: str, path: str, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> None:
        logger.info(f"Uploading {len(data)} bytes to s3://{bucket}/{path}")
        try:
            self.client.put_object(
                Bucket=bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
                CacheControl=f"max-age={CACHE_CONTROL}"
            )
        except S3_ERRORS as e:
            raise StorageError(f"S3 upload to s3://{bucket}/{path} failed: {e}") from e


# ============================================================================
# Supabase Storage
# ============================================================================

class SupabaseStorage(StorageBackend):
    """Supabase Storage backend."""

    def __init__(self, url: Optional[str] = None, key: Optional[str] = None, client: Optional[Client] = None):
        self.url = url or config.SUPABASE_URL
        self.key = key or config.SUPABASE_KEY
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            if not all([self.url, self.key]):
                raise ValueError(
                    "Missing required Supabase environment variables. "
                    "Ensure SUPABASE_URL and SUPABASE_KEY are set."
                )
            self._client = create_client(self.url, self.key)
            logger.info(f"Supabase client initialized for {self.url}")
        return self._client

    def get_public_url(self, bucket: str, path: str) -> Optional[str]:
        if not bucket or not path:
            return None
        try:
            public_url = self.client.storage.from_(bucket).get_public_url(path)
        except Exception as e:
            raise StorageError(f"Supabase public URL lookup for {bucket}/{path} failed: {e}") from e
        # Older clients return {"publicURL": ...} instead of a plain string
        if isinstance(public_url, dict):
            public_url = public_url.get("publicUrl") or public_url.get("publicURL")
        return public_url or None

    def download_object(self, bucket: str, path: str) -> bytes:
        try:
            return self.client.storage.from_(bucket).download(path)
        except Exception as e:
            raise StorageError(f"Supabase download of {bucket}/{path} failed: {e}") from e

    def upload_object(self, bucket: str, path: str, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> None:
        logger.info(f"Uploading {len(data)} bytes to supabase://{bucket}/{path}")
        try:
            self.client.storage.from_(bucket).upload(
                path,
                data,
                file_options={
                    "content-type": content_type,
                    "cache-control": CACHE_CONTROL,
                }
            )
        except Exception as e:
            raise StorageError(f"Supabase upload to {bucket}/{path} failed: {e}") from e


def get_storage(backend: Optional[str] = None) -> StorageBackend:
    """
    Build the configured storage backend.

    Args:
        backend: "supabase" or "s3"; defaults to PDF_STORAGE_BACKEND

    Returns:
        StorageBackend instance
    """
    backend = (backend or config.STORAGE_BACKEND).lower()
    if backend == "supabase":
        return SupabaseStorage()
    elif backend == "s3":
        return S3Storage()
    else:
        raise ValueError(f"Invalid storage backend: {backend}. Must be 'supabase' or 's3'.")
