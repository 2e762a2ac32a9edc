import asyncio
import io
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from config import Config
from errors import UploadError

logger = logging.getLogger(__name__)

RESOURCE_KINDS = ('image', 'raw')


@dataclass(frozen=True)
class UploadedArtifact:
    key: str
    resource_kind: str
    url: str
    download_url: str


class S3Handler:
    """
    Handles all blob store operations for compressed artifacts
    Uploads output buffers under generated keys and deletes them on failure or expiry
    """

    def __init__(self, config: Optional[Config] = None, s3_client=None):
        """Initialize the S3 client with AWS credentials, or use the given client"""
        self.config = config or Config()
        self.bucket = self.config.S3_BUCKET
        self.folder = self.config.S3_FOLDER.strip('/')
        self._pending_cleanups = set()

        if s3_client is not None:
            self.s3_client = s3_client
            return

        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=self.config.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=self.config.AWS_SECRET_ACCESS_KEY,
                region_name=self.config.AWS_REGION,
                endpoint_url=self.config.S3_ENDPOINT_URL,
                config=BotoConfig(
                    connect_timeout=10,
                    read_timeout=self.config.UPLOAD_TIMEOUT_SECONDS,
                    retries={'max_attempts': 3, 'mode': 'standard'},
                ),
            )

            # Test the connection against the artifact bucket
            self.s3_client.head_bucket(Bucket=self.bucket)
            logger.info(f"S3 connection successful! Bucket: {self.bucket}")

        except NoCredentialsError:
            logger.error("AWS credentials not found! Check your .env file")
            raise
        except Exception as e:
            logger.error(f"S3 connection failed: {e}")
            raise

    def generate_key(self) -> str:
        """Time-based unique key, e.g. file-1718000000000-1a2b3c4d"""
        return f"file-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"

    def object_key(self, key: str, resource_kind: str) -> str:
        """
        Full S3 object key for an artifact key

        The resource kind is part of the object path, so a delete issued
        with the wrong kind addresses an object that does not exist.
        """
        if resource_kind not in RESOURCE_KINDS:
            raise ValueError(f"Unknown resource kind: {resource_kind}")
        return f"{self.folder}/{resource_kind}/{key}"

    def canonical_url(self, object_key: str) -> str:
        if self.config.PUBLIC_BASE_URL:
            return f"{self.config.PUBLIC_BASE_URL.rstrip('/')}/{object_key}"
        if self.config.S3_ENDPOINT_URL:
            return f"{self.config.S3_ENDPOINT_URL.rstrip('/')}/{self.bucket}/{object_key}"
        return f"https://{self.bucket}.s3.{self.config.AWS_REGION}.amazonaws.com/{object_key}"

    def forced_download_url(self, object_key: str, filename: str) -> str:
        """
        Retrieval URL that makes clients download instead of rendering inline

        S3 only honours a response Content-Disposition override on signed
        requests, so this is a pre-signed GET valid for the retention window.
        """
        expires_in = int(self.config.RETENTION_HOURS * 3600)
        return self.s3_client.generate_presigned_url(
            'get_object',
            Params={
                'Bucket': self.bucket,
                'Key': object_key,
                'ResponseContentDisposition': f'attachment; filename="{filename}"',
            },
            ExpiresIn=min(expires_in, 7 * 24 * 3600),
        )

    def upload(self, data: bytes, resource_kind: str, key: str,
               content_type: Optional[str] = None, filename: Optional[str] = None) -> UploadedArtifact:
        """
        Upload an output buffer to the artifact bucket

        Args:
            data: Bytes to store
            resource_kind: 'image' for re-encoded output, 'raw' for pass-through documents
            key: Artifact key from generate_key()
            content_type: MIME type stored with the object
            filename: Suggested download filename

        Returns:
            UploadedArtifact with the canonical and forced-download URLs

        Raises:
            UploadError: the store rejected the upload
        """
        object_key = self.object_key(key, resource_kind)
        filename = filename or key

        extra_args = {'ContentDisposition': f'attachment; filename="{filename}"'}
        if content_type:
            extra_args['ContentType'] = content_type

        try:
            download_url = self.forced_download_url(object_key, filename)
            logger.info(f"Uploading {len(data):,} bytes to s3://{self.bucket}/{object_key}")
            self.s3_client.upload_fileobj(io.BytesIO(data), self.bucket, object_key, ExtraArgs=extra_args)
        except ClientError as e:
            logger.error(f"AWS error uploading file: {e}")
            raise UploadError(f"Upload failed: {e}") from e
        except BotoCoreError as e:
            logger.error(f"Error uploading file: {e}")
            raise UploadError(f"Upload failed: {e}") from e

        logger.info(f"Upload successful: s3://{self.bucket}/{object_key}")
        return UploadedArtifact(
            key=key,
            resource_kind=resource_kind,
            url=self.canonical_url(object_key),
            download_url=download_url,
        )

    async def upload_async(self, data: bytes, resource_kind: str, key: str,
                           content_type: Optional[str] = None,
                           filename: Optional[str] = None) -> UploadedArtifact:
        """
        Upload off the event loop, bounded by UPLOAD_TIMEOUT_SECONDS

        A timed-out upload keeps running in its worker thread. Its key is
        deleted once that worker finishes, so a late upload is not left behind.
        """
        timeout = self.config.UPLOAD_TIMEOUT_SECONDS
        worker = asyncio.ensure_future(
            asyncio.to_thread(self.upload, data, resource_kind, key, content_type, filename)
        )
        try:
            return await asyncio.wait_for(asyncio.shield(worker), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"Upload of {key} timed out after {timeout:g}s, deleting once the upload finishes")
            cleanup = asyncio.create_task(self._delete_after(worker, key, resource_kind))
            self._pending_cleanups.add(cleanup)
            cleanup.add_done_callback(self._pending_cleanups.discard)
            raise UploadError(f"Upload timed out after {timeout:g} seconds") from None

    async def _delete_after(self, worker: "asyncio.Future", key: str, resource_kind: str) -> bool:
        try:
            await worker
        except Exception as e:
            logger.warning(f"Timed-out upload of {key} failed: {e}")
        return await self.delete_async(key, resource_kind)

    async def wait_for_cleanups(self) -> None:
        """Wait for deletes scheduled by timed-out uploads"""
        if self._pending_cleanups:
            await asyncio.gather(*list(self._pending_cleanups), return_exceptions=True)

    def file_exists(self, key: str, resource_kind: str) -> bool:
        """
        Check if an artifact exists in S3

        Returns:
            True if the object exists, False otherwise
        """
        try:
            self.s3_client.head_object(Bucket=self.bucket, Key=self.object_key(key, resource_kind))
            return True
        except ClientError as e:
            if e.response['Error']['Code'] in ('404', 'NoSuchKey', 'NotFound'):
                return False
            logger.error(f"Error checking if file exists: {e}")
            return False

    def delete(self, key: str, resource_kind: str) -> bool:
        """
        Best-effort delete of an artifact

        S3 reports success for deletes of missing objects, so existence is
        checked first and a miss (e.g. a wrong resource kind) is reported
        as a failure instead of passing silently.

        Returns:
            True if the object was deleted, False otherwise
        """
        object_key = self.object_key(key, resource_kind)
        try:
            if not self.file_exists(key, resource_kind):
                logger.warning(f"Nothing to delete at s3://{self.bucket}/{object_key} (kind: {resource_kind})")
                return False
            self.s3_client.delete_object(Bucket=self.bucket, Key=object_key)
            logger.info(f"Deleted s3://{self.bucket}/{object_key}")
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Could not delete s3://{self.bucket}/{object_key}: {e}")
            return False

    async def delete_async(self, key: str, resource_kind: str) -> bool:
        return await asyncio.to_thread(self.delete, key, resource_kind)
