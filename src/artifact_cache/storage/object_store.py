"""S3-compatible object storage transport.

Wraps a boto3 S3 client. Every call runs in the default executor so the
event loop stays free, and every botocore failure is translated into the
cache error taxonomy before it leaves this module.
"""

import asyncio
import functools
import logging
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
)

from ..errors import (
    CacheError,
    ObjectNotFoundError,
    PermanentTransportError,
    TransientTransportError,
)
from ..models import ObjectInfo

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchUpload"}
TRANSIENT_CODES = {
    "RequestTimeout",
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "InternalError",
    "ServiceUnavailable",
}
STREAM_CHUNK_SIZE = 1024 * 1024


def classify_storage_error(operation: str, error: Exception) -> CacheError:
    """Translate a botocore exception into the cache error taxonomy.

    Args:
        operation: Human-readable operation name for the message
        error: Exception raised by botocore

    Returns:
        Classified error (not raised)
    """
    if isinstance(error, ClientError):
        code = str(error.response.get("Error", {}).get("Code", ""))
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        message = f"{operation} failed ({code or status}): {error}"

        if code in NOT_FOUND_CODES or status == 404:
            return ObjectNotFoundError(message, status_code=404)
        if code in TRANSIENT_CODES or status == 429 or (status is not None and status >= 500):
            return TransientTransportError(message, status_code=status)
        return PermanentTransportError(message, status_code=status)

    if isinstance(error, (BotoConnectionError, HTTPClientError)):
        return TransientTransportError(f"{operation} failed: {error}")

    return PermanentTransportError(f"{operation} failed: {error}")


class ObjectStoreClient:
    """Client for S3-compatible object storage holding cache archives.

    Credentials are either both supplied or both omitted; when omitted the
    default boto3 credential chain applies.

    Attributes:
        bucket: Bucket name
        endpoint_url: Custom endpoint (None for AWS)
        region: Region name (None for the boto3 default)
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        max_pool_connections: int = 10,
        timeout_seconds: float = 600.0,
    ):
        """Initialize the object store client.

        Args:
            bucket: Bucket name
            endpoint_url: Custom endpoint for S3-compatible storage
            region: Region name
            access_key_id: Access key id
            secret_access_key: Secret access key
            max_pool_connections: HTTP connection pool size (>= transfer concurrency)
            timeout_seconds: Connect/read timeout for each request

        Raises:
            ValueError: If only one of the two credentials is set
        """
        if bool(access_key_id) != bool(secret_access_key):
            raise ValueError(
                "Storage credentials incomplete. "
                "Set both ACCESS_KEY and SECRET_KEY, or neither."
            )

        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region = region

        kwargs: Dict[str, Any] = {
            "config": Config(
                # retries are owned by the transfer layer
                retries={"max_attempts": 1, "mode": "standard"},
                max_pool_connections=max_pool_connections,
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
            ),
        }
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        if region:
            kwargs["region_name"] = region
        if access_key_id:
            kwargs["aws_access_key_id"] = access_key_id
            kwargs["aws_secret_access_key"] = secret_access_key

        self.s3 = boto3.client("s3", **kwargs)

    async def _call(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking boto3 call in the executor and classify failures."""
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))
        except (ClientError, BotoCoreError) as e:
            raise classify_storage_error(operation, e) from e

    async def head_object(self, key: str) -> ObjectInfo:
        """Fetch object metadata.

        Args:
            key: Object key

        Returns:
            ObjectInfo for the object

        Raises:
            ObjectNotFoundError: If the object does not exist
        """
        response = await self._call(
            f"HEAD {key}", self.s3.head_object, Bucket=self.bucket, Key=key
        )
        return ObjectInfo(
            key=key,
            content_length=int(response.get("ContentLength", 0)),
            last_modified=response.get("LastModified"),
            metadata=dict(response.get("Metadata") or {}),
        )

    def _list_all(self, prefix: str) -> List[ObjectInfo]:
        items: List[ObjectInfo] = []
        kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix}
        while True:
            response = self.s3.list_objects_v2(**kwargs)
            for obj in response.get("Contents", []):
                items.append(
                    ObjectInfo(
                        key=obj["Key"],
                        content_length=int(obj.get("Size", 0)),
                        last_modified=obj.get("LastModified"),
                    )
                )
            if not response.get("IsTruncated"):
                return items
            kwargs["ContinuationToken"] = response["NextContinuationToken"]

    async def list_objects(self, prefix: str) -> List[ObjectInfo]:
        """List every object under a prefix."""
        return await self._call(f"LIST {prefix}", self._list_all, prefix)

    async def download_file(self, key: str, dest_path: Path) -> None:
        """Download an object to a local file using the SDK transfer manager."""
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        await self._call(
            f"GET {key}", self.s3.download_file, self.bucket, key, str(dest_path)
        )

    async def upload_file(
        self, src_path: Path, key: str, metadata: Optional[Dict[str, str]] = None
    ) -> None:
        """Upload a local file as a single object."""
        extra_args = {"Metadata": metadata} if metadata else None
        await self._call(
            f"PUT {key}",
            self.s3.upload_file,
            str(src_path),
            self.bucket,
            key,
            ExtraArgs=extra_args,
        )

    def _stream_object(self, key: str, handle: BinaryIO) -> int:
        response = self.s3.get_object(Bucket=self.bucket, Key=key)
        written = 0
        for chunk in response["Body"].iter_chunks(chunk_size=STREAM_CHUNK_SIZE):
            handle.write(chunk)
            written += len(chunk)
        return written

    async def stream_to_file(self, key: str, handle: BinaryIO) -> int:
        """Stream an object body into an open file.

        Args:
            key: Object key
            handle: File opened for binary writing

        Returns:
            Number of bytes written
        """
        return await self._call(f"GET {key}", self._stream_object, key, handle)

    def _read_range(self, key: str, start: int, end: int) -> bytes:
        response = self.s3.get_object(
            Bucket=self.bucket, Key=key, Range=f"bytes={start}-{end}"
        )
        return response["Body"].read()

    async def get_range(self, key: str, start: int, end: int) -> bytes:
        """Fetch the inclusive byte range ``[start, end]`` of an object."""
        return await self._call(
            f"GET {key} bytes={start}-{end}", self._read_range, key, start, end
        )

    async def create_multipart_upload(
        self, key: str, metadata: Optional[Dict[str, str]] = None
    ) -> str:
        """Start a multipart upload and return its upload id."""
        kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if metadata:
            kwargs["Metadata"] = metadata
        response = await self._call(
            f"CREATE MULTIPART {key}", self.s3.create_multipart_upload, **kwargs
        )
        return response["UploadId"]

    async def upload_part(self, key: str, upload_id: str, part_number: int, body: bytes) -> str:
        """Upload one part and return its ETag."""
        response = await self._call(
            f"PUT {key} part {part_number}",
            self.s3.upload_part,
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
            PartNumber=part_number,
            Body=body,
        )
        return response["ETag"]

    async def complete_multipart_upload(
        self, key: str, upload_id: str, parts: List[Dict[str, Any]]
    ) -> None:
        """Assemble uploaded parts into the final object.

        Args:
            key: Object key
            upload_id: Multipart upload id
            parts: ``{"PartNumber": n, "ETag": etag}`` entries in part order
        """
        await self._call(
            f"COMPLETE MULTIPART {key}",
            self.s3.complete_multipart_upload,
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={"Parts": parts},
        )

    async def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        """Discard a multipart upload and its parts."""
        await self._call(
            f"ABORT MULTIPART {key}",
            self.s3.abort_multipart_upload,
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
        )
