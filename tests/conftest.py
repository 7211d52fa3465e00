"""Shared fixtures: in-memory S3 client and fake cache service."""

import json
import logging
import re
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from unittest.mock import patch

import httpx
import pytest
from botocore.exceptions import ClientError

from artifact_cache.context import CacheContext, CacheScope
from artifact_cache.retry import RetryPolicy
from artifact_cache.storage.cache_service import CacheServiceClient
from artifact_cache.storage.object_store import ObjectStoreClient

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_client_error(code: str, status: int, operation: str = "HeadObject") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} error"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class FakeBody:
    """Minimal StreamingBody stand-in."""

    def __init__(self, data: bytes):
        self._data = data

    def read(self) -> bytes:
        return self._data

    def iter_chunks(self, chunk_size: int = 1024):
        for i in range(0, len(self._data), chunk_size):
            yield self._data[i : i + chunk_size]


class FakeS3Client:
    """In-memory S3 client exposing the boto3 calls the object store uses.

    ``deliver_bytes`` caps how many bytes of any object are actually served,
    while head still reports the full length.
    """

    def __init__(self):
        self.objects: Dict[str, dict] = {}
        self.uploads: Dict[str, dict] = {}
        self.aborted: List[str] = []
        self.calls: List[tuple] = []
        self.failures: Dict[str, List[Exception]] = {}
        self.deliver_bytes: Optional[int] = None
        self._lock = threading.Lock()
        self._upload_counter = 0

    def put(self, key: str, data: bytes, metadata: Optional[dict] = None, age_minutes: int = 0) -> None:
        self.objects[key] = {
            "data": data,
            "metadata": metadata or {},
            "last_modified": BASE_TIME + timedelta(minutes=age_minutes),
        }

    def fail(self, operation: str, *errors: Exception) -> None:
        self.failures.setdefault(operation, []).extend(errors)

    def _record(self, operation: str, *details) -> None:
        with self._lock:
            self.calls.append((operation, *details))
            queue = self.failures.get(operation)
            error = queue.pop(0) if queue else None
        if error is not None:
            raise error

    def calls_for(self, operation: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == operation]

    def _served(self, key: str) -> bytes:
        data = self.objects[key]["data"]
        if self.deliver_bytes is not None:
            return data[: self.deliver_bytes]
        return data

    def _require(self, key: str, operation: str) -> None:
        if key not in self.objects:
            raise make_client_error("404" if operation == "HeadObject" else "NoSuchKey", 404, operation)

    def head_object(self, Bucket, Key):
        self._record("head_object", Key)
        self._require(Key, "HeadObject")
        obj = self.objects[Key]
        return {
            "ContentLength": len(obj["data"]),
            "LastModified": obj["last_modified"],
            "Metadata": dict(obj["metadata"]),
        }

    def get_object(self, Bucket, Key, Range=None):
        self._record("get_object", Key, Range)
        self._require(Key, "GetObject")
        data = self._served(Key)
        if Range:
            start, end = (int(v) for v in re.match(r"bytes=(\d+)-(\d+)", Range).groups())
            data = data[start : end + 1]
        return {"Body": FakeBody(data), "ContentLength": len(data)}

    def download_file(self, Bucket, Key, Filename):
        self._record("download_file", Key)
        self._require(Key, "GetObject")
        with open(Filename, "wb") as f:
            f.write(self._served(Key))

    def upload_file(self, Filename, Bucket, Key, ExtraArgs=None):
        self._record("upload_file", Key)
        with open(Filename, "rb") as f:
            data = f.read()
        metadata = (ExtraArgs or {}).get("Metadata")
        with self._lock:
            self.put(Key, data, metadata)

    def create_multipart_upload(self, Bucket, Key, Metadata=None):
        self._record("create_multipart_upload", Key)
        with self._lock:
            self._upload_counter += 1
            upload_id = f"upload-{self._upload_counter}"
            self.uploads[upload_id] = {"key": Key, "parts": {}, "metadata": Metadata or {}}
        return {"UploadId": upload_id}

    def upload_part(self, Bucket, Key, UploadId, PartNumber, Body):
        self._record("upload_part", Key, PartNumber)
        with self._lock:
            # a cancelled worker's thread may still land after abort
            if UploadId not in self.uploads:
                raise make_client_error("NoSuchUpload", 404, "UploadPart")
            self.uploads[UploadId]["parts"][PartNumber] = Body
        return {"ETag": f'"etag-{PartNumber}"'}

    def complete_multipart_upload(self, Bucket, Key, UploadId, MultipartUpload):
        self._record("complete_multipart_upload", Key)
        with self._lock:
            upload = self.uploads.pop(UploadId)
            data = b"".join(upload["parts"][part["PartNumber"]] for part in MultipartUpload["Parts"])
            self.put(Key, data, upload["metadata"])

    def abort_multipart_upload(self, Bucket, Key, UploadId):
        self._record("abort_multipart_upload", Key)
        with self._lock:
            self.uploads.pop(UploadId, None)
            self.aborted.append(UploadId)

    def list_objects_v2(self, Bucket, Prefix, ContinuationToken=None):
        self._record("list_objects_v2", Prefix)
        keys = sorted(key for key in self.objects if key.startswith(Prefix))
        return {
            "Contents": [
                {
                    "Key": key,
                    "Size": len(self.objects[key]["data"]),
                    "LastModified": self.objects[key]["last_modified"],
                }
                for key in keys
            ],
            "IsTruncated": False,
        }


class FakeCacheService:
    """In-memory native cache service behind ``httpx.MockTransport``."""

    def __init__(self):
        self.reserved: Dict[tuple, int] = {}
        self.chunks: Dict[int, List[tuple]] = {}
        self.committed: Dict[int, int] = {}
        self.requests: List[httpx.Request] = []
        self.patch_failures: List[int] = []
        self.listing: List[dict] = []
        self._next_id = 1

    def assembled(self, cache_id: int) -> bytes:
        return b"".join(data for _, _, data in sorted(self.chunks.get(cache_id, [])))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        match = re.search(r"/caches/(\d+)$", path)

        if request.method == "POST" and path.endswith("/caches"):
            body = json.loads(request.content)
            pair = (body["key"], body.get("version"))
            if pair in self.reserved:
                return httpx.Response(409, json={"message": "Cache already reserved"})
            cache_id = self._next_id
            self._next_id += 1
            self.reserved[pair] = cache_id
            return httpx.Response(201, json={"cacheId": cache_id})

        if request.method == "PATCH" and match:
            if self.patch_failures:
                return httpx.Response(self.patch_failures.pop(0), text="chunk failed")
            cache_id = int(match.group(1))
            start, end = (
                int(v) for v in re.match(r"bytes (\d+)-(\d+)/\*", request.headers["Content-Range"]).groups()
            )
            self.chunks.setdefault(cache_id, []).append((start, end, request.content))
            return httpx.Response(204)

        if request.method == "POST" and match:
            cache_id = int(match.group(1))
            size = json.loads(request.content)["size"]
            if cache_id in self.committed:
                return httpx.Response(409, json={"message": "Cache already committed"})
            if len(self.assembled(cache_id)) != size:
                return httpx.Response(400, json={"message": "Size mismatch"})
            self.committed[cache_id] = size
            return httpx.Response(204)

        if request.method == "GET" and path.endswith("/caches"):
            return httpx.Response(
                200, json={"totalCount": len(self.listing), "artifactCaches": self.listing}
            )

        return httpx.Response(404)


@pytest.fixture
def client_error():
    """Factory for botocore ClientError instances."""
    return make_client_error


@pytest.fixture
def fake_s3():
    return FakeS3Client()


@pytest.fixture
def object_store(fake_s3):
    """ObjectStoreClient backed by the in-memory S3 client."""
    with patch("artifact_cache.storage.object_store.boto3.client", return_value=fake_s3):
        yield ObjectStoreClient(bucket="cache-bucket")


@pytest.fixture
def fake_service():
    return FakeCacheService()


@pytest.fixture
async def cache_service(fake_service):
    """CacheServiceClient talking to the fake service."""
    client = CacheServiceClient(
        "https://cache.example.com",
        "test-token",
        transport=httpx.MockTransport(fake_service.handler),
    )
    yield client
    await client.aclose()


@pytest.fixture
def context():
    return CacheContext(bucket="cache-bucket", scope=CacheScope("r", "main", "h"))


@pytest.fixture
def fast_retry():
    """Retry policy without delays."""
    return RetryPolicy(max_attempts=3, base_delay_s=0.0, max_delay_s=0.0, jitter=0.0)


@pytest.fixture
def archive_factory(tmp_path):
    """Create an archive file with deterministic content of a given size."""

    def _make(size: int, name: str = "cache.tzst"):
        path = tmp_path / name
        path.write_bytes(bytes(i % 251 for i in range(size)))
        return path

    return _make


@pytest.fixture
def package_logger():
    """The package logger, with its handlers restored afterwards."""
    logger = logging.getLogger("artifact_cache")
    saved = (list(logger.handlers), logger.level)
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
