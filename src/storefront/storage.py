"""
Durable key-value string storage for cart and section-mapping persistence.

Every backend offers the same synchronous get/set/remove contract with no
transactional guarantees across keys.
"""

import json
import logging
import os
import tempfile
from typing import Any, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from storefront.exceptions import CorruptStateError, StorageError

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "salt_soul_cart"
MAPPINGS_STORAGE_KEY = "collectionMappings"

boto_config = Config(
    retries={"max_attempts": 3, "mode": "adaptive"},
    connect_timeout=5,
    read_timeout=15,
)


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class JSONFileStorage:
    """
    Storage kept as one JSON object on disk.

    Each write replaces the whole file through a temporary file and rename,
    so a crash mid-write never leaves a half-written store behind.
    """

    def __init__(self, path: str):
        self.path = path

    def _read_all(self) -> dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Storage file {self.path} is unreadable, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Storage file {self.path} does not hold an object, starting empty")
            return {}
        return data

    def _write_all(self, data: dict[str, str], key: str) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageError(
                message=f"Failed to write storage file {self.path}: {e}",
                storage_key=key,
                operation="write",
                original_exception=e,
            )

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data, key)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data, key)


class S3ClientFactory:
    """Factory for creating S3 clients with proper configuration."""

    _s3_client = None

    @classmethod
    def get_s3_client(cls, region_name: str = "us-east-1", endpoint_url: Optional[str] = None):
        """Get or create the S3 client."""
        if cls._s3_client is None:
            kwargs = {"config": boto_config, "region_name": region_name}
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            cls._s3_client = boto3.client("s3", **kwargs)
        return cls._s3_client

    @classmethod
    def reset(cls):
        """Reset clients (useful for testing)."""
        cls._s3_client = None


class S3Storage:
    """Storage with one S3 object per key, for serverless deployments."""

    def __init__(self, bucket: str, prefix: str = "storefront/", client=None):
        self.bucket = bucket
        self.prefix = prefix
        self.s3 = client or S3ClientFactory.get_s3_client()

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=self._object_key(key))
            return response["Body"].read().decode("utf-8")
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            raise self._error(key, "GetObject", e)
        except BotoCoreError as e:
            raise self._error(key, "GetObject", e)

    def set(self, key: str, value: str) -> None:
        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=self._object_key(key),
                Body=value.encode("utf-8"),
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as e:
            raise self._error(key, "PutObject", e)

    def remove(self, key: str) -> None:
        try:
            self.s3.delete_object(Bucket=self.bucket, Key=self._object_key(key))
        except (ClientError, BotoCoreError) as e:
            raise self._error(key, "DeleteObject", e)

    def _error(self, key: str, operation: str, exc: Exception) -> StorageError:
        return StorageError(
            message=f"S3 {operation} failed for s3://{self.bucket}/{self._object_key(key)}: {exc}",
            storage_key=key,
            operation=operation,
            original_exception=exc,
        )


def create_storage(settings) -> KeyValueStorage:
    """Select the storage backend named by ``settings.storage_backend``."""
    backend = settings.storage_backend.lower()
    if backend == "memory":
        return MemoryStorage()
    if backend == "file":
        return JSONFileStorage(settings.storage_path)
    if backend == "s3":
        bucket = settings.require("storage_bucket")
        client = S3ClientFactory.get_s3_client(
            region_name=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
        )
        return S3Storage(bucket=bucket, prefix=settings.storage_prefix, client=client)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend!r}")


def load_json(storage: KeyValueStorage, key: str, default: Any = None) -> Any:
    """
    Load and parse a persisted JSON record.

    A record that fails to parse is deleted and ``default`` is returned;
    corrupt state is logged, never raised to the caller.
    """
    raw = storage.get(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        discard_corrupt(storage, key, e)
        return default


def discard_corrupt(storage: KeyValueStorage, key: str, exc: Exception) -> None:
    """Remove a corrupt record and log it."""
    error = CorruptStateError(
        message=f"Discarding corrupt record {key!r}: {exc}",
        storage_key=key,
        original_exception=exc,
    )
    logger.warning(error.message, extra={"storage_key": key, "error": error.to_dict()})
    storage.remove(key)


def dump_json(storage: KeyValueStorage, key: str, value: Any) -> None:
    storage.set(key, json.dumps(value, default=str))
