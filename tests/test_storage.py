"""Tests for the key-value storage backends."""

import io
import json
from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from storefront.config import Settings
from storefront.exceptions import ConfigurationError, StorageError
from storefront.storage import (
    JSONFileStorage,
    MemoryStorage,
    S3ClientFactory,
    S3Storage,
    create_storage,
    dump_json,
    load_json,
)


def client_error(code, operation="GetObject"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestMemoryStorage:

    def test_get_set_remove(self):
        storage = MemoryStorage()

        assert storage.get("k") is None
        storage.set("k", "v")
        assert storage.get("k") == "v"
        assert "k" in storage
        storage.remove("k")
        assert storage.get("k") is None

    def test_remove_missing_key(self):
        MemoryStorage().remove("missing")


class TestJSONFileStorage:
    """Tests for JSONFileStorage."""

    def test_round_trip(self, tmp_path):
        path = tmp_path / "store.json"
        storage = JSONFileStorage(str(path))

        storage.set("cart", "[1, 2]")
        storage.set("other", "x")

        assert storage.get("cart") == "[1, 2]"
        assert json.loads(path.read_text()) == {"cart": "[1, 2]", "other": "x"}
        assert JSONFileStorage(str(path)).get("other") == "x"

    def test_missing_file(self, tmp_path):
        assert JSONFileStorage(str(tmp_path / "absent.json")).get("cart") is None

    def test_creates_parent_directory(self, tmp_path):
        storage = JSONFileStorage(str(tmp_path / "nested" / "store.json"))
        storage.set("k", "v")
        assert storage.get("k") == "v"

    def test_unreadable_file_starts_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        storage = JSONFileStorage(str(path))

        assert storage.get("cart") is None
        storage.set("cart", "[]")
        assert storage.get("cart") == "[]"

    def test_remove(self, tmp_path):
        storage = JSONFileStorage(str(tmp_path / "store.json"))
        storage.set("a", "1")
        storage.set("b", "2")

        storage.remove("a")
        storage.remove("never-set")

        assert storage.get("a") is None
        assert storage.get("b") == "2"

    def test_leaves_no_temp_files(self, tmp_path):
        storage = JSONFileStorage(str(tmp_path / "store.json"))
        storage.set("a", "1")

        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]

    def test_failed_replace_removes_temp_file(self, tmp_path):
        storage = JSONFileStorage(str(tmp_path / "store.json"))
        storage.set("a", "1")

        with patch("storefront.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError) as excinfo:
                storage.set("b", "2")

        assert excinfo.value.operation == "write"
        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]
        assert storage.get("b") is None


class TestS3Storage:
    """Tests for S3Storage."""

    @pytest.fixture
    def s3(self):
        return Mock()

    def test_get(self, s3):
        s3.get_object.return_value = {"Body": io.BytesIO(b'{"a": 1}')}
        storage = S3Storage("bucket", prefix="shop/", client=s3)

        assert storage.get("cart") == '{"a": 1}'
        s3.get_object.assert_called_once_with(Bucket="bucket", Key="shop/cart")

    @pytest.mark.parametrize("code", ["NoSuchKey", "404"])
    def test_get_missing_key(self, s3, code):
        s3.get_object.side_effect = client_error(code)
        assert S3Storage("bucket", client=s3).get("cart") is None

    def test_get_access_denied(self, s3):
        s3.get_object.side_effect = client_error("AccessDenied")

        with pytest.raises(StorageError) as exc_info:
            S3Storage("bucket", client=s3).get("cart")

        assert exc_info.value.storage_key == "cart"
        assert exc_info.value.operation == "GetObject"
        assert exc_info.value.retryable is True

    def test_get_connection_failure(self, s3):
        s3.get_object.side_effect = EndpointConnectionError(endpoint_url="https://s3.example.com")

        with pytest.raises(StorageError):
            S3Storage("bucket", client=s3).get("cart")

    def test_set(self, s3):
        S3Storage("bucket", client=s3).set("cart", "[]")

        s3.put_object.assert_called_once_with(
            Bucket="bucket",
            Key="storefront/cart",
            Body=b"[]",
            ContentType="application/json",
        )

    def test_set_failure(self, s3):
        s3.put_object.side_effect = client_error("InternalError", "PutObject")

        with pytest.raises(StorageError, match="PutObject"):
            S3Storage("bucket", client=s3).set("cart", "[]")

    def test_remove(self, s3):
        S3Storage("bucket", client=s3).remove("cart")
        s3.delete_object.assert_called_once_with(Bucket="bucket", Key="storefront/cart")


class TestCreateStorage:
    """Tests for backend selection."""

    def test_memory(self):
        assert isinstance(create_storage(Settings(storage_backend="memory")), MemoryStorage)

    def test_file(self, tmp_path):
        path = str(tmp_path / "s.json")
        storage = create_storage(Settings(storage_backend="file", storage_path=path))

        assert isinstance(storage, JSONFileStorage)
        assert storage.path == path

    @patch("storefront.storage.boto3")
    def test_s3(self, mock_boto3):
        S3ClientFactory.reset()
        try:
            storage = create_storage(
                Settings(storage_backend="s3", storage_bucket="carts", aws_region="eu-west-1")
            )
        finally:
            S3ClientFactory.reset()

        assert isinstance(storage, S3Storage)
        assert storage.bucket == "carts"
        assert mock_boto3.client.call_args.args == ("s3",)
        assert mock_boto3.client.call_args.kwargs["region_name"] == "eu-west-1"

    def test_s3_requires_bucket(self):
        with pytest.raises(ConfigurationError):
            create_storage(Settings(storage_backend="s3"))

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_storage(Settings(storage_backend="redis"))


class TestJsonHelpers:
    """Tests for load_json / dump_json."""

    def test_round_trip(self):
        storage = MemoryStorage()
        dump_json(storage, "k", {"a": [1, 2]})
        assert load_json(storage, "k") == {"a": [1, 2]}

    def test_absent_returns_default(self):
        assert load_json(MemoryStorage(), "k", default=[]) == []

    def test_corrupt_record_is_removed(self):
        storage = MemoryStorage({"k": '{"a": '})

        assert load_json(storage, "k", default="fallback") == "fallback"
        assert "k" not in storage
