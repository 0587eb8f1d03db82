import io

import pytest
from botocore.exceptions import ClientError, IncompleteReadError

from avatarsync.core.config import StorageConfig
from avatarsync.core.errors import ObjectStoreError
from avatarsync.providers import s3_store as s3_store_module
from avatarsync.providers.s3_store import S3ObjectStore


class _FakePaginator:
    def __init__(self, pages, error=None):
        self.pages = pages
        self.error = error
        self.kwargs = None

    def paginate(self, **kwargs):
        self.kwargs = kwargs
        for page in self.pages:
            yield page
        if self.error is not None:
            raise self.error


class _BrokenBody:
    def __init__(self):
        self.closed = False

    def read(self, amt=None):
        raise IncompleteReadError(actual_bytes=1, expected_bytes=2)

    def close(self):
        self.closed = True


class _FakeBotoClient:
    def __init__(self):
        self.put_calls: list[dict] = []
        self.put_error = None
        self.bodies: dict[str, object] = {}
        self.paginator = _FakePaginator([])

    def put_object(self, **kwargs):
        if self.put_error is not None:
            raise self.put_error
        kwargs["Body"] = kwargs["Body"].read()
        self.put_calls.append(kwargs)

    def get_object(self, Bucket, Key):
        if Key not in self.bodies:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": self.bodies[Key]}

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return self.paginator


def test_put_object_passes_body_and_length():
    client = _FakeBotoClient()
    store = S3ObjectStore(client, endpoint="https://store")

    store.put_object("bucket", "users/1/avatars/a.png", io.BytesIO(b"abc"), content_length=3)

    assert client.put_calls == [
        {"Bucket": "bucket", "Key": "users/1/avatars/a.png", "Body": b"abc", "ContentLength": 3}
    ]


def test_put_object_client_error_becomes_object_store_error():
    client = _FakeBotoClient()
    client.put_error = ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject")

    with pytest.raises(ObjectStoreError) as exc:
        S3ObjectStore(client).put_object("bucket", "k", io.BytesIO(b"x"))

    assert exc.value.code == "AccessDenied"
    assert exc.value.operation == "put_object"


def test_get_object_missing_key():
    with pytest.raises(ObjectStoreError) as exc:
        S3ObjectStore(_FakeBotoClient()).get_object("bucket", "missing")
    assert exc.value.code == "NoSuchKey"


def test_get_object_read_error_is_wrapped():
    client = _FakeBotoClient()
    body = _BrokenBody()
    client.bodies["k"] = body

    reader = S3ObjectStore(client).get_object("bucket", "k")
    with pytest.raises(ObjectStoreError):
        reader.read(10)
    reader.close()

    assert body.closed


def test_iter_keys_walks_every_page():
    client = _FakeBotoClient()
    client.paginator = _FakePaginator(
        [
            {"Contents": [{"Key": "users/1/avatars/a.png"}, {"Key": "users/2/avatars/b.png"}]},
            {"KeyCount": 0},
            {"Contents": [{"Key": "users/3/avatars/c.png"}]},
        ]
    )

    keys = list(S3ObjectStore(client).iter_keys("bucket"))

    assert keys == ["users/1/avatars/a.png", "users/2/avatars/b.png", "users/3/avatars/c.png"]
    assert client.paginator.kwargs == {"Bucket": "bucket"}


def test_iter_keys_listing_error():
    client = _FakeBotoClient()
    client.paginator = _FakePaginator(
        [{"Contents": [{"Key": "a"}]}],
        error=ClientError({"Error": {"Code": "NoSuchBucket", "Message": "gone"}}, "ListObjectsV2"),
    )

    keys = []
    with pytest.raises(ObjectStoreError) as exc:
        for key in S3ObjectStore(client).iter_keys("bucket"):
            keys.append(key)

    assert keys == ["a"]
    assert exc.value.code == "NoSuchBucket"


def test_endpoint_defaults_to_aws_regional_endpoint():
    assert S3ObjectStore(object(), endpoint="", region="eu-west-1").endpoint == "https://s3.eu-west-1.amazonaws.com"
    assert S3ObjectStore(object(), endpoint="https://minio:9000/").endpoint == "https://minio:9000"


def test_from_config_uses_path_style_addressing(monkeypatch):
    captured = {}

    def fake_client(service, **kwargs):
        captured["service"] = service
        captured.update(kwargs)
        return _FakeBotoClient()

    monkeypatch.setattr(s3_store_module.boto3, "client", fake_client)
    cfg = StorageConfig(endpoint="https://minio:9000", access_key_id="AK", secret_access_key="SK", bucket="b")

    store = S3ObjectStore.from_config(cfg)

    assert captured["service"] == "s3"
    assert captured["endpoint_url"] == "https://minio:9000"
    assert captured["aws_access_key_id"] == "AK"
    assert captured["region_name"] == "us-east-1"
    assert captured["config"].s3 == {"addressing_style": "path"}
    assert store.endpoint == "https://minio:9000"
