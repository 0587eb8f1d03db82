from __future__ import annotations

from typing import Any, BinaryIO, Iterator, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..core.config import StorageConfig
from ..core.errors import ObjectStoreError


def _error_code(e: Exception) -> Optional[str]:
    if isinstance(e, ClientError):
        return (e.response.get("Error") or {}).get("Code")
    return None


class _BodyReader:
    """Wrap a botocore StreamingBody so read errors surface as ObjectStoreError."""

    def __init__(self, body: Any, key: str):
        self._body = body
        self._key = key

    def read(self, amt: Optional[int] = None) -> bytes:
        try:
            return self._body.read(amt)
        except (BotoCoreError, ClientError, OSError) as e:
            raise ObjectStoreError("get_object", f"read_failed key={self._key}: {e}", _error_code(e)) from e

    def close(self):
        self._body.close()


class S3ObjectStore:
    """The three bucket operations the migration core consumes, on top of a boto3 S3 client."""

    def __init__(self, client: Any, endpoint: str = "", region: str = "us-east-1"):
        self.client = client
        self._endpoint = (endpoint or "").rstrip("/")
        self.region = region

    @classmethod
    def from_config(cls, cfg: StorageConfig) -> "S3ObjectStore":
        boto_config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            connect_timeout=cfg.connect_timeout_sec,
            read_timeout=cfg.read_timeout_sec,
        )
        client = boto3.client(
            "s3",
            endpoint_url=cfg.endpoint or None,
            aws_access_key_id=cfg.access_key_id or None,
            aws_secret_access_key=cfg.secret_access_key or None,
            region_name=cfg.region,
            config=boto_config,
        )
        return cls(client, endpoint=cfg.endpoint, region=cfg.region)

    @property
    def endpoint(self) -> str:
        if self._endpoint:
            return self._endpoint
        return f"https://s3.{self.region}.amazonaws.com"

    def put_object(self, bucket: str, key: str, body: BinaryIO, content_length: Optional[int] = None):
        params: dict[str, Any] = {"Bucket": bucket, "Key": key, "Body": body}
        if content_length is not None:
            params["ContentLength"] = content_length
        try:
            self.client.put_object(**params)
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError("put_object", f"bucket={bucket} key={key}: {e}", _error_code(e)) from e

    def get_object(self, bucket: str, key: str) -> _BodyReader:
        try:
            resp = self.client.get_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError("get_object", f"bucket={bucket} key={key}: {e}", _error_code(e)) from e
        return _BodyReader(resp["Body"], key)

    def iter_keys(self, bucket: str) -> Iterator[str]:
        """Yield every key in the bucket, one listing page at a time."""
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=bucket):
                for obj in page.get("Contents", []) or []:
                    key = obj.get("Key")
                    if key:
                        yield key
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError("list_objects_v2", f"bucket={bucket}: {e}", _error_code(e)) from e
