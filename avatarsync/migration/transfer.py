from __future__ import annotations

import hashlib
import io
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from ..core.cancel import CancelToken, check
from ..core.errors import FailedRead, FailedWrite, ObjectStoreError

DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class UploadResult:
    key: str
    url: str
    size: int
    digest: str


@dataclass(frozen=True)
class DownloadResult:
    key: str
    path: Path
    size: int


class TeeReader(io.RawIOBase):
    """Read-through wrapper that feeds every byte handed to the consumer into a digest.

    Seeking back to offset 0 restarts the digest, so a consumer that reads the
    body once to sign it and once more to send it still ends up with the
    digest of exactly one pass over the file.
    """

    def __init__(self, raw: BinaryIO, digest_name: str = "sha256", cancel: Optional[CancelToken] = None):
        super().__init__()
        self._raw = raw
        self._digest_name = digest_name
        self._cancel = cancel
        self._hash = hashlib.new(digest_name)
        self.bytes_read = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return self._raw.seekable()

    def read(self, size: int = -1) -> bytes:
        check(self._cancel)
        try:
            data = self._raw.read(size)
        except OSError as e:
            raise FailedRead(f"local_read_failed: {e}") from e
        if data:
            self._hash.update(data)
            self.bytes_read += len(data)
        return data

    def readinto(self, buffer) -> int:
        data = self.read(len(buffer))
        n = len(data)
        buffer[:n] = data
        return n

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        pos = self._raw.seek(offset, whence)
        if pos == 0:
            self._hash = hashlib.new(self._digest_name)
            self.bytes_read = 0
        return pos

    def tell(self) -> int:
        return self._raw.tell()

    def hexdigest(self) -> str:
        return self._hash.hexdigest()


class TransferEngine:
    """Stream bytes between local files and an object store.

    ``store`` needs ``put_object(bucket, key, body, content_length=None)``,
    ``get_object(bucket, key)`` returning an object with ``read(n)`` and
    ``close()``, and an ``endpoint`` attribute.
    """

    def __init__(self, store, chunk_size: int = DEFAULT_CHUNK_SIZE, digest_name: str = "sha256"):
        self.store = store
        self.chunk_size = chunk_size
        self.digest_name = digest_name

    def canonical_url(self, bucket: str, key: str) -> str:
        return f"{str(self.store.endpoint).rstrip('/')}/{bucket}/{key}"

    def upload(self, local_path, bucket: str, key: str, cancel: Optional[CancelToken] = None) -> UploadResult:
        check(cancel)
        path = Path(local_path)
        try:
            fh = path.open("rb")
        except OSError as e:
            raise FailedRead(f"open_failed: {e}", path=str(path), key=key) from e

        with fh:
            try:
                size = os.fstat(fh.fileno()).st_size
            except OSError as e:
                raise FailedRead(f"stat_failed: {e}", path=str(path), key=key) from e

            reader = TeeReader(fh, self.digest_name, cancel)
            try:
                self.store.put_object(bucket, key, reader, content_length=size)
            except FailedRead as e:
                e.path, e.key = str(path), key
                raise
            except ObjectStoreError as e:
                raise FailedWrite(f"put_failed: {e}", path=str(path), key=key) from e

        return UploadResult(
            key=key,
            url=self.canonical_url(bucket, key),
            size=reader.bytes_read,
            digest=reader.hexdigest(),
        )

    def download(self, bucket: str, key: str, local_path, cancel: Optional[CancelToken] = None) -> DownloadResult:
        check(cancel)
        path = Path(local_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FailedWrite(f"mkdir_failed: {e}", path=str(path), key=key) from e

        try:
            body = self.store.get_object(bucket, key)
        except ObjectStoreError as e:
            raise FailedRead(f"get_failed: {e}", path=str(path), key=key) from e

        size = 0
        part = path.with_name(path.name + ".part")
        try:
            try:
                fh = part.open("wb")
            except OSError as e:
                raise FailedWrite(f"create_failed: {e}", path=str(path), key=key) from e
            with fh:
                while True:
                    check(cancel)
                    try:
                        chunk = body.read(self.chunk_size)
                    except ObjectStoreError as e:
                        raise FailedRead(f"stream_failed: {e}", path=str(path), key=key) from e
                    if not chunk:
                        break
                    try:
                        fh.write(chunk)
                    except OSError as e:
                        raise FailedWrite(f"write_failed: {e}", path=str(path), key=key) from e
                    size += len(chunk)
            try:
                os.replace(part, path)
            except OSError as e:
                raise FailedWrite(f"rename_failed: {e}", path=str(path), key=key) from e
        except Exception:
            # A partial download never replaces the destination.
            part.unlink(missing_ok=True)
            raise
        finally:
            body.close()

        return DownloadResult(key=key, path=path, size=size)
