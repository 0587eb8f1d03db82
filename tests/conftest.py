import io
import sqlite3
from pathlib import Path

import pytest

from avatarsync.core.errors import ObjectStoreError


class FakeBody(io.BytesIO):
    pass


class FakeStore:
    endpoint = "https://store"

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.puts: list[tuple[str, str]] = []
        self.bodies: list = []
        self.opened: list[FakeBody] = []
        self.put_errors: dict[str, Exception] = {}
        self.get_errors: dict[str, Exception] = {}
        self.list_error_after: int | None = None

    def put_object(self, bucket, key, body, content_length=None):
        self.bodies.append(body)
        err = self.put_errors.get(key)
        if err is not None:
            raise err
        chunks = []
        while True:
            chunk = body.read(4)
            if not chunk:
                break
            chunks.append(chunk)
        self.objects[(bucket, key)] = b"".join(chunks)
        self.puts.append((bucket, key))

    def get_object(self, bucket, key):
        err = self.get_errors.get(key)
        if err is not None:
            raise err
        if (bucket, key) not in self.objects:
            raise ObjectStoreError("get_object", f"no_such_key {key}", "NoSuchKey")
        body = FakeBody(self.objects[(bucket, key)])
        self.opened.append(body)
        return body

    def iter_keys(self, bucket):
        for i, (b, key) in enumerate(list(self.objects)):
            if self.list_error_after is not None and i >= self.list_error_after:
                raise ObjectStoreError("list_objects_v2", "AccessDenied", "AccessDenied")
            if b == bucket:
                yield key


class FakePointer:
    def __init__(self, errors=None):
        self.calls: list[tuple[int, str]] = []
        self.errors = errors or {}

    def update_pointer(self, owner_id, url, cancel=None):
        err = self.errors.get(owner_id)
        if err is not None:
            raise err
        self.calls.append((owner_id, url))


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_pointer() -> FakePointer:
    return FakePointer()


def write_file(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


@pytest.fixture
def owners_db(tmp_path: Path) -> str:
    db_path = tmp_path / "app.db"
    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, username TEXT, avatar_url TEXT)")
    conn.executemany(
        "INSERT INTO users(id, username, avatar_url) VALUES (?,?,?)",
        [(42, "alice", None), (43, "bob", None), (44, "carol", "old")],
    )
    conn.commit()
    conn.close()
    return str(db_path)


def read_avatar_url(db_path: str, owner_id: int):
    conn = sqlite3.connect(db_path)
    try:
        row = conn.execute("SELECT avatar_url FROM users WHERE id=?", (owner_id,)).fetchone()
    finally:
        conn.close()
    return row[0] if row else None


@pytest.fixture
def make_file():
    return write_file


@pytest.fixture
def avatar_url():
    return read_avatar_url
