"""Mapping between local asset paths and remote object keys.

Keys are the base-relative path in POSIX form. Only OS path separators are
normalized; no other character is changed or escaped, so keys may contain
characters that are not legal in URLs.
"""
from __future__ import annotations

import os
from pathlib import Path, PurePath, PurePosixPath

from ..core.errors import PathOutsideBase, UnsafeRemoteKey


def _normalized(path) -> Path:
    return Path(os.path.abspath(os.fspath(path)))


def to_remote_key(base, absolute_path) -> str:
    base_path = _normalized(base)
    full = _normalized(absolute_path)
    try:
        rel = full.relative_to(base_path)
    except ValueError as e:
        raise PathOutsideBase(
            f"path_outside_base: {full} is not under {base_path}", path=str(full)
        ) from e
    if not rel.parts:
        raise PathOutsideBase(f"path_is_base: {full}", path=str(full))
    return PurePath(rel).as_posix()


def to_local_path(base, key: str) -> Path:
    return Path(base).joinpath(*PurePosixPath(key).parts)


def is_directory_marker(key: str) -> bool:
    """Zero-byte ``folder/`` placeholders created by some S3 consoles."""
    return key.endswith("/")


def safe_local_path(base, key: str) -> Path:
    """Compose ``base/key`` for a listed key, refusing anything that could escape ``base``."""
    if not key:
        raise UnsafeRemoteKey("empty_key", key=key)
    if "\x00" in key:
        raise UnsafeRemoteKey("nul_in_key", key=key)
    if "\\" in key:
        raise UnsafeRemoteKey("backslash_in_key", key=key)
    if key.startswith("/"):
        raise UnsafeRemoteKey("absolute_key", key=key)

    segments = key.split("/")
    for seg in segments:
        if seg in ("", ".", ".."):
            raise UnsafeRemoteKey(f"bad_segment: {seg!r}", key=key)

    if os.name == "nt" and PurePath(segments[0]).drive:
        raise UnsafeRemoteKey("drive_in_key", key=key)

    base_path = _normalized(base)
    target = _normalized(to_local_path(base_path, key))
    try:
        target.relative_to(base_path)
    except ValueError as e:
        raise UnsafeRemoteKey("key_escapes_base", key=key, path=str(target)) from e
    return target
