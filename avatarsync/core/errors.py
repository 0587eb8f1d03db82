"""Error kinds raised by the migration core.

File-level kinds (``FailedRead``, ``FailedWrite``, ``FailedPointerUpdate``,
``PathOutsideBase``, ``UnsafeRemoteKey``) are recovered by the orchestrators.
``EnumerationFailed`` is fatal for a run. ``Cancelled`` stops a run early.
"""
from __future__ import annotations

from typing import Optional


class AvatarSyncError(Exception):
    """Base class; carries optional owner/path/key context for log lines."""

    kind = "error"

    def __init__(
        self,
        message: str,
        *,
        owner_id: Optional[int] = None,
        path: Optional[str] = None,
        key: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.owner_id = owner_id
        self.path = path
        self.key = key

    def context(self) -> dict:
        out: dict = {"kind": self.kind, "error": self.message}
        if self.owner_id is not None:
            out["owner_id"] = self.owner_id
        if self.path is not None:
            out["path"] = self.path
        if self.key is not None:
            out["key"] = self.key
        cause = self.__cause__
        if cause is not None:
            out["cause"] = f"{type(cause).__name__}: {cause}"
        return out


class PathOutsideBase(AvatarSyncError):
    kind = "path_outside_base"


class UnsafeRemoteKey(AvatarSyncError):
    kind = "unsafe_remote_key"


class OwnerUnparseable(AvatarSyncError):
    kind = "owner_unparseable"


class FailedRead(AvatarSyncError):
    kind = "failed_read"


class FailedWrite(AvatarSyncError):
    kind = "failed_write"


class FailedPointerUpdate(AvatarSyncError):
    kind = "failed_pointer_update"


class OwnerNotFound(FailedPointerUpdate):
    kind = "owner_not_found"


class PointerWriteFailed(FailedPointerUpdate):
    kind = "pointer_write_failed"


class EnumerationFailed(AvatarSyncError):
    kind = "enumeration_failed"


class Cancelled(AvatarSyncError):
    kind = "cancelled"

    def __init__(self, message: str = "run_cancelled", **kwargs):
        super().__init__(message, **kwargs)


class ObjectStoreError(Exception):
    """Raised by object store adapters; the transfer engine maps it to a direction-specific kind."""

    def __init__(self, operation: str, message: str, code: Optional[str] = None):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.code = code
