"""Drive whole migration and fetch runs.

Both orchestrators share one failure policy: a single file (or object) that
fails is recorded and the loop moves on; an owner subtree that cannot be
read is recorded at the owner boundary; failing to enumerate the root (or
the bucket) ends the run with status ``failed``.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from ..core.cancel import CancelToken, check
from ..core.errors import (
    Cancelled,
    EnumerationFailed,
    FailedPointerUpdate,
    FailedRead,
    FailedWrite,
    ObjectStoreError,
    OwnerUnparseable,
    PathOutsideBase,
    UnsafeRemoteKey,
)
from .keys import is_directory_marker, safe_local_path, to_remote_key
from .outcomes import OutcomeKind, RunSummary, TransferOutcome
from .walker import OwnerDir, OwnerDirectoryWalker, iter_asset_files, parse_owner_id


class _Orchestrator:
    module = "orchestrator"

    def __init__(self, log_func=None):
        self.log_func = log_func or (lambda *_: None)

    def _log(self, level: str, message: str, detail: Optional[dict] = None):
        self.log_func(level, self.module, message, json.dumps(detail, ensure_ascii=False) if detail else None)

    def _close(self, summary: RunSummary, status: Optional[str] = None) -> RunSummary:
        summary.finish(status)
        self._log(
            "ERROR" if summary.status == "failed" else "INFO",
            f"{summary.run_type}_finished",
            {"status": summary.status, **summary.counts()},
        )
        return summary


class MigrationOrchestrator(_Orchestrator):
    """Upload every owner's asset files and point each owner's record at the result."""

    module = "migrate"

    def __init__(
        self,
        base_dir,
        bucket: str,
        engine,
        pointer,
        owners_dir: str = "users",
        assets_dir: str = "avatars",
        log_func=None,
    ):
        super().__init__(log_func)
        self.base_dir = Path(base_dir)
        self.bucket = bucket
        self.engine = engine
        self.pointer = pointer
        self.owners_dir = owners_dir
        self.assets_dir = assets_dir

    @property
    def owners_root(self) -> Path:
        return self.base_dir / self.owners_dir

    def run(self, cancel: Optional[CancelToken] = None) -> RunSummary:
        summary = RunSummary(run_type="migrate")
        self._log("INFO", "migrate_started", {"owners_root": str(self.owners_root), "bucket": self.bucket})

        def on_skip(name: str, path: Path):
            err = OwnerUnparseable(f"owner_dir_unparseable: {name}", path=str(path))
            summary.record(TransferOutcome.failed(OutcomeKind.SKIPPED_OWNER_UNPARSEABLE, err))

        walker = OwnerDirectoryWalker(self.owners_root, self.assets_dir, on_skip=on_skip, log_func=self.log_func)
        try:
            for owner in walker:
                summary.owners_seen += 1
                self._migrate_owner(owner, summary, cancel)
        except Cancelled as e:
            self._log("WARN", "migrate_cancelled", {"error": e.message})
            return self._close(summary, "cancelled")
        except EnumerationFailed as e:
            summary.fatal_error = f"{e.kind}: {e.message}"
            self._log("ERROR", "owner_root_enumeration_failed", e.context())
            return self._close(summary, "failed")
        return self._close(summary)

    def _migrate_owner(self, owner: OwnerDir, summary: RunSummary, cancel: Optional[CancelToken]):
        try:
            for path in iter_asset_files(owner):
                self._migrate_file(owner, path, summary, cancel)
        except OSError as e:
            summary.record(
                TransferOutcome(
                    kind=OutcomeKind.FAILED_READ,
                    owner_id=owner.owner_id,
                    path=str(owner.assets_root),
                    error=f"owner_subtree_unreadable: {e}",
                    error_kind="failed_read",
                )
            )
            self._log("ERROR", "owner_subtree_unreadable", {"owner_id": owner.owner_id, "error": str(e)})

    def _migrate_file(self, owner: OwnerDir, path: Path, summary: RunSummary, cancel: Optional[CancelToken]):
        check(cancel)
        owner_id = owner.owner_id
        self._log("INFO", "file_processing", {"owner_id": owner_id, "path": str(path)})

        try:
            key = to_remote_key(self.base_dir, path)
        except PathOutsideBase as e:
            summary.record(TransferOutcome.failed(OutcomeKind.FAILED_KEY, e, owner_id=owner_id))
            self._log("ERROR", "key_derivation_failed", {"owner_id": owner_id, **e.context()})
            return

        try:
            result = self.engine.upload(path, self.bucket, key, cancel)
        except FailedRead as e:
            summary.record(TransferOutcome.failed(OutcomeKind.FAILED_READ, e, owner_id=owner_id))
            self._log("ERROR", "upload_read_failed", {"owner_id": owner_id, **e.context()})
            return
        except FailedWrite as e:
            summary.record(TransferOutcome.failed(OutcomeKind.FAILED_WRITE, e, owner_id=owner_id))
            self._log("ERROR", "upload_write_failed", {"owner_id": owner_id, **e.context()})
            return

        uploaded = dict(owner_id=owner_id, path=str(path), key=key, url=result.url, size=result.size, digest=result.digest)
        try:
            self.pointer.update_pointer(owner_id, result.url, cancel)
        except FailedPointerUpdate as e:
            # The object stays in the bucket; it is reported as orphaned in the summary.
            summary.record(TransferOutcome.failed(OutcomeKind.FAILED_POINTER_UPDATE, e, **uploaded))
            self._log("ERROR", "pointer_update_failed", {**e.context(), "key": key, "url": result.url})
            return
        except Cancelled as e:
            summary.record(TransferOutcome.failed(OutcomeKind.FAILED_POINTER_UPDATE, e, **uploaded))
            raise

        summary.record(TransferOutcome(kind=OutcomeKind.SUCCEEDED, **uploaded))
        self._log("INFO", "file_migrated", {"owner_id": owner_id, "key": key, "url": result.url, "size": result.size})


def owner_id_from_key(key: str, owners_dir: str = "users") -> Optional[int]:
    parts = key.split("/")
    if len(parts) >= 2 and parts[0] == owners_dir:
        return parse_owner_id(parts[1])
    return None


class BulkFetchOrchestrator(_Orchestrator):
    """Download every object in the bucket into a local directory, keeping keys as relative paths."""

    module = "fetch"

    def __init__(self, download_dir, bucket: str, engine, store, owners_dir: str = "users", log_func=None):
        super().__init__(log_func)
        self.download_dir = Path(download_dir)
        self.bucket = bucket
        self.engine = engine
        self.store = store
        self.owners_dir = owners_dir

    def run(self, cancel: Optional[CancelToken] = None) -> RunSummary:
        summary = RunSummary(run_type="fetch")
        self._log("INFO", "fetch_started", {"bucket": self.bucket, "download_dir": str(self.download_dir)})
        try:
            check(cancel)
            keys = iter(self.store.iter_keys(self.bucket))
            while True:
                try:
                    key = next(keys)
                except StopIteration:
                    break
                except ObjectStoreError as e:
                    raise EnumerationFailed(f"bucket_listing_failed: {e}") from e
                self._fetch_key(key, summary, cancel)
        except Cancelled as e:
            self._log("WARN", "fetch_cancelled", {"error": e.message})
            return self._close(summary, "cancelled")
        except EnumerationFailed as e:
            summary.fatal_error = f"{e.kind}: {e.message}"
            self._log("ERROR", "bucket_enumeration_failed", e.context())
            return self._close(summary, "failed")
        return self._close(summary)

    def _fetch_key(self, key: str, summary: RunSummary, cancel: Optional[CancelToken]):
        check(cancel)
        if is_directory_marker(key):
            self._log("DEBUG", "directory_marker_skipped", {"key": key})
            return

        owner_id = owner_id_from_key(key, self.owners_dir)
        try:
            local_path = safe_local_path(self.download_dir, key)
        except UnsafeRemoteKey as e:
            summary.record(TransferOutcome.failed(OutcomeKind.SKIPPED_UNSAFE_KEY, e, owner_id=owner_id))
            self._log("WARN", "unsafe_key_skipped", e.context())
            return

        self._log("INFO", "object_downloading", {"key": key})
        try:
            result = self.engine.download(self.bucket, key, local_path, cancel)
        except FailedRead as e:
            summary.record(TransferOutcome.failed(OutcomeKind.FAILED_READ, e, owner_id=owner_id))
            self._log("ERROR", "download_read_failed", e.context())
            return
        except FailedWrite as e:
            summary.record(TransferOutcome.failed(OutcomeKind.FAILED_WRITE, e, owner_id=owner_id))
            self._log("ERROR", "download_write_failed", e.context())
            return

        summary.record(
            TransferOutcome(
                kind=OutcomeKind.SUCCEEDED,
                owner_id=owner_id,
                path=str(result.path),
                key=key,
                url=self.engine.canonical_url(self.bucket, key),
                size=result.size,
            )
        )
