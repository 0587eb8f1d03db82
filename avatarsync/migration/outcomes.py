from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from ..core.errors import AvatarSyncError


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class OutcomeKind(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED_OWNER_UNPARSEABLE = "skipped_owner_unparseable"
    SKIPPED_UNSAFE_KEY = "skipped_unsafe_key"
    FAILED_KEY = "failed_key"
    FAILED_READ = "failed_read"
    FAILED_WRITE = "failed_write"
    FAILED_POINTER_UPDATE = "failed_pointer_update"

    @property
    def is_failure(self) -> bool:
        return self.value.startswith("failed_")

    @property
    def is_skip(self) -> bool:
        return self.value.startswith("skipped_")


@dataclass
class TransferOutcome:
    kind: OutcomeKind
    owner_id: Optional[int] = None
    path: Optional[str] = None
    key: Optional[str] = None
    url: Optional[str] = None
    size: Optional[int] = None
    digest: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def failed(cls, kind: OutcomeKind, err: AvatarSyncError, **kwargs) -> "TransferOutcome":
        kwargs.setdefault("path", err.path)
        kwargs.setdefault("key", err.key)
        return cls(kind=kind, error=err.message, error_kind=err.kind, **kwargs)

    def to_dict(self) -> dict:
        out = {k: v for k, v in asdict(self).items() if v is not None}
        out["kind"] = self.kind.value
        return out


@dataclass
class RunSummary:
    run_type: str
    started_at: str = field(default_factory=now_iso)
    finished_at: Optional[str] = None
    status: str = "running"
    outcomes: List[TransferOutcome] = field(default_factory=list)
    owners_seen: int = 0
    fatal_error: Optional[str] = None

    def record(self, outcome: TransferOutcome) -> TransferOutcome:
        self.outcomes.append(outcome)
        return outcome

    @property
    def processed(self) -> int:
        return sum(1 for o in self.outcomes if not o.kind.is_skip)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.kind is OutcomeKind.SUCCEEDED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.kind.is_failure)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.kind.is_skip)

    @property
    def owners_skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.kind is OutcomeKind.SKIPPED_OWNER_UNPARSEABLE)

    def by_owner(self) -> Dict[Optional[int], List[TransferOutcome]]:
        grouped: Dict[Optional[int], List[TransferOutcome]] = {}
        for o in self.outcomes:
            grouped.setdefault(o.owner_id, []).append(o)
        return grouped

    def orphaned_keys(self) -> List[str]:
        """Keys written to the bucket whose pointer update did not take effect."""
        return [o.key for o in self.outcomes if o.kind is OutcomeKind.FAILED_POINTER_UPDATE and o.key]

    def finish(self, status: Optional[str] = None):
        self.finished_at = now_iso()
        if status is None:
            status = "partial" if self.failed else "success"
        self.status = status

    def counts(self) -> dict:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "owners_seen": self.owners_seen,
            "owners_skipped": self.owners_skipped,
        }

    def to_dict(self, include_outcomes: bool = True) -> dict:
        out = {
            "run_type": self.run_type,
            "status": self.status,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            **self.counts(),
            "orphaned_keys": self.orphaned_keys(),
        }
        if self.fatal_error:
            out["fatal_error"] = self.fatal_error
        if include_outcomes:
            out["outcomes"] = [o.to_dict() for o in self.outcomes]
        return out
