from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from ..core.errors import EnumerationFailed

OWNER_ID_RE = re.compile(r"[0-9]+")
MAX_OWNER_ID = 2**63 - 1


def parse_owner_id(name: str) -> Optional[int]:
    """Return the owner id for a directory name, or None when the owner is unknown.

    Only plain ASCII digits are accepted; signs, whitespace and other unicode
    digits are rejected. Values beyond a signed 64-bit id are rejected too.
    """
    if not OWNER_ID_RE.fullmatch(name):
        return None
    value = int(name)
    if value > MAX_OWNER_ID:
        return None
    return value


@dataclass(frozen=True)
class OwnerDir:
    owner_id: int
    root: Path
    assets_root: Path


def _raise(err: OSError):
    raise err


def iter_asset_files(owner: OwnerDir) -> Iterator[Path]:
    """Yield every file under the owner's assets subdirectory, in traversal order.

    A missing assets directory yields nothing. Errors reading a directory
    inside the subtree propagate as OSError.
    """
    if not owner.assets_root.is_dir():
        return
    for root, _dirnames, filenames in os.walk(owner.assets_root, onerror=_raise):
        root_path = Path(root)
        for name in filenames:
            full = root_path / name
            if full.is_file():
                yield full


class OwnerDirectoryWalker:
    """Enumerate ``(owner_id, subtree)`` pairs under a root holding one directory per owner.

    Iteration is lazy and happens once. An owner root is never yielded when
    it is, or lies inside, a root that was already dispatched during this
    walk (for example an owner directory that is a symlink to another).
    """

    def __init__(
        self,
        root,
        assets_dir: str = "avatars",
        on_skip: Optional[Callable[[str, Path], None]] = None,
        log_func=None,
    ):
        self.root = Path(root)
        self.assets_dir = assets_dir
        self.on_skip = on_skip
        self.log_func = log_func or (lambda *_: None)
        self._dispatched: list[Path] = []
        self._started = False

    def _log(self, level: str, message: str, detail: Optional[dict] = None):
        self.log_func(level, "walker", message, json.dumps(detail, ensure_ascii=False) if detail else None)

    def is_dispatched(self, path: Path) -> bool:
        real = Path(os.path.realpath(path))
        for done in self._dispatched:
            if real == done or done in real.parents:
                return True
        return False

    def __iter__(self) -> Iterator[OwnerDir]:
        if self._started:
            raise RuntimeError("owner_walk_already_consumed")
        self._started = True
        return self._walk()

    def _walk(self) -> Iterator[OwnerDir]:
        try:
            entries = os.scandir(self.root)
        except OSError as e:
            raise EnumerationFailed(f"cannot_list_owner_root: {e}", path=str(self.root)) from e

        with entries:
            while True:
                try:
                    entry = next(entries)
                except StopIteration:
                    break
                except OSError as e:
                    raise EnumerationFailed(f"owner_root_listing_failed: {e}", path=str(self.root)) from e

                try:
                    is_dir = entry.is_dir()
                except OSError:
                    is_dir = False
                if not is_dir:
                    continue

                owner_path = Path(entry.path)
                owner_id = parse_owner_id(entry.name)
                if owner_id is None:
                    self._log("WARN", "owner_dir_unparseable", {"name": entry.name, "path": str(owner_path)})
                    if self.on_skip is not None:
                        self.on_skip(entry.name, owner_path)
                    continue

                if self.is_dispatched(owner_path):
                    self._log("INFO", "owner_dir_already_dispatched", {"owner_id": owner_id, "path": str(owner_path)})
                    continue
                self._dispatched.append(Path(os.path.realpath(owner_path)))

                yield OwnerDir(owner_id=owner_id, root=owner_path, assets_root=owner_path / self.assets_dir)
