import os
from pathlib import Path

import pytest

from avatarsync.core.errors import EnumerationFailed
from avatarsync.migration.walker import OwnerDir, OwnerDirectoryWalker, iter_asset_files, parse_owner_id


@pytest.mark.parametrize(
    "name,expected",
    [
        ("42", 42),
        ("0", 0),
        ("007", 7),
        ("abc", None),
        ("-1", None),
        ("+7", None),
        (" 7", None),
        ("4 2", None),
        ("４２", None),
        ("", None),
        ("9" * 30, None),
    ],
)
def test_parse_owner_id(name, expected):
    assert parse_owner_id(name) == expected


def _owners(tmp_path: Path) -> Path:
    root = tmp_path / "users"
    (root / "42" / "avatars").mkdir(parents=True)
    (root / "43").mkdir()
    (root / "abc" / "avatars").mkdir(parents=True)
    (root / "readme.txt").write_text("not an owner", encoding="utf-8")
    return root


def test_walker_yields_numeric_owner_dirs_only(tmp_path: Path):
    root = _owners(tmp_path)
    skipped = []

    owners = list(OwnerDirectoryWalker(root, on_skip=lambda name, path: skipped.append(name)))

    assert sorted(o.owner_id for o in owners) == [42, 43]
    assert skipped == ["abc"]
    by_id = {o.owner_id: o for o in owners}
    assert by_id[42].assets_root == root / "42" / "avatars"


def test_walker_logs_unparseable_names(tmp_path: Path):
    root = _owners(tmp_path)
    lines = []

    list(OwnerDirectoryWalker(root, log_func=lambda *args: lines.append(args)))

    assert any(level == "WARN" and message == "owner_dir_unparseable" for level, _m, message, _d in lines)


def test_walker_is_not_restartable(tmp_path: Path):
    walker = OwnerDirectoryWalker(_owners(tmp_path))
    list(walker)
    with pytest.raises(RuntimeError):
        iter(walker)


def test_walker_missing_root_is_enumeration_failure(tmp_path: Path):
    with pytest.raises(EnumerationFailed):
        list(OwnerDirectoryWalker(tmp_path / "missing"))


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_walker_does_not_dispatch_the_same_subtree_twice(tmp_path: Path):
    root = tmp_path / "users"
    (root / "42" / "avatars").mkdir(parents=True)
    try:
        os.symlink(root / "42", root / "7", target_is_directory=True)
    except OSError:
        pytest.skip("cannot create symlinks here")

    owners = list(OwnerDirectoryWalker(root))

    assert len(owners) == 1
    assert owners[0].owner_id in (7, 42)


def test_iter_asset_files_is_recursive_and_skips_directories(tmp_path: Path, make_file):
    owner = OwnerDir(owner_id=1, root=tmp_path / "1", assets_root=tmp_path / "1" / "avatars")
    make_file(owner.assets_root / "a.png", b"a")
    make_file(owner.assets_root / "old" / "b.png", b"b")
    (owner.assets_root / "empty").mkdir()
    make_file(owner.root / "other" / "ignored.png", b"x")

    files = sorted(p.relative_to(owner.assets_root).as_posix() for p in iter_asset_files(owner))

    assert files == ["a.png", "old/b.png"]


def test_iter_asset_files_without_assets_dir_yields_nothing(tmp_path: Path):
    (tmp_path / "5").mkdir()
    owner = OwnerDir(owner_id=5, root=tmp_path / "5", assets_root=tmp_path / "5" / "avatars")
    assert list(iter_asset_files(owner)) == []
