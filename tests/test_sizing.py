"""Tests for directory size estimation."""

import os
from pathlib import Path

import pytest

from missionbar.sizing import directory_size


def _write(path: Path, size: int) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)


def test_empty_directory_is_zero(tmp_path: Path) -> None:
    assert directory_size(tmp_path) == 0


def test_sums_nested_files(tmp_path: Path) -> None:
    _write(tmp_path / "a", 10)
    _write(tmp_path / "b", 20)
    _write(tmp_path / "c", 30)
    _write(tmp_path / "sub" / "deeper" / "d", 5)

    assert directory_size(tmp_path) == 65


def test_empty_subdirectories_add_nothing(tmp_path: Path) -> None:
    (tmp_path / "one" / "two").mkdir(parents=True)
    _write(tmp_path / "file", 7)

    assert directory_size(tmp_path) == 7


def test_missing_root_is_zero(tmp_path: Path) -> None:
    assert directory_size(tmp_path / "does-not-exist") == 0


def test_accepts_str_path(tmp_path: Path) -> None:
    _write(tmp_path / "a", 3)
    assert directory_size(str(tmp_path)) == 3


def test_symlinked_directory_not_followed(tmp_path: Path) -> None:
    """A link to a directory counts only the link itself."""
    outside = tmp_path / "outside"
    _write(outside / "big", 10_000)
    root = tmp_path / "root"
    _write(root / "small", 10)
    link = root / "link"
    link.symlink_to(outside, target_is_directory=True)

    assert directory_size(root) == 10 + os.lstat(link).st_size


def test_symlink_cycle_terminates(tmp_path: Path) -> None:
    root = tmp_path / "root"
    _write(root / "file", 4)
    (root / "loop").symlink_to(root, target_is_directory=True)

    assert directory_size(root) == 4 + os.lstat(root / "loop").st_size


@pytest.mark.skipif(
    hasattr(os, "geteuid") and os.geteuid() == 0, reason="root ignores permissions"
)
def test_unreadable_subdirectory_contributes_zero(tmp_path: Path) -> None:
    _write(tmp_path / "visible", 8)
    locked = tmp_path / "locked"
    _write(locked / "hidden", 100)
    locked.chmod(0)
    try:
        assert directory_size(tmp_path) == 8
    finally:
        locked.chmod(0o755)
