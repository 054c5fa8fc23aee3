# dotstow - deploy dotfiles packages with GNU Stow
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Conflict detection for dotfiles packages.

detect_conflicts() walks a package tree and, for every file and directory
that stow would place under the target, decides whether the corresponding
target path already exists in a way that would block linking. It is a pure
read-only scan.

Entries are visited in pre-order with names sorted within each directory,
so a directory is always checked before anything inside it and the result
order is reproducible.
"""

from __future__ import annotations

import os
import stat
from enum import Enum, auto
from typing import Iterator, Optional

from dotstow.types import ConflictRecord
from dotstow.util import debug, read_link, symlink_matches


class _Ancestor(Enum):
    NONE = auto()
    MANAGED = auto()
    ALREADY_REPORTED = auto()
    CONFLICT = auto()


def detect_conflicts(package_dir: str, target_root: str) -> list[ConflictRecord]:
    """
    Return the conflicts that stowing package_dir into target_root would hit.

    A missing package directory contributes nothing. Filesystem errors on
    individual entries are treated as "no conflict" for that entry.
    """
    if not os.path.isdir(package_dir):
        debug(2, 0, f"No package directory at {package_dir}")
        return []

    package_dir = package_dir.rstrip("/") or "/"
    target_root = target_root.rstrip("/") or "/"
    debug(2, 0, f"Scanning {package_dir} against {target_root}")

    scan = _Scan(package_dir, target_root)
    for rel_path, is_dir in walk_package(package_dir):
        scan.check(rel_path, is_dir)
    return scan.conflicts


def walk_package(package_dir: str) -> Iterator[tuple[str, bool]]:
    """
    Yield (relative_path, is_dir) for each file and directory in a package.

    Symlinks and special files inside the package are skipped, and
    unreadable directories are skipped along with their contents.
    """
    yield from _walk(package_dir, "")


def _walk(top: str, prefix: str) -> Iterator[tuple[str, bool]]:
    try:
        names = sorted(os.listdir(os.path.join(top, prefix) if prefix else top))
    except OSError as e:
        debug(3, 1, f"cannot read {prefix or top}: {e.strerror}")
        return

    for name in names:
        rel_path = f"{prefix}/{name}" if prefix else name
        try:
            st = os.lstat(os.path.join(top, rel_path))
        except OSError:
            continue

        if stat.S_ISDIR(st.st_mode):
            yield rel_path, True
            yield from _walk(top, rel_path)
        elif stat.S_ISREG(st.st_mode):
            yield rel_path, False


class _Scan:
    """State for one detection pass over one package."""

    def __init__(self, package_dir: str, target_root: str):
        self.package_dir = package_dir
        self.target_root = target_root
        self.conflicts: list[ConflictRecord] = []
        # Target paths already reported in this pass
        self.checked: set[str] = set()

    def check(self, rel_path: str, is_dir: bool) -> None:
        target_path = os.path.join(self.target_root, rel_path)
        debug(3, 1, f"Checking {'dir' if is_dir else 'file'} {rel_path}")

        try:
            ancestor = self._check_ancestors(target_path)
            if ancestor is not _Ancestor.NONE:
                return
            if is_dir:
                self._check_directory(rel_path, target_path)
            else:
                self._check_file(rel_path, target_path)
        except OSError as e:
            debug(3, 2, f"skipping {target_path}: {e}")

    def _report(self, conflict: ConflictRecord) -> None:
        if conflict.path in self.checked:
            debug(3, 2, f"already reported: {conflict.path}")
            return
        debug(3, 2, f"conflict: {conflict}")
        self.conflicts.append(conflict)
        self.checked.add(conflict.path)

    def _symlink_conflict(self, target_path: str, expected: str) -> Optional[ConflictRecord]:
        if symlink_matches(target_path, expected):
            return None
        return ConflictRecord.symlink(target_path, read_link(target_path))

    def _check_ancestors(self, target_path: str) -> _Ancestor:
        """
        Look for the nearest symlinked parent of target_path below the root.

        A parent linking back into the package means the whole subtree is
        already managed. A parent linking elsewhere is reported once and
        supersedes anything below it.
        """
        parent_path = os.path.dirname(target_path)
        while parent_path != self.target_root and parent_path != os.path.dirname(parent_path):
            if os.path.islink(parent_path):
                parent_rel = os.path.relpath(parent_path, self.target_root)
                expected = os.path.join(self.package_dir, parent_rel)

                if symlink_matches(parent_path, expected):
                    debug(3, 2, f"managed via {parent_path}")
                    return _Ancestor.MANAGED
                if parent_path in self.checked:
                    return _Ancestor.ALREADY_REPORTED

                self._report(ConflictRecord.symlink(parent_path, read_link(parent_path)))
                return _Ancestor.CONFLICT
            parent_path = os.path.dirname(parent_path)

        return _Ancestor.NONE

    def _check_directory(self, rel_path: str, target_path: str) -> None:
        if os.path.islink(target_path):
            expected = os.path.join(self.package_dir, rel_path)
            if conflict := self._symlink_conflict(target_path, expected):
                self._report(conflict)
        elif os.path.exists(target_path) and not os.path.isdir(target_path):
            self._report(ConflictRecord.file(target_path))

    def _check_file(self, rel_path: str, target_path: str) -> None:
        if os.path.islink(target_path):
            expected = os.path.join(self.package_dir, rel_path)
            if conflict := self._symlink_conflict(target_path, expected):
                self._report(conflict)
        elif os.path.exists(target_path):
            self._report(ConflictRecord.file(target_path))
