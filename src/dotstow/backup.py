# dotstow - deploy dotfiles packages with GNU Stow
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Backups of existing targets before anything destructive happens.

Every path that exists but is not yet stow-managed is copied into one
timestamped directory per run, named <prefix><YYYYMMDD-HHMMSS>. Symlinks are
copied as symlinks, so broken links never abort a backup.
"""

from __future__ import annotations

import os
import shutil
import time
from datetime import datetime
from typing import Iterable, Optional, Sequence

from dotstow.config import DotstowConfig
from dotstow.types import BackupResult
from dotstow.util import debug, error, info, is_managed, is_within, ok, step, tildify


def _needs_backup(path: str, config: DotstowConfig) -> bool:
    return os.path.lexists(path) and not is_managed(
        path, config.managed_roots, config.target
    )


def needs_backup(paths: Iterable[str], config: DotstowConfig) -> bool:
    """True if any path exists (broken links included) and is not managed."""
    return any(_needs_backup(path, config) for path in paths)


def backup_dir_name(config: DotstowConfig, now: Optional[datetime] = None) -> str:
    """Return a fresh backup directory path; never one that already exists."""
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    base = os.path.join(config.backup_dir, f"{config.backup_prefix}{stamp}")

    candidate = base
    suffix = 0
    while os.path.lexists(candidate):
        suffix += 1
        candidate = f"{base}-{suffix}"
    return candidate


def backup_destination(path: str, backup_dir: str, target: str) -> str:
    """Where path goes inside backup_dir: its target-relative location."""
    if is_within(path, target) and path.rstrip("/") != target.rstrip("/"):
        return os.path.join(backup_dir, os.path.relpath(path, target))
    return os.path.join(backup_dir, os.path.basename(path.rstrip("/")))


def copy_preserving_links(src: str, dst: str) -> None:
    """Copy a file, directory or symlink without dereferencing links."""
    os.makedirs(os.path.dirname(dst), exist_ok=True)
    if os.path.islink(src):
        os.symlink(os.readlink(src), dst)
    elif os.path.isdir(src):
        shutil.copytree(src, dst, symlinks=True)
    else:
        shutil.copy2(src, dst, follow_symlinks=False)


def create_backup(
    paths: Sequence[str],
    config: DotstowConfig,
    skip: bool = False,
    now: Optional[datetime] = None,
) -> BackupResult:
    """
    Copy every unmanaged path into a new timestamped backup directory.

    All paths are attempted even if some copies fail; failures are listed
    separately from successes in the returned result.
    """
    result = BackupResult()

    if not needs_backup(paths, config):
        debug(2, 0, "Nothing needs backing up")
        return result

    if skip:
        info("Skipping backup")
        result.skipped = True
        return result

    backup_dir = backup_dir_name(config, now)
    try:
        os.makedirs(backup_dir)
    except OSError as e:
        error(f"Failed to create backup directory: {backup_dir}")
        result.error = f"cannot create {backup_dir}: {e.strerror or e}"
        return result
    result.backup_dir = backup_dir

    for path in paths:
        if not _needs_backup(path, config):
            continue
        dest = backup_destination(path, backup_dir, config.target)
        try:
            copy_preserving_links(path, dest)
        except (OSError, shutil.Error) as e:
            error(f"Failed to backup: {path}")
            debug(1, 1, str(e))
            result.failed.append((path, str(e)))
            continue
        debug(1, 1, f"backed up {path} -> {dest}")
        result.backed_up.append(path)

    if result.backed_up:
        count = len(result.backed_up)
        ok(f"Backed up {count} file{'s' if count != 1 else ''} to {tildify(backup_dir, config.target)}")
    return result


def list_backups(config: DotstowConfig) -> list[str]:
    """Existing backup directories, oldest name first."""
    try:
        names = os.listdir(config.backup_dir)
    except OSError:
        return []
    return sorted(
        os.path.join(config.backup_dir, name)
        for name in names
        if name.startswith(config.backup_prefix)
        and os.path.isdir(os.path.join(config.backup_dir, name))
        and not os.path.islink(os.path.join(config.backup_dir, name))
    )


def prune_backups(
    config: DotstowConfig, max_age_days: float = 7, now: Optional[float] = None
) -> list[str]:
    """Remove backup directories last modified more than max_age_days ago."""
    cutoff = (time.time() if now is None else now) - max_age_days * 86400
    removed: list[str] = []

    for path in list_backups(config):
        try:
            if os.lstat(path).st_mtime >= cutoff:
                continue
            step(f"Removing old backup: {tildify(path, config.target)}")
            shutil.rmtree(path)
        except OSError as e:
            error(f"Failed to remove {path}: {e.strerror or e}")
            continue
        removed.append(path)

    return removed
