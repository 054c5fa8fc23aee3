# dotstow - deploy dotfiles packages with GNU Stow
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Conflict reporting and forced resolution across packages.
"""

from __future__ import annotations

import os
import shutil
import sys
from functools import partial
from typing import Sequence

from dotstow.detect import detect_conflicts
from dotstow.types import ConflictKind, ConflictReport, ResolveResult
from dotstow.util import (
    PROGRAM_NAME,
    blank,
    debug,
    error,
    info,
    is_within,
    step,
    tildify,
    warn,
)

RULE = "-" * 67


def collect_conflicts(
    base_dir: str, packages: Sequence[str], target_root: str
) -> ConflictReport:
    """Run detection for each package and tag every record with its package."""
    report = ConflictReport()
    for package in packages:
        package_dir = os.path.join(base_dir, package)
        if not os.path.isdir(package_dir):
            continue
        for conflict in detect_conflicts(package_dir, target_root):
            report.conflicts.append(conflict.with_package(package))
    return report


def check_all_conflicts(
    base_dir: str, packages: Sequence[str], target_root: str
) -> ConflictReport:
    """
    Check all packages for conflicts and print a grouped report.

    Returns the report; it is truthy when any conflict was found so the
    caller can decide to abort.
    """
    report = collect_conflicts(base_dir, packages, target_root)
    if report:
        print_report(report)
    return report


def render_report(report: ConflictReport) -> list[tuple[str, str]]:
    """
    Lay out the report as (level, text) pairs.

    Levels are "blank", "info", "step", "warn" and "error", matching the
    output functions in dotstow.util.
    """
    lines: list[tuple[str, str]] = [
        ("blank", ""),
        ("error", "Conflicts detected that would prevent stow from running:"),
        ("blank", ""),
    ]

    current_package = None
    for conflict in report:
        if conflict.package != current_package:
            if current_package is not None:
                lines.append(("blank", ""))
            lines.append(("warn", f"[{conflict.package}]"))
            current_package = conflict.package

        lines.append(("error", f"  {conflict.path}"))
        if conflict.kind is ConflictKind.SYMLINK:
            lines.append(
                ("info", f"    -> symlink to {conflict.link_target} (not managed by stow)")
            )
        else:
            lines.append(("info", "    -> regular file/directory (would be overwritten)"))

    lines += [
        ("blank", ""),
        ("info", RULE),
        ("warn", "How to resolve:"),
        ("blank", ""),
        ("info", "Option 1: Remove conflicting symlinks/files automatically"),
        ("step", f"{PROGRAM_NAME} --force"),
        ("blank", ""),
        ("info", "Option 2: Adopt existing files into stow (keeps current content)"),
        ("step", f"{PROGRAM_NAME} --adopt"),
        ("blank", ""),
        ("info", "Option 3: Remove manually, then re-run:"),
    ]
    lines += [("info", f'  rm "{path}"') for path in report.paths()]
    lines += [
        ("info", f"  {PROGRAM_NAME}"),
        ("info", RULE),
        ("blank", ""),
    ]
    return lines


def format_report(report: ConflictReport) -> str:
    """Plain-text version of the report, without glyphs or colour."""
    return "\n".join(text for _, text in render_report(report))


def print_report(report: ConflictReport) -> None:
    """Print the whole report to stdout, warnings and errors included."""
    emit = {
        "info": info,
        "step": step,
        "warn": partial(warn, file=sys.stdout),
        "error": partial(error, file=sys.stdout),
    }
    for level, text in render_report(report):
        if level == "blank":
            blank()
        else:
            emit[level](text)


def is_under_removed_path(path: str, removed_paths: Sequence[str]) -> bool:
    """True if path is one of removed_paths or lies below one of them."""
    return any(is_within(path, removed) for removed in removed_paths)


def remove_conflict(path: str, home: str = "") -> bool:
    """
    Remove a conflicting file, directory or symlink.

    Links are unlinked, never followed. Returns False if nothing was there.
    Raises OSError if the removal fails.
    """
    if not os.path.lexists(path):
        return False

    step(f"Removing conflict: {tildify(path, home)}")
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.unlink(path)
    return True


def handle_conflicts(
    forced: bool, base_dir: str, packages: Sequence[str], target_root: str
) -> ResolveResult:
    """
    Delete every conflicting path so stow can run.

    Does nothing unless forced is True. Detection is re-run per package so
    removals made for earlier packages are taken into account. A failure on
    one path does not stop the others; failures are counted in the result.
    """
    result = ResolveResult()
    if not forced:
        return result

    for package in packages:
        package_dir = os.path.join(base_dir, package)
        if not os.path.isdir(package_dir):
            continue

        for conflict in detect_conflicts(package_dir, target_root):
            path = conflict.path
            if not path:
                error("Empty path - aborting removal")
                continue

            if is_under_removed_path(path, result.removed):
                debug(2, 1, f"{path} already removed with a parent")
                result.skipped.append(path)
                continue

            try:
                remove_conflict(path, target_root)
            except OSError as e:
                error(f"Failed to remove {path}: {e.strerror or e}")
                result.failed.append((path, str(e)))
                continue
            result.removed.append(path)

    if result.failed:
        count = len(result.failed)
        warn(f"{count} conflict{'s' if count != 1 else ''} could not be removed")

    return result
