# dotstow - deploy dotfiles packages with GNU Stow
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""Post-install verification. Purely informational; never fails."""

from __future__ import annotations

import os
from typing import Sequence

from dotstow.config import DotstowConfig
from dotstow.types import VerifyReport
from dotstow.util import blank, info, is_managed, ok, warn


def check_links(expected_links: Sequence[str], config: DotstowConfig) -> VerifyReport:
    report = VerifyReport()
    for link in expected_links:
        if is_managed(link, config.managed_roots, config.target):
            report.verified.append(link)
        elif os.path.exists(link):
            report.issues.append(f"{link} exists but not managed by stow")
        else:
            report.issues.append(f"{link} not found")
    return report


def verify_installation(expected_links: Sequence[str], config: DotstowConfig) -> VerifyReport:
    """Confirm each expected link resolves into a managed tree and print a summary."""
    report = check_links(expected_links, config)

    blank()
    if report.all_good:
        ok(f"Installation verified ({len(report.verified)} configs)")
    else:
        warn("Installation complete with warnings:")
        for issue in report.issues:
            warn(f"  - {issue}")
    return report


def work_overlay_status(config: DotstowConfig) -> list[tuple[str, bool]]:
    """(path, installed) for each work overlay file."""
    return [(path, os.path.lexists(path)) for path in config.work_paths()]


def print_work_overlay_status(config: DotstowConfig) -> None:
    blank()
    info("Work overlay status:")
    for path, installed in work_overlay_status(config):
        if installed:
            ok(path)
        else:
            info(f"○ {path} (not installed)")
