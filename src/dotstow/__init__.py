# dotstow - deploy dotfiles packages with GNU Stow
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
dotstow - deploy dotfiles packages with GNU Stow

Each package is a directory tree under the dotfiles directory that mirrors
where its files belong under the target (normally $HOME). Before stow runs,
dotstow looks for anything already sitting at those target paths, backs it
up, and either aborts with a report or removes it (force mode).

Basic usage::

    from dotstow import DotstowConfig, detect_conflicts, deploy_base

    config = DotstowConfig(dotfiles_dir="/home/me/.dotfiles", target="/home/me")

    for conflict in detect_conflicts("/home/me/.dotfiles/zsh", config.target):
        print(conflict.kind.value, conflict.path)

    result = deploy_base(config, ["zsh", "git"])
    print("Stowed:", result.stowed, "Missing:", result.missing)

Force mode removes conflicts first::

    deploy_base(config, ["nvim"], force=True)
"""

from dotstow.backup import create_backup, needs_backup, prune_backups
from dotstow.config import DotstowConfig, parse_package_entry, resolve_packages
from dotstow.deploy import deploy_base, deploy_packages, deploy_work
from dotstow.detect import detect_conflicts
from dotstow.resolve import check_all_conflicts, handle_conflicts
from dotstow.types import (
    BackupResult,
    ConflictKind,
    ConflictRecord,
    ConflictReport,
    ConflictsFoundError,
    DeployFailedError,
    DeploymentResult,
    DeployState,
    DotstowError,
    PackageSpec,
    ResolveResult,
    SourceMissingError,
    VerifyReport,
)
from dotstow.util import VERSION as __version__
from dotstow.verify import verify_installation

# CLI entry point
from dotstow.cli import main

__all__ = [
    "detect_conflicts",
    "check_all_conflicts",
    "handle_conflicts",
    "needs_backup",
    "create_backup",
    "prune_backups",
    "deploy_packages",
    "deploy_base",
    "deploy_work",
    "verify_installation",
    "resolve_packages",
    "parse_package_entry",
    "DotstowConfig",
    "PackageSpec",
    "ConflictKind",
    "ConflictRecord",
    "ConflictReport",
    "ResolveResult",
    "BackupResult",
    "DeploymentResult",
    "VerifyReport",
    "DeployState",
    "DotstowError",
    "SourceMissingError",
    "ConflictsFoundError",
    "DeployFailedError",
    "__version__",
    "main",
]
