# dotstow - deploy dotfiles packages with GNU Stow
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Type definitions for dotstow.

This module contains the enums, dataclasses and exceptions shared by the
detection, backup, deployment and verification code.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ConflictKind(Enum):
    """What is sitting at a target path that blocks linking."""

    FILE = "file"
    SYMLINK = "symlink"


class DeployState(Enum):
    """Terminal states of one deployment run."""

    SUCCESS = "success"
    ABORTED_ON_CONFLICT = "aborted-on-conflict"
    ABORTED_ON_MISSING_SOURCE = "aborted-on-missing-source"
    FAILED_DURING_DEPLOY = "failed-during-deploy"


_KIND_NAMES = {kind.value: kind for kind in ConflictKind}


@dataclass(frozen=True, slots=True)
class ConflictRecord:
    """
    One target path that would collide with a package.

    Attributes:
        kind: FILE for a regular file or directory, SYMLINK for a foreign link
        path: Absolute target path
        link_target: Raw destination of the existing link (SYMLINK only)
        package: Package that wanted to write to path, once aggregated
    """

    kind: ConflictKind
    path: str
    link_target: Optional[str] = None
    package: Optional[str] = None

    def __post_init__(self) -> None:
        if self.kind is ConflictKind.FILE and self.link_target is not None:
            raise ValueError(f"file conflict cannot carry a link target: {self.path}")

    @classmethod
    def file(cls, path: str) -> ConflictRecord:
        return cls(ConflictKind.FILE, path)

    @classmethod
    def symlink(cls, path: str, link_target: str) -> ConflictRecord:
        return cls(ConflictKind.SYMLINK, path, link_target)

    def with_package(self, package: str) -> ConflictRecord:
        """Return a copy tagged with the package that owns the path."""
        return dataclasses.replace(self, package=package)

    def serialize(self) -> str:
        """Compact colon form: [package:]kind:path[:link_target]."""
        parts = [self.kind.value, self.path]
        if self.kind is ConflictKind.SYMLINK:
            parts.append(self.link_target or "")
        if self.package is not None:
            parts.insert(0, self.package)
        return ":".join(parts)

    @classmethod
    def parse(cls, text: str) -> ConflictRecord:
        """
        Parse the compact colon form produced by serialize().

        The first field is the kind when it names one, otherwise it is the
        package and the kind follows. File paths may contain colons; for
        symlinks the link target is always the last field.
        """
        first, sep, rest = text.partition(":")
        if not sep:
            raise ValueError(f"malformed conflict: {text!r}")

        package = None
        if first in _KIND_NAMES:
            kind_name = first
        else:
            package = first
            kind_name, sep, rest = rest.partition(":")
            if not sep or kind_name not in _KIND_NAMES:
                raise ValueError(f"unknown conflict kind in {text!r}")

        kind = _KIND_NAMES[kind_name]
        if kind is ConflictKind.FILE:
            if not rest:
                raise ValueError(f"conflict without a path: {text!r}")
            return cls(kind, rest, package=package)

        path, sep, link_target = rest.rpartition(":")
        if not sep or not path:
            raise ValueError(f"symlink conflict without a link target: {text!r}")
        return cls(kind, path, link_target, package)

    def __str__(self) -> str:
        return self.serialize()


@dataclass
class ConflictReport:
    """Conflicts for several packages, grouped in the order they were found."""

    conflicts: list[ConflictRecord] = field(default_factory=list)

    def packages(self) -> list[str]:
        """Package names in first-seen order."""
        seen: dict[str, None] = {}
        for conflict in self.conflicts:
            seen.setdefault(conflict.package or "", None)
        return list(seen)

    def paths(self) -> list[str]:
        return [conflict.path for conflict in self.conflicts]

    def __bool__(self) -> bool:
        return bool(self.conflicts)

    def __len__(self) -> int:
        return len(self.conflicts)

    def __iter__(self):
        return iter(self.conflicts)


@dataclass
class ResolveResult:
    """Outcome of a forced conflict removal pass."""

    removed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


@dataclass
class BackupResult:
    """
    Outcome of create_backup().

    backup_dir is None when nothing needed backing up, when the backup was
    skipped, or when the directory itself could not be created (in which
    case error is set).
    """

    backup_dir: Optional[str] = None
    backed_up: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)
    skipped: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return not self.failed and self.error is None


@dataclass
class DeploymentResult:
    """Per-invocation aggregate of a deploy_packages() run."""

    stowed: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failed_package: Optional[str] = None
    error_output: str = ""

    @property
    def success(self) -> bool:
        return self.failed_package is None


@dataclass
class VerifyReport:
    """Verified links and itemised issues from verify_installation()."""

    verified: list[str] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)

    @property
    def all_good(self) -> bool:
        return not self.issues


@dataclass(frozen=True, slots=True)
class PackageSpec:
    """
    A configured package.

    backup_paths and verify_paths are relative to the target directory.
    """

    name: str
    backup_paths: tuple[str, ...] = ()
    verify_paths: tuple[str, ...] = ()


class DotstowError(Exception):
    """Fatal error; cli.main() prints the message and exits with errno."""

    def __init__(self, message: str, errno: int = 1):
        super().__init__(message)
        self.message = message
        self.errno = errno


class DotstowCLIError(DotstowError):
    """Usage error. The message is printed verbatim."""


class ConfigError(DotstowError):
    """Invalid configuration value or package table entry."""


class SourceMissingError(DotstowError):
    state = DeployState.ABORTED_ON_MISSING_SOURCE

    def __init__(self, path: str):
        super().__init__(f"Cannot access {path}")
        self.path = path


class ConflictsFoundError(DotstowError):
    state = DeployState.ABORTED_ON_CONFLICT

    def __init__(self, report: ConflictReport):
        count = len(report)
        noun = "conflict" if count == 1 else "conflicts"
        super().__init__(f"{count} {noun} found; nothing was deployed")
        self.report = report


class DeployFailedError(DotstowError):
    state = DeployState.FAILED_DURING_DEPLOY

    def __init__(self, result: DeploymentResult):
        super().__init__(f"stow failed for package {result.failed_package}")
        self.result = result
