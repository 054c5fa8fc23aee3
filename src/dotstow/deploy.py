# dotstow - deploy dotfiles packages with GNU Stow
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Deployment orchestration.

deploy_base() runs one invocation through its states:

    DirectoryCheck -> ConflictCheck -> ForceResolve -> DirectoryCreate -> Deploy

and either returns the DeploymentResult (Success) or raises the exception
for the terminal state it stopped in. Packages are stowed one at a time and
the first stow failure stops the run; packages linked before it stay linked.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from typing import Optional, Sequence

from dotstow.config import DotstowConfig
from dotstow.resolve import check_all_conflicts, handle_conflicts
from dotstow.types import (
    ConflictsFoundError,
    DeployFailedError,
    DeploymentResult,
    DotstowError,
    SourceMissingError,
)
from dotstow.util import debug, error, info, ok, step, warn

SSH_DIR_PERMISSIONS = 0o700

STOW_INSTALL_HINT = """\
GNU Stow is not installed.

Install it with:
  macOS:  brew install stow
  Ubuntu: sudo apt install stow
  Arch:   sudo pacman -S stow"""


def check_prerequisites(config: DotstowConfig) -> str:
    """Return the path of the stow executable or fail with install hints."""
    path = shutil.which(config.stow_command[0])
    if path is None:
        raise DotstowError(STOW_INSTALL_HINT)
    debug(1, 0, f"stow found: {path}")
    return path


def create_directories(config: DotstowConfig) -> None:
    """Create ~/.config and ~/.ssh/sockets; SSH dirs are made private."""
    sockets_dir = os.path.join(config.ssh_dir, "sockets")
    for path in (config.config_dir, sockets_dir):
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise DotstowError(f"Failed to create {path} ({e.strerror or e})") from e

    for path in (config.ssh_dir, sockets_dir):
        try:
            os.chmod(path, SSH_DIR_PERMISSIONS)
        except OSError as e:
            # Not supported on every filesystem
            debug(1, 0, f"chmod {path} failed: {e}")


def filter_stow_output(output: str) -> str:
    """Drop the informational LINK: lines from stow's verbose output."""
    return "\n".join(
        line for line in output.splitlines() if not line.startswith("LINK:")
    ).strip()


def stow_args(
    config: DotstowConfig, base_dir: str, package: str, adopt: bool = False, delete: bool = False
) -> list[str]:
    args = list(config.stow_command)
    args += ["-v", "-d", base_dir, "-t", config.target]
    if delete:
        args.append("-D")
    else:
        args.append("--no-folding")
        args += [f"--ignore={pattern}" for pattern in config.ignore]
        if adopt:
            args.append("--adopt")
    args.append(package)
    return args


def run_stow(args: Sequence[str], cwd: str, timeout: Optional[float]) -> tuple[int, str]:
    """Run stow and return (returncode, combined stdout and stderr)."""
    debug(1, 0, f"Running: {' '.join(args)}")
    try:
        proc = subprocess.run(
            list(args),
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except FileNotFoundError as e:
        return 127, f"{args[0]}: command not found ({e.strerror})"
    except subprocess.TimeoutExpired:
        return 124, f"{args[0]} timed out after {timeout} seconds"
    return proc.returncode, proc.stdout or ""


def deploy_packages(
    base_dir: str,
    adopt: bool,
    packages: Sequence[str],
    config: DotstowConfig,
    report_missing: bool = True,
) -> DeploymentResult:
    """
    Stow each package found under base_dir.

    Missing packages are recorded and skipped. The first stow failure stops
    processing; its package and filtered output are recorded in the result.
    """
    result = DeploymentResult()

    if adopt:
        step("Adopt mode enabled")

    for package in packages:
        if not os.path.isdir(os.path.join(base_dir, package)):
            result.missing.append(package)
            continue

        debug(2, 0, f"Stowing {package} from {base_dir}")
        args = stow_args(config, base_dir, package, adopt=adopt)
        returncode, output = run_stow(args, base_dir, config.stow_timeout)
        if returncode != 0:
            result.failed_package = package
            result.error_output = filter_stow_output(output)
            error(package)
            if result.error_output:
                print(result.error_output)
            return result
        result.stowed.append(package)

    if result.stowed:
        ok(" ".join(result.stowed))
    if report_missing:
        for package in result.missing:
            warn(f"Package not found: {package}")

    return result


def deploy_base(
    config: DotstowConfig,
    packages: Sequence[str],
    force: bool = False,
    adopt: bool = False,
) -> DeploymentResult:
    """
    Deploy the base dotfiles packages.

    Raises:
        SourceMissingError: the dotfiles directory is not reachable
        ConflictsFoundError: conflicts exist and neither force nor adopt is set
        DeployFailedError: stow failed for a package
    """
    base_dir = config.dotfiles_dir
    if not os.path.isdir(base_dir):
        error(f"Cannot access {base_dir}")
        raise SourceMissingError(base_dir)

    if not force and not adopt:
        report = check_all_conflicts(base_dir, packages, config.target)
        if report:
            raise ConflictsFoundError(report)

    if force:
        handle_conflicts(True, base_dir, packages, config.target)

    create_directories(config)

    result = deploy_packages(base_dir, adopt, packages, config)
    if not result.success:
        raise DeployFailedError(result)
    return result


def deploy_work(
    config: DotstowConfig, packages: Sequence[str], adopt: bool = False
) -> Optional[DeploymentResult]:
    """
    Deploy the work overlay if its directory exists.

    The overlay only carries some packages, so missing ones are not reported.
    Returns None when there is no overlay.
    """
    work_dir = config.work_dir
    if not work_dir or not os.path.isdir(work_dir):
        info(f"Work dotfiles not found at {work_dir} (skipping)")
        info("To install the work overlay later:")
        info(f"  git clone <work-repo-url> {work_dir}")
        info(f"  {' '.join(config.stow_command)} -d {work_dir} -t {config.target} {' '.join(packages)}")
        return None

    step(f"Deploying work overlay from {work_dir}")
    result = deploy_packages(work_dir, adopt, packages, config, report_missing=False)
    if not result.success:
        raise DeployFailedError(result)
    return result


def unstow_packages(config: DotstowConfig, packages: Sequence[str]) -> DeploymentResult:
    """Remove the links of each package from the dotfiles and work dirs."""
    result = DeploymentResult()

    for base_dir in config.managed_roots:
        for package in packages:
            if not os.path.isdir(os.path.join(base_dir, package)):
                continue
            args = stow_args(config, base_dir, package, delete=True)
            returncode, output = run_stow(args, base_dir, config.stow_timeout)
            if returncode != 0:
                result.failed_package = package
                result.error_output = filter_stow_output(output)
                error(f"Failed to unstow {package}")
                if result.error_output:
                    print(result.error_output)
                return result
            if package not in result.stowed:
                result.stowed.append(package)

    if result.stowed:
        ok(f"Symlinks removed: {' '.join(result.stowed)}")
    return result
