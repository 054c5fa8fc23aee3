# dotstow - deploy dotfiles packages with GNU Stow
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Command-line interface for dotstow.

This module contains argument parsing, .dotstowrc handling and the install
workflow that ties backup, deployment and verification together.
"""

from __future__ import annotations

import os
import sys
from typing import Optional, Sequence

from dotstow.backup import create_backup, prune_backups
from dotstow.config import (
    DotstowConfig,
    apply_options,
    config_from_environment,
    get_config_file_options,
    resolve_packages,
)
from dotstow.deploy import (
    check_prerequisites,
    deploy_base,
    deploy_work,
    unstow_packages,
)
from dotstow.types import DotstowCLIError, DotstowError
from dotstow.util import (
    PROGRAM_NAME,
    VERSION,
    blank,
    info,
    set_debug_level,
    tildify,
)
from dotstow.verify import print_work_overlay_status, verify_installation

DEFAULT_BACKUP_MAX_AGE_DAYS = 7

_BOOLEAN_FLAGS = {
    "f": "force",
    "a": "adopt",
    "D": "delete",
}

# --name=VALUE / --name VALUE options and the option key they set
_VALUED_OPTIONS = {
    "dir": "dotfiles_dir",
    "target": "target",
    "work-dir": "work_dir",
    "backup-dir": "backup_dir",
    "stow-command": "stow_command",
    "stow-timeout": "stow_timeout",
    "package-entry": "package_entries",
}


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point for the dotstow command."""
    try:
        sys.exit(_main(sys.argv[1:] if argv is None else list(argv)))
    except DotstowCLIError as e:
        print(e.message, file=sys.stderr)
        sys.exit(e.errno)
    except DotstowError as e:
        print(f"{PROGRAM_NAME}: ERROR: {e.message}", file=sys.stderr)
        sys.exit(e.errno)
    except KeyboardInterrupt:
        print(f"\n{PROGRAM_NAME}: interrupted", file=sys.stderr)
        sys.exit(130)


def _main(argv: list[str]) -> int:
    """Main implementation (can raise DotstowError)."""
    config, options, requested = process_options(argv)
    set_debug_level(config.verbose)

    packages = resolve_packages(requested, config)
    if requested and not packages:
        raise DotstowCLIError(f"{PROGRAM_NAME}: No valid packages given")

    if "clean_backups" in options:
        prune_backups(config, options["clean_backups"])
        return 0

    if options.get("delete"):
        check_prerequisites(config)
        result = unstow_packages(config, packages)
        return 0 if result.success else 1

    install(
        config,
        packages,
        force=options.get("force", False),
        adopt=options.get("adopt", False),
        backup=options.get("backup", True),
        work=options.get("work", True),
        verify=options.get("verify", True),
    )
    return 0


def install(
    config: DotstowConfig,
    packages: Sequence[str],
    force: bool = False,
    adopt: bool = False,
    backup: bool = True,
    work: bool = True,
    verify: bool = True,
) -> None:
    """Back up, deploy, deploy the work overlay and verify."""
    info(f"Deploying dotfiles from {tildify(config.dotfiles_dir, config.target)}")
    check_prerequisites(config)

    result = create_backup(config.backup_files(packages), config, skip=not backup)
    if not result.success:
        raise DotstowError(
            result.error or f"{len(result.failed)} file(s) could not be backed up"
        )

    deploy_base(config, packages, force=force, adopt=adopt)

    if work:
        deploy_work(config, packages, adopt=adopt)

    if verify:
        verify_installation(config.verify_links(packages), config)
        if work:
            print_work_overlay_status(config)

    print_next_steps()


def print_next_steps() -> None:
    blank()
    info("Next steps:")
    info("  1. source ~/.zshrc")
    info("  2. git config user.email")
    info("  3. ssh -T git@github.com")
    blank()


def process_options(argv: Sequence[str]) -> tuple[DotstowConfig, dict, list[str]]:
    """Merge environment, .dotstowrc and command line into a config.

    Returns: (config, options, requested_packages)
    """
    cli_options, cli_packages = parse_cli_options(argv)
    rc_options = get_config_file_options(parse_cli_options)

    options = dict(rc_options)
    for option, cli_value in cli_options.items():
        rc_value = rc_options.get(option)
        if isinstance(cli_value, list) and rc_value is not None:
            options[option] = list(rc_value) + list(cli_value)
        else:
            options[option] = cli_value

    requested = cli_packages or options.pop("packages", [])
    options.pop("packages", None)

    if options.get("delete") and (options.get("force") or options.get("adopt")):
        show_usage_and_exit("--delete cannot be combined with --force or --adopt")

    config = apply_options(config_from_environment(), options)
    return config, options, list(requested)


def _option_value(args: Sequence[str], i: int, arg: str, name: str) -> tuple[Optional[str], int]:
    """Value of --name=VALUE or --name VALUE; returns (value, new_index)."""
    if arg.startswith(f"--{name}="):
        return arg[len(name) + 3:], i
    if arg == f"--{name}":
        if i + 1 >= len(args):
            show_usage_and_exit(f"Option {name} requires an argument")
        return args[i + 1], i + 1
    return None, i


def _store_valued_option(options: dict, name: str, value: str) -> None:
    match name:
        case "package-entry":
            options.setdefault("package_entries", []).append(value)
        case "stow-timeout":
            try:
                options["stow_timeout"] = float(value)
            except ValueError:
                show_usage_and_exit(f"Invalid --stow-timeout value: {value}")
        case _:
            options[_VALUED_OPTIONS[name]] = value


def parse_cli_options(args: Sequence[str]) -> tuple[dict, list[str]]:
    """Parse command line options.

    Returns: (options, packages)
    """
    options: dict = {}
    packages: list[str] = []

    i = 0
    while i < len(args):
        arg = args[i]

        name = arg[2:].split("=", 1)[0] if arg.startswith("--") else None
        if name in _VALUED_OPTIONS:
            value, i = _option_value(args, i, arg, name)
            _store_valued_option(options, name, value)

        elif arg in ("-d", "-t"):
            if i + 1 >= len(args):
                show_usage_and_exit(f"Option {arg[1]} requires an argument")
            i += 1
            options["dotfiles_dir" if arg == "-d" else "target"] = args[i]

        elif arg in ("-f", "--force"):
            options["force"] = True
        elif arg in ("-a", "--adopt"):
            options["adopt"] = True
        elif arg in ("-D", "--delete", "--uninstall"):
            options["delete"] = True
        elif arg == "--no-backup":
            options["backup"] = False
        elif arg == "--no-work":
            options["work"] = False
        elif arg == "--no-verify":
            options["verify"] = False
        elif arg == "--clean-backups":
            options["clean_backups"] = DEFAULT_BACKUP_MAX_AGE_DAYS
        elif arg.startswith("--clean-backups="):
            try:
                options["clean_backups"] = float(arg[16:])
            except ValueError:
                show_usage_and_exit(f"Invalid --clean-backups value: {arg[16:]}")

        elif arg in ("-v", "--verbose"):
            options["verbose"] = options.get("verbose", 0) + 1
        elif arg.startswith("--verbose="):
            try:
                options["verbose"] = int(arg[10:])
            except ValueError:
                options["verbose"] = 1

        elif arg in ("-h", "--help"):
            show_usage_and_exit()
        elif arg in ("-V", "--version"):
            show_version_and_exit()

        elif arg == "--":
            packages.extend(args[i + 1:])
            break
        elif not arg.startswith("-") or arg == "-":
            packages.append(arg)

        elif arg.startswith("--"):
            opt_name = arg[2:].split("=", 1)[0]
            show_usage_and_exit(f"Unknown option: {opt_name}")

        else:
            # Bundled short flags: -fv is -f -v
            for char in arg[1:]:
                match char:
                    case "v":
                        options["verbose"] = options.get("verbose", 0) + 1
                    case "h":
                        show_usage_and_exit()
                    case "V":
                        show_version_and_exit()
                    case _ if char in _BOOLEAN_FLAGS:
                        options[_BOOLEAN_FLAGS[char]] = True
                    case _:
                        show_usage_and_exit(f"Unknown option: {char}")

        i += 1

    return options, packages


def show_usage_and_exit(msg: str | None = None, exit_code: int | None = None) -> None:
    """Print program usage message and exit."""
    if msg:
        print(msg, file=sys.stderr)

    print(f"""{PROGRAM_NAME} version {VERSION}

Deploy dotfiles packages into your home directory with GNU Stow.

SYNOPSIS:

    {PROGRAM_NAME} [OPTION ...] [PACKAGE ...]

OPTIONS:

    -f, --force           Remove conflicting symlinks/files before stowing
    -a, --adopt           Adopt existing files into stow packages
    -D, --delete          Remove the symlinks of the given packages
    --clean-backups[=N]   Remove backups older than N days (default {DEFAULT_BACKUP_MAX_AGE_DAYS})

    -d DIR, --dir=DIR     Dotfiles directory (default $DOTFILES_DIR or ~/.dotfiles)
    -t DIR, --target=DIR  Target directory (default $DOTFILES_HOME or $HOME)
    --work-dir=DIR        Work overlay directory (default ~/.dotfiles-work)
    --backup-dir=DIR      Where backups are written (default: target)
    --package-entry=E     Package table entry pkg:backup:verify (repeatable)
    --stow-command=CMD    Command used to run GNU Stow (default: stow)
    --stow-timeout=SECS   Give up on a stow run after SECS seconds

    --no-backup           Do not back up existing files
    --no-work             Do not deploy the work overlay
    --no-verify           Do not verify the installation

    -v, --verbose[=N]     Increase verbosity (levels are from 0 to 4;
                            -v or --verbose adds 1; --verbose=N sets level)
    -V, --version         Show version number
    -h, --help            Show this help

With no PACKAGE, every configured package is deployed.
Options are also read from ~/.dotstowrc and ./.dotstowrc.""")

    if exit_code is not None:
        sys.exit(exit_code)
    elif msg:
        sys.exit(1)
    else:
        sys.exit(0)


def show_version_and_exit() -> None:
    """Print version and exit."""
    print(f"{PROGRAM_NAME} version {VERSION}")
    sys.exit(0)


if __name__ == "__main__":
    main()
