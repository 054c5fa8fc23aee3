# dotstow - deploy dotfiles packages with GNU Stow
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Configuration for dotstow.

All settings live in one frozen DotstowConfig value that is passed to each
component, instead of being read from ambient global state. Values come from
built-in defaults, then environment variables, then .dotstowrc files, then
command-line options.
"""

from __future__ import annotations

import dataclasses
import os
import pwd
import re
import shlex
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence

from dotstow.types import ConfigError, DotstowCLIError, PackageSpec
from dotstow.util import warn

RC_FILE = ".dotstowrc"
DEFAULT_BACKUP_PREFIX = ".dotfiles-backup-"

# pkg:backup[,backup...]:verify[,verify...], paths relative to the target
DEFAULT_PACKAGE_ENTRIES = (
    "zsh:.zshrc:.zshrc",
    "git:.gitconfig,.gitconfig.personal,.gitignore_global:.gitconfig,.gitconfig.personal",
    "nvim:.config/nvim:.config/nvim/init.lua",
    "ssh:.ssh/config:.ssh/config",
    "ghostty:.config/ghostty:.config/ghostty/config",
)

DEFAULT_WORK_FILES = (
    ".zshrc.work",
    ".gitconfig.work",
    ".ssh/config.work",
    ".config/nvim/lua/plugins-work",
)

# Passed to stow as --ignore; dependency manifests and installer scripts
# live next to the config files but are not config themselves.
DEFAULT_IGNORE = ("deps.*", r"install\.sh")


def parse_package_entry(entry: str) -> PackageSpec:
    """Parse one pkg:backup:verify table entry."""
    fields = entry.split(":")
    if len(fields) != 3:
        raise ConfigError(
            f"Invalid package entry '{entry}': expected pkg:backup:verify"
        )

    name, backup, verify = (f.strip() for f in fields)
    if not name:
        raise ConfigError(f"Invalid package entry '{entry}': empty package name")
    if not backup:
        raise ConfigError(f"Invalid package entry '{entry}': empty backup path")
    if not verify:
        raise ConfigError(f"Invalid package entry '{entry}': empty verify path")
    if "/" in name:
        raise ConfigError(
            f"Invalid package entry '{entry}': slashes are not permitted in package names"
        )

    return PackageSpec(
        name=name,
        backup_paths=tuple(p.strip() for p in backup.split(",") if p.strip()),
        verify_paths=tuple(p.strip() for p in verify.split(",") if p.strip()),
    )


def parse_package_table(entries: Iterable[str]) -> tuple[PackageSpec, ...]:
    specs: dict[str, PackageSpec] = {}
    for entry in entries:
        spec = parse_package_entry(entry)
        if spec.name in specs:
            raise ConfigError(f"Duplicate package entry for {spec.name}")
        specs[spec.name] = spec
    return tuple(specs.values())


@dataclass(frozen=True)
class DotstowConfig:
    """
    Settings for one dotstow invocation.

    Attributes:
        dotfiles_dir: Directory holding one subdirectory per package
        work_dir: Optional overlay directory with the same layout
        target: Directory where symlinks are created (normally $HOME)
        backup_dir: Directory receiving timestamped backup directories
        backup_prefix: Name prefix of each backup directory
        packages: Configured package table
        work_files: Overlay files reported after install, relative to target
        stow_command: Argument vector prefix used to run GNU Stow
        stow_timeout: Seconds to wait for one stow run (None waits forever)
        ignore: Regexes passed to stow via --ignore
        verbose: Verbosity level for debug()
    """

    dotfiles_dir: str
    target: str
    work_dir: Optional[str] = None
    backup_dir: Optional[str] = None
    backup_prefix: str = DEFAULT_BACKUP_PREFIX
    packages: tuple[PackageSpec, ...] = ()
    work_files: tuple[str, ...] = DEFAULT_WORK_FILES
    stow_command: tuple[str, ...] = ("stow",)
    stow_timeout: Optional[float] = None
    ignore: tuple[str, ...] = DEFAULT_IGNORE
    verbose: int = 0

    def __post_init__(self) -> None:
        if not self.packages:
            object.__setattr__(
                self, "packages", parse_package_table(DEFAULT_PACKAGE_ENTRIES)
            )
        if self.backup_dir is None:
            object.__setattr__(self, "backup_dir", self.target)
        # stow runs inside the package base dir, so paths must be absolute
        for name in ("dotfiles_dir", "work_dir", "target", "backup_dir"):
            path = getattr(self, name)
            if path:
                object.__setattr__(self, name, os.path.abspath(path))

    @property
    def config_dir(self) -> str:
        return os.path.join(self.target, ".config")

    @property
    def ssh_dir(self) -> str:
        return os.path.join(self.target, ".ssh")

    @property
    def package_names(self) -> list[str]:
        return [spec.name for spec in self.packages]

    @property
    def managed_roots(self) -> tuple[str, ...]:
        return tuple(d for d in (self.dotfiles_dir, self.work_dir) if d)

    def package(self, name: str) -> Optional[PackageSpec]:
        for spec in self.packages:
            if spec.name == name:
                return spec
        return None

    def backup_files(self, names: Optional[Sequence[str]] = None) -> list[str]:
        """Absolute paths to back up for the given (or all) packages."""
        return self._target_paths(names, "backup_paths")

    def verify_links(self, names: Optional[Sequence[str]] = None) -> list[str]:
        """Absolute paths expected to be links after install."""
        return self._target_paths(names, "verify_paths")

    def work_paths(self) -> list[str]:
        return [os.path.join(self.target, p) for p in self.work_files]

    def _target_paths(self, names: Optional[Sequence[str]], attr: str) -> list[str]:
        wanted = None if names is None else set(names)
        paths: list[str] = []
        for spec in self.packages:
            if wanted is not None and spec.name not in wanted:
                continue
            for rel in getattr(spec, attr):
                path = os.path.join(self.target, rel)
                if path not in paths:
                    paths.append(path)
        return paths


def resolve_packages(requested: Sequence[str], config: DotstowConfig) -> list[str]:
    """
    Choose which packages to act on.

    An empty request selects every configured package. Unknown names are
    reported and dropped.
    """
    if not requested:
        return config.package_names

    packages: list[str] = []
    for name in requested:
        name = name.rstrip("/")
        if not is_valid_package(name, config):
            warn(f"Unknown package: {name}")
            continue
        if name not in packages:
            packages.append(name)
    return packages


def is_valid_package(name: str, config: DotstowConfig) -> bool:
    return config.package(name) is not None


def config_from_environment(
    environ: Optional[Mapping[str, str]] = None,
) -> DotstowConfig:
    """Build the default config from environment variables."""
    env = os.environ if environ is None else environ
    home = env.get("HOME") or get_homedir_from_passwd() or os.getcwd()
    target = env.get("DOTFILES_HOME") or home

    return DotstowConfig(
        dotfiles_dir=env.get("DOTFILES_DIR") or os.path.join(home, ".dotfiles"),
        work_dir=env.get("WORK_DOTFILES_DIR") or os.path.join(home, ".dotfiles-work"),
        target=target,
        backup_dir=env.get("DOTFILES_BACKUP_DIR") or target,
    )


def apply_options(config: DotstowConfig, options: Mapping) -> DotstowConfig:
    """Return config with parsed CLI/rc options applied."""
    changes: dict = {}
    for key in ("dotfiles_dir", "work_dir", "target", "backup_dir", "verbose"):
        if key in options:
            changes[key] = options[key]
    if "target" in options and "backup_dir" not in options:
        # Backups follow the target unless placed explicitly
        if config.backup_dir == config.target:
            changes["backup_dir"] = options["target"]
    if "stow_command" in options:
        try:
            changes["stow_command"] = tuple(shlex.split(options["stow_command"]))
        except ValueError as e:
            raise ConfigError(f"Invalid --stow-command: {e}") from e
        if not changes["stow_command"]:
            raise ConfigError("Invalid --stow-command: empty command")
    if "stow_timeout" in options:
        changes["stow_timeout"] = options["stow_timeout"]
    if options.get("package_entries"):
        changes["packages"] = parse_package_table(options["package_entries"])
    return dataclasses.replace(config, **changes) if changes else config


def get_config_file_options(parse, environ: Optional[Mapping[str, str]] = None) -> dict:
    """Search for default settings in any .dotstowrc files.

    Each line is shell-split and parsed like command-line options by the
    given parse function. Paths get $VAR and ~ expanded.
    """
    env = os.environ if environ is None else environ
    defaults: list[str] = []
    rc_candidate_paths = [RC_FILE]

    home = env.get("HOME")
    if home:
        rc_candidate_paths.insert(0, os.path.join(home, RC_FILE))

    for file_path in rc_candidate_paths:
        try:
            with open(file_path, "r") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue
                    try:
                        defaults.extend(shlex.split(line))
                    except ValueError:
                        defaults.extend(line.split())
        except (FileNotFoundError, PermissionError):
            continue
        except IsADirectoryError:
            raise DotstowCLIError(f"Could not open {file_path} for reading")

    rc_options, rc_packages = parse(defaults)
    if rc_packages:
        rc_options.setdefault("packages", rc_packages)

    for key, source in (
        ("dotfiles_dir", "--dir option"),
        ("target", "--target option"),
        ("work_dir", "--work-dir option"),
        ("backup_dir", "--backup-dir option"),
    ):
        if key in rc_options:
            rc_options[key] = expand_filepath(rc_options[key], source, env)

    return rc_options


def expand_filepath(path: str, source: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Expand environment variables and tilde in file paths."""
    env = os.environ if environ is None else environ
    path = expand_environment_variables(path, source, env)
    path = expand_tilde_to_homedir(path, env)
    return path


def expand_environment_variables(path: str, source: str, environ: Mapping[str, str]) -> str:
    """Replace non-escaped $VAR and ${VAR} with their values."""

    def replace_var(match):
        var = match.group(1)
        try:
            return environ[var]
        except KeyError:
            raise DotstowCLIError(
                f"{source} references undefined environment variable ${var}; aborting!"
            )

    path = re.sub(r"(?<!\\)\$\{([^}]+)}", replace_var, path)
    path = re.sub(r"(?<!\\)\$(\w+)", replace_var, path)
    return path.replace("\\$", "$")


def expand_tilde_to_homedir(path: str, environ: Mapping[str, str]) -> str:
    """Expand a leading ~ or ~user."""
    if "\\~" in path:
        return path.replace("\\~", "~")

    if not path.startswith("~"):
        return path

    tilde_part, slash, rest = path.partition("/")
    username = tilde_part.removeprefix("~")

    if username:
        home = get_homedir_from_passwd(username=username)
    else:
        home = environ.get("HOME") or get_homedir_from_passwd()

    if not home:
        return path
    return home + slash + rest


def get_homedir_from_passwd(username: str | None = None) -> str | None:
    try:
        if username is not None:
            return pwd.getpwnam(username).pw_dir
        return pwd.getpwuid(os.getuid()).pw_dir
    except KeyError:
        return None
