"""
Pytest configuration for dotstow tests.

Each test gets a throwaway dotfiles directory, work overlay and home
directory under tmp_path. Stow itself is replaced by tests/fake_stow.py,
run with the current interpreter, unless a test asks for the real one.
"""

import os
import shutil
import sys

import pytest

from dotstow.config import DotstowConfig, parse_package_table
from dotstow.util import set_color, set_debug_level

TESTS_DIR = os.path.dirname(os.path.abspath(__file__))
FAKE_STOW = os.path.join(TESTS_DIR, "fake_stow.py")
FAKE_STOW_COMMAND = (sys.executable, FAKE_STOW)
REAL_STOW = shutil.which("stow")

TEST_PACKAGE_ENTRIES = (
    "zsh:.zshrc:.zshrc",
    "git:.gitconfig,.gitignore_global:.gitconfig",
    "nvim:.config/nvim:.config/nvim/init.lua",
    "ssh:.ssh/config:.ssh/config",
)


def _write(full_path, content):
    parent = os.path.dirname(full_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(full_path, "w") as f:
        f.write(content)


class DotfilesTestEnv:
    """Dotfiles, work overlay and home directories for one test."""

    def __init__(self, tmpdir):
        self.tmpdir = str(tmpdir)
        self.dotfiles_dir = os.path.join(self.tmpdir, "dotfiles")
        self.work_dir = os.path.join(self.tmpdir, "dotfiles-work")
        self.home = os.path.join(self.tmpdir, "home")
        os.makedirs(self.dotfiles_dir)
        os.makedirs(self.home)

    def create_package(self, name, files, work=False):
        """
        Create a package in the dotfiles (or work) directory.

        files: dict mapping relative paths to content (or None for directories)
        """
        pkg_dir = os.path.join(self.work_dir if work else self.dotfiles_dir, name)
        os.makedirs(pkg_dir, exist_ok=True)

        for path, content in files.items():
            full_path = os.path.join(pkg_dir, path)
            if content is None:
                os.makedirs(full_path, exist_ok=True)
            else:
                _write(full_path, content)
        return pkg_dir

    def home_path(self, path):
        return os.path.join(self.home, path)

    def package_path(self, package, path="", work=False):
        base = self.work_dir if work else self.dotfiles_dir
        return os.path.join(base, package, path) if path else os.path.join(base, package)

    def create_home_file(self, path, content="existing"):
        full_path = self.home_path(path)
        _write(full_path, content)
        return full_path

    def create_home_dir(self, path):
        full_path = self.home_path(path)
        os.makedirs(full_path, exist_ok=True)
        return full_path

    def create_home_link(self, path, dest):
        full_path = self.home_path(path)
        parent = os.path.dirname(full_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        os.symlink(dest, full_path)
        return full_path

    def link_into_package(self, package, path, work=False):
        """Link home/path to the matching package file, as stow would."""
        return self.create_home_link(path, self.package_path(package, path, work))

    def config(self, **kwargs):
        settings = dict(
            dotfiles_dir=self.dotfiles_dir,
            work_dir=self.work_dir,
            target=self.home,
            packages=parse_package_table(TEST_PACKAGE_ENTRIES),
            stow_command=FAKE_STOW_COMMAND,
        )
        settings.update(kwargs)
        return DotstowConfig(**settings)

    def home_state(self):
        """
        Snapshot of the home directory.

        Returns a dict mapping relative paths to ('dir',), ('file', content)
        or ('link', destination).
        """
        state = {}
        for root, dirs, files in os.walk(self.home):
            rel_root = os.path.relpath(root, self.home)
            rel_root = "" if rel_root == "." else rel_root
            for name in sorted(dirs + files):
                rel = os.path.join(rel_root, name)
                full_path = os.path.join(root, name)
                if os.path.islink(full_path):
                    state[rel] = ("link", os.readlink(full_path))
                elif os.path.isdir(full_path):
                    state[rel] = ("dir",)
                else:
                    with open(full_path) as f:
                        state[rel] = ("file", f.read())
        return state


@pytest.fixture(autouse=True)
def isolated_output(monkeypatch, tmp_path):
    """Plain output, default verbosity, and no ~/.dotstowrc from the real home."""
    set_color(False)
    set_debug_level(0)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for name in ("DOTFILES_DIR", "WORK_DOTFILES_DIR", "DOTFILES_HOME", "DOTFILES_BACKUP_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    set_color(None)
    set_debug_level(0)


@pytest.fixture
def dot_env(tmp_path):
    """Create a fresh dotfiles test environment."""
    return DotfilesTestEnv(tmp_path)


requires_stow = pytest.mark.skipif(REAL_STOW is None, reason="GNU Stow not installed")
