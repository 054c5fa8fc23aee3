"""End-to-end tests for the dotstow command."""

import os
import shlex

import pytest

from conftest import FAKE_STOW_COMMAND
from dotstow.backup import list_backups
from dotstow.cli import main, parse_cli_options
from dotstow.util import VERSION

ENTRIES = ["--package-entry=zsh:.zshrc:.zshrc", "--package-entry=git:.gitconfig:.gitconfig"]


def run_dotstow(dot_env, *args):
    """Run main() against the test environment and return the exit code."""
    argv = [
        "-d", dot_env.dotfiles_dir,
        "-t", dot_env.home,
        f"--work-dir={dot_env.work_dir}",
        f"--stow-command={shlex.join(FAKE_STOW_COMMAND)}",
        *ENTRIES,
        *args,
    ]
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    return excinfo.value.code


@pytest.fixture
def packages(dot_env):
    dot_env.create_package("zsh", {".zshrc": "repo zshrc"})
    dot_env.create_package("git", {".gitconfig": "repo gitconfig"})
    return dot_env


class TestParseOptions:
    def test_bundled_short_flags(self):
        options, packages = parse_cli_options(["-fvv", "zsh", "--", "-odd"])
        assert options == {"force": True, "verbose": 2}
        assert packages == ["zsh", "-odd"]

    def test_valued_options(self):
        options, _ = parse_cli_options([
            "--dir", "/d", "--target=/t", "--stow-timeout=2.5",
            "--package-entry=a:b:c", "--package-entry", "x:y:z",
        ])
        assert options["dotfiles_dir"] == "/d"
        assert options["target"] == "/t"
        assert options["stow_timeout"] == 2.5
        assert options["package_entries"] == ["a:b:c", "x:y:z"]

    def test_clean_backups_default_and_value(self):
        assert parse_cli_options(["--clean-backups"])[0]["clean_backups"] == 7
        assert parse_cli_options(["--clean-backups=3"])[0]["clean_backups"] == 3.0

    def test_unknown_option(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            parse_cli_options(["--bogus"])
        assert excinfo.value.code == 1
        assert "Unknown option: bogus" in capsys.readouterr().err


class TestInstall:
    def test_clean_install(self, packages, capsys):
        assert run_dotstow(packages) == 0

        out = capsys.readouterr().out
        assert "zsh git" in out
        assert "Installation verified (2 configs)" in out
        assert os.path.islink(packages.home_path(".zshrc"))
        assert os.path.isdir(packages.home_path(".ssh/sockets"))
        assert list_backups(packages.config()) == []

    def test_conflict_aborts_after_backup(self, packages, capsys):
        packages.create_home_file(".zshrc", "my zshrc")

        assert run_dotstow(packages) == 1

        captured = capsys.readouterr()
        assert "Conflicts detected" in captured.out
        err = captured.err
        assert "dotstow: ERROR: 1 conflict found; nothing was deployed" in err
        assert not os.path.islink(packages.home_path(".zshrc"))
        assert not os.path.lexists(packages.home_path(".gitconfig"))
        [backup_dir] = list_backups(packages.config())
        with open(os.path.join(backup_dir, ".zshrc")) as f:
            assert f.read() == "my zshrc"

    def test_force_backs_up_then_replaces(self, packages):
        packages.create_home_file(".zshrc", "my zshrc")

        assert run_dotstow(packages, "--force") == 0

        assert os.path.islink(packages.home_path(".zshrc"))
        [backup_dir] = list_backups(packages.config())
        assert os.path.isfile(os.path.join(backup_dir, ".zshrc"))

    def test_force_without_backup(self, packages, capsys):
        packages.create_home_file(".zshrc", "my zshrc")

        assert run_dotstow(packages, "-f", "--no-backup") == 0

        assert "Skipping backup" in capsys.readouterr().out
        assert list_backups(packages.config()) == []
        assert os.path.islink(packages.home_path(".zshrc"))

    def test_selected_package_only(self, packages):
        assert run_dotstow(packages, "zsh") == 0
        assert os.path.islink(packages.home_path(".zshrc"))
        assert not os.path.lexists(packages.home_path(".gitconfig"))

    def test_work_overlay(self, packages, capsys):
        packages.create_package("zsh", {".zshrc.work": "w"}, work=True)

        assert run_dotstow(packages) == 0

        assert os.path.islink(packages.home_path(".zshrc.work"))
        assert "Work overlay status:" in capsys.readouterr().out

    def test_relative_directories(self, packages):
        """-d and -t relative to the current directory."""
        argv = [
            "-d", "dotfiles", "-t", "home", "--no-work",
            f"--stow-command={shlex.join(FAKE_STOW_COMMAND)}",
            *ENTRIES,
        ]
        with pytest.raises(SystemExit) as excinfo:
            main(argv)

        assert excinfo.value.code == 0
        assert os.path.islink(packages.home_path(".zshrc"))
        assert os.path.islink(packages.home_path(".gitconfig"))

    def test_missing_dotfiles_dir(self, dot_env, capsys):
        dot_env.dotfiles_dir = os.path.join(dot_env.tmpdir, "missing")
        assert run_dotstow(dot_env) == 1
        assert "Cannot access" in capsys.readouterr().err

    def test_no_valid_packages(self, packages, capsys):
        assert run_dotstow(packages, "emacs") == 1
        err = capsys.readouterr().err
        assert "Unknown package: emacs" in err
        assert "No valid packages given" in err


class TestOtherCommands:
    def test_delete(self, packages):
        assert run_dotstow(packages) == 0
        assert run_dotstow(packages, "-D", "zsh") == 0
        assert not os.path.lexists(packages.home_path(".zshrc"))
        assert os.path.islink(packages.home_path(".gitconfig"))

    def test_delete_with_force_is_rejected(self, packages):
        assert run_dotstow(packages, "-D", "-f") == 1

    def test_clean_backups(self, packages):
        old = packages.create_home_dir(".dotfiles-backup-20200101-000000")
        os.utime(old, (0, 0))
        assert run_dotstow(packages, "--clean-backups") == 0
        assert not os.path.exists(old)

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--version"])
        assert excinfo.value.code == 0
        assert VERSION in capsys.readouterr().out

    def test_help(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["-h"])
        assert excinfo.value.code == 0
        assert "SYNOPSIS" in capsys.readouterr().out
