"""Tests for the shared record types."""

import pytest

from dotstow.types import (
    BackupResult,
    ConflictKind,
    ConflictRecord,
    ConflictReport,
    ConflictsFoundError,
    DeployFailedError,
    DeploymentResult,
    DeployState,
    SourceMissingError,
)


class TestConflictRecord:
    def test_file_record_has_no_link_target(self):
        record = ConflictRecord.file("/home/u/.zshrc")
        assert record.kind is ConflictKind.FILE
        assert record.link_target is None

    def test_file_record_rejects_link_target(self):
        with pytest.raises(ValueError):
            ConflictRecord(ConflictKind.FILE, "/home/u/.zshrc", "/elsewhere")

    def test_serialize_file(self):
        assert str(ConflictRecord.file("/home/u/.zshrc")) == "file:/home/u/.zshrc"

    def test_serialize_symlink_with_package(self):
        record = ConflictRecord.symlink("/home/u/.gitconfig", "/old/gitconfig").with_package("git")
        assert record.serialize() == "git:symlink:/home/u/.gitconfig:/old/gitconfig"

    def test_parse_symlink_takes_last_field_as_target(self):
        record = ConflictRecord.parse("symlink:/home/u/odd:name:/dest")
        assert record == ConflictRecord.symlink("/home/u/odd:name", "/dest")

    def test_parse_file_keeps_colons_in_path(self):
        record = ConflictRecord.parse("nvim:file:/home/u/a:b")
        assert record.package == "nvim"
        assert record.path == "/home/u/a:b"

    @pytest.mark.parametrize("text", ["", "file", "bogus:kind:/x", "symlink:/x", "file:"])
    def test_parse_rejects_malformed(self, text):
        with pytest.raises(ValueError):
            ConflictRecord.parse(text)


class TestConflictReport:
    def test_packages_in_first_seen_order(self):
        report = ConflictReport([
            ConflictRecord.file("/h/b").with_package("zsh"),
            ConflictRecord.file("/h/a").with_package("git"),
            ConflictRecord.file("/h/c").with_package("zsh"),
        ])
        assert report.packages() == ["zsh", "git"]
        assert report.paths() == ["/h/b", "/h/a", "/h/c"]
        assert len(report) == 3

    def test_empty_report_is_falsy(self):
        assert not ConflictReport()


class TestResults:
    def test_deployment_success_depends_on_failed_package(self):
        assert DeploymentResult(stowed=["zsh"], missing=["x"]).success
        assert not DeploymentResult(failed_package="git").success

    def test_backup_success(self):
        assert BackupResult().success
        assert not BackupResult(failed=[("/h/x", "denied")]).success
        assert not BackupResult(error="cannot create").success


class TestExceptions:
    def test_states(self):
        assert SourceMissingError("/d").state is DeployState.ABORTED_ON_MISSING_SOURCE
        report = ConflictReport([ConflictRecord.file("/h/x")])
        err = ConflictsFoundError(report)
        assert err.state is DeployState.ABORTED_ON_CONFLICT
        assert err.message == "1 conflict found; nothing was deployed"
        failed = DeployFailedError(DeploymentResult(failed_package="git"))
        assert failed.state is DeployState.FAILED_DURING_DEPLOY
        assert "git" in failed.message
