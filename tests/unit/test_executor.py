"""Tests for running shell commands inside repositories."""

from unittest.mock import patch

from git_armada.core import GitRepository
from git_armada.models import FailureKind, RepositoryDescriptor


class TestRunCommand:
    """Tests for GitRepository.run_command."""

    def test_captures_stdout(self, make_repo):
        """Successful command output is captured."""
        outcome = GitRepository(make_repo("ok")).run_command("echo hello")

        assert outcome.success
        assert outcome.command.exit_code == 0
        assert outcome.command.stdout == "hello\n"
        assert outcome.command.stderr == ""

    def test_runs_in_repository_directory(self, make_repo):
        """The working directory is the repository path."""
        repo = make_repo("here")
        outcome = GitRepository(repo).run_command("pwd")

        assert outcome.command.stdout.strip().endswith("/here")

    def test_stderr_only_with_nonzero_exit(self, make_repo):
        """Exit code and stderr are reported, stdout stays empty."""
        outcome = GitRepository(make_repo("bad")).run_command("echo oops >&2; exit 3")

        assert not outcome.success
        assert outcome.failure == FailureKind.EXIT_CODE
        assert outcome.command.exit_code == 3
        assert outcome.command.stdout == ""
        assert outcome.command.stderr == "oops\n"
        assert "3" in outcome.error

    def test_command_string_passed_verbatim(self, make_repo):
        """The command is handed to the shell unparsed."""
        repo = make_repo("verbatim")
        with patch("git_armada.core.subprocess.run") as mock_run:
            mock_run.return_value.returncode = 0
            mock_run.return_value.stdout = ""
            mock_run.return_value.stderr = ""
            GitRepository(repo).run_command("git log --oneline | head -n 3")

        args = mock_run.call_args[0][0]
        assert args == ["sh", "-c", "git log --oneline | head -n 3"]
        assert str(mock_run.call_args[1]["cwd"]) == repo.path

    def test_spawn_failure_is_distinct_from_exit(self, make_repo):
        """A shell that cannot be started is a spawn error."""
        outcome = GitRepository(make_repo("spawn")).run_command(
            "true", shell="/nonexistent/shell"
        )

        assert not outcome.success
        assert outcome.failure == FailureKind.SPAWN_ERROR
        assert outcome.command.exit_code is None
        assert "Failed to execute command" in outcome.error

    def test_missing_path(self, tmp_path):
        """A missing repository path skips the command."""
        repo = RepositoryDescriptor(name="gone", path=str(tmp_path / "gone"))
        outcome = GitRepository(repo).run_command("touch should-not-exist")

        assert outcome.failure == FailureKind.PATH_MISSING
        assert outcome.command is None
        assert not (tmp_path / "gone").exists()
