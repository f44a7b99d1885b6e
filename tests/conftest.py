"""Shared fixtures: a scripted git boundary and repository factories."""

import subprocess
from unittest.mock import patch

import pytest

from git_armada.models import RepositoryDescriptor


class FakeGit:
    """Stand-in for subprocess.run that answers git calls from a script.

    Responses are keyed by a prefix of the git arguments, e.g.
    ``("status",)`` or ``("rev-list",)``; the longest matching prefix wins.
    A value is ``(returncode, stdout, stderr)`` or an exception to raise.
    Unscripted calls succeed with empty output.
    """

    def __init__(self):
        self.responses = {}
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((list(cmd), kwargs.get("cwd")))
        key = tuple(cmd[1:]) if cmd[0] == "git" else tuple(cmd)
        value = (0, "", "")
        for length in range(len(key), 0, -1):
            if key[:length] in self.responses:
                value = self.responses[key[:length]]
                break
        if isinstance(value, BaseException):
            raise value
        returncode, stdout, stderr = value
        return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)

    def git_calls(self, cwd=None):
        """Git argument lists, optionally only those run in ``cwd``."""
        return [
            cmd[1:]
            for cmd, call_cwd in self.calls
            if cmd[0] == "git" and (cwd is None or str(call_cwd) == str(cwd))
        ]

    def subcommands(self, cwd=None):
        return [args[0] for args in self.git_calls(cwd)]


@pytest.fixture
def fake_git():
    fake = FakeGit()
    with patch("git_armada.core.subprocess.run", fake):
        yield fake


@pytest.fixture
def make_repo(tmp_path):
    """Create a working tree directory and return its descriptor."""

    def _make(name, **kwargs):
        path = tmp_path / name
        path.mkdir(exist_ok=True)
        return RepositoryDescriptor(name=name, path=str(path), **kwargs)

    return _make
